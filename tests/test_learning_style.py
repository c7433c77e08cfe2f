import pytest

from adaptlearn.learning_style import (
    QUESTIONNAIRE,
    assess_learning_style,
    calculate_style_scores,
    determine_dominant_style,
    style_percentages,
)


def answers_with(visual: int, auditory: int, kinesthetic: int):
    styles = ["VISUAL"] * visual + ["AUDITORY"] * auditory + ["KINESTHETIC"] * kinesthetic
    return {question.id: style for question, style in zip(QUESTIONNAIRE, styles)}


def test_questionnaire_has_twelve_questions_with_three_options():
    assert [question.id for question in QUESTIONNAIRE] == list(range(1, 13))
    for question in QUESTIONNAIRE:
        assert [style for style, _ in question.options] == ["VISUAL", "AUDITORY", "KINESTHETIC"]


def test_scores_count_each_style():
    assert calculate_style_scores(answers_with(6, 4, 2)) == {"VISUAL": 6, "AUDITORY": 4, "KINESTHETIC": 2}


def test_dominant_style():
    assert determine_dominant_style({"VISUAL": 2, "AUDITORY": 3, "KINESTHETIC": 7}) == "KINESTHETIC"


def test_ties_resolve_in_fixed_order():
    assert determine_dominant_style({"VISUAL": 4, "AUDITORY": 4, "KINESTHETIC": 4}) == "VISUAL"
    assert determine_dominant_style({"VISUAL": 2, "AUDITORY": 5, "KINESTHETIC": 5}) == "AUDITORY"


def test_percentages():
    assert style_percentages({"VISUAL": 6, "AUDITORY": 3, "KINESTHETIC": 3}) == {
        "VISUAL": 50,
        "AUDITORY": 25,
        "KINESTHETIC": 25,
    }
    assert style_percentages({"VISUAL": 0, "AUDITORY": 0, "KINESTHETIC": 0}) == {
        "VISUAL": 0,
        "AUDITORY": 0,
        "KINESTHETIC": 0,
    }


def test_assess_complete_questionnaire():
    style, percentages, description = assess_learning_style(answers_with(2, 3, 7))
    assert style == "KINESTHETIC"
    assert percentages["KINESTHETIC"] == 58
    assert "hands-on" in description


def test_incomplete_answers_are_rejected():
    answers = answers_with(6, 4, 2)
    del answers[12]
    with pytest.raises(ValueError, match="Unanswered"):
        assess_learning_style(answers)


def test_unknown_style_is_rejected():
    answers = answers_with(6, 4, 2)
    answers[3] = "READING"
    with pytest.raises(ValueError):
        assess_learning_style(answers)

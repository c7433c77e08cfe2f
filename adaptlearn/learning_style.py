"""VAK learning-style questionnaire and scoring."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

from .models import LearningStyle


STYLES: Tuple[LearningStyle, ...] = ("VISUAL", "AUDITORY", "KINESTHETIC")


@dataclass(frozen=True)
class Question:
    id: int
    prompt: str
    options: Tuple[Tuple[LearningStyle, str], ...]


def _question(id: int, prompt: str, visual: str, auditory: str, kinesthetic: str) -> Question:
    return Question(id, prompt, (("VISUAL", visual), ("AUDITORY", auditory), ("KINESTHETIC", kinesthetic)))


QUESTIONNAIRE: Tuple[Question, ...] = (
    _question(
        1,
        "When learning a new math concept, I prefer:",
        "Looking at diagrams, graphs or other visual representations",
        "Listening to explanations or talking it through with others",
        "Working on practice problems straight away",
    ),
    _question(
        2,
        "When solving math problems, I usually:",
        "Sketch a diagram of the solution",
        "Say the steps out loud or in my head",
        "Use objects or write down trial steps",
    ),
    _question(
        3,
        "I remember formulas best when:",
        "I see them written with colour coding",
        "I repeat them several times",
        "I use them again and again in exercises",
    ),
    _question(
        4,
        "When studying for a math exam, I:",
        "Review notes, diagrams and highlighted material",
        "Repeat formulas and explain ideas out loud",
        "Work through many examples",
    ),
    _question(
        5,
        "In class, I learn best when the teacher:",
        "Uses slides, videos or the board",
        "Explains verbally and encourages discussion",
        "Gives practical, real-world tasks",
    ),
    _question(
        6,
        "When a problem is difficult, I:",
        "Look for a similar worked example with a diagram",
        "Ask someone to explain it to me",
        "Try different methods until one works",
    ),
    _question(
        7,
        "My ideal study environment has:",
        "Good lighting and well organised visual material",
        "A quiet place to read aloud or discuss",
        "Room to move around and solve problems actively",
    ),
    _question(
        8,
        "When learning geometry, I prefer:",
        "Seeing shapes and angles in pictures",
        "Hearing the properties of shapes described",
        "Drawing and manipulating shapes myself",
    ),
    _question(
        9,
        "To remember a procedure, I:",
        "Picture the steps on paper",
        "Recite the steps in order",
        "Practise the steps",
    ),
    _question(
        10,
        "If I had to teach a concept to a friend, I would:",
        "Show pictures, graphs or a demonstration",
        "Explain it step by step in words",
        "Work through an example together hands-on",
    ),
    _question(
        11,
        "When reading a word problem, I first:",
        "Draw the situation",
        "Read it aloud or restate it in my own words",
        "Start trying numbers",
    ),
    _question(
        12,
        "I feel most confident in math when:",
        "I see clear examples and visual patterns",
        "I understand the spoken explanation and its logic",
        "I have practised enough problems to feel comfortable",
    ),
)

DESCRIPTIONS: Dict[str, str] = {
    "VISUAL": (
        "You learn best through visual aids such as diagrams, charts and images, "
        "and benefit from information laid out spatially with colour coding."
    ),
    "AUDITORY": (
        "You learn best through listening and verbal explanation, and benefit from "
        "discussion, reading aloud and hearing concepts explained step by step."
    ),
    "KINESTHETIC": (
        "You learn best through hands-on practice, and benefit from working through "
        "problems, using manipulatives and learning by doing."
    ),
}


def validate_answers(answers: Mapping[int, str]) -> None:
    missing = [question.id for question in QUESTIONNAIRE if question.id not in answers]
    if missing:
        raise ValueError(f"Unanswered questions: {missing}")
    invalid = sorted(qid for qid, style in answers.items() if style not in STYLES)
    if invalid:
        raise ValueError(f"Unknown learning style in answers to questions: {invalid}")


def calculate_style_scores(answers: Mapping[int, str]) -> Dict[str, int]:
    scores = {style: 0 for style in STYLES}
    for style in answers.values():
        if style in scores:
            scores[style] += 1
    return scores


def determine_dominant_style(scores: Mapping[str, int]) -> LearningStyle:
    """Highest score wins; ties resolve in VISUAL, AUDITORY, KINESTHETIC order."""

    dominant = STYLES[0]
    for style in STYLES[1:]:
        if scores.get(style, 0) > scores.get(dominant, 0):
            dominant = style
    return dominant


def style_percentages(scores: Mapping[str, int]) -> Dict[str, int]:
    total = sum(scores.get(style, 0) for style in STYLES)
    if not total:
        return {style: 0 for style in STYLES}
    return {style: int(round(scores.get(style, 0) * 100 / total)) for style in STYLES}


def describe_style(style: str) -> str:
    return DESCRIPTIONS[style]


def assess_learning_style(answers: Mapping[int, str]) -> Tuple[LearningStyle, Dict[str, int], str]:
    """Score a completed questionnaire; raises ``ValueError`` when it is incomplete."""

    validate_answers(answers)
    scores = calculate_style_scores(answers)
    style = determine_dominant_style(scores)
    return style, style_percentages(scores), describe_style(style)


__all__ = [
    "QUESTIONNAIRE",
    "assess_learning_style",
    "calculate_style_scores",
    "determine_dominant_style",
    "describe_style",
    "style_percentages",
]

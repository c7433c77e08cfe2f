"""Prompt templates for every generated artifact.

Each builder takes already-gathered context and returns a single prompt
string for the generation backend. Material text is truncated to keep
requests within the model's input budget.
"""
from __future__ import annotations

from typing import Iterable, Optional

# =============================================================================
# Shared guidance
# =============================================================================

EMOTION_GUIDANCE = {
    "Negative": (
        "The student is stressed, confused or discouraged. Be extra supportive, "
        "use short sentences and small steps, and offer a hint."
    ),
    "Neutral": "The student is calm and focused. Use a standard tone and difficulty.",
    "Positive": "The student is confident and engaged. A slightly harder challenge is welcome.",
}

STYLE_GUIDANCE = {
    "VISUAL": "Refer to diagrams, tables or sketches the student can picture or draw.",
    "AUDITORY": "Explain as a spoken narration and encourage saying the steps out loud.",
    "KINESTHETIC": "Use hands-on activities and number experiments the student can try.",
}

AR_TEMPLATE_HELP = """Pick exactly one template:
- balance_scale (equations)
- number_line (numbers and arithmetic)
- graph_2d (simple straight-line graphs)
- fraction_blocks (fractions and ratios)
- algebra_tiles (variables and algebra)
- generic_overlay (fallback)"""


def _lines(*parts: Optional[str]) -> str:
    return "\n".join(part for part in parts if part is not None)


# =============================================================================
# Material artifacts
# =============================================================================


def ar_recipe_prompt(title: str, content: str) -> str:
    return _lines(
        "You design WebAR activities for middle school mathematics.",
        "Create ONE template-based AR recipe (no free-form 3D).",
        AR_TEMPLATE_HELP,
        "",
        "Output MUST be valid JSON (no markdown) shaped as:",
        '{"version":1,"template":"...","title":"...","shortGoal":"...","steps":["..."],"overlay":{}}',
        "Rules:",
        "- 3 to 6 steps, short actionable sentences.",
        "- Do not add concepts that are not in the material.",
        "",
        f"TITLE: {title}",
        "",
        "MATERIAL:",
        content[:7000],
    )


def ar_explanation_prompt(title: str, content: str, recipe_json: str) -> str:
    return _lines(
        "You are a middle school mathematics tutor.",
        "Explain to a student how the AR activity below connects to the material.",
        "Rules:",
        "- Plain text, at most 6 short sentences, no markdown.",
        "- Walk through what the student sees in each step and why it matters.",
        "- Do not introduce new facts.",
        "",
        f"TITLE: {title}",
        "",
        "AR RECIPE:",
        recipe_json,
        "",
        "MATERIAL:",
        content[:5000],
    )


def audio_script_prompt(title: str, content: str, max_chars: int) -> str:
    return _lines(
        "You are a middle school mathematics teaching assistant.",
        "Write an audio narration script (for text-to-speech) of the material below.",
        "Rules:",
        "- Clear and friendly, do not add new facts.",
        "- Read out the existing content in an order that is pleasant to listen to.",
        f"- At most {max_chars - 200} characters.",
        "- Output only the script text, no markdown and no bullet symbols.",
        "",
        f"TITLE: {title}",
        "",
        "MATERIAL:",
        content[:6000],
    )


def refine_prompt(title: str, content: str) -> str:
    return _lines(
        "You are a middle school mathematics material editor.",
        "Task: tidy up and restructure the material so it is clear, coherent and complete for students.",
        "Rules:",
        "- Do not add new facts or concepts.",
        "- Tidy MARKDOWN: title, learning objectives, core concepts, solution steps, "
        "at least 2 examples, and 3 exercises with an answer key.",
        "- If something is unclear, write a short note \"(Needs teacher confirmation)\".",
        "- For math use $...$ inline and $$...$$ for blocks.",
        "- Do not wrap the output in ``` fences. Output only markdown.",
        "",
        f"TITLE: {title}",
        "",
        "ORIGINAL MATERIAL:",
        content[:9000],
    )


# =============================================================================
# Quiz
# =============================================================================


def quiz_question_prompt(
    content: str,
    emotion: str,
    learning_style: str,
    difficulty: str,
    index: int,
    kind: str,
    avoid_questions: Iterable[str] = (),
) -> str:
    avoid = [question.strip() for question in avoid_questions if question and question.strip()]
    if kind == "RECAP":
        task = "Task: ask the student to summarise the key ideas of the excerpt in their own words."
    else:
        task = "Task: create ONE calculation question whose answer is a single number."
    return _lines(
        "You are a mathematics teacher.",
        f"Material excerpt: {content[:1200]}",
        f"Student emotion: {emotion}. Guidance: {EMOTION_GUIDANCE.get(emotion, EMOTION_GUIDANCE['Neutral'])}",
        f"Learning style: {learning_style}. Guidance: {STYLE_GUIDANCE.get(learning_style, STYLE_GUIDANCE['VISUAL'])}",
        f"Target difficulty: {difficulty}. Question number {index}.",
        task,
        "Do not repeat any of these questions: " + " | ".join(avoid[:10]) if avoid else None,
        "Output ONLY JSON with keys: question, expectedAnswer, difficulty (EASY|MEDIUM|HARD), hint (optional).",
        "Include a hint when the student emotion is Negative." if emotion == "Negative" else None,
    )


def feedback_prompt(
    question: str,
    user_answer: str,
    expected_answer: Optional[str],
    emotion: str,
    kind: str,
    material_text: Optional[str] = None,
) -> str:
    return _lines(
        "You are a supportive mathematics teacher grading one answer.",
        f"Emotion: {emotion}. Guidance: {EMOTION_GUIDANCE.get(emotion, EMOTION_GUIDANCE['Neutral'])}",
        f"Question type: {kind}",
        f"Question: {question}",
        f"Expected answer: {expected_answer}" if expected_answer else None,
        f"Material (for judging the summary): {material_text[:3000]}" if material_text else None,
        f"Student answer: {user_answer}",
        "Task: judge correctness, give a score 0-100 (partial credit allowed) and a short explanation.",
        "Keep feedback concise (max 3 short sentences).",
        "Output ONLY JSON with keys: isCorrect, score, feedback.",
    )


# =============================================================================
# Remedial
# =============================================================================


def remedial_prompt(
    title: str,
    content: str,
    learning_style: str,
    emotion: str,
    wrong_count: int,
    avg_score: float,
    last_attempt: Optional[dict] = None,
) -> str:
    if last_attempt:
        attempt_lines = [
            "LAST QUIZ RESULT:",
            f"- Question: {str(last_attempt.get('question', '')).strip()[:400]}",
            f"- Student answer: {str(last_attempt.get('user_answer', '')).strip()[:200]}",
        ]
        if last_attempt.get("expected_answer"):
            attempt_lines.append(f"- Expected answer: {str(last_attempt['expected_answer']).strip()[:200]}")
        if isinstance(last_attempt.get("score"), (int, float)):
            attempt_lines.append(f"- Score: {last_attempt['score']}")
        if last_attempt.get("feedback"):
            attempt_lines.append(f"- System feedback: {str(last_attempt['feedback']).strip()[:400]}")
        attempt_block = "\n".join(attempt_lines)
    else:
        attempt_block = "LAST QUIZ RESULT: (not available)"

    return _lines(
        "You are an adaptive, supportive middle school mathematics tutor.",
        "Task: write PERSONAL remedial material for one student based on the material and recent quiz results.",
        "Goal: fix misconceptions, add examples and short practice so the student understands quickly.",
        "",
        "Output rules:",
        "- Friendly, concise but clear.",
        "- Tidy MARKDOWN (title, summary, steps, example, practice).",
        "- Include: 1 core summary, 1 worked example step by step, 2 exercises with short answers.",
        "- If the emotion is Negative, give support and small steps; if Positive, add a light challenge.",
        f"- Learning style guidance: {STYLE_GUIDANCE.get(learning_style, STYLE_GUIDANCE['VISUAL'])}",
        "- For math use $...$ inline and $$...$$ for blocks.",
        "- Output only markdown (no JSON, no ``` fences).",
        "",
        f"EMOTION (last known): {emotion}",
        f"LEARNING STYLE: {learning_style}",
        f"PERFORMANCE SUMMARY: wrongCount={wrong_count}, avgScore={round(avg_score)}",
        "",
        f"MATERIAL TITLE: {title}",
        "",
        "MATERIAL:",
        content[:7000],
        "",
        attempt_block,
    )


__all__ = [
    "ar_explanation_prompt",
    "ar_recipe_prompt",
    "audio_script_prompt",
    "feedback_prompt",
    "quiz_question_prompt",
    "refine_prompt",
    "remedial_prompt",
]

"""Question generation, tips, grading and speech on top of the LLM client.

Every function here converts service failures into a fallback value: callers
never see an exception from an external call.
"""
import logging

from interview_coach.exceptions import GradingError, SpeechSynthesisError
from interview_coach.llm import client
from interview_coach.llm.parser import parse_analysis, parse_questions, parse_tips
from interview_coach.llm.prompts import (
    QUESTION_COUNT,
    build_analysis_prompt,
    build_questions_prompt,
    build_tips_prompt,
)
from interview_coach.models import AnalysisResult, AudioClip, Question, QuestionTips

logger = logging.getLogger(__name__)


def fallback_questions(role: str) -> list[Question]:
    """Deterministic template questions used when generation fails."""
    return [
        Question(id="1", text=f"Tell me about a time you faced a challenge in {role}.", type="behavioral"),
        Question(id="2", text=f"Why are you interested in a career in {role}?", type="general"),
        Question(id="3", text="Describe a successful project you worked on.", type="situational"),
    ]


async def generate_questions(role: str, job_description: str | None = None) -> list[Question]:
    """Generate interview questions for a role. Falls back to templates on failure."""
    prompt = build_questions_prompt(role, job_description)

    # First attempt
    raw = await client.chat_completion(prompt)
    questions = parse_questions(raw) if raw else None

    if questions:
        return questions[:QUESTION_COUNT]

    # Retry once with a stricter prompt
    logger.info("First attempt didn't produce questions, retrying...")
    retry_prompt = prompt + "\n\nIMPORTANT: Output ONLY a valid JSON array. No markdown, no extra text."
    raw = await client.chat_completion(retry_prompt, temperature=0.3)
    questions = parse_questions(raw) if raw else None

    if questions:
        return questions[:QUESTION_COUNT]

    logger.warning("Question generation failed for role %r, using fallback questions", role)
    return fallback_questions(role)


async def generate_tips(question_text: str, role: str) -> QuestionTips | None:
    """Generate answering tips for one question. None on failure."""
    raw = await client.chat_completion(build_tips_prompt(question_text, role or "General"), json_mode=True)
    if not raw:
        return None
    return parse_tips(raw)


async def _grade(
    question_text: str,
    answer: AudioClip | str,
    rubric: dict | None,
    intake_profile: dict | None,
) -> AnalysisResult:
    if isinstance(answer, AudioClip):
        if not answer.data:
            raise GradingError("Empty audio answer")
        answer_text = await client.transcribe_audio(answer)
        if answer_text is None:
            raise GradingError("Transcription failed")
        from_audio = True
    else:
        answer_text = answer
        from_audio = False

    prompt = build_analysis_prompt(
        question_text,
        answer_text,
        from_audio=from_audio,
        rubric=rubric,
        intake_profile=intake_profile,
    )
    raw = await client.chat_completion(prompt, temperature=0.4, json_mode=True)
    if not raw:
        raise GradingError("Empty grading response")

    analysis = parse_analysis(raw, answer_text)
    if analysis is None:
        raise GradingError("Unparseable grading response")
    return analysis


async def analyze_answer(
    question_text: str,
    answer: AudioClip | str,
    rubric: dict | None = None,
    question_id: str | None = None,
    intake_profile: dict | None = None,
) -> AnalysisResult | None:
    """Grade one answer (audio is transcribed first). None on any failure."""
    try:
        return await _grade(question_text, answer, rubric, intake_profile)
    except GradingError as e:
        logger.error("Grading failed for question %s: %s", question_id, e)
        return None


async def generate_speech(text: str) -> bytes | None:
    """Synthesize question audio. None for empty text or on failure."""
    if not text.strip():
        return None
    try:
        audio = await client.synthesize_speech(text)
        if not audio:
            raise SpeechSynthesisError("No audio returned")
        return audio
    except SpeechSynthesisError as e:
        logger.warning("Speech synthesis failed: %s", e)
        return None

import json
import logging
import re

from interview_coach.models import AnalysisResult, Question, QuestionTips

logger = logging.getLogger(__name__)

QUESTION_TYPES = {"behavioral", "technical", "situational", "general"}
RATINGS = {"strong": "Strong", "good": "Good", "developing": "Developing", "needs practice": "Developing"}


def extract_json(raw_text: str):
    """Pull a JSON value out of LLM output. Returns None on failure."""
    if not raw_text:
        return None

    # Try direct JSON parse
    data = _try_parse_json(raw_text)

    # Try extracting from markdown code block
    if data is None:
        match = re.search(r"```(?:json)?\s*([\[{].+?[\]}])\s*```", raw_text, re.DOTALL)
        if match:
            data = _try_parse_json(match.group(1))

    # Try finding an array, then an object, in the text
    if data is None:
        match = re.search(r"(\[\s*\{.+}\s*])", raw_text, re.DOTALL)
        if match:
            data = _try_parse_json(match.group(1))
    if data is None:
        match = re.search(r"(\{.+})", raw_text, re.DOTALL)
        if match:
            data = _try_parse_json(match.group(1))

    return data


def _try_parse_json(text: str):
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def parse_questions(raw_text: str) -> list[Question] | None:
    """Parse LLM output into questions. Returns None on failure."""
    data = extract_json(raw_text)
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        logger.error("Failed to parse LLM response as a question list")
        return None

    questions = []
    seen_ids = set()
    for item in data:
        if not isinstance(item, dict):
            continue
        text = (item.get("text") or item.get("question_text") or item.get("question") or "").strip()
        if not text:
            logger.warning("Skipping invalid question: %s", item)
            continue

        q_id = str(item.get("id") or "").strip()
        if not q_id or q_id in seen_ids:
            q_id = str(len(questions) + 1)
            while q_id in seen_ids:
                q_id += "a"
        seen_ids.add(q_id)

        q_type = (item.get("type") or "").strip().lower()
        questions.append(Question(
            id=q_id,
            text=text,
            type=q_type if q_type in QUESTION_TYPES else None,
            difficulty=(item.get("difficulty") or None),
        ))

    return questions or None


def parse_tips(raw_text: str) -> QuestionTips | None:
    """Parse LLM output into question tips. Returns None on failure."""
    data = extract_json(raw_text)
    if isinstance(data, list):
        data = {"points": data}
    if not isinstance(data, dict):
        logger.error("Failed to parse tips response as JSON")
        return None

    points = [str(p).strip() for p in data.get("points") or data.get("tips") or [] if str(p).strip()]
    if not points:
        return None
    return QuestionTips(points=points, framework=data.get("framework") or None)


def parse_analysis(raw_text: str, answer_text: str = "") -> AnalysisResult | None:
    """Parse a grading response. The answer text stands in for a missing transcript."""
    data = extract_json(raw_text)
    if not isinstance(data, dict):
        logger.error("Failed to parse analysis response as JSON")
        return None

    feedback = data.get("feedback")
    rating = data.get("rating")
    if not isinstance(feedback, list) or not rating:
        logger.warning("Analysis response missing required fields: %s", data)
        return None

    return AnalysisResult(
        transcript=(data.get("transcript") or answer_text or "").strip(),
        rating=_normalize_rating(str(rating)),
        feedback=[str(f) for f in feedback],
        key_terms=[str(t) for t in data.get("keyTerms") or data.get("key_terms") or []],
        score=_normalize_score(data["answerScore"] if data.get("answerScore") is not None else data.get("score")),
        delivery_status=data.get("deliveryStatus") or data.get("delivery_status") or None,
        delivery_tips=[str(t) for t in data.get("deliveryTips") or data.get("delivery_tips") or []],
    )


def _normalize_rating(rating: str) -> str:
    return RATINGS.get(rating.strip().lower(), rating.strip())


def _normalize_score(raw) -> int | None:
    """Clamp a score into 0-100; anything non-numeric becomes None."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return int(round(min(max(value, 0.0), 100.0)))

"""Typed answers: length checks and escaping before grading."""
import html
from typing import Optional

from interview_coach.config import settings
from interview_coach.exceptions import ValidationError


def validate_text_answer(
    text: str,
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> str:
    """
    Clean a typed answer.

    Args:
        text: Raw answer as typed
        min_length: Minimum length after trimming (default from settings)
        max_length: Longer answers are cut to this length (default from settings)

    Returns:
        Trimmed, truncated and HTML-escaped answer

    Raises:
        ValidationError: Answer is shorter than min_length
    """
    min_length = settings.MIN_ANSWER_LENGTH if min_length is None else min_length
    max_length = settings.MAX_ANSWER_LENGTH if max_length is None else max_length

    trimmed = (text or "").strip()
    if len(trimmed) < min_length:
        raise ValidationError(f"Answer is too short. Please elaborate (min {min_length} chars).")
    return html.escape(trimmed[:max_length])

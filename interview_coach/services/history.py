"""Archive of completed sessions, scoring and export."""
import json
import logging
import time
import uuid
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from interview_coach.config import settings
from interview_coach.db import crud
from interview_coach.models import AnalysisResult, Session, SessionHistoryEntry, SessionSummary
from interview_coach.services.coach_signals import answer_score, summaries_from_history

logger = logging.getLogger(__name__)

GUEST_OWNER = "guest"

REPORT_RULE = "=" * 50
QUESTION_RULE = "-" * 50


def owner_for(user_id: Optional[str]) -> str:
    return user_id or GUEST_OWNER


def score_session(session: Session) -> int:
    """
    Overall 0-100 score of a session.

    Each graded answer contributes its numeric score, or its rating
    (Strong=100, Good=80, Developing=60) when the score is missing. Answers
    still pending do not count. A session without graded answers scores 0.
    """
    total = 0.0
    count = 0
    for question in session.questions:
        record = session.answers.get(question.id)
        if record is None or record.analysis is None:
            continue
        score = answer_score(record.analysis)
        total += score if score is not None else 0
        count += 1
    if count == 0:
        return 0
    return int(round(total / count))


async def archive_session(
    owner: str,
    session: Session,
    limit: Optional[int] = None,
) -> Optional[SessionHistoryEntry]:
    """
    Store a completed session in the owner's history.

    Archiving the same session again refreshes its existing entry instead of
    adding a second one.

    Returns:
        The stored entry, or None when the session has no questions or the
        database write failed
    """
    if not session.questions:
        return None

    score = score_session(session)
    try:
        existing = await crud.get_history_entry_by_session(session.id)
        if existing is not None:
            await crud.update_history_entry(existing.id, session, score)
            logger.info("History entry %s refreshed (score %d)", existing.id, score)
            return replace(existing, session=session, score=score, questions_count=len(session.questions))

        entry = SessionHistoryEntry(
            id=uuid.uuid4().hex,
            timestamp=time.time(),
            role=session.role,
            job_description=session.job_description,
            score=score,
            questions_count=len(session.questions),
            session=session,
        )
        await crud.save_history_entry(owner, entry, limit or settings.HISTORY_LIMIT)
    except Exception as e:
        logger.error("Error archiving session %s: %s", session.id, e)
        return None

    logger.info("Session %s archived for %s (score %d)", session.id, owner, score)
    return entry


async def reconcile_history_analysis(
    session_id: str,
    question_id: str,
    analysis: AnalysisResult,
) -> bool:
    """
    Fill a late grading result into an archived session.

    This is the only mutation an archived entry accepts after it is stored.
    A record that was graded meanwhile is left as it is.

    Returns:
        True if the entry was updated
    """
    entry = await crud.get_history_entry_by_session(session_id)
    if entry is None:
        logger.info("No history entry for session %s, late analysis dropped", session_id)
        return False

    session = entry.session
    record = session.answers.get(question_id)
    if record is None or record.analysis is not None:
        return False

    text = record.text
    if analysis.transcript and (record.audio is not None or not text):
        text = analysis.transcript
    answers = {**session.answers, question_id: replace(record, analysis=analysis, text=text)}
    updated = replace(session, answers=answers)

    score = score_session(updated)
    found = await crud.update_history_entry(entry.id, updated, score)
    if found:
        logger.info("Late analysis for question %s reconciled into history %s", question_id, entry.id)
    return found


async def load_history(owner: str) -> List[SessionHistoryEntry]:
    try:
        return await crud.get_history(owner)
    except Exception as e:
        logger.error("Error loading history for %s: %s", owner, e)
        return []


async def load_entry(owner: str, entry_id: str) -> Optional[SessionHistoryEntry]:
    try:
        return await crud.get_history_entry(owner, entry_id)
    except Exception as e:
        logger.error("Error loading history entry %s: %s", entry_id, e)
        return None


async def delete_entry(owner: str, entry_id: str) -> bool:
    """Remove one archived session. Returns False if the owner has no such entry."""
    deleted = await crud.delete_history_entry(owner, entry_id)
    if deleted:
        logger.info("History entry %s deleted for %s", entry_id, owner)
    return deleted


async def clear_entries(owner: str) -> int:
    """Remove every archived session of the owner. Returns how many were removed."""
    removed = await crud.clear_history(owner)
    logger.info("Cleared %d history entries for %s", removed, owner)
    return removed


async def load_summaries(owner: str) -> List[SessionSummary]:
    """Signal engine input for the owner, most recent first."""
    return summaries_from_history(await load_history(owner))


# ============================================================================
# EXPORT
# ============================================================================

def _entry_export_data(entry: SessionHistoryEntry) -> dict:
    data = entry.to_dict()
    for answer in data["session"]["answers"].values():
        if answer.get("audio"):
            answer["audio"] = {"mime_type": answer["audio"]["mime_type"]}
    return data


def export_entry_json(entry: SessionHistoryEntry) -> str:
    """Pretty JSON of an entry. Recorded audio is reduced to its mime type."""
    return json.dumps(_entry_export_data(entry), ensure_ascii=False, indent=2)


def export_all_json(owner: str, entries: List[SessionHistoryEntry]) -> str:
    """Bundle of everything stored for an owner, for download."""
    bundle = {
        "owner": owner,
        "exported_at": datetime.now().isoformat(timespec="seconds"),
        "sessions": [_entry_export_data(entry) for entry in entries],
    }
    return json.dumps(bundle, ensure_ascii=False, indent=2)


def export_all_filename() -> str:
    return f"my-interview-data-{datetime.now().strftime('%Y-%m-%d')}.json"


def export_filename(entry: SessionHistoryEntry, extension: str = "txt") -> str:
    date = datetime.fromtimestamp(entry.timestamp).strftime("%Y-%m-%d")
    return f"interview-session-{date}.{extension}"


def export_entry_report(entry: SessionHistoryEntry) -> str:
    """Plain-text transcript and feedback report of an archived session."""
    session = entry.session
    date = datetime.fromtimestamp(entry.timestamp).strftime("%Y-%m-%d")

    lines = [
        "INTERVIEW SESSION REPORT",
        f"Date: {date}",
        f"Role: {entry.role}",
        f"Overall Score: {entry.score}/100",
        "",
        REPORT_RULE,
        "",
    ]

    for idx, question in enumerate(session.questions, 1):
        record = session.answers.get(question.id)
        transcript = (record.text if record else None) or "No transcript available."

        lines += [f"QUESTION {idx}:", question.text, "", "YOUR ANSWER:", transcript, ""]

        analysis = record.analysis if record else None
        if analysis is not None:
            lines.append("AI FEEDBACK:")
            lines.append(f"Rating: {analysis.rating}")
            if analysis.score is not None:
                lines.append(f"Score: {analysis.score}/100")
            lines.append("")
            if analysis.feedback:
                lines.append("Key Feedback:")
                lines += [f"- {point}" for point in analysis.feedback]
                lines.append("")
            if analysis.key_terms:
                lines.append(f"Key Terms: {', '.join(analysis.key_terms)}")
            if analysis.delivery_status:
                lines.append(f"Delivery: {analysis.delivery_status}")
                lines += [f"- {tip}" for tip in analysis.delivery_tips]
        else:
            lines.append("(No AI Analysis available for this answer)")

        lines += ["", QUESTION_RULE, ""]

    return "\n".join(lines)

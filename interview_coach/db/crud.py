"""CRUD operations for session documents and session history."""
import json
from typing import Optional, List

from interview_coach.db.database import get_db
from interview_coach.models import Session, SessionHistoryEntry


# ============================================================================
# SESSION DOCUMENTS (per-user, authenticated mode)
# ============================================================================

async def create_session_document(doc_id: str, user_id: str, session: Session) -> None:
    """Insert a new session document owned by user_id."""
    db = get_db()
    await db.execute(
        "INSERT INTO sessions (id, user_id, data) VALUES (?, ?, ?)",
        (doc_id, user_id, json.dumps(session.to_dict())),
    )


async def update_session_document(doc_id: str, session: Session) -> bool:
    """
    Replace the stored document. Writing the same document twice is harmless.

    Returns:
        True if a document with this id exists
    """
    db = get_db()
    rowcount = await db.execute(
        """UPDATE sessions
           SET data = ?, updated_at = datetime('now')
           WHERE id = ?""",
        (json.dumps(session.to_dict()), doc_id),
    )
    return rowcount > 0


async def get_session_document(doc_id: str) -> Optional[Session]:
    """Fetch a session document by id."""
    db = get_db()
    row = await db.fetchone("SELECT data FROM sessions WHERE id = ?", (doc_id,))
    if not row:
        return None
    return Session.from_dict(json.loads(row["data"]))


# ============================================================================
# SESSION HISTORY
# ============================================================================

def _entry_from_row(row) -> SessionHistoryEntry:
    return SessionHistoryEntry(
        id=row["id"],
        timestamp=row["timestamp"],
        role=row["role"],
        job_description=row["job_description"],
        score=row["score"],
        questions_count=row["questions_count"],
        session=Session.from_dict(json.loads(row["session_data"])),
    )


async def save_history_entry(owner: str, entry: SessionHistoryEntry, limit: int) -> None:
    """Store a history entry and keep only the `limit` most recent for the owner."""
    db = get_db()
    await db.execute(
        """INSERT INTO session_history
           (id, owner, session_id, timestamp, role, job_description, score, questions_count, session_data)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            entry.id,
            owner,
            entry.session.id,
            entry.timestamp,
            entry.role,
            entry.job_description,
            entry.score,
            entry.questions_count,
            json.dumps(entry.session.to_dict()),
        ),
    )
    await db.execute(
        """DELETE FROM session_history
           WHERE owner = ?
             AND id NOT IN (
                 SELECT id FROM session_history
                 WHERE owner = ?
                 ORDER BY timestamp DESC
                 LIMIT ?
             )""",
        (owner, owner, limit),
    )


async def update_history_entry(entry_id: str, session: Session, score: int) -> bool:
    """Replace the session snapshot and score of an archived entry."""
    db = get_db()
    rowcount = await db.execute(
        """UPDATE session_history
           SET session_data = ?, score = ?, questions_count = ?
           WHERE id = ?""",
        (json.dumps(session.to_dict()), score, len(session.questions), entry_id),
    )
    return rowcount > 0


async def get_history(owner: str, limit: Optional[int] = None) -> List[SessionHistoryEntry]:
    """Get history entries for an owner, newest first."""
    db = get_db()
    query = """SELECT * FROM session_history
               WHERE owner = ?
               ORDER BY timestamp DESC"""
    params: tuple = (owner,)
    if limit is not None:
        query += " LIMIT ?"
        params = (owner, limit)
    rows = await db.fetchall(query, params)
    return [_entry_from_row(row) for row in rows]


async def get_history_entry(owner: str, entry_id: str) -> Optional[SessionHistoryEntry]:
    """Get one of the owner's history entries by its id."""
    db = get_db()
    row = await db.fetchone(
        "SELECT * FROM session_history WHERE id = ? AND owner = ?",
        (entry_id, owner),
    )
    return _entry_from_row(row) if row else None


async def get_history_entry_by_session(session_id: str) -> Optional[SessionHistoryEntry]:
    """Get the history entry that archived the given session, if any."""
    db = get_db()
    row = await db.fetchone(
        "SELECT * FROM session_history WHERE session_id = ? ORDER BY timestamp DESC LIMIT 1",
        (session_id,),
    )
    return _entry_from_row(row) if row else None


async def delete_history_entry(owner: str, entry_id: str) -> bool:
    """Delete one of the owner's entries. Returns True if it existed."""
    db = get_db()
    rowcount = await db.execute(
        "DELETE FROM session_history WHERE id = ? AND owner = ?",
        (entry_id, owner),
    )
    return rowcount > 0


async def clear_history(owner: str) -> int:
    """Delete all history entries of an owner. Returns how many were removed."""
    db = get_db()
    return await db.execute("DELETE FROM session_history WHERE owner = ?", (owner,))

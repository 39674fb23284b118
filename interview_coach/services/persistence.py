"""Durable storage of the live session.

The backend is chosen once from the authentication status:

- guests keep one encrypted copy of the session in a local slot;
- authenticated users get a per-user session document, created once per
  session and updated afterwards.

PersistenceCoordinator listens to SessionStore mutations and writes the
latest document after a short debounce window. Write failures are logged and
never reach the caller.
"""
import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from cryptography.fernet import InvalidToken

from interview_coach.config import settings
from interview_coach.core.encryption import SessionEncryption, get_encryptor
from interview_coach.core.local_storage import LocalSlotStore
from interview_coach.db import crud
from interview_coach.exceptions import PersistenceError
from interview_coach.models import Session, SessionStatus
from interview_coach.services.session_store import SessionStore

logger = logging.getLogger(__name__)

GUEST_SESSION_KEY = "current_session"
SESSION_ID_KEY = "current_session_id"


class PersistenceBackend(ABC):
    """Common save/load contract of both storage modes."""

    @abstractmethod
    async def save(self, session: Session) -> None:
        """Write the full session. Raises PersistenceError on failure."""

    @abstractmethod
    async def load(self) -> Optional[Session]:
        """Return the saved session, or None if there is none."""

    @abstractmethod
    def clear_local(self) -> None:
        """Remove locally persisted artifacts of the current session."""


# ============================================================================
# GUEST MODE: encrypted local slot
# ============================================================================

class GuestBackend(PersistenceBackend):
    """One Fernet ciphertext of the serialized session in a local slot."""

    def __init__(self, slots: LocalSlotStore, encryptor: Optional[SessionEncryption] = None):
        self.slots = slots
        self.encryptor = encryptor or get_encryptor()

    def write(self, session: Session) -> None:
        try:
            ciphertext = self.encryptor.encrypt(json.dumps(session.to_dict()))
            self.slots.set_item(GUEST_SESSION_KEY, ciphertext)
        except (OSError, ValueError, TypeError) as e:
            raise PersistenceError(f"Failed to store guest session: {e}") from e

    def read(self) -> Optional[Session]:
        """Decrypt the slot, falling back to plain JSON written before encryption existed."""
        try:
            raw = self.slots.get_item(GUEST_SESSION_KEY)
        except OSError as e:
            logger.error("Failed to read guest session slot: %s", e)
            return None
        if not raw:
            return None

        try:
            return Session.from_dict(json.loads(self.encryptor.decrypt(raw)))
        except (InvalidToken, ValueError, KeyError, TypeError):
            pass

        try:
            session = Session.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.warning("Saved guest session is unreadable, starting fresh")
            return None

        logger.info("Loaded legacy plain-JSON guest session %s", session.id)
        return session

    async def save(self, session: Session) -> None:
        self.write(session)

    async def load(self) -> Optional[Session]:
        return self.read()

    def clear_local(self) -> None:
        self.slots.remove_item(GUEST_SESSION_KEY)


# ============================================================================
# AUTHENTICATED MODE: per-user session documents
# ============================================================================

class SessionDocumentStore:
    """Per-user session documents kept in the session database."""

    async def create(self, user_id: str, session: Session) -> Optional[str]:
        """Create a document and return its generated id, or None on failure."""
        doc_id = uuid.uuid4().hex
        try:
            await crud.create_session_document(doc_id, user_id, session)
        except Exception as e:
            logger.error("Error creating session document: %s", e)
            return None
        return doc_id

    async def update(self, doc_id: str, session: Session) -> None:
        """Overwrite the full document. Raises PersistenceError on failure."""
        try:
            found = await crud.update_session_document(doc_id, session)
        except Exception as e:
            raise PersistenceError(f"Error updating session document {doc_id}: {e}") from e
        if not found:
            raise PersistenceError(f"Session document {doc_id} not found")

    async def get(self, doc_id: str) -> Optional[Session]:
        try:
            return await crud.get_session_document(doc_id)
        except Exception as e:
            logger.error("Error fetching session document %s: %s", doc_id, e)
            return None


class AuthenticatedBackend(PersistenceBackend):
    """Create-once, update-thereafter against the user's session documents."""

    def __init__(self, user_id: str, documents: SessionDocumentStore, slots: LocalSlotStore):
        self.user_id = user_id
        self.documents = documents
        self.slots = slots
        self._doc_id: Optional[str] = slots.get_item(SESSION_ID_KEY)
        self._doc_session_id: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def document_id(self) -> Optional[str]:
        return self._doc_id

    async def save(self, session: Session) -> None:
        async with self._lock:
            if self._doc_id is not None and self._doc_session_id == session.id:
                await self.documents.update(self._doc_id, session)
                return

            doc_id = await self.documents.create(self.user_id, session)
            if doc_id is None:
                raise PersistenceError(f"Could not create session document for user {self.user_id}")

            self._doc_id = doc_id
            self._doc_session_id = session.id
            self.slots.set_item(SESSION_ID_KEY, doc_id)
            # The server copy is authoritative now; drop the guest copy
            self.slots.remove_item(GUEST_SESSION_KEY)
            logger.info("Created session document %s for user %s", doc_id, self.user_id)

    async def load(self) -> Optional[Session]:
        if self._doc_id is None:
            return None
        session = await self.documents.get(self._doc_id)
        if session is not None:
            self._doc_session_id = session.id
        return session

    def clear_local(self) -> None:
        self.slots.remove_item(GUEST_SESSION_KEY)
        self.slots.remove_item(SESSION_ID_KEY)
        self._doc_id = None
        self._doc_session_id = None


def select_backend(
    user_id: Optional[str],
    slots: LocalSlotStore,
    documents: Optional[SessionDocumentStore] = None,
    encryptor: Optional[SessionEncryption] = None,
) -> PersistenceBackend:
    """Pick the backend for this run from the authentication status."""
    if user_id:
        logger.info("Persisting sessions for user %s", user_id)
        return AuthenticatedBackend(user_id, documents or SessionDocumentStore(), slots)
    logger.info("Persisting sessions in guest mode")
    return GuestBackend(slots, encryptor)


# ============================================================================
# COORDINATOR
# ============================================================================

def _worth_persisting(session: Session) -> bool:
    return not (session.status == SessionStatus.IDLE and not session.questions)


class PersistenceCoordinator:
    """Debounced, best-effort persistence of every SessionStore mutation."""

    def __init__(
        self,
        store: SessionStore,
        backend: PersistenceBackend,
        debounce_seconds: Optional[float] = None,
    ):
        self.store = store
        self.backend = backend
        self.debounce_seconds = (
            settings.PERSIST_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self._pending: Optional[Session] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._generation = 0
        self._unsubscribe = store.subscribe(self._on_mutation)
        store.on_reset(self._on_reset)

    @property
    def has_pending_write(self) -> bool:
        return self._pending is not None

    async def restore(self) -> Optional[Session]:
        """Load the saved session into the store (startup)."""
        try:
            session = await self.backend.load()
        except Exception as e:
            logger.error("Session restoration failed: %s", e)
            return None
        if session is not None:
            self.store.restore(session)
            logger.info("Restored session %s (%s)", session.id, session.status.value)
        return session

    def _on_mutation(self, session: Session) -> None:
        self._pending = session
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the write happens on the next flush()
            return
        self._timer = loop.call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._write_pending())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write_pending(self) -> None:
        async with self._lock:
            session = self._pending
            self._pending = None
            if session is None or not _worth_persisting(session):
                return

            generation = self._generation
            try:
                await self.backend.save(session)
                logger.debug("Persisted session %s", session.id)
            except Exception as e:
                logger.error("Failed to persist session %s: %s", session.id, e)
                return

            if generation != self._generation:
                # A reset happened while the write was in flight
                self.backend.clear_local()

    def _on_reset(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None
        self._generation += 1
        try:
            self.backend.clear_local()
        except OSError as e:
            logger.error("Failed to remove local session artifact: %s", e)

    async def flush(self) -> None:
        """Write the pending document now instead of waiting for the debounce."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._write_pending()

    async def close(self) -> None:
        await self.flush()
        self._unsubscribe()

"""Engaged practice time and the guest completion flag."""
import asyncio
import logging
import time
from typing import Callable, Optional

from interview_coach.config import settings
from interview_coach.core.local_storage import LocalSlotStore
from interview_coach.models import SessionStatus
from interview_coach.services.recording import RecorderEvent, RecordingController
from interview_coach.services.session_store import SessionStore

logger = logging.getLogger(__name__)

TICK_SECONDS = 1
GUEST_COMPLETED_KEY = "ai_coach_guest_completed"


class EngagementTracker:
    """
    Counts seconds of active practice into the session.

    The session counts as active while recording, or for a short idle
    window after the last user interaction. Nothing is counted once the
    session is no longer ACTIVE.
    """

    def __init__(
        self,
        store: SessionStore,
        recorder: Optional[RecordingController] = None,
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.idle_seconds = settings.ENGAGEMENT_IDLE_SECONDS if idle_seconds is None else idle_seconds
        self._clock = clock
        self._recording = False
        self._last_activity: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe = recorder.subscribe(self._on_recorder_event) if recorder else None

    def _on_recorder_event(self, event: RecorderEvent) -> None:
        self._recording = event == RecorderEvent.START
        self.mark_activity()

    def mark_activity(self) -> None:
        """Record a user interaction (navigation, typing, submit)."""
        self._last_activity = self._clock()

    @property
    def is_enabled(self) -> bool:
        return self.store.session.status == SessionStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        if self._recording:
            return True
        if self._last_activity is None:
            return False
        return self._clock() - self._last_activity <= self.idle_seconds

    def tick(self) -> bool:
        """Add one tick of engaged time if the session is being worked on."""
        if not (self.is_enabled and self.is_active):
            return False
        self.store.add_engaged_seconds(TICK_SECONDS)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(TICK_SECONDS)
            self.tick()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="engagement-tracker")

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


class GuestTracker:
    """Local flag remembering that a guest completed a session."""

    def __init__(self, slots: LocalSlotStore):
        self.slots = slots

    def has_completed_session(self) -> bool:
        try:
            return bool(self.slots.get_item(GUEST_COMPLETED_KEY))
        except OSError as e:
            logger.warning("Could not read guest completion flag: %s", e)
            return False

    def mark_session_complete(self) -> None:
        try:
            self.slots.set_item(GUEST_COMPLETED_KEY, "true")
        except OSError as e:
            logger.warning("Could not store guest completion flag: %s", e)

    def clear(self) -> None:
        self.slots.remove_item(GUEST_COMPLETED_KEY)

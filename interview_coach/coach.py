"""Interview coach controller: one user's practice session end to end."""
import logging
from typing import List, Optional, Tuple

from interview_coach.config import settings
from interview_coach.core.local_storage import LocalSlotStore
from interview_coach.exceptions import ValidationError
from interview_coach.models import AudioClip, QuestionTips, Session, SessionHistoryEntry
from interview_coach.services import coach_api, history
from interview_coach.services.answer_pipeline import AnswerAnalysisPipeline, Attempt, PendingAnswer
from interview_coach.services.coach_signals import DashboardSignals, generate_dashboard_signals
from interview_coach.services.engagement import EngagementTracker, GuestTracker
from interview_coach.services.media import MediaRegistry
from interview_coach.services.persistence import PersistenceCoordinator, select_backend
from interview_coach.services.recording import CaptureBackend, FfmpegCaptureBackend, RecordingController
from interview_coach.services.session_store import SessionStore
from interview_coach.services.text_answer import validate_text_answer

logger = logging.getLogger(__name__)

SPEECH_MIME_TYPE = "audio/mpeg"


class InterviewCoach:
    """Wires store, persistence, recorder, grading, engagement, media and history."""

    def __init__(
        self,
        user_id: Optional[str] = None,
        slots: Optional[LocalSlotStore] = None,
        capture_backend: Optional[CaptureBackend] = None,
        store: Optional[SessionStore] = None,
        pipeline: Optional[AnswerAnalysisPipeline] = None,
    ):
        self.user_id = user_id
        self.owner = history.owner_for(user_id)
        self.slots = slots or LocalSlotStore(settings.LOCAL_STORAGE_DIR)
        self.store = store or SessionStore()
        self.persistence = PersistenceCoordinator(self.store, select_backend(user_id, self.slots))
        self.recorder = RecordingController(capture_backend or FfmpegCaptureBackend())
        self.pipeline = pipeline or AnswerAnalysisPipeline(
            self.store, reconciler=history.reconcile_history_analysis
        )
        self.engagement = EngagementTracker(self.store, self.recorder)
        self.guest = GuestTracker(self.slots)
        self.media = MediaRegistry()
        self._question_audio_url: Optional[str] = None
        self._playback_urls: dict[str, str] = {}

    @classmethod
    async def create(cls, user_id: Optional[str] = None, **kwargs) -> "InterviewCoach":
        """Build a coach, restore the saved session and start counting engagement."""
        coach = cls(user_id=user_id, **kwargs)
        await coach.persistence.restore()
        coach.engagement.start()
        return coach

    @property
    def session(self) -> Session:
        return self.store.session

    def _question_id(self, question_id: Optional[str]) -> str:
        if question_id is not None:
            return question_id
        question = self.session.current_question
        if question is None:
            raise ValidationError("No active question")
        return question.id

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        role: str,
        job_description: Optional[str] = None,
        rubric: Optional[dict] = None,
        intake_profile: Optional[dict] = None,
    ) -> Session:
        self._drop_session_resources()
        session = await self.store.start_session(role, job_description, rubric, intake_profile)
        self.engagement.mark_activity()
        return session

    async def finish(self) -> Optional[SessionHistoryEntry]:
        """Complete the session and archive it. None if nothing was answered."""
        if not self.store.finish_session():
            return None
        self.engagement.mark_activity()
        await self.persistence.flush()

        snapshot = self.session
        entry = await history.archive_session(self.owner, snapshot)
        # Grading that lands while the entry is being written finds no entry
        # to reconcile into, so the fresher session is archived again
        while entry is not None and self.session is not snapshot and self.session.id == snapshot.id:
            snapshot = self.session
            entry = await history.archive_session(self.owner, snapshot)

        if self.user_id is None:
            self.guest.mark_session_complete()
        return entry

    def reset(self) -> None:
        self._drop_session_resources()
        self.store.reset_session()

    def _drop_session_resources(self) -> None:
        # A recording or held answer must not carry over into the next session
        self.recorder.close()
        self.pipeline.clear_pending()
        self.media.revoke(self._question_audio_url)
        self._question_audio_url = None
        for url in self._playback_urls.values():
            self.media.revoke(url)
        self._playback_urls.clear()

    # ------------------------------------------------------------------
    # Navigation and question content
    # ------------------------------------------------------------------

    def goto_question(self, index: int) -> bool:
        self.engagement.mark_activity()
        return self.store.goto_question(index)

    def next_question(self) -> bool:
        self.engagement.mark_activity()
        return self.store.next_question()

    def prev_question(self) -> bool:
        self.engagement.mark_activity()
        return self.store.prev_question()

    async def load_tips(self, question_id: Optional[str] = None) -> Optional[QuestionTips]:
        return await self.store.load_tips(self._question_id(question_id))

    async def question_audio(self, question_id: Optional[str] = None) -> Optional[str]:
        """Synthesize the question text and return a media URL for it."""
        question = self.session.find_question(self._question_id(question_id))
        if question is None:
            return None
        audio = await coach_api.generate_speech(question.text)
        if audio is None:
            return None

        self.media.revoke(self._question_audio_url)
        self._question_audio_url = self.media.create(audio, SPEECH_MIME_TYPE)
        return self._question_audio_url

    def answer_playback_url(self, question_id: Optional[str] = None) -> Optional[str]:
        """Media URL of the recorded answer, one per question while its audio is kept."""
        question_id = self._question_id(question_id)
        record = self.session.answers.get(question_id)
        if record is None or record.audio is None:
            return None

        url = self._playback_urls.get(question_id)
        cached = self.media.get(url) if url else None
        if cached is not None and cached[0] is record.audio.data:
            return url

        self.media.revoke(url)
        url = self.media.create(record.audio.data, record.audio.mime_type)
        self._playback_urls[question_id] = url
        return url

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    async def toggle_recording(self) -> Optional[AudioClip]:
        """
        Start recording, or stop it and hold the clip for confirmation.

        Returns:
            The recorded clip when a recording was stopped, else None

        Raises:
            MicrophonePermissionError: The microphone could not be opened
        """
        if self.recorder.is_recording:
            clip = await self.recorder.stop_recording()
            question_id = self._question_id(None)
            if clip.size:
                self.pipeline.hold(question_id, PendingAnswer(audio=clip))
            else:
                logger.warning("Empty recording for question %s ignored", question_id)
            return clip

        await self.recorder.start_recording()
        return None

    def submit_text(self, text: str, question_id: Optional[str] = None) -> str:
        """Validate a typed answer and hold it for confirmation."""
        cleaned = validate_text_answer(text)
        self.pipeline.hold(self._question_id(question_id), PendingAnswer(text=cleaned))
        self.engagement.mark_activity()
        return cleaned

    async def confirm(self, question_id: Optional[str] = None) -> Attempt:
        self.engagement.mark_activity()
        return await self.pipeline.confirm(self._question_id(question_id))

    def retry(self, question_id: Optional[str] = None) -> None:
        question_id = self._question_id(question_id)
        self.engagement.mark_activity()
        self.pipeline.retry(question_id)
        self.media.revoke(self._playback_urls.pop(question_id, None))

    # ------------------------------------------------------------------
    # History and dashboard
    # ------------------------------------------------------------------

    async def history_entries(self) -> List[SessionHistoryEntry]:
        return await history.load_history(self.owner)

    async def dashboard(self) -> DashboardSignals:
        return generate_dashboard_signals(await history.load_summaries(self.owner))

    async def export(self, entry_id: str, fmt: str = "text") -> Optional[Tuple[str, str]]:
        """
        Render one archived session for download.

        Returns:
            (filename, content), or None if the owner has no such entry
        """
        entry = await history.load_entry(self.owner, entry_id)
        if entry is None:
            return None
        if fmt == "json":
            return history.export_filename(entry, "json"), history.export_entry_json(entry)
        return history.export_filename(entry), history.export_entry_report(entry)

    async def export_all(self) -> Tuple[str, str]:
        """Every archived session of this user as one JSON bundle."""
        entries = await history.load_history(self.owner)
        return history.export_all_filename(), history.export_all_json(self.owner, entries)

    async def delete_history_entry(self, entry_id: str) -> bool:
        return await history.delete_entry(self.owner, entry_id)

    async def clear_history(self) -> int:
        """Delete this user's whole history. The guest completion flag goes with it."""
        removed = await history.clear_entries(self.owner)
        if self.user_id is None:
            self.guest.clear()
        return removed

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Release the microphone, revoke media handles and flush the session."""
        self.recorder.close()
        self.engagement.stop()
        self.pipeline.cancel_timers()
        self.media.revoke_all()
        self._question_audio_url = None
        self._playback_urls.clear()
        await self.persistence.close()
        logger.info("Interview coach closed")

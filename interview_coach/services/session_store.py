"""Canonical interview session document and its state machine.

The store owns one Session and replaces it with a new value on every
mutation, so a Session handed to a listener never changes afterwards.
Callers must mutate through the store methods instead of editing a copy.
"""
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from interview_coach.exceptions import QuestionGenerationError, ValidationError
from interview_coach.models import (
    AnalysisResult,
    AnswerRecord,
    Question,
    QuestionTips,
    Session,
    SessionStatus,
)
from interview_coach.services import coach_api

logger = logging.getLogger(__name__)

QuestionGenerator = Callable[[str, Optional[str]], Awaitable[list[Question]]]
TipsGenerator = Callable[[str, str], Awaitable[Optional[QuestionTips]]]
Listener = Callable[[Session], None]


class SessionStore:
    """Single mutable session document with last-writer-wins semantics."""

    def __init__(
        self,
        question_generator: QuestionGenerator = coach_api.generate_questions,
        tips_generator: TipsGenerator = coach_api.generate_tips,
        session: Optional[Session] = None,
    ):
        self._generate_questions = question_generator
        self._generate_tips = tips_generator
        self._session = session or Session()
        self._listeners: list[Listener] = []
        self._reset_hooks: list[Callable[[], None]] = []

    @property
    def session(self) -> Session:
        """Current document. Treat as read-only."""
        return self._session

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener with the new session after every mutation."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_reset(self, hook: Callable[[], None]) -> None:
        """Register a hook run by reset_session (removes persisted artifacts)."""
        self._reset_hooks.append(hook)

    def _commit(self, session: Session) -> None:
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener failed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_session(
        self,
        role: str,
        job_description: Optional[str] = None,
        rubric: Optional[dict] = None,
        intake_profile: Optional[dict] = None,
    ) -> Session:
        """
        Generate questions and switch to a fresh ACTIVE session.

        Restarting while ACTIVE discards the previous answers; results still
        in flight for the old session carry its id and are dropped.

        Raises:
            ValidationError: Role is empty (nothing is generated)
            QuestionGenerationError: The generator produced no questions
        """
        role = (role or "").strip()
        if not role:
            raise ValidationError("Role is required to start a session")

        job_description = (job_description or "").strip() or None
        questions = await self._generate_questions(role, job_description)
        if not questions:
            raise QuestionGenerationError(f"No questions generated for role {role!r}")

        session = Session(
            role=role,
            job_description=job_description,
            questions=list(questions),
            status=SessionStatus.ACTIVE,
            rubric=rubric,
            intake_profile=intake_profile,
        )
        self._commit(session)
        logger.info("Session %s started: role=%r, %d questions", session.id, role, len(questions))
        return session

    def finish_session(self) -> bool:
        """Mark the session COMPLETED. No-op without at least one answer."""
        session = self._session
        if session.status != SessionStatus.ACTIVE:
            return False
        if not any(record.has_content() for record in session.answers.values()):
            logger.warning("Attempted to finish session %s with no answers", session.id)
            return False

        self._commit(replace(session, status=SessionStatus.COMPLETED))
        logger.info("Session %s completed with %d answers", session.id, len(session.answers))
        return True

    def reset_session(self) -> None:
        """Return to an empty IDLE session and remove the local persisted artifact."""
        for hook in list(self._reset_hooks):
            try:
                hook()
            except Exception:
                logger.exception("Reset hook failed")
        self._commit(Session())

    def restore(self, session: Session) -> None:
        """Replace the document with a loaded one. Listeners are not notified."""
        self._session = session

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def goto_question(self, index: int) -> bool:
        """Move to question `index`. Out-of-range indexes are ignored."""
        session = self._session
        if not 0 <= index < len(session.questions):
            return False
        if index != session.current_index:
            self._commit(replace(session, current_index=index))
        return True

    def next_question(self) -> bool:
        return self.goto_question(self._session.current_index + 1)

    def prev_question(self) -> bool:
        return self.goto_question(self._session.current_index - 1)

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    def save_answer(self, question_id: str, record: AnswerRecord) -> bool:
        """Insert or replace the answer for a question of this session."""
        session = self._session
        if session.find_question(question_id) is None:
            logger.warning("save_answer for unknown question %s ignored", question_id)
            return False
        self._commit(replace(session, answers={**session.answers, question_id: record}))
        return True

    def clear_answer(self, question_id: str) -> bool:
        """Remove the answer record completely."""
        session = self._session
        if question_id not in session.answers:
            return False
        answers = dict(session.answers)
        del answers[question_id]
        self._commit(replace(session, answers=answers))
        return True

    def attach_analysis(self, question_id: str, analysis: AnalysisResult) -> bool:
        """
        Fill the analysis of a pending answer.

        Returns:
            False if there is no record or it already has an analysis
        """
        session = self._session
        record = session.answers.get(question_id)
        if record is None or record.analysis is not None:
            return False

        text = record.text
        if analysis.transcript and (record.audio is not None or not text):
            text = analysis.transcript
        updated = replace(record, analysis=analysis, text=text)
        self._commit(replace(session, answers={**session.answers, question_id: updated}))
        return True

    def update_answer_analysis(self, question_id: str, **partial) -> bool:
        """Merge fields into an existing analysis. No-op while grading is pending."""
        session = self._session
        record = session.answers.get(question_id)
        if record is None or record.analysis is None:
            return False
        updated = replace(record, analysis=replace(record.analysis, **partial))
        self._commit(replace(session, answers={**session.answers, question_id: updated}))
        return True

    # ------------------------------------------------------------------
    # Engagement and tips
    # ------------------------------------------------------------------

    def add_engaged_seconds(self, seconds: int) -> None:
        if seconds <= 0:
            return
        session = self._session
        self._commit(replace(session, engaged_seconds=session.engaged_seconds + int(seconds)))

    async def load_tips(self, question_id: str) -> Optional[QuestionTips]:
        """Fetch tips once per question and cache them on the question."""
        session = self._session
        question = session.find_question(question_id)
        if question is None:
            return None
        if question.tips is not None:
            return question.tips

        try:
            tips = await self._generate_tips(question.text, session.role or "General")
        except Exception as e:
            logger.error("Failed to load tips for question %s: %s", question_id, e)
            return None
        if tips is None:
            return None

        # The session may have been restarted while tips were loading
        current = self._session
        if current.id != session.id:
            return None
        target = current.find_question(question_id)
        if target is None or target.tips is not None:
            return target.tips if target else None

        questions = [replace(q, tips=tips) if q.id == question_id else q for q in current.questions]
        self._commit(replace(current, questions=questions))
        return tips

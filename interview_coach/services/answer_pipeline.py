"""Answer submission and grading.

Per attempt:

1. the raw answer is held until the user confirms or retries;
2. on confirm it is saved at once with analysis=None and grading starts in
   the background;
3. feedback is revealed only when both the cosmetic loading sequence and the
   grading call have finished;
4. every grading call carries an AttemptTag, and a result whose tag is no
   longer the latest for its question is dropped.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from interview_coach.config import settings
from interview_coach.exceptions import GradingError, ValidationError
from interview_coach.models import AnalysisResult, AnswerRecord, AudioClip, SessionStatus
from interview_coach.services import coach_api
from interview_coach.services.session_store import SessionStore

logger = logging.getLogger(__name__)

AUDIO_PLACEHOLDER = "(Audio Response)"

TEXT_STEPS = (
    "Coach is analyzing your answer...",
    "Generating feedback...",
    "Finalizing review...",
)
AUDIO_STEPS = (
    "Coach is analyzing your answer...",
    "Generating feedback...",
    "Noting your speaking delivery...",
    "Finalizing review...",
)

Grader = Callable[..., Awaitable[Optional[AnalysisResult]]]
Reconciler = Callable[[str, str, AnalysisResult], Awaitable[bool]]


@dataclass(frozen=True)
class AttemptTag:
    """Identifies one submit-or-retry cycle of one question."""
    session_id: str
    question_id: str
    attempt: int


@dataclass(frozen=True)
class PendingAnswer:
    """An answer waiting for confirm/retry."""
    audio: Optional[AudioClip] = None
    text: Optional[str] = None

    def __post_init__(self):
        if self.audio is None and not self.text:
            raise ValidationError("An answer needs audio or text")

    def to_record(self) -> AnswerRecord:
        text = self.text
        if self.audio is not None and not text:
            text = AUDIO_PLACEHOLDER
        return AnswerRecord(audio=self.audio, text=text, analysis=None)

    @property
    def grading_input(self) -> AudioClip | str:
        return self.audio if self.audio is not None else self.text


# ============================================================================
# REVEAL GATE: cosmetic timer AND real result
# ============================================================================

class RevealEvent(str, Enum):
    TIMER_DONE = "timer_done"
    ANALYSIS_READY = "analysis_ready"
    RESET = "reset"


@dataclass(frozen=True)
class RevealState:
    timer_done: bool = False
    analysis_ready: bool = False

    @property
    def revealed(self) -> bool:
        return self.timer_done and self.analysis_ready


def reveal_reducer(state: RevealState, event: RevealEvent) -> RevealState:
    if event == RevealEvent.TIMER_DONE:
        return RevealState(timer_done=True, analysis_ready=state.analysis_ready)
    if event == RevealEvent.ANALYSIS_READY:
        return RevealState(timer_done=state.timer_done, analysis_ready=True)
    if event == RevealEvent.RESET:
        return RevealState()
    return state


class RevealGate:
    """Holds the reveal state and wakes waiters once both gates are open."""

    def __init__(self):
        self.state = RevealState()
        self._revealed = asyncio.Event()

    def dispatch(self, event: RevealEvent) -> RevealState:
        self.state = reveal_reducer(self.state, event)
        if self.state.revealed:
            self._revealed.set()
        else:
            self._revealed.clear()
        return self.state

    @property
    def revealed(self) -> bool:
        return self.state.revealed

    async def wait(self) -> None:
        await self._revealed.wait()


class CosmeticTimer:
    """Step-sequenced loading indicator. Holds on its last step once done."""

    def __init__(
        self,
        steps: Sequence[str],
        step_seconds: float,
        on_step: Optional[Callable[[int, str], None]] = None,
    ):
        if not steps:
            raise ValueError("CosmeticTimer needs at least one step")
        self.steps = tuple(steps)
        self.step_seconds = step_seconds
        self.on_step = on_step
        self.current_index = 0

    @property
    def current_step(self) -> str:
        return self.steps[self.current_index]

    async def run(self) -> None:
        for index, label in enumerate(self.steps):
            self.current_index = index
            if self.on_step is not None:
                self.on_step(index, label)
            await asyncio.sleep(self.step_seconds)


class Attempt:
    """Handle of one confirmed answer: its tag, reveal gate and grading outcome."""

    def __init__(self, tag: AttemptTag, timer: CosmeticTimer):
        self.tag = tag
        self.timer = timer
        self.gate = RevealGate()
        self.analysis: Optional[AnalysisResult] = None
        self.applied = False
        self._graded = asyncio.Event()

    @property
    def graded(self) -> bool:
        return self._graded.is_set()

    @property
    def revealed(self) -> bool:
        return self.gate.revealed

    async def wait_graded(self) -> Optional[AnalysisResult]:
        await self._graded.wait()
        return self.analysis

    async def wait_revealed(self) -> Optional[AnalysisResult]:
        """Resolve once both the loading sequence and grading are finished."""
        await self.gate.wait()
        return self.analysis


# ============================================================================
# PIPELINE
# ============================================================================

class AnswerAnalysisPipeline:
    """Optimistic answer saving with tagged background grading."""

    def __init__(
        self,
        store: SessionStore,
        grader: Grader = coach_api.analyze_answer,
        reconciler: Optional[Reconciler] = None,
        step_seconds: Optional[float] = None,
    ):
        self.store = store
        self._grader = grader
        self._reconciler = reconciler
        self.step_seconds = settings.REVEAL_STEP_SECONDS if step_seconds is None else step_seconds
        self._attempts: dict[tuple[str, str], int] = {}
        self._pending: dict[str, PendingAnswer] = {}
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Pending answers (confirm / retry prompt)
    # ------------------------------------------------------------------

    def hold(self, question_id: str, answer: PendingAnswer) -> None:
        """Keep a recorded/typed answer until the user confirms it."""
        self._pending[question_id] = answer

    def pending(self, question_id: str) -> Optional[PendingAnswer]:
        return self._pending.get(question_id)

    def discard_pending(self, question_id: str) -> None:
        self._pending.pop(question_id, None)

    def clear_pending(self) -> None:
        self._pending.clear()

    # ------------------------------------------------------------------
    # Attempt tags
    # ------------------------------------------------------------------

    def _bump(self, session_id: str, question_id: str) -> int:
        key = (session_id, question_id)
        self._attempts[key] = self._attempts.get(key, 0) + 1
        return self._attempts[key]

    def is_current(self, tag: AttemptTag) -> bool:
        return self._attempts.get((tag.session_id, tag.question_id)) == tag.attempt

    # ------------------------------------------------------------------
    # Confirm / retry
    # ------------------------------------------------------------------

    async def confirm(self, question_id: str) -> Attempt:
        """
        Save the held answer as pending and start grading in the background.

        Returns immediately; the caller can move on while grading runs.

        Raises:
            ValidationError: Nothing is held for this question, or it is not in the session
        """
        answer = self._pending.get(question_id)
        if answer is None:
            raise ValidationError(f"No answer awaiting confirmation for question {question_id}")

        session = self.store.session
        question = session.find_question(question_id)
        if question is None:
            raise ValidationError(f"Question {question_id} is not part of the current session")

        del self._pending[question_id]
        tag = AttemptTag(session.id, question_id, self._bump(session.id, question_id))

        # Optimistic save happens before grading is even scheduled
        self.store.save_answer(question_id, answer.to_record())

        steps = AUDIO_STEPS if answer.audio is not None else TEXT_STEPS
        attempt = Attempt(tag, CosmeticTimer(steps, self.step_seconds))

        timer_task = asyncio.create_task(
            self._run_timer(attempt), name=f"reveal-timer-{question_id}-{tag.attempt}"
        )
        grading_task = asyncio.create_task(
            self._run_grading(attempt, question.text, answer, session.rubric, session.intake_profile),
            name=f"grading-{question_id}-{tag.attempt}",
        )
        for task in (timer_task, grading_task):
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        logger.info("Answer submitted for question %s (attempt %d)", question_id, tag.attempt)
        return attempt

    def retry(self, question_id: str) -> None:
        """Discard the answer and any in-flight result for it."""
        session = self.store.session
        self._bump(session.id, question_id)
        self._pending.pop(question_id, None)
        self.store.clear_answer(question_id)
        logger.info("Answer attempt for question %s discarded", question_id)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    @staticmethod
    async def _run_timer(attempt: Attempt) -> None:
        await attempt.timer.run()
        attempt.gate.dispatch(RevealEvent.TIMER_DONE)

    async def _run_grading(
        self,
        attempt: Attempt,
        question_text: str,
        answer: PendingAnswer,
        rubric: Optional[dict],
        intake_profile: Optional[dict],
    ) -> None:
        tag = attempt.tag
        try:
            analysis = await self._grader(
                question_text,
                answer.grading_input,
                rubric=rubric,
                question_id=tag.question_id,
                intake_profile=intake_profile,
            )
        except GradingError as e:
            logger.error("Analysis failed for question %s: %s", tag.question_id, e)
            analysis = None
        except Exception as e:
            logger.error("Unexpected grading failure for question %s: %s", tag.question_id, e)
            analysis = None

        try:
            attempt.analysis = analysis
            if analysis is not None:
                attempt.applied = await self._apply(tag, analysis)
        finally:
            attempt._graded.set()
            attempt.gate.dispatch(RevealEvent.ANALYSIS_READY)

    async def _apply(self, tag: AttemptTag, analysis: AnalysisResult) -> bool:
        if not self.is_current(tag):
            logger.info(
                "Dropping stale analysis for question %s (attempt %d)", tag.question_id, tag.attempt
            )
            return False

        session = self.store.session
        if session.id == tag.session_id:
            applied = self.store.attach_analysis(tag.question_id, analysis)
            if session.status == SessionStatus.COMPLETED and self._reconciler is not None:
                await self._reconcile(tag, analysis)
            return applied

        # The session was reset or replaced: only its archived copy may change
        if self._reconciler is not None:
            return await self._reconcile(tag, analysis)
        logger.info("Analysis for question %s arrived after its session ended", tag.question_id)
        return False

    async def _reconcile(self, tag: AttemptTag, analysis: AnalysisResult) -> bool:
        try:
            return await self._reconciler(tag.session_id, tag.question_id, analysis)
        except Exception as e:
            logger.error("Failed to reconcile late analysis for session %s: %s", tag.session_id, e)
            return False

    async def wait_idle(self) -> None:
        """Wait until every background task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_timers(self) -> None:
        for task in list(self._tasks):
            if task.get_name().startswith("reveal-timer") and not task.done():
                task.cancel()

"""Tests for the session state machine."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from interview_coach.exceptions import QuestionGenerationError, ValidationError
from interview_coach.models import AnswerRecord, QuestionTips, SessionStatus
from interview_coach.services.session_store import SessionStore


class TestStartSession:
    """Starting a session."""

    async def test_start_generates_questions(self, store, sample_questions):
        """A role yields an ACTIVE session at the first question."""
        session = await store.start_session("Software Engineer", "  Python, AWS  ")

        assert session.status == SessionStatus.ACTIVE
        assert session.questions == sample_questions
        assert session.current_index == 0
        assert session.answers == {}
        assert session.job_description == "Python, AWS"
        store._generate_questions.assert_awaited_once_with("Software Engineer", "Python, AWS")

    async def test_empty_role_rejected_before_generation(self, store):
        """Blank role raises and nothing is generated."""
        with pytest.raises(ValidationError):
            await store.start_session("   ")

        store._generate_questions.assert_not_awaited()
        assert store.session.status == SessionStatus.IDLE

    async def test_no_questions_raises(self):
        """An empty generator result does not leave a broken ACTIVE session."""
        store = SessionStore(question_generator=AsyncMock(return_value=[]))

        with pytest.raises(QuestionGenerationError):
            await store.start_session("Cashier")

        assert store.session.status == SessionStatus.IDLE

    async def test_restart_discards_previous_answers(self, store):
        """Starting again while ACTIVE replaces the session and its id."""
        first = await store.start_session("Software Engineer")
        store.save_answer("1", AnswerRecord(text="An answer"))

        second = await store.start_session("Data Analyst")

        assert second.id != first.id
        assert second.answers == {}
        assert second.role == "Data Analyst"


class TestFinishAndReset:
    """Completing and discarding sessions."""

    async def test_finish_without_answers_is_noop(self, store):
        await store.start_session("Software Engineer")

        assert store.finish_session() is False
        assert store.session.status == SessionStatus.ACTIVE

    async def test_finish_with_one_answer(self, store):
        await store.start_session("Software Engineer")
        store.save_answer("2", AnswerRecord(text="Token bucket"))

        assert store.finish_session() is True
        assert store.session.status == SessionStatus.COMPLETED

    def test_finish_when_idle_is_noop(self, store):
        assert store.finish_session() is False
        assert store.session.status == SessionStatus.IDLE

    async def test_reset_returns_to_idle_and_runs_hooks(self, store):
        """Reset clears everything and runs the artifact-removal hooks."""
        hook = MagicMock()
        store.on_reset(hook)
        await store.start_session("Software Engineer")
        store.save_answer("1", AnswerRecord(text="An answer"))

        store.reset_session()

        hook.assert_called_once()
        assert store.session.status == SessionStatus.IDLE
        assert store.session.questions == []
        assert store.session.answers == {}


class TestNavigation:
    """Question navigation."""

    async def test_next_and_prev(self, store):
        await store.start_session("Software Engineer")

        assert store.next_question() is True
        assert store.session.current_index == 1
        assert store.prev_question() is True
        assert store.session.current_index == 0

    async def test_out_of_range_ignored(self, store):
        await store.start_session("Software Engineer")

        assert store.prev_question() is False
        assert store.goto_question(3) is False
        assert store.session.current_index == 0

    async def test_navigation_keeps_index_in_range(self, store):
        await store.start_session("Software Engineer")
        for _ in range(10):
            store.next_question()

        assert store.session.current_index == len(store.session.questions) - 1


class TestAnswers:
    """Saving, clearing and grading answers."""

    async def test_last_action_wins(self, store, sample_analysis):
        """The record reflects only the last applied action."""
        await store.start_session("Software Engineer")

        store.save_answer("1", AnswerRecord(text="first"))
        store.save_answer("1", AnswerRecord(text="second"))
        assert store.session.answers["1"].text == "second"

        store.clear_answer("1")
        assert "1" not in store.session.answers

        store.save_answer("1", AnswerRecord(text="third"))
        store.attach_analysis("1", sample_analysis)
        assert store.session.answers["1"].analysis == sample_analysis

    async def test_unknown_question_ignored(self, store):
        await store.start_session("Software Engineer")

        assert store.save_answer("99", AnswerRecord(text="x")) is False
        assert store.session.answers == {}

    async def test_attach_analysis_only_once(self, store, sample_analysis):
        """A second analysis never overwrites the first."""
        await store.start_session("Software Engineer")
        store.save_answer("1", AnswerRecord(text="typed answer"))

        assert store.attach_analysis("1", sample_analysis) is True
        other = sample_analysis.__class__(transcript="other", rating="Strong")
        assert store.attach_analysis("1", other) is False
        assert store.session.answers["1"].analysis == sample_analysis

    async def test_audio_answer_takes_transcript(self, store, sample_analysis, audio_clip):
        """The placeholder text of an audio answer is replaced by the transcript."""
        await store.start_session("Software Engineer")
        store.save_answer("1", AnswerRecord(audio=audio_clip, text="(Audio Response)"))

        store.attach_analysis("1", sample_analysis)

        assert store.session.answers["1"].text == sample_analysis.transcript
        assert store.session.answers["1"].audio == audio_clip

    async def test_update_answer_analysis_requires_analysis(self, store, sample_analysis):
        await store.start_session("Software Engineer")
        store.save_answer("1", AnswerRecord(text="typed"))

        assert store.update_answer_analysis("1", score=90) is False

        store.attach_analysis("1", sample_analysis)
        assert store.update_answer_analysis("1", score=90) is True
        assert store.session.answers["1"].analysis.score == 90
        assert store.session.answers["1"].analysis.rating == sample_analysis.rating

    async def test_published_sessions_are_not_mutated(self, store):
        """A session handed to listeners stays unchanged by later mutations."""
        seen = []
        store.subscribe(seen.append)
        await store.start_session("Software Engineer")
        store.save_answer("1", AnswerRecord(text="answer"))

        assert seen[0].answers == {}
        assert "1" in seen[1].answers

    async def test_failing_listener_does_not_break_mutation(self, store):
        store.subscribe(MagicMock(side_effect=RuntimeError("boom")))

        await store.start_session("Software Engineer")

        assert store.session.status == SessionStatus.ACTIVE

    async def test_unsubscribe(self, store):
        listener = MagicMock()
        unsubscribe = store.subscribe(listener)
        unsubscribe()

        await store.start_session("Software Engineer")

        listener.assert_not_called()


class TestEngagementAndTips:
    """Engaged time and lazily loaded tips."""

    async def test_add_engaged_seconds(self, store):
        await store.start_session("Software Engineer")
        store.add_engaged_seconds(1)
        store.add_engaged_seconds(2)
        store.add_engaged_seconds(0)

        assert store.session.engaged_seconds == 3

    async def test_tips_loaded_once(self, store):
        tips = QuestionTips(points=["Use STAR"], framework="STAR")
        store._generate_tips = AsyncMock(return_value=tips)
        await store.start_session("Software Engineer")

        assert await store.load_tips("1") == tips
        assert await store.load_tips("1") == tips

        store._generate_tips.assert_awaited_once()
        assert store.session.questions[0].tips == tips

    async def test_tips_failure_returns_none(self, store):
        store._generate_tips = AsyncMock(side_effect=RuntimeError("down"))
        await store.start_session("Software Engineer")

        assert await store.load_tips("1") is None
        assert store.session.questions[0].tips is None

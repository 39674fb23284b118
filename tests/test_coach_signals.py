"""Tests for the coaching signal engine."""
import pytest

from interview_coach.models import (
    AnalysisResult,
    AnswerRecord,
    Question,
    Session,
    SessionHistoryEntry,
    SessionStatus,
    SessionSummary,
)
from interview_coach.services.coach_signals import (
    COMPETENCIES,
    Direction,
    SignalQuality,
    SignalState,
    calculate_signal_quality,
    derive_baseline,
    derive_coaching_focus,
    derive_constellation,
    derive_progress,
    generate_dashboard_signals,
    summaries_from_history,
)


def make_history(count, score=70, engaged_seconds=300, competency_scores=None):
    return [
        SessionSummary(score=score, engaged_seconds=engaged_seconds,
                       competency_scores=dict(competency_scores or {}))
        for _ in range(count)
    ]


class TestSignalQuality:
    """Tier thresholds."""

    def test_insufficient_for_no_sessions(self):
        assert calculate_signal_quality([]) == SignalQuality.INSUFFICIENT

    def test_one_short_session_is_emerging(self):
        assert calculate_signal_quality(make_history(1, 70, 100)) == SignalQuality.EMERGING

    def test_three_sessions_with_enough_time_are_reliable(self):
        assert calculate_signal_quality(make_history(3, 70, 200)) == SignalQuality.RELIABLE

    def test_five_consistent_sessions_are_strong(self):
        assert calculate_signal_quality(make_history(5, 70, 300)) == SignalQuality.STRONG

    def test_high_variance_downgrades_strong(self):
        history = [
            SessionSummary(score=s, engaged_seconds=300) for s in (10, 90, 10, 90, 50)
        ]
        assert calculate_signal_quality(history) == SignalQuality.RELIABLE

    def test_many_sessions_without_time_stay_emerging(self):
        """Sessions recorded before engagement tracking carry no time."""
        assert calculate_signal_quality(make_history(10, 70, 0)) == SignalQuality.EMERGING

    def test_not_enough_time_for_reliable(self):
        assert calculate_signal_quality(make_history(3, 70, 90)) == SignalQuality.EMERGING

    @pytest.mark.parametrize("score", [40, 70, 95])
    def test_monotonic_in_sessions_and_time(self, score):
        order = list(SignalQuality)
        previous = 0
        for count in range(0, 8):
            for seconds in (0, 50, 150, 300):
                tier = order.index(calculate_signal_quality(make_history(count, score, seconds)))
                assert tier >= order.index(calculate_signal_quality(make_history(count, score, max(seconds - 50, 0))))
            current = order.index(calculate_signal_quality(make_history(count, score, 300)))
            assert current >= previous
            previous = current


class TestBaseline:
    def test_empty(self):
        baseline = derive_baseline([])
        assert baseline.state == SignalState.EMPTY
        assert baseline.text == "Practice to establish your baseline."

    def test_tentative_when_emerging(self):
        baseline = derive_baseline(make_history(1, 70, 100))
        assert baseline.state == SignalState.LOW
        assert baseline.text == "It appears you are building a consistent foundation."
        assert "1 session" in baseline.grounding

    def test_assertive_when_strong(self):
        baseline = derive_baseline(make_history(5, 85, 300))
        assert baseline.state == SignalState.HIGH
        assert baseline.text == "You consistently demonstrate strong interview skills."
        assert baseline.grounding == "Based on 5 sessions."

    def test_descriptor_uses_most_recent_score(self):
        history = make_history(1, 50, 100) + make_history(1, 90, 100)
        assert "developing" in derive_baseline(history).text


class TestCoachingFocus:
    def test_insufficient(self):
        focus = derive_coaching_focus([])
        assert focus.state == SignalState.EMPTY
        assert focus.focus == "Foundational Communication"

    def test_emerging(self):
        focus = derive_coaching_focus(make_history(1, 70, 100))
        assert focus.state == SignalState.LOW
        assert focus.focus == "Structure (STAR Method)"

    def test_reliable(self):
        focus = derive_coaching_focus(make_history(3, 70, 200))
        assert focus.state == SignalState.HIGH
        assert focus.focus == "Impact Quantification"


class TestProgress:
    def test_no_direction_below_reliable(self):
        progress = derive_progress(make_history(1, 70, 100))
        assert progress.direction == Direction.NONE
        assert progress.description == "Not enough data for trends."

    def test_up(self):
        history = make_history(1, 80) + make_history(3, 70)
        progress = derive_progress(history)
        assert progress.state == SignalState.HIGH
        assert progress.direction == Direction.UP

    def test_uneven(self):
        history = make_history(1, 60) + make_history(3, 70)
        assert derive_progress(history).direction == Direction.UNEVEN

    def test_flat_within_dead_band(self):
        history = make_history(1, 75) + make_history(3, 70)
        assert derive_progress(history).direction == Direction.FLAT


class TestConstellation:
    def test_empty_when_insufficient(self):
        constellation = derive_constellation([])
        assert constellation.state == SignalState.EMPTY
        assert constellation.points == []

    def test_deterministic_full_range_when_reliable(self):
        scores = {"Behavioral": 90, "Technical": 50, "Situational": 70, "Communication": 70}
        history = make_history(3, 70, 200, scores)

        first = derive_constellation(history)
        second = derive_constellation(history)

        assert first == second
        assert first.state == SignalState.HIGH
        strengths = {p.competency: p.strength for p in first.points}
        assert strengths["Behavioral"] == pytest.approx(0.7)
        assert strengths["Technical"] == pytest.approx(0.3)
        assert strengths["Situational"] == pytest.approx(0.5)
        assert [p.competency for p in first.points] == list(COMPETENCIES)

    def test_compressed_when_emerging(self):
        scores = {"Behavioral": 90, "Technical": 50, "Situational": 70, "Communication": 70}
        constellation = derive_constellation(make_history(1, 70, 100, scores))

        strengths = {p.competency: p.strength for p in constellation.points}
        assert constellation.state == SignalState.LOW
        assert strengths["Behavioral"] == pytest.approx(0.6)
        assert strengths["Technical"] == pytest.approx(0.4)

    def test_unexercised_competency_is_neutral(self):
        constellation = derive_constellation(make_history(3, 70, 200, {"Technical": 80}))

        point = next(p for p in constellation.points if p.competency == "Behavioral")
        assert point.strength == 0.5
        assert point.confidence == 0

    def test_strengths_within_bounds(self):
        scores = {"Behavioral": 100, "Technical": 0}
        for point in derive_constellation(make_history(5, 50, 300, scores)).points:
            assert 0 <= point.strength <= 1


class TestDashboard:
    def test_aggregates_all_signals(self):
        signals = generate_dashboard_signals(make_history(1, 70, 100))

        assert signals.signal_quality == SignalQuality.EMERGING
        assert signals.baseline.state == SignalState.LOW
        assert signals.focus.state == SignalState.LOW
        assert signals.progress.direction == Direction.NONE
        assert signals.constellation.state == SignalState.LOW


class TestSummariesFromHistory:
    def test_competency_scores_from_question_types(self):
        questions = [
            Question(id="1", text="Lead a team?", type="behavioral"),
            Question(id="2", text="Design a cache?", type="technical"),
            Question(id="3", text="Why us?", type="general"),
            Question(id="4", text="Unanswered", type="situational"),
        ]
        session = Session(
            role="Engineer",
            questions=questions,
            status=SessionStatus.COMPLETED,
            engaged_seconds=240,
            answers={
                "1": AnswerRecord(text="a", analysis=AnalysisResult(transcript="a", rating="Good", score=72)),
                "2": AnswerRecord(text="b", analysis=AnalysisResult(transcript="b", rating="Strong")),
                "3": AnswerRecord(text="c", analysis=AnalysisResult(transcript="c", rating="Developing")),
                "4": AnswerRecord(text="d"),
            },
        )
        entry = SessionHistoryEntry(id="h1", timestamp=1.0, role="Engineer", score=77,
                                    questions_count=4, session=session)

        [summary] = summaries_from_history([entry])

        assert summary.score == 77
        assert summary.engaged_seconds == 240
        assert summary.competency_scores == {"Behavioral": 72, "Technical": 100, "Communication": 60}

"""Coaching signals derived from session history.

Every function takes summaries ordered most recent first and is pure. The
signal quality tier bounds how strong a claim each derivation may make.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence

from interview_coach.models import SessionHistoryEntry, SessionSummary

MIN_SESSIONS_EMERGING = 1
MIN_SESSIONS_RELIABLE = 3
MIN_SESSIONS_STRONG = 5

# Verified engagement time, seconds
MIN_ENGAGED_SECONDS_EMERGING = 60
MIN_ENGAGED_SECONDS_RELIABLE = 300
MIN_ENGAGED_SECONDS_STRONG = 900

# Population standard deviation of session scores
MAX_SCORE_STDDEV_CONSISTENT = 15

# Points the newest score must move past the previous one to count as a trend
PROGRESS_DEAD_BAND = 5

COMPETENCIES = ("Behavioral", "Technical", "Situational", "Communication")

QUESTION_TYPE_COMPETENCY = {
    "behavioral": "Behavioral",
    "technical": "Technical",
    "situational": "Situational",
    "general": "Communication",
}

RATING_SCORES = {"Strong": 100, "Good": 80, "Developing": 60}


class SignalQuality(str, Enum):
    INSUFFICIENT = "Insufficient"
    EMERGING = "Emerging"
    RELIABLE = "Reliable"
    STRONG = "Strong"


class SignalState(str, Enum):
    EMPTY = "Empty"
    LOW = "Low Signal"
    HIGH = "High Signal"


class Direction(str, Enum):
    UP = "Up"
    FLAT = "Flat"
    UNEVEN = "Uneven"
    NONE = "None"


@dataclass(frozen=True)
class BaselineSignal:
    state: SignalState
    text: str
    grounding: str


@dataclass(frozen=True)
class CoachingFocusSignal:
    state: SignalState
    focus: str
    rationale: str
    action: str


@dataclass(frozen=True)
class ProgressSignal:
    state: SignalState
    direction: Direction
    description: str


@dataclass(frozen=True)
class ConstellationPoint:
    competency: str
    strength: float     # 0-1, relative to the user's own average
    confidence: float   # 0-1, share of sessions that exercised the competency


@dataclass(frozen=True)
class ConstellationSignal:
    state: SignalState
    points: List[ConstellationPoint] = field(default_factory=list)


@dataclass(frozen=True)
class DashboardSignals:
    signal_quality: SignalQuality
    baseline: BaselineSignal
    constellation: ConstellationSignal
    focus: CoachingFocusSignal
    progress: ProgressSignal


def _score_stddev(scores: Sequence[float]) -> float:
    mean = sum(scores) / len(scores)
    return math.sqrt(sum((s - mean) ** 2 for s in scores) / len(scores))


def calculate_signal_quality(history: Sequence[SessionSummary]) -> SignalQuality:
    """
    Confidence tier for the given history.

    Args:
        history: Session summaries, most recent first

    Returns:
        Insufficient for no sessions. Reliable needs 3 sessions and 5 minutes
        of engagement; Strong needs 5 sessions, 15 minutes and a score
        standard deviation of at most 15, otherwise it stays Reliable.
    """
    count = len(history)
    if count < MIN_SESSIONS_EMERGING:
        return SignalQuality.INSUFFICIENT

    total_engaged = sum(max(s.engaged_seconds or 0, 0) for s in history)

    # Sessions recorded before engagement tracking carry no time
    if total_engaged < MIN_ENGAGED_SECONDS_EMERGING:
        return SignalQuality.EMERGING

    consistent = True
    if count >= MIN_SESSIONS_RELIABLE:
        consistent = _score_stddev([s.score for s in history]) <= MAX_SCORE_STDDEV_CONSISTENT

    if total_engaged >= MIN_ENGAGED_SECONDS_STRONG and count >= MIN_SESSIONS_STRONG:
        return SignalQuality.STRONG if consistent else SignalQuality.RELIABLE

    if total_engaged >= MIN_ENGAGED_SECONDS_RELIABLE and count >= MIN_SESSIONS_RELIABLE:
        return SignalQuality.RELIABLE

    return SignalQuality.EMERGING


def _is_high(quality: SignalQuality) -> bool:
    return quality in (SignalQuality.RELIABLE, SignalQuality.STRONG)


def _sessions_label(count: int) -> str:
    return f"{count} session" if count == 1 else f"{count} sessions"


def derive_baseline(history: Sequence[SessionSummary]) -> BaselineSignal:
    quality = calculate_signal_quality(history)
    if quality == SignalQuality.INSUFFICIENT:
        return BaselineSignal(
            state=SignalState.EMPTY,
            text="Practice to establish your baseline.",
            grounding="Complete your first session to get started.",
        )

    recent = history[0].score
    if recent > 80:
        descriptor = "strong"
    elif recent > 60:
        descriptor = "consistent"
    else:
        descriptor = "developing"

    if not _is_high(quality):
        return BaselineSignal(
            state=SignalState.LOW,
            text=f"It appears you are building a {descriptor} foundation.",
            grounding=f"Based on your initial practice ({_sessions_label(len(history))}).",
        )

    return BaselineSignal(
        state=SignalState.HIGH,
        text=f"You consistently demonstrate {descriptor} interview skills.",
        grounding=f"Based on {_sessions_label(len(history))}.",
    )


def derive_coaching_focus(history: Sequence[SessionSummary]) -> CoachingFocusSignal:
    quality = calculate_signal_quality(history)
    if quality == SignalQuality.INSUFFICIENT:
        return CoachingFocusSignal(
            state=SignalState.EMPTY,
            focus="Foundational Communication",
            rationale="Every interview starts with clear communication.",
            action='Practice the "Tell me about yourself" question.',
        )

    if not _is_high(quality):
        return CoachingFocusSignal(
            state=SignalState.LOW,
            focus="Structure (STAR Method)",
            rationale="Your answers would benefit from more consistent structure.",
            action="Try to explicitly tag your Situation, Task, Action, and Result.",
        )

    return CoachingFocusSignal(
        state=SignalState.HIGH,
        focus="Impact Quantification",
        rationale="You are giving good examples, but missing specific numbers.",
        action="Add one metric to your most recent project description.",
    )


def derive_progress(history: Sequence[SessionSummary]) -> ProgressSignal:
    """Compare the two most recent scores once the history is Reliable."""
    quality = calculate_signal_quality(history)
    if not _is_high(quality):
        return ProgressSignal(SignalState.LOW, Direction.NONE, "Not enough data for trends.")
    if len(history) < 2:
        return ProgressSignal(SignalState.LOW, Direction.NONE, "Need more sessions.")

    current, previous = history[0].score, history[1].score
    if current > previous + PROGRESS_DEAD_BAND:
        return ProgressSignal(SignalState.HIGH, Direction.UP, "Momentum is building.")
    if current < previous - PROGRESS_DEAD_BAND:
        return ProgressSignal(SignalState.HIGH, Direction.UNEVEN, "Performance is fluctuating.")
    return ProgressSignal(SignalState.HIGH, Direction.FLAT, "Consistency is stable.")


def derive_constellation(history: Sequence[SessionSummary]) -> ConstellationSignal:
    """
    Relative strength per competency.

    A competency's strength is 0.5 at the user's own cross-competency mean
    and moves by 0.01 per score point away from it. Competencies never
    exercised sit at 0.5 with zero confidence. Emerging histories are
    squashed halfway toward the centre.
    """
    quality = calculate_signal_quality(history)
    if quality == SignalQuality.INSUFFICIENT:
        return ConstellationSignal(state=SignalState.EMPTY, points=[])

    samples: Dict[str, List[float]] = {name: [] for name in COMPETENCIES}
    for summary in history:
        for name, score in summary.competency_scores.items():
            if name in samples:
                samples[name].append(score)

    averages = {name: sum(values) / len(values) for name, values in samples.items() if values}
    overall = sum(averages.values()) / len(averages) if averages else 0.0

    points = []
    for name in COMPETENCIES:
        if name in averages:
            strength = min(max(0.5 + (averages[name] - overall) / 100, 0.0), 1.0)
        else:
            strength = 0.5
        if quality == SignalQuality.EMERGING:
            strength = 0.5 + (strength - 0.5) * 0.5
        points.append(ConstellationPoint(
            competency=name,
            strength=round(strength, 4),
            confidence=round(len(samples[name]) / len(history), 4),
        ))

    state = SignalState.HIGH if _is_high(quality) else SignalState.LOW
    return ConstellationSignal(state=state, points=points)


def generate_dashboard_signals(history: Sequence[SessionSummary]) -> DashboardSignals:
    return DashboardSignals(
        signal_quality=calculate_signal_quality(history),
        baseline=derive_baseline(history),
        constellation=derive_constellation(history),
        focus=derive_coaching_focus(history),
        progress=derive_progress(history),
    )


# ============================================================================
# HISTORY -> SUMMARIES
# ============================================================================

def answer_score(analysis) -> float | None:
    """Numeric score of one graded answer, falling back to its rating."""
    if analysis is None:
        return None
    if analysis.score is not None:
        return float(analysis.score)
    return RATING_SCORES.get(analysis.rating)


def summary_from_entry(entry: SessionHistoryEntry) -> SessionSummary:
    by_competency: Dict[str, List[float]] = {}
    for question in entry.session.questions:
        record = entry.session.answers.get(question.id)
        score = answer_score(record.analysis) if record else None
        if score is None:
            continue
        competency = QUESTION_TYPE_COMPETENCY.get((question.type or "general").lower(), "Communication")
        by_competency.setdefault(competency, []).append(score)

    return SessionSummary(
        score=entry.score,
        engaged_seconds=entry.session.engaged_seconds,
        competency_scores={name: sum(v) / len(v) for name, v in by_competency.items()},
    )


def summaries_from_history(entries: Sequence[SessionHistoryEntry]) -> List[SessionSummary]:
    """Convert history entries (newest first) into signal engine input."""
    return [summary_from_entry(entry) for entry in entries]

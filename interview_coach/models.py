"""Data models for interview sessions, answers and history."""
import base64
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any


class SessionStatus(str, Enum):
    """Lifecycle of an interview session."""
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class QuestionTips:
    """Coaching tips for one question, fetched lazily."""
    points: List[str]
    framework: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"points": list(self.points), "framework": self.framework}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionTips":
        return cls(points=list(data.get("points") or []), framework=data.get("framework"))


@dataclass(frozen=True)
class Question:
    """Single interview question."""
    id: str
    text: str
    tips: Optional[QuestionTips] = None
    type: Optional[str] = None          # behavioral / technical / situational / general
    difficulty: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "tips": self.tips.to_dict() if self.tips else None,
            "type": self.type,
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        tips = data.get("tips")
        return cls(
            id=str(data["id"]),
            text=data["text"],
            tips=QuestionTips.from_dict(tips) if tips else None,
            type=data.get("type"),
            difficulty=data.get("difficulty"),
        )


@dataclass(frozen=True)
class AudioClip:
    """Recorded answer audio tagged with its container mime type."""
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mime_type": self.mime_type,
            "data": base64.b64encode(self.data).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AudioClip":
        return cls(data=base64.b64decode(data.get("data") or ""), mime_type=data["mime_type"])


@dataclass(frozen=True)
class AnalysisResult:
    """Grading result produced by the external service. Never mutated in place."""
    transcript: str
    rating: str
    feedback: List[str] = field(default_factory=list)
    key_terms: List[str] = field(default_factory=list)
    score: Optional[int] = None          # 0-100
    delivery_status: Optional[str] = None
    delivery_tips: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transcript": self.transcript,
            "rating": self.rating,
            "feedback": list(self.feedback),
            "key_terms": list(self.key_terms),
            "score": self.score,
            "delivery_status": self.delivery_status,
            "delivery_tips": list(self.delivery_tips),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        return cls(
            transcript=data.get("transcript") or "",
            rating=data.get("rating") or "",
            feedback=list(data.get("feedback") or []),
            key_terms=list(data.get("key_terms") or []),
            score=data.get("score"),
            delivery_status=data.get("delivery_status"),
            delivery_tips=list(data.get("delivery_tips") or []),
        )


@dataclass(frozen=True)
class AnswerRecord:
    """Stored answer for one question. analysis=None means pending or ungraded."""
    audio: Optional[AudioClip] = None
    text: Optional[str] = None
    analysis: Optional[AnalysisResult] = None

    @property
    def is_pending(self) -> bool:
        return self.analysis is None

    def has_content(self) -> bool:
        return bool(self.text or self.audio or self.analysis)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "audio": self.audio.to_dict() if self.audio else None,
            "text": self.text,
            "analysis": self.analysis.to_dict() if self.analysis else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnswerRecord":
        audio = data.get("audio")
        analysis = data.get("analysis")
        return cls(
            audio=AudioClip.from_dict(audio) if audio else None,
            text=data.get("text"),
            analysis=AnalysisResult.from_dict(analysis) if analysis else None,
        )


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Session:
    """One interview attempt: role, ordered questions, answers and status."""
    id: str = field(default_factory=new_session_id)
    role: str = ""
    job_description: Optional[str] = None
    questions: List[Question] = field(default_factory=list)
    current_index: int = 0
    answers: Dict[str, AnswerRecord] = field(default_factory=dict)
    status: SessionStatus = SessionStatus.IDLE
    engaged_seconds: int = 0
    rubric: Optional[Dict[str, Any]] = None
    intake_profile: Optional[Dict[str, Any]] = None

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    def find_question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "job_description": self.job_description,
            "questions": [q.to_dict() for q in self.questions],
            "current_index": self.current_index,
            "answers": {qid: a.to_dict() for qid, a in self.answers.items()},
            "status": self.status.value,
            "engaged_seconds": self.engaged_seconds,
            "rubric": self.rubric,
            "intake_profile": self.intake_profile,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        questions = [Question.from_dict(q) for q in data.get("questions") or []]
        index = int(data.get("current_index") or 0)
        if questions:
            index = min(max(index, 0), len(questions) - 1)
        else:
            index = 0
        status = SessionStatus(data.get("status") or SessionStatus.IDLE.value)
        if status == SessionStatus.ACTIVE and not questions:
            status = SessionStatus.IDLE
        return cls(
            id=data.get("id") or new_session_id(),
            role=data.get("role") or "",
            job_description=data.get("job_description"),
            questions=questions,
            current_index=index,
            answers={
                str(qid): AnswerRecord.from_dict(a)
                for qid, a in (data.get("answers") or {}).items()
            },
            status=status,
            engaged_seconds=int(data.get("engaged_seconds") or 0),
            rubric=data.get("rubric"),
            intake_profile=data.get("intake_profile"),
        )


@dataclass
class SessionHistoryEntry:
    """Archived, completed session."""
    id: str
    timestamp: float                # unix seconds
    role: str
    score: int
    questions_count: int
    session: Session
    job_description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "role": self.role,
            "job_description": self.job_description,
            "score": self.score,
            "questions_count": self.questions_count,
            "session": self.session.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionHistoryEntry":
        return cls(
            id=data["id"],
            timestamp=float(data["timestamp"]),
            role=data.get("role") or "",
            job_description=data.get("job_description"),
            score=int(data.get("score") or 0),
            questions_count=int(data.get("questions_count") or 0),
            session=Session.from_dict(data.get("session") or {}),
        )


@dataclass
class SessionSummary:
    """Per-session input of the coaching signal engine."""
    score: float
    engaged_seconds: float = 0
    competency_scores: Dict[str, float] = field(default_factory=dict)

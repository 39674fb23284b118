"""Shared fixtures for interview coach tests."""
from unittest.mock import AsyncMock

import pytest

from interview_coach.core.encryption import SessionEncryption
from interview_coach.core.local_storage import LocalSlotStore
from interview_coach.db import database
from interview_coach.models import (
    AnalysisResult,
    AnswerRecord,
    AudioClip,
    Question,
    Session,
    SessionStatus,
)
from interview_coach.services.session_store import SessionStore


@pytest.fixture
async def db(tmp_path):
    """Fresh database per test, installed as the global instance."""
    database.db = await database.init_database(str(tmp_path / "test.db"))
    yield database.db
    await database.db.close()
    database.db = None


@pytest.fixture
def slots(tmp_path):
    return LocalSlotStore(str(tmp_path / "slots"))


@pytest.fixture
def encryptor():
    return SessionEncryption("test-passphrase")


@pytest.fixture
def sample_questions():
    """Three questions of different types."""
    return [
        Question(id="1", text="Tell me about a time you led a team.", type="behavioral"),
        Question(id="2", text="How would you design a rate limiter?", type="technical"),
        Question(id="3", text="A customer is angry about a delay. What do you do?", type="situational"),
    ]


@pytest.fixture
def sample_analysis():
    return AnalysisResult(
        transcript="I led a team of five through a migration.",
        rating="Good",
        feedback=["Clear situation", "Quantify the result"],
        key_terms=["leadership"],
        score=78,
    )


@pytest.fixture
def audio_clip():
    return AudioClip(data=b"\x1aE\xdf\xa3fake-webm", mime_type="audio/webm;codecs=opus")


@pytest.fixture
def active_session(sample_questions):
    """ACTIVE session with no answers yet."""
    return Session(
        role="Software Engineer",
        questions=list(sample_questions),
        status=SessionStatus.ACTIVE,
    )


@pytest.fixture
def answered_session(active_session, sample_analysis):
    """ACTIVE session with one graded and one pending answer."""
    active_session.answers = {
        "1": AnswerRecord(text=sample_analysis.transcript, analysis=sample_analysis),
        "2": AnswerRecord(text="Token bucket per client."),
    }
    active_session.engaged_seconds = 120
    return active_session


@pytest.fixture
def store(sample_questions):
    """SessionStore with stubbed generators."""
    return SessionStore(
        question_generator=AsyncMock(return_value=list(sample_questions)),
        tips_generator=AsyncMock(return_value=None),
    )

"""Custom exceptions for the interview coach."""


class InterviewCoachError(Exception):
    """Base exception for interview coach errors."""
    pass


class MicrophonePermissionError(InterviewCoachError, PermissionError):
    """Audio device access was denied or is unavailable."""
    pass


class NotRecordingError(InterviewCoachError):
    """Stop was requested while no recording is active."""
    pass


class ValidationError(InterviewCoachError):
    """User input rejected before any side effect."""
    pass


class ExternalServiceError(InterviewCoachError):
    """A generation, grading or speech call failed."""
    pass


class QuestionGenerationError(ExternalServiceError):
    """No questions could be produced for the session."""
    pass


class GradingError(ExternalServiceError):
    """Answer grading failed."""
    pass


class SpeechSynthesisError(ExternalServiceError):
    """Question audio could not be synthesized."""
    pass


class PersistenceError(InterviewCoachError):
    """Encrypting, decrypting or writing a session failed."""
    pass

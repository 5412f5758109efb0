"""
Error types raised by the assessment engine.

Attempt errors are user-correctable and surfaced directly to the candidate.
Execution faults of candidate code are never raised; they are recorded as
failed test-case results instead.
"""


class AssessmentError(Exception):
    """Base class for every error the engine raises on purpose."""
    code = "assessment_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class AttemptError(AssessmentError):
    """A submission attempt was refused."""
    code = "attempt_error"


class DuplicateAttempt(AttemptError):
    """A submission already exists for this exam and candidate."""
    code = "duplicate_attempt"


class ExamNotActive(AttemptError):
    """The exam window is closed (not yet started or already ended)."""
    code = "exam_not_active"

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or f"Exam is not active ({reason})")
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class Unauthorized(AttemptError):
    """No verified candidate identity was supplied."""
    code = "unauthorized"


class ExamNotFound(AssessmentError):
    """The requested exam does not exist in the question bank."""
    code = "exam_not_found"


class SessionStateError(AssessmentError):
    """An operation is not allowed in the session's current state."""
    code = "invalid_session_state"


class SandboxUnavailable(AssessmentError):
    """No execution environment could be provisioned for candidate code."""
    code = "sandbox_unavailable"

"""Structured failure types shared by providers, clients, and the project store.

Architectural role:
    Every failure a generation provider can produce is expressed as a
    `GenerationError` carrying an `ErrorKind`. The session layer
    (`infravision.core.engine`) relies on this to attach exactly one structured
    failure to the in-flight project version instead of letting remote errors
    escape to the presentation layer.

Error handling strategy:
    - Remote/transport failures -> `GenerationError` with the matching kind.
    - Caller mistakes detected before any I/O -> `PreconditionViolation`.
    - Store misuse (transition on unknown/terminal versions) -> `InvalidTransition`,
      which is a programming error and is not converted into a FAILED version.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Enumerated failure categories surfaced on FAILED versions."""

    CONNECTION_UNAVAILABLE = "ConnectionUnavailable"
    UPLOAD_FAILED = "UploadFailed"
    SUBMISSION_REJECTED = "SubmissionRejected"
    TRANSPORT_ERROR = "TransportError"
    EXECUTION_FAILED = "ExecutionFailed"
    ARTIFACT_UNAVAILABLE = "ArtifactUnavailable"
    MODEL_RETURNED_NO_IMAGE = "ModelReturnedNoImage"
    AUTHORIZATION_INVALID = "AuthorizationInvalid"
    PRECONDITION_VIOLATION = "PreconditionViolation"
    TIMED_OUT = "TimedOut"


class GenerationError(RuntimeError):
    """Structured generation failure.

    Args:
        kind: Failure category.
        detail: Human-readable message. `str(err)` returns exactly this text,
            which is what ends up in `ProjectVersion.error_message`.
    """

    def __init__(self, kind: ErrorKind, detail: str = "") -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail or kind.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, detail={self.detail!r})"


class PreconditionViolation(GenerationError, ValueError):
    """Caller invoked an operation with invalid input; raised before any I/O."""

    def __init__(self, detail: str) -> None:
        super().__init__(ErrorKind.PRECONDITION_VIOLATION, detail)


class GenerationInProgress(PreconditionViolation):
    """A second generation was requested while one is still outstanding."""

    def __init__(self, detail: str = "A generation is already in progress.") -> None:
        super().__init__(detail)


class InvalidTransition(ValueError):
    """A store transition was applied to a version that cannot accept it."""

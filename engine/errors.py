"""Error taxonomy shared by the engine components.

Pure components raise these directly. The profile repository returns them
inside a ``RepositoryResult`` instead of raising, so cache state is only
touched on confirmed success.
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    TRANSIENT_STORAGE = "transient_storage"
    COMPUTATION = "computation"


class EngineError(Exception):
    """Base class for engine failures.

    Attributes:
        kind: Classification used by callers to decide how to react.
        message: Human-readable error description.
        original_error: The underlying exception, if this wraps one.
    """

    kind: ErrorKind = ErrorKind.COMPUTATION

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class NotFoundError(EngineError):
    """A profile or item does not exist. Callers decide whether to create it."""

    kind = ErrorKind.NOT_FOUND


class InvalidInputError(EngineError):
    """Input rejected before any mutation (e.g. a grade outside 0-5)."""

    kind = ErrorKind.INVALID_INPUT


class TransientStorageError(EngineError):
    """The storage backend failed. Surfaced as-is, never retried by the engine."""

    kind = ErrorKind.TRANSIENT_STORAGE


class ComputationError(EngineError):
    kind = ErrorKind.COMPUTATION

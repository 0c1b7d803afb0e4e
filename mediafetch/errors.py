"""
Error types shared by the scheduler, strategies and composer.

Every error carries a ``kind`` string that is recorded on failed tasks, so
clients can tell a missing artifact from a tool crash without parsing text.

Hierarchy:
    MediaFetchError
        UnsupportedSource      - no strategy matches the URL
        CommandFailed          - external process exited non-zero
        ProcessTimeout         - external process exceeded its deadline
        InternalInconsistency  - tool succeeded but the artifact is missing
        InvalidArgument        - malformed time/format/URL input
        AccessDenied           - task owned by another client
        NotFound               - unknown task or file
        Cancelled              - task or process cancelled by the client
"""
from typing import Any, Dict, Optional


class MediaFetchError(Exception):
    """Base class for all errors raised by this service."""

    kind = "Error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class UnsupportedSource(MediaFetchError):
    kind = "UnsupportedSource"


class CommandFailed(MediaFetchError):
    """Raised when an external command exits with a non-zero status.

    The captured output is kept for diagnostics; whether the failure is worth
    retrying is up to the caller.
    """

    kind = "CommandFailed"

    def __init__(self, message: str, exit_code: int, output: str = "") -> None:
        super().__init__(message, details={"exit_code": exit_code})
        self.exit_code = exit_code
        self.output = output


class ProcessTimeout(MediaFetchError):
    """Raised when an external command is killed for running past its deadline."""

    kind = "Timeout"

    def __init__(self, message: str, timeout: float, output: str = "") -> None:
        super().__init__(message, details={"timeout": timeout})
        self.timeout = timeout
        self.output = output


class InternalInconsistency(MediaFetchError):
    kind = "InternalInconsistency"


class InvalidArgument(MediaFetchError):
    kind = "InvalidArgument"


class AccessDenied(MediaFetchError):
    kind = "AccessDenied"


class NotFound(MediaFetchError):
    kind = "NotFound"


class Cancelled(MediaFetchError):
    kind = "Cancelled"

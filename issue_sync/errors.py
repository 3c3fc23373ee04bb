"""Exception hierarchy for issue synchronization.

Every error carries an HTTP-style ``status_code`` (used when the failure is
reported back on the issue) and a ``retryable`` flag that decides whether the
event is rescheduled or reported as a terminal failure.
"""

from typing import Optional


class IssueSyncError(Exception):
    """Base class for all issue-sync errors."""

    status_code = 500
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(IssueSyncError):
    """Inbound event does not have the expected shape."""

    status_code = 400


class ParseError(IssueSyncError):
    """Issue title or comment does not match the required pattern."""

    status_code = 400


class NotFoundError(IssueSyncError):
    """A required mapping (project, billing account, copilot) is missing."""

    status_code = 404


class DuplicateIssueError(IssueSyncError):
    """A record already exists for the issue key."""

    status_code = 409


class TransientDependencyError(IssueSyncError):
    """Challenge creation is in flight; the event must be rescheduled."""

    status_code = 503
    retryable = True


class RemoteOperationError(IssueSyncError):
    """A tracker, platform or mail relay call was rejected."""

    status_code = 502
    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, status_code)
        self.operation = operation


class ChallengeCreationError(RemoteOperationError):
    """Synchronous challenge creation did not leave a record behind."""

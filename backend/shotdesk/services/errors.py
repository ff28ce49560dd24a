"""
Error Taxonomy
"""

from typing import List, Optional


class ShotdeskError(Exception):
    """Base class for errors surfaced to the acting user"""

    code = "SHOTDESK_ERROR"

    def __init__(self, message: str, suggested_modifications: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.suggested_modifications = suggested_modifications or []


class TransientNetworkError(ShotdeskError):
    """A collaborator could not be reached; the next poll tick (or the user) may try again"""

    code = "TRANSIENT_NETWORK_ERROR"


class CollaboratorError(ShotdeskError):
    """A collaborator answered with a non-retryable error"""

    code = "COLLABORATOR_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class DispatchError(ShotdeskError):
    """A generation request never became a job; the optimistic entry was removed"""

    code = "DISPATCH_FAILED"

    def __init__(self, message: str, temp_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.temp_id = temp_id


class ValidationFailedError(ShotdeskError, ValueError):
    """Rejected before any state mutation"""

    code = "VALIDATION_ERROR"


class PermissionDeniedError(ShotdeskError):
    """The actor's role does not allow the action"""

    code = "PERMISSION_DENIED"


class NotFoundError(ShotdeskError):
    """Referenced entity does not exist"""

    code = "NOT_FOUND"


class ReviewWriteError(ShotdeskError):
    """A vote or comment write failed; nothing was applied, the caller must re-fetch"""

    code = "REVIEW_WRITE_FAILED"


class SequenceWriteError(ShotdeskError):
    """A structural change to a scene failed; nothing was applied, the caller must re-fetch"""

    code = "SEQUENCE_WRITE_FAILED"


class AssignmentWriteError(ShotdeskError):
    """A PM or PE assignment write failed; nothing was applied"""

    code = "ASSIGNMENT_WRITE_FAILED"


class RateLimitedError(ShotdeskError):
    """The actor submitted too many generation requests in the current window"""

    code = "RATE_LIMITED"

    def __init__(self, message: str, reset_at: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at

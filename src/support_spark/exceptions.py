"""
Domain errors raised by the SupportSpark core.

Every error is terminal for the request that triggered it; the core never retries.
Each class carries the HTTP status the API layer renders it with and a stable `code`
clients can branch on. `InvalidCredentials` and `Unauthenticated` always use a fixed
message so responses never reveal whether an account exists or why a token failed.
"""

from typing import Optional


class SupportSparkError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(SupportSparkError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"

    def __init__(self, message: Optional[str] = None):
        # Callers cannot override the message.
        super().__init__(None)


class Unauthenticated(SupportSparkError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "Authentication required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(None)


class NotAuthorized(SupportSparkError):
    """Identity is known but the action is forbidden for it."""

    status_code = 403
    code = "NOT_AUTHORIZED"
    default_message = "You are not allowed to perform this action"


class NotAMember(SupportSparkError):
    """Requester is neither the conversation owner nor an active supporter."""

    status_code = 403
    code = "NOT_A_MEMBER"
    default_message = "You are not a member of this conversation"


class NotFound(SupportSparkError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class InvalidState(SupportSparkError):
    """A relationship transition's precondition no longer holds."""

    status_code = 409
    code = "INVALID_STATE"
    default_message = "The relationship is not in a state that allows this action"


class DuplicateInvitation(SupportSparkError):
    status_code = 409
    code = "DUPLICATE_INVITATION"
    default_message = "This person has already been invited or is already a supporter"


class DuplicateMember(SupportSparkError):
    status_code = 409
    code = "DUPLICATE_MEMBER"
    default_message = "Email already registered"


class InvalidInput(SupportSparkError):
    status_code = 400
    code = "INVALID_INPUT"
    default_message = "Invalid input"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class RateLimited(SupportSparkError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many attempts, please try again later"

    def __init__(self, message: Optional[str] = None, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        super().__init__(message)


class Unavailable(SupportSparkError):
    """A storage collaborator failed; the cause is deliberately opaque to callers."""

    status_code = 503
    code = "UNAVAILABLE"
    default_message = "Service temporarily unavailable"

"""
Authentication failure types and exceptions.
"""

from enum import Enum
from typing import Optional


class AuthenticationFailure(str, Enum):
    """
    Classified reasons a session failed validation.
    """
    NONEXISTENT = "nonexistent"     # Token not found
    EXPIRED = "expired"             # Stored expiry, max age or inactivity
    SUSPICIOUS = "suspicious"       # IP mismatch or abandoned session reuse
    UNKNOWN = "unknown"             # Unhandled session state, a bug signal


class AuthenticationError(Exception):
    """
    Raised when a presented session token cannot be used.

    Attributes:
        failure: Classified failure type
        token: Token that was presented (for log correlation only)
    """

    def __init__(
        self,
        failure: AuthenticationFailure,
        message: str,
        token: Optional[str] = None,
    ):
        self.failure = failure
        self.token = token
        super().__init__(message)


class SessionStoreUnavailableError(Exception):
    """
    Raised when the session store cannot be read.

    Distinct from a NONEXISTENT failure: infrastructure trouble is never
    reported to callers as an unknown token.
    """

"""
Session authentication for sessionguard.

Validates bearer session tokens against a session store, enforcing IP
binding, absolute max age and per-session inactivity timeouts.
"""

from .models import Session, SessionStatus, ValidationResult
from .errors import (
    AuthenticationError,
    AuthenticationFailure,
    SessionStoreUnavailableError,
)
from .database import SessionDatabase, SessionLookup, SessionStore
from .validator import (
    MAX_AGE,
    Classification,
    ExpiryPolicy,
    Outcome,
    SessionValidator,
    classify,
)
from .reaper import expire_stale_sessions
from .middleware import (
    AUTHENTICATION_DATA,
    ORIGIN_IP,
    authentication_middleware,
    extract_token,
    origin_middleware,
    permit_all,
    resolve_origin_ip,
)

__all__ = [
    # Models
    "Session",
    "SessionStatus",
    "ValidationResult",
    # Errors
    "AuthenticationError",
    "AuthenticationFailure",
    "SessionStoreUnavailableError",
    # Storage
    "SessionDatabase",
    "SessionLookup",
    "SessionStore",
    # Validation
    "MAX_AGE",
    "Classification",
    "ExpiryPolicy",
    "Outcome",
    "SessionValidator",
    "classify",
    "expire_stale_sessions",
    # aiohttp boundary
    "AUTHENTICATION_DATA",
    "ORIGIN_IP",
    "authentication_middleware",
    "extract_token",
    "origin_middleware",
    "permit_all",
    "resolve_origin_ip",
]

"""
Session data models.

Data classes for authenticated sessions and validation results.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union


class SessionStatus(str, Enum):
    """
    Stored session status.

    Written by logout, administrative action and the reaper. The validator
    only reads it.
    """
    ACTIVE = "active"
    EXPIRED = "expired"
    ABANDONED = "abandoned"


@dataclass
class Session:
    """
    Authenticated session bound to a client IP address.

    Attributes:
        token: Opaque session token (lookup key)
        ip_address: Client IP address captured at creation
        status: Stored session status (the raw string if the store
            holds a value SessionStatus does not know)
        created_at: Session creation timestamp (UTC)
        last_validated_at: Last non-grace validation timestamp (UTC)
        inactivity_timeout: Rolling inactivity window, None disables it
    """
    token: str
    ip_address: str
    status: Union[SessionStatus, str]
    created_at: datetime
    last_validated_at: datetime
    inactivity_timeout: Optional[timedelta] = None

    def __post_init__(self):
        for name in ("created_at", "last_validated_at"):
            if getattr(self, name).utcoffset() is None:
                raise ValueError(f"{name} must be timezone-aware")
        if self.created_at > self.last_validated_at:
            raise ValueError("created_at must not be after last_validated_at")
        if self.inactivity_timeout is not None and self.inactivity_timeout <= timedelta(0):
            raise ValueError("inactivity_timeout must be positive, use None to disable it")

    def matches_ip(self, ip_address: Optional[str]) -> bool:
        """Case-insensitive comparison against the bound IP address."""
        if ip_address is None:
            return False
        return self.ip_address.casefold() == ip_address.casefold()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON responses and CLI output."""
        timeout = self.inactivity_timeout
        return {
            "token": self.token,
            "ip_address": self.ip_address,
            "status": getattr(self.status, "value", self.status),
            "created_at": self.created_at.isoformat(),
            "last_validated_at": self.last_validated_at.isoformat(),
            "inactivity_timeout_ms": int(timeout.total_seconds() * 1000) if timeout else None,
        }

    def __str__(self) -> str:
        # token is a bearer credential, keep it out of log lines
        return (
            f"Session(token={self.token[:6]}..., ip={self.ip_address}, "
            f"status={getattr(self.status, 'value', self.status)}, created={self.created_at.isoformat()}, "
            f"last_validated={self.last_validated_at.isoformat()})"
        )


@dataclass(frozen=True)
class ValidationResult:
    """
    Successful validation.

    Attributes:
        session: The validated session
        grace: True when the session was past its inactivity timeout and
            was only accepted because expired sessions were allowed
    """
    session: Session
    grace: bool = False

    @property
    def refresh_activity(self) -> bool:
        """Whether the caller should refresh last_validated_at."""
        return not self.grace

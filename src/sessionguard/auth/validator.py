"""
Session validation.

Decides whether a presented session token is usable from the requesting
client's IP address. Lookup and IP binding happen in SessionValidator;
status and time-based expiry are a pure function (classify) so the same
rules can be applied by the reaper without touching request state.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Optional

from loguru import logger

from .database import SessionLookup
from .errors import AuthenticationError, AuthenticationFailure
from .models import Session, SessionStatus, ValidationResult


# Absolute session lifetime ceiling (24 hours), not extended by activity
MAX_AGE = timedelta(milliseconds=86_400_000)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Outcome(str, Enum):
    """Result of classifying a session at a point in time."""
    VALID = "valid"
    GRACE = "grace"             # inactive too long, tolerated by allow_expired
    EXPIRED = "expired"
    SUSPICIOUS = "suspicious"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Classification:
    outcome: Outcome
    reason: str


@dataclass(frozen=True)
class ExpiryPolicy:
    """
    Time-based expiry settings.

    Attributes:
        max_age: Absolute lifetime from creation
        default_inactivity_timeout: Applied to sessions that carry no
            inactivity timeout of their own. None keeps such sessions
            bounded by max_age only.
    """
    max_age: timedelta = MAX_AGE
    default_inactivity_timeout: Optional[timedelta] = None


def _classify_active(
    session: Session,
    now: datetime,
    policy: ExpiryPolicy,
    allow_expired: bool,
) -> Classification:
    age = now - session.created_at
    if age > policy.max_age:
        return Classification(
            Outcome.EXPIRED,
            f"exceeded max age of {policy.max_age} (age {age})",
        )

    timeout = session.inactivity_timeout or policy.default_inactivity_timeout
    if timeout is None:
        return Classification(Outcome.VALID, "no inactivity timeout set")

    inactive = now - session.last_validated_at
    if inactive <= timeout:
        return Classification(Outcome.VALID, f"last validated {inactive} ago")

    if allow_expired:
        return Classification(
            Outcome.GRACE,
            f"inactive for {inactive}, limit {timeout}, expired sessions allowed",
        )
    return Classification(
        Outcome.EXPIRED,
        f"exceeded inactivity limit of {timeout} (inactive {inactive})",
    )


def _classify_expired(session, now, policy, allow_expired) -> Classification:
    return Classification(Outcome.EXPIRED, "stored status is expired")


def _classify_abandoned(session, now, policy, allow_expired) -> Classification:
    return Classification(Outcome.SUSPICIOUS, "stored status is abandoned")


_STATUS_CLASSIFIERS: Dict[
    SessionStatus,
    Callable[[Session, datetime, ExpiryPolicy, bool], Classification],
] = {
    SessionStatus.ACTIVE: _classify_active,
    SessionStatus.EXPIRED: _classify_expired,
    SessionStatus.ABANDONED: _classify_abandoned,
}

_unhandled = set(SessionStatus) - set(_STATUS_CLASSIFIERS)
if _unhandled:
    raise RuntimeError(
        "no classifier for session status: "
        + ", ".join(sorted(status.value for status in _unhandled))
    )


def classify(
    session: Session,
    now: datetime,
    policy: Optional[ExpiryPolicy] = None,
    allow_expired: bool = False,
) -> Classification:
    """
    Classify a session's status and age at `now`.

    Never mutates the session. IP binding is not checked here.

    Args:
        session: Session to classify
        now: Current time (timezone-aware)
        policy: Expiry settings, defaults to MAX_AGE and no default
            inactivity timeout
        allow_expired: Tolerate inactivity expiry (max age still applies)

    Returns:
        Classification with outcome and a log-friendly reason
    """
    policy = policy or ExpiryPolicy()
    classifier = _STATUS_CLASSIFIERS.get(session.status)
    if classifier is None:
        return Classification(Outcome.UNKNOWN, f"unhandled session status {session.status!r}")
    return classifier(session, now, policy, allow_expired)


_FAILURES: Dict[Outcome, AuthenticationFailure] = {
    Outcome.EXPIRED: AuthenticationFailure.EXPIRED,
    Outcome.SUSPICIOUS: AuthenticationFailure.SUSPICIOUS,
    Outcome.UNKNOWN: AuthenticationFailure.UNKNOWN,
}


class SessionValidator:
    """
    Validates session tokens against a session store.

    Stateless between calls; the only I/O is a single store lookup. The
    validator never writes: refreshing last_validated_at after a
    successful, non-grace validation is the caller's job.
    """

    def __init__(
        self,
        store: SessionLookup,
        policy: Optional[ExpiryPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize validator.

        Args:
            store: Session lookup store
            policy: Expiry settings
            clock: Returns the current timezone-aware time
        """
        self.store = store
        self.policy = policy or ExpiryPolicy()
        self.clock = clock or utc_now

    @classmethod
    def from_settings(cls, settings, store: SessionLookup, clock=None) -> "SessionValidator":
        policy = ExpiryPolicy(
            max_age=settings.max_age,
            default_inactivity_timeout=settings.default_inactivity_timeout,
        )
        return cls(store, policy=policy, clock=clock)

    def validate(
        self,
        token: str,
        client_ip: str,
        allow_expired: bool = False,
    ) -> ValidationResult:
        """
        Validate a session token for a client.

        Args:
            token: Non-blank opaque session token
            client_ip: Requesting client's IP address
            allow_expired: Accept a session past its inactivity timeout
                without extending it (grace read)

        Returns:
            ValidationResult; refresh_activity tells the caller whether to
            update last_validated_at

        Raises:
            AuthenticationError: Session missing, expired, suspicious or in
                an unhandled state
            SessionStoreUnavailableError: Store lookup failed
        """
        session = self.store.find_by_token(token)

        if session is None:
            logger.info(f"Session token {token[:6]}... not found")
            raise AuthenticationError(
                AuthenticationFailure.NONEXISTENT, "session not found", token=token
            )

        # IP binding takes precedence over status and expiry
        if not session.matches_ip(client_ip):
            logger.warning(f"Session {session} presented from different ip address {client_ip}")
            raise AuthenticationError(
                AuthenticationFailure.SUSPICIOUS,
                "existing session but with different ip address",
                token=token,
            )

        result = classify(session, self.clock(), self.policy, allow_expired)

        if result.outcome is Outcome.VALID:
            if session.inactivity_timeout is None and self.policy.default_inactivity_timeout is None:
                logger.warning(f"No inactivity timeout set for session {session}")
            else:
                logger.debug(f"Session validated: {result.reason}")
            return ValidationResult(session=session)

        if result.outcome is Outcome.GRACE:
            logger.warning(f"Allowing expired session without refresh {session}: {result.reason}")
            return ValidationResult(session=session, grace=True)

        failure = _FAILURES[result.outcome]
        if failure is AuthenticationFailure.EXPIRED:
            logger.info(f"Session expired {session}: {result.reason}")
        elif failure is AuthenticationFailure.SUSPICIOUS:
            logger.warning(f"Session no longer valid {session}: {result.reason}")
        else:
            logger.error(f"Uncategorised session state {session}: {result.reason}")

        raise AuthenticationError(failure, result.reason, token=token)

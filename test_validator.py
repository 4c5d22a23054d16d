"""
Unit tests for session validation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sessionguard.auth import (
    MAX_AGE,
    AuthenticationError,
    AuthenticationFailure,
    ExpiryPolicy,
    Outcome,
    Session,
    SessionStatus,
    SessionStoreUnavailableError,
    SessionValidator,
    classify,
)


NOW = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)


def ms(value):
    return timedelta(milliseconds=value)


class FakeStore:
    """Dict-backed store that records lookups."""

    def __init__(self, *sessions):
        self.sessions = {s.token: s for s in sessions}
        self.lookups = []

    def find_by_token(self, token):
        self.lookups.append(token)
        return self.sessions.get(token)


class BrokenStore:
    def find_by_token(self, token):
        raise SessionStoreUnavailableError("database is locked")


def make_session(
    token="abc123",
    ip="10.0.0.5",
    status=SessionStatus.ACTIVE,
    age=ms(1000),
    inactive=ms(1000),
    inactivity_timeout=ms(30000),
):
    return Session(
        token=token,
        ip_address=ip,
        status=status,
        created_at=NOW - age,
        last_validated_at=NOW - inactive,
        inactivity_timeout=inactivity_timeout,
    )


def make_validator(*sessions, **policy):
    return SessionValidator(FakeStore(*sessions), policy=ExpiryPolicy(**policy), clock=lambda: NOW)


def failure_of(validator, token="abc123", ip="10.0.0.5", allow_expired=False):
    with pytest.raises(AuthenticationError) as excinfo:
        validator.validate(token, ip, allow_expired=allow_expired)
    return excinfo.value.failure


class TestLookup:
    """Token lookup and store failures."""

    def test_absent_token_is_nonexistent(self):
        validator = make_validator(make_session())
        assert failure_of(validator, token="missing") == AuthenticationFailure.NONEXISTENT

    def test_empty_store_is_nonexistent(self):
        assert failure_of(make_validator()) == AuthenticationFailure.NONEXISTENT

    def test_store_failure_is_not_nonexistent(self):
        validator = SessionValidator(BrokenStore(), clock=lambda: NOW)
        with pytest.raises(SessionStoreUnavailableError):
            validator.validate("abc123", "10.0.0.5")

    def test_read_only_store_is_enough(self):
        store = FakeStore(make_session())
        assert not hasattr(store, "refresh_last_validated")
        result = SessionValidator(store, clock=lambda: NOW).validate("abc123", "10.0.0.5")
        assert result.refresh_activity

    def test_error_carries_token(self):
        validator = make_validator()
        with pytest.raises(AuthenticationError) as excinfo:
            validator.validate("missing", "10.0.0.5")
        assert excinfo.value.token == "missing"


class TestIpBinding:
    """IP binding is checked before status and expiry."""

    def test_matching_ip_is_valid(self):
        validator = make_validator(make_session())
        result = validator.validate("abc123", "10.0.0.5")
        assert result.session.token == "abc123"
        assert result.refresh_activity

    def test_different_ip_is_suspicious(self):
        validator = make_validator(make_session())
        assert failure_of(validator, ip="10.0.0.6") == AuthenticationFailure.SUSPICIOUS

    def test_ip_compare_is_case_insensitive(self):
        validator = make_validator(make_session(ip="FE80::1"))
        result = validator.validate("abc123", "fe80::1")
        assert not result.grace

    def test_missing_ip_is_suspicious(self):
        validator = make_validator(make_session())
        assert failure_of(validator, ip=None) == AuthenticationFailure.SUSPICIOUS

    def test_mismatch_beats_max_age(self):
        validator = make_validator(make_session(age=MAX_AGE + ms(1)))
        assert failure_of(validator, ip="10.0.0.6") == AuthenticationFailure.SUSPICIOUS

    @pytest.mark.parametrize("status", list(SessionStatus))
    def test_mismatch_beats_any_status(self, status):
        validator = make_validator(make_session(status=status))
        assert failure_of(validator, ip="192.168.1.1") == AuthenticationFailure.SUSPICIOUS


class TestStoredStatus:
    """Stored status decides before any time math."""

    def test_expired_status_is_expired(self):
        # fresh timestamps do not matter
        validator = make_validator(make_session(status=SessionStatus.EXPIRED, age=ms(0), inactive=ms(0)))
        assert failure_of(validator) == AuthenticationFailure.EXPIRED

    def test_expired_status_with_allow_expired(self):
        validator = make_validator(make_session(status=SessionStatus.EXPIRED))
        assert failure_of(validator, allow_expired=True) == AuthenticationFailure.EXPIRED

    def test_abandoned_status_is_suspicious(self):
        validator = make_validator(make_session(status=SessionStatus.ABANDONED))
        assert failure_of(validator) == AuthenticationFailure.SUSPICIOUS

    def test_unhandled_status_is_unknown(self):
        session = make_session()
        session.status = "quarantined"
        assert failure_of(make_validator(session)) == AuthenticationFailure.UNKNOWN


class TestMaxAge:
    """Absolute lifetime from creation."""

    def test_past_max_age_is_expired(self):
        validator = make_validator(make_session(age=MAX_AGE + ms(1), inactive=ms(0)))
        assert failure_of(validator) == AuthenticationFailure.EXPIRED

    def test_max_age_ignores_allow_expired(self):
        validator = make_validator(make_session(age=MAX_AGE + ms(1), inactive=ms(0)))
        assert failure_of(validator, allow_expired=True) == AuthenticationFailure.EXPIRED

    def test_exactly_max_age_is_valid(self):
        validator = make_validator(make_session(age=MAX_AGE, inactive=ms(0)))
        assert validator.validate("abc123", "10.0.0.5").session.token == "abc123"

    def test_configured_max_age(self):
        validator = make_validator(make_session(age=ms(5001), inactive=ms(0)), max_age=ms(5000))
        assert failure_of(validator) == AuthenticationFailure.EXPIRED


class TestInactivity:
    """Rolling inactivity timeout and grace reads."""

    def test_inactive_too_long_is_expired(self):
        validator = make_validator(make_session(inactivity_timeout=ms(5000), inactive=ms(6000), age=ms(6000)))
        assert failure_of(validator) == AuthenticationFailure.EXPIRED

    def test_grace_read_returns_session_without_refresh(self):
        session = make_session(inactivity_timeout=ms(5000), inactive=ms(6000), age=ms(6000))
        before = session.last_validated_at
        validator = make_validator(session)

        result = validator.validate("abc123", "10.0.0.5", allow_expired=True)

        assert result.session is session
        assert result.grace
        assert not result.refresh_activity
        assert session.last_validated_at == before

    def test_within_timeout_is_not_grace(self):
        validator = make_validator(make_session(inactivity_timeout=ms(5000), inactive=ms(5000), age=ms(5000)))
        result = validator.validate("abc123", "10.0.0.5", allow_expired=True)
        assert not result.grace
        assert result.refresh_activity

    @pytest.mark.parametrize("inactive", [ms(6000), timedelta(hours=23)])
    def test_no_timeout_never_fails_on_inactivity(self, inactive):
        validator = make_validator(make_session(inactivity_timeout=None, inactive=inactive, age=inactive))
        result = validator.validate("abc123", "10.0.0.5")
        assert not result.grace

    def test_no_timeout_still_bounded_by_max_age(self):
        validator = make_validator(make_session(inactivity_timeout=None, age=MAX_AGE + ms(1)))
        assert failure_of(validator) == AuthenticationFailure.EXPIRED

    def test_default_timeout_applies_to_sessions_without_one(self):
        validator = make_validator(
            make_session(inactivity_timeout=None, inactive=ms(6000), age=ms(6000)),
            default_inactivity_timeout=ms(5000),
        )
        assert failure_of(validator) == AuthenticationFailure.EXPIRED

    def test_session_timeout_overrides_default(self):
        validator = make_validator(
            make_session(inactivity_timeout=ms(10000), inactive=ms(6000), age=ms(6000)),
            default_inactivity_timeout=ms(5000),
        )
        assert not validator.validate("abc123", "10.0.0.5").grace

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError):
            make_session(inactivity_timeout=ms(0))


class TestSessionInvariants:
    """Sessions reject inconsistent timestamps at construction."""

    def test_naive_created_at_rejected(self):
        with pytest.raises(ValueError, match="created_at"):
            Session(
                token="abc123",
                ip_address="10.0.0.5",
                status=SessionStatus.ACTIVE,
                created_at=NOW.replace(tzinfo=None),
                last_validated_at=NOW,
            )

    def test_naive_last_validated_at_rejected(self):
        with pytest.raises(ValueError, match="last_validated_at"):
            Session(
                token="abc123",
                ip_address="10.0.0.5",
                status=SessionStatus.ACTIVE,
                created_at=NOW,
                last_validated_at=NOW.replace(tzinfo=None),
            )

    def test_created_after_last_validated_rejected(self):
        with pytest.raises(ValueError, match="created_at must not be after"):
            make_session(age=ms(1000), inactive=ms(2000))

    def test_created_equal_to_last_validated_allowed(self):
        session = make_session(age=ms(0), inactive=ms(0))
        assert session.created_at == session.last_validated_at


class TestScenarios:
    """End-to-end validation scenarios."""

    def test_fresh_session_validates(self):
        store = FakeStore(make_session())
        validator = SessionValidator(store, clock=lambda: NOW)

        result = validator.validate("abc123", "10.0.0.5", allow_expired=False)

        assert result.session.ip_address == "10.0.0.5"
        assert store.lookups == ["abc123"]

    def test_fresh_session_from_other_ip_is_suspicious(self):
        validator = make_validator(make_session())
        assert failure_of(validator, ip="10.0.0.6") == AuthenticationFailure.SUSPICIOUS

    def test_validate_does_not_mutate_session(self):
        session = make_session()
        snapshot = (session.status, session.created_at, session.last_validated_at)
        make_validator(session).validate("abc123", "10.0.0.5")
        assert (session.status, session.created_at, session.last_validated_at) == snapshot


class TestClassify:
    """The pure status/time classifier."""

    def test_default_policy(self):
        assert classify(make_session(), NOW).outcome is Outcome.VALID

    def test_grace_outcome(self):
        session = make_session(inactivity_timeout=ms(5000), inactive=ms(6000), age=ms(6000))
        assert classify(session, NOW, allow_expired=True).outcome is Outcome.GRACE
        assert classify(session, NOW).outcome is Outcome.EXPIRED

    def test_reason_mentions_limit(self):
        session = make_session(age=MAX_AGE + ms(1))
        assert "max age" in classify(session, NOW).reason

    def test_abandoned(self):
        session = make_session(status=SessionStatus.ABANDONED)
        assert classify(session, NOW).outcome is Outcome.SUSPICIOUS

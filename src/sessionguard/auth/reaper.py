"""
Write-back of derived expiry.

The validator only derives expiry on read. This walks ACTIVE sessions and
persists EXPIRED status for the ones that have aged out, so stored status
catches up eventually.
"""

from datetime import datetime
from typing import Optional

from loguru import logger

from .database import SessionStore
from .models import SessionStatus
from .validator import ExpiryPolicy, Outcome, classify


def expire_stale_sessions(
    store: SessionStore,
    now: datetime,
    policy: Optional[ExpiryPolicy] = None,
) -> int:
    """
    Mark aged-out ACTIVE sessions as EXPIRED.

    Args:
        store: Session store
        now: Current time (timezone-aware)
        policy: Expiry settings

    Returns:
        Number of sessions updated
    """
    expired = 0
    for session in store.list_sessions(SessionStatus.ACTIVE):
        result = classify(session, now, policy)
        if result.outcome is not Outcome.EXPIRED:
            continue
        if store.update_status(session.token, SessionStatus.EXPIRED):
            logger.debug(f"Expired {session}: {result.reason}")
            expired += 1

    if expired > 0:
        logger.info(f"Expired {expired} stale sessions")

    return expired

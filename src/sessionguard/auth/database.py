"""
SQLite session store.

Thread-safe storage for sessions, looked up by opaque token.
"""

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional, Protocol, Sequence, Union

from loguru import logger

from .errors import SessionStoreUnavailableError
from .models import Session, SessionStatus


class SessionLookup(Protocol):
    """The single read the validator needs."""

    def find_by_token(self, token: str) -> Optional[Session]:
        ...


class SessionStore(SessionLookup, Protocol):
    """Lookup plus the write-back operations used by the middleware and reaper."""

    def refresh_last_validated(self, token: str, validated_at: datetime) -> bool:
        ...

    def update_status(self, token: str, status: SessionStatus) -> bool:
        ...

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[Session]:
        ...


def _to_db_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _to_db_timeout(timeout: Optional[timedelta]) -> int:
    # 0 is the legacy "no inactivity enforcement" value
    if timeout is None:
        return 0
    return int(timeout.total_seconds() * 1000)


def _from_db_timeout(timeout_ms: Optional[int]) -> Optional[timedelta]:
    if timeout_ms is None or timeout_ms <= 0:
        return None
    return timedelta(milliseconds=timeout_ms)


def _from_db_status(raw: str) -> Union[SessionStatus, str]:
    # unknown values are passed through so validation classifies them UNKNOWN
    try:
        return SessionStatus(raw)
    except ValueError:
        logger.error(f"Unrecognised session status {raw!r} in session store")
        return raw


class SessionDatabase:
    """
    Thread-safe session database.

    All operations are protected by threading.RLock and open a fresh
    SQLite connection. sqlite3 errors other than IntegrityError are
    raised as SessionStoreUnavailableError.
    """

    def __init__(self, db_path: Path):
        """
        Initialize database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                token TEXT PRIMARY KEY,
                ip_address TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                last_validated_at TEXT NOT NULL,
                inactivity_timeout_ms INTEGER NOT NULL DEFAULT 0
            )
        """)
        self._execute("CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status)")

        logger.info(f"Session database initialized: {self.db_path}")

    def _execute(self, sql: str, params: Sequence[Any] = (), fetch: str = "none"):
        """
        Run a single statement.

        Args:
            sql: SQL statement
            params: Statement parameters
            fetch: "one", "all" or "none" (returns affected row count)
        """
        with self._lock:
            try:
                conn = sqlite3.connect(str(self.db_path))
                try:
                    cursor = conn.cursor()
                    cursor.execute(sql, params)
                    if fetch == "one":
                        return cursor.fetchone()
                    if fetch == "all":
                        return cursor.fetchall()
                    conn.commit()
                    return cursor.rowcount
                finally:
                    conn.close()
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as e:
                logger.error(f"Session database error ({self.db_path}): {e}")
                raise SessionStoreUnavailableError(f"session store unavailable: {e}") from e

    @staticmethod
    def _row_to_session(row) -> Session:
        return Session(
            token=row[0],
            ip_address=row[1],
            status=_from_db_status(row[2]),
            created_at=datetime.fromisoformat(row[3]),
            last_validated_at=datetime.fromisoformat(row[4]),
            inactivity_timeout=_from_db_timeout(row[5]),
        )

    def create_session(self, session: Session) -> bool:
        """
        Store a new session.

        Args:
            session: Session object

        Returns:
            True if creation succeeded

        Raises:
            sqlite3.IntegrityError: If the token already exists
        """
        created = self._execute("""
            INSERT INTO sessions (token, ip_address, status, created_at, last_validated_at, inactivity_timeout_ms)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            session.token,
            session.ip_address,
            session.status.value,
            _to_db_time(session.created_at),
            _to_db_time(session.last_validated_at),
            _to_db_timeout(session.inactivity_timeout),
        ))
        return created > 0

    def find_by_token(self, token: str) -> Optional[Session]:
        """
        Get session by token.

        Args:
            token: Opaque session token

        Returns:
            Session object if found, None otherwise
        """
        row = self._execute("""
            SELECT token, ip_address, status, created_at, last_validated_at, inactivity_timeout_ms
            FROM sessions WHERE token = ?
        """, (token,), fetch="one")

        if not row:
            return None

        return self._row_to_session(row)

    def refresh_last_validated(self, token: str, validated_at: datetime) -> bool:
        """
        Record a successful validation.

        Concurrent refreshes are last-write-wins, but the timestamp never
        moves backwards.

        Returns:
            True if the stored timestamp was advanced
        """
        stamp = _to_db_time(validated_at)
        updated = self._execute("""
            UPDATE sessions SET last_validated_at = ?
            WHERE token = ? AND last_validated_at < ?
        """, (stamp, token, stamp))
        return updated > 0

    def update_status(self, token: str, status: SessionStatus) -> bool:
        """
        Transition a session's stored status.

        Returns:
            True if a session was updated
        """
        updated = self._execute(
            "UPDATE sessions SET status = ? WHERE token = ?",
            (status.value, token),
        )
        if updated:
            logger.info(f"Session {token[:6]}... marked {status.value}")
        return updated > 0

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[Session]:
        """
        Get sessions, optionally filtered by status.

        Returns:
            List of Session objects ordered by creation time
        """
        columns = "token, ip_address, status, created_at, last_validated_at, inactivity_timeout_ms"
        if status is None:
            rows = self._execute(
                f"SELECT {columns} FROM sessions ORDER BY created_at",
                fetch="all",
            )
        else:
            rows = self._execute(
                f"SELECT {columns} FROM sessions WHERE status = ? ORDER BY created_at",
                (status.value,),
                fetch="all",
            )

        return [self._row_to_session(row) for row in rows]

    def delete_session(self, token: str) -> bool:
        """
        Delete session.

        Returns:
            True if deletion succeeded
        """
        return self._execute("DELETE FROM sessions WHERE token = ?", (token,)) > 0

"""
Command line interface.

    python -m sessionguard serve
    python -m sessionguard create --ip 10.0.0.5 --inactivity-timeout-ms 1800000
    python -m sessionguard validate TOKEN 10.0.0.5 [--allow-expired]
    python -m sessionguard reap
"""

import argparse
import json
import secrets
import sys
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .auth.database import SessionDatabase
from .auth.errors import AuthenticationError, SessionStoreUnavailableError
from .auth.models import Session, SessionStatus
from .auth.reaper import expire_stale_sessions
from .auth.validator import SessionValidator, utc_now
from .config import ConfigurationError, Settings
from .logging_setup import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sessionguard", description="Session validation service")
    parser.add_argument(
        "--db",
        default=None,
        help="Session database path (overrides SESSIONGUARD_DB_PATH)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the HTTP service")

    create = subparsers.add_parser("create", help="Create an active session and print its token")
    create.add_argument("--ip", required=True, help="Client IP address to bind")
    create.add_argument(
        "--inactivity-timeout-ms",
        type=int,
        default=0,
        help="Inactivity timeout in milliseconds (0 disables it)"
    )

    validate = subparsers.add_parser("validate", help="Validate a session token")
    validate.add_argument("token")
    validate.add_argument("ip")
    validate.add_argument(
        "--allow-expired",
        action="store_true",
        help="Accept sessions past their inactivity timeout"
    )

    subparsers.add_parser("reap", help="Mark aged-out sessions as expired")

    return parser


def _create(store: SessionDatabase, ip: str, inactivity_timeout_ms: int) -> int:
    now = utc_now()
    session = Session(
        token=secrets.token_urlsafe(32),
        ip_address=ip,
        status=SessionStatus.ACTIVE,
        created_at=now,
        last_validated_at=now,
        inactivity_timeout=timedelta(milliseconds=inactivity_timeout_ms) if inactivity_timeout_ms > 0 else None,
    )
    store.create_session(session)
    print(session.token)
    return 0


def _validate(validator: SessionValidator, token: str, ip: str, allow_expired: bool) -> int:
    try:
        result = validator.validate(token, ip, allow_expired=allow_expired)
    except AuthenticationError as e:
        print(json.dumps({"valid": False, "failure": e.failure.value}))
        return 1

    body = result.session.to_dict()
    body.update({"valid": True, "grace": result.grace})
    print(json.dumps(body, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
        if args.db:
            settings = settings.model_copy(update={"db_path": Path(args.db)})
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if args.command == "serve":
        from .server import run
        run(settings)
        return 0

    try:
        store = SessionDatabase(settings.db_path)
        if args.command == "create":
            return _create(store, args.ip, args.inactivity_timeout_ms)

        validator = SessionValidator.from_settings(settings, store)
        if args.command == "validate":
            return _validate(validator, args.token, args.ip, args.allow_expired)

        count = expire_stale_sessions(store, utc_now(), validator.policy)
        logger.success(f"Reaped {count} sessions")
        return 0
    except SessionStoreUnavailableError as e:
        logger.error(str(e))
        return 3


if __name__ == "__main__":
    sys.exit(main())

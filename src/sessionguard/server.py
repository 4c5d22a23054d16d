"""
HTTP application exposing session validation.

Routes:
    GET /health   - liveness, no authentication
    GET /session  - the caller's validated session
"""

from datetime import datetime
from typing import Callable, Optional

from aiohttp import web
from loguru import logger

from .auth.database import SessionDatabase, SessionStore
from .auth.middleware import (
    AUTHENTICATION_DATA,
    authentication_middleware,
    origin_middleware,
    permit_all,
)
from .auth.validator import SessionValidator
from .config import Settings


SETTINGS_KEY = web.AppKey("settings", Settings)
VALIDATOR_KEY = web.AppKey("validator", SessionValidator)


@permit_all
async def health_check(request):
    """Health check endpoint."""
    return web.json_response({"status": "healthy", "service": "sessionguard"})


async def current_session(request):
    """Return the session attached by the authentication middleware."""
    result = request[AUTHENTICATION_DATA]
    body = result.session.to_dict()
    body["grace"] = result.grace
    return web.json_response(body)


def create_app(
    settings: Settings,
    store: Optional[SessionStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        settings: Process settings
        store: Session store, defaults to a SessionDatabase at settings.db_path
        clock: Time source for the validator
    """
    if store is None:
        store = SessionDatabase(settings.db_path)

    validator = SessionValidator.from_settings(settings, store, clock=clock)

    app = web.Application(middlewares=[
        origin_middleware(settings.trust_forwarded_for),
        authentication_middleware(validator, store),
    ])
    app[SETTINGS_KEY] = settings
    app[VALIDATOR_KEY] = validator

    app.router.add_get("/health", health_check)
    app.router.add_get("/session", current_session)

    return app


def run(settings: Settings) -> None:
    """Serve the application until interrupted."""
    app = create_app(settings)
    logger.info(f"Starting sessionguard on {settings.host}:{settings.port}")
    web.run_app(app, host=settings.host, port=settings.port, print=None)

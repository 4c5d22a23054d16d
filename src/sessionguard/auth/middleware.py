"""
aiohttp boundary for session validation.

Resolves the client IP, checks the Authorization header on requests and
attaches the validated session to the request. Every failure becomes a
401 whose body never says why a session was considered suspicious.
"""

import asyncio
from typing import Callable, Optional

from aiohttp import web
from loguru import logger

from .database import SessionStore
from .errors import AuthenticationError, AuthenticationFailure, SessionStoreUnavailableError
from .validator import SessionValidator


# Request keys
ORIGIN_IP = "origin_ip"
AUTHENTICATION_DATA = "authentication"

NOT_AUTHENTICATED = "not authenticated"
REAUTHENTICATE = "authentication has expired, reauthenticate"
SERVICE_UNAVAILABLE = "authentication service unavailable"

# NONEXISTENT, SUSPICIOUS and UNKNOWN deliberately share one message
FAILURE_MESSAGES = {
    AuthenticationFailure.NONEXISTENT: NOT_AUTHENTICATED,
    AuthenticationFailure.EXPIRED: REAUTHENTICATE,
    AuthenticationFailure.SUSPICIOUS: NOT_AUTHENTICATED,
    AuthenticationFailure.UNKNOWN: NOT_AUTHENTICATED,
}


def permit_all(handler: Callable) -> Callable:
    """Mark a handler as reachable without authentication."""
    handler.permit_all = True
    return handler


def extract_token(header_value: Optional[str]) -> Optional[str]:
    """
    Get the session token from an Authorization header value.

    An optional "Bearer" scheme is stripped. Returns None for missing or
    blank values, including a bare "Bearer".
    """
    if header_value is None:
        return None
    scheme, _, rest = header_value.strip().partition(" ")
    if scheme.lower() == "bearer":
        token = rest.strip()
    else:
        token = header_value.strip()
    return token or None


def resolve_origin_ip(request: web.BaseRequest, trust_forwarded_for: bool = False) -> Optional[str]:
    """
    Client IP address for a request.

    Args:
        request: Incoming request
        trust_forwarded_for: Use the first X-Forwarded-For entry when present

    Returns:
        IP address string, or None if it cannot be determined
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote


def origin_middleware(trust_forwarded_for: bool = False):
    """Build middleware that records the client IP under ORIGIN_IP."""

    @web.middleware
    async def middleware(request, handler):
        request[ORIGIN_IP] = resolve_origin_ip(request, trust_forwarded_for)
        return await handler(request)

    return middleware


def _unauthorized(message: str) -> web.Response:
    return web.Response(
        status=401,
        text=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def authentication_middleware(validator: SessionValidator, store: SessionStore):
    """
    Build middleware that validates the session on every request.

    Handlers marked with @permit_all are passed through untouched. On
    success the ValidationResult is stored under AUTHENTICATION_DATA and,
    unless it was a grace read, the session's last validated time is
    refreshed.

    Args:
        validator: SessionValidator used for every request
        store: Store that receives last validated time refreshes
    """

    @web.middleware
    async def middleware(request, handler):
        if getattr(handler, "permit_all", False):
            logger.debug(f"No authentication necessary for {request.method} {request.path}")
            return await handler(request)

        token = extract_token(request.headers.get("Authorization"))
        if token is None:
            logger.info(f"Authorization header missing on {request.method} {request.path}")
            return _unauthorized(NOT_AUTHENTICATED)

        client_ip = request.get(ORIGIN_IP)
        if client_ip is None:
            client_ip = resolve_origin_ip(request)

        try:
            result = await asyncio.to_thread(validator.validate, token, client_ip, False)
        except AuthenticationError as e:
            if e.failure is AuthenticationFailure.UNKNOWN:
                logger.error(f"Uncategorised authentication failure: {e}")
            return _unauthorized(FAILURE_MESSAGES[e.failure])
        except SessionStoreUnavailableError as e:
            logger.error(f"Session lookup failed: {e}")
            return web.Response(status=503, text=SERVICE_UNAVAILABLE)

        if result.refresh_activity:
            # a lost refresh only shortens the inactivity window
            try:
                await asyncio.to_thread(store.refresh_last_validated, token, validator.clock())
            except SessionStoreUnavailableError as e:
                logger.warning(f"Could not refresh last validated time for {result.session}: {e}")

        logger.debug(f"Authentication validated: {result.session}")
        request[AUTHENTICATION_DATA] = result
        return await handler(request)

    return middleware

"""Request middleware and the chain that composes it.

Every middleware is an async callable ``(request, call_next) -> response``.
A :class:`Chain` nests them in order, so the first entry sees the request
first and the response last.
"""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Iterator, Optional, Tuple

from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from .security import generate_token, tokens_match
from .sessions import AUTHENTICATED_USER_ID, CSRF_TOKEN, REDIRECT_AFTER_LOGIN, Session, SessionStore

logger = logging.getLogger("snippetbox.http")

Handler = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[Request, Handler], Awaitable[Response]]

SESSION_COOKIE_NAME = "session"
CSRF_FORM_FIELD = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
LOGIN_PATH = "/user/login"

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

SECURITY_HEADERS = {
    "X-Frame-Options": "deny",
    "X-XSS-Protection": "1; mode=block",
}


class ForgeryTokenError(Exception):
    """Raised when an unsafe request carries no valid forgery token."""


class Chain:
    """Ordered, immutable list of middleware."""

    def __init__(self, *middleware: Middleware) -> None:
        self._middleware: Tuple[Middleware, ...] = tuple(middleware)

    def append(self, *middleware: Middleware) -> "Chain":
        return Chain(*self._middleware, *middleware)

    def then(self, handler: Handler) -> Handler:
        """Wrap ``handler`` so that every middleware runs before it."""

        for middleware in reversed(self._middleware):
            handler = _bind(middleware, handler)
        return handler

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        return await self.then(call_next)(request)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)

    def __len__(self) -> int:
        return len(self._middleware)

    def __repr__(self) -> str:
        names = ", ".join(getattr(item, "__name__", repr(item)) for item in self._middleware)
        return f"Chain({names})"


def _bind(middleware: Middleware, next_handler: Handler) -> Handler:
    async def handler(request: Request) -> Response:
        return await middleware(request, next_handler)

    handler.__name__ = getattr(middleware, "__name__", "middleware")
    return handler


# ----------------------------------------------------------------------
# Standard tier
# ----------------------------------------------------------------------
async def recover_panic(request: Request, call_next: Handler) -> Response:
    """Turn an unhandled exception into a generic 500 and close the connection."""

    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error serving %s %s", request.method, request.url.path)
        headers = {"Connection": "close", **SECURITY_HEADERS}
        return PlainTextResponse("Internal Server Error", status_code=500, headers=headers)


async def log_request(request: Request, call_next: Handler) -> Response:
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "-"
    logger.info(
        "%s - HTTP/%s %s %s %s %.1fms",
        client,
        request.scope.get("http_version", "1.1"),
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


async def secure_headers(request: Request, call_next: Handler) -> Response:
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


# ----------------------------------------------------------------------
# Dynamic tier
# ----------------------------------------------------------------------
def session_loader(
    store: SessionStore,
    *,
    cookie_name: str = SESSION_COOKIE_NAME,
    secure: bool = True,
) -> Middleware:
    """Build the middleware that attaches ``request.state.session``.

    Requests bearing the same token are serialised. Session changes are saved
    only once the rest of the chain has returned a response.
    """

    async def load_session(request: Request, call_next: Handler) -> Response:
        token = request.cookies.get(cookie_name) or None
        async with store.lock(token):
            session = store.load(token)
            request.state.session = session
            response = await call_next(request)
            final_token = store.commit(session)

        if final_token is not None:
            response.set_cookie(
                cookie_name,
                final_token,
                max_age=store.cookie_max_age,
                path="/",
                secure=secure,
                httponly=True,
                samesite="lax",
            )
        elif token is not None:
            response.delete_cookie(cookie_name, path="/", secure=secure, httponly=True, samesite="lax")
        response.headers.add_vary_header("Cookie")
        return response

    return load_session


def get_session(request: Request) -> Session:
    session = getattr(request.state, "session", None)
    if session is None:
        raise RuntimeError("Session middleware is not installed for this route")
    return session


def csrf_token(request: Request) -> str:
    """Return the session's forgery token, creating it on first use."""

    session = get_session(request)
    token = session.get(CSRF_TOKEN)
    if not token:
        token = generate_token()
        session.put(CSRF_TOKEN, token)
    return token


async def _submitted_csrf_token(request: Request) -> Optional[str]:
    header = request.headers.get(CSRF_HEADER)
    if header:
        return header.strip()
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        value = form.get(CSRF_FORM_FIELD)
        if isinstance(value, str):
            return value
    return None


async def check_forgery_token(request: Request) -> None:
    expected = get_session(request).get(CSRF_TOKEN)
    provided = await _submitted_csrf_token(request)
    if not tokens_match(provided, expected):
        raise ForgeryTokenError("Forgery token missing or invalid")


async def verify_csrf(request: Request, call_next: Handler) -> Response:
    if request.method not in SAFE_METHODS:
        try:
            await check_forgery_token(request)
        except ForgeryTokenError:
            logger.warning("Rejected %s %s: bad forgery token", request.method, request.url.path)
            return PlainTextResponse("Forbidden", status_code=403)
    return await call_next(request)


# ----------------------------------------------------------------------
# Authorization gate
# ----------------------------------------------------------------------
def current_user_id(request: Request) -> Optional[int]:
    """``None`` while unauthenticated, otherwise the authenticated user's id."""

    session = getattr(request.state, "session", None)
    if session is None:
        return None
    value = session.get(AUTHENTICATED_USER_ID)
    if value is None:
        return None
    return int(value)


async def require_authentication(request: Request, call_next: Handler) -> Response:
    user_id = current_user_id(request)
    if user_id is None:
        if request.method in ("GET", "HEAD"):
            get_session(request).put(REDIRECT_AFTER_LOGIN, request.url.path)
        return RedirectResponse(LOGIN_PATH, status_code=302)

    request.state.user_id = user_id
    response = await call_next(request)
    response.headers["Cache-Control"] = "no-store"
    return response


__all__ = [
    "CSRF_FORM_FIELD",
    "CSRF_HEADER",
    "Chain",
    "ForgeryTokenError",
    "Handler",
    "LOGIN_PATH",
    "Middleware",
    "SECURITY_HEADERS",
    "SESSION_COOKIE_NAME",
    "check_forgery_token",
    "csrf_token",
    "current_user_id",
    "get_session",
    "log_request",
    "recover_panic",
    "require_authentication",
    "secure_headers",
    "session_loader",
    "verify_csrf",
]

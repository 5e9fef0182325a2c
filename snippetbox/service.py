"""Application factory for the snippet service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .middleware import Chain, log_request, recover_panic, secure_headers, session_loader, verify_csrf
from .models import SnippetStore, UserStore
from .routes import build_router
from .sessions import SessionStore
from .web import STATIC_DIR, Handlers

logger = logging.getLogger("snippetbox.service")


async def _http_error(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    return PlainTextResponse(
        str(exc.detail),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def create_app(
    *,
    users: UserStore,
    snippets: SnippetStore,
    sessions: Optional[SessionStore] = None,
    secure_cookies: bool = True,
    hash_workers: int = 4,
    static_dir: Path = STATIC_DIR,
) -> FastAPI:
    """Wire handlers, middleware and routes around the given stores."""

    session_store = sessions if sessions is not None else SessionStore()
    if not secure_cookies:
        logger.warning(
            "Session cookies are not marked as secure. Only disable secure cookies for"
            " local development."
        )

    handlers = Handlers(users=users, snippets=snippets, hash_workers=hash_workers)
    dynamic = Chain(session_loader(session_store, secure=secure_cookies), verify_csrf)
    router = build_router(handlers, dynamic=dynamic, static_dir=static_dir)

    app = FastAPI(
        title="Snippetbox",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        routes=router.routes(),
        exception_handlers={StarletteHTTPException: _http_error},
    )
    standard = Chain(recover_panic, log_request, secure_headers)
    app.add_middleware(BaseHTTPMiddleware, dispatch=standard)

    app.state.users = users
    app.state.snippets = snippets
    app.state.sessions = session_store
    app.state.router = router
    return app


__all__ = ["create_app"]

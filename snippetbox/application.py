"""Application factory backed by the on-disk database."""
from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from .config import Settings, load_settings
from .database import Database
from .service import create_app
from .sessions import SessionStore


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    """Create the ASGI application described by ``settings``."""

    settings = settings or load_settings()
    database = Database(settings.database_path)
    database.initialize()

    app = create_app(
        users=database,
        snippets=database,
        sessions=SessionStore(lifetime=settings.session_lifetime),
        secure_cookies=settings.secure_cookies,
        hash_workers=settings.hash_workers,
    )
    app.state.database = database
    app.state.settings = settings
    return app


__all__ = ["create_application"]

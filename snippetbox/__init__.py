"""Snippet sharing web service."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .mock import MemoryDatabase


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the web application for the given stores."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


def create_application(*args: Any, **kwargs: Any):
    """Factory function that returns the application backed by SQLite."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "Database",
    "MemoryDatabase",
    "resolve_database_path",
    "create_app",
    "create_application",
]

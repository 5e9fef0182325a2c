"""Configuration management for the snippet service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the web service."""

    database_path: Path
    host: str = "127.0.0.1"
    port: int = 4000
    session_lifetime: timedelta = timedelta(hours=12)
    secure_cookies: bool = True
    hash_workers: int = 4
    log_level: str = "INFO"
    ssl_certfile: Optional[Path] = None
    ssl_keyfile: Optional[Path] = None

    @staticmethod
    def from_dict(data: Mapping[str, Any], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        def _path(value: Any) -> Path:
            candidate = Path(str(value)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            return candidate.resolve(strict=False)

        settings = Settings(database_path=resolve_database_path(None))
        updates: Dict[str, Any] = {}
        if data.get("database_path"):
            updates["database_path"] = _path(data["database_path"])
        if data.get("host"):
            updates["host"] = str(data["host"])
        if data.get("port") is not None:
            updates["port"] = _parse_port(data["port"])
        if data.get("session_hours") is not None:
            updates["session_lifetime"] = _parse_lifetime(data["session_hours"])
        if data.get("secure_cookies") is not None:
            updates["secure_cookies"] = _parse_flag(data["secure_cookies"])
        if data.get("hash_workers") is not None:
            updates["hash_workers"] = _parse_workers(data["hash_workers"])
        if data.get("log_level"):
            updates["log_level"] = str(data["log_level"]).upper()
        if data.get("ssl_certfile"):
            updates["ssl_certfile"] = _path(data["ssl_certfile"])
        if data.get("ssl_keyfile"):
            updates["ssl_keyfile"] = _path(data["ssl_keyfile"])
        return replace(settings, **updates)


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean setting: {value!r}")


def _parse_port(value: Any) -> int:
    port = int(value)
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range: {port}")
    return port


def _parse_lifetime(value: Any) -> timedelta:
    hours = float(value)
    if hours <= 0:
        raise ValueError("Session lifetime must be positive")
    return timedelta(hours=hours)


def _parse_workers(value: Any) -> int:
    workers = int(value)
    if workers < 1:
        raise ValueError("hash_workers must be at least 1")
    return workers


_ENV_KEYS = {
    "SNIPPETBOX_DB_PATH": "database_path",
    "SNIPPETBOX_HOST": "host",
    "SNIPPETBOX_PORT": "port",
    "SNIPPETBOX_SESSION_HOURS": "session_hours",
    "SNIPPETBOX_SESSION_SECURE": "secure_cookies",
    "SNIPPETBOX_HASH_WORKERS": "hash_workers",
    "SNIPPETBOX_LOG_LEVEL": "log_level",
    "SNIPPETBOX_SSL_CERTFILE": "ssl_certfile",
    "SNIPPETBOX_SSL_KEYFILE": "ssl_keyfile",
}


def _load_yaml(config_path: Path) -> Dict[str, Any]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping")
    section = raw.get("snippetbox", raw)
    if not isinstance(section, dict):
        raise ValueError("The 'snippetbox' configuration section must be a mapping")
    return dict(section)


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional configuration file path."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    candidate = (Path(__file__).resolve().parent.parent / "config" / "snippetbox.yaml").resolve(strict=False)
    return candidate if candidate.exists() else None


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then the environment."""

    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("SNIPPETBOX_CONFIG"))

    data: Dict[str, Any] = {}
    base_path: Optional[Path] = None
    if config_path is not None:
        data.update(_load_yaml(config_path))
        base_path = config_path.parent

    for env_key, setting in _ENV_KEYS.items():
        value = env.get(env_key)
        if value is not None and value.strip():
            data[setting] = value.strip()

    return Settings.from_dict(data, base_path=base_path)


__all__ = ["Settings", "load_settings", "resolve_config_path"]

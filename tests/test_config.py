from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from snippetbox.config import Settings, load_settings, resolve_config_path


def test_defaults() -> None:
    settings = load_settings(environ={})

    assert settings.host == "127.0.0.1"
    assert settings.port == 4000
    assert settings.session_lifetime == timedelta(hours=12)
    assert settings.secure_cookies is True
    assert settings.hash_workers == 4
    assert settings.database_path.name == "snippetbox.sqlite3"


def test_yaml_file(tmp_path: Path) -> None:
    config = tmp_path / "snippetbox.yaml"
    config.write_text(
        "snippetbox:\n"
        "  database_path: db/app.sqlite3\n"
        "  port: 8080\n"
        "  session_hours: 2\n"
        "  secure_cookies: false\n"
        "  log_level: debug\n",
        encoding="utf-8",
    )

    settings = load_settings(config, environ={})

    assert settings.database_path == (tmp_path / "db" / "app.sqlite3").resolve()
    assert settings.port == 8080
    assert settings.session_lifetime == timedelta(hours=2)
    assert settings.secure_cookies is False
    assert settings.log_level == "DEBUG"


def test_environment_overrides_file(tmp_path: Path) -> None:
    config = tmp_path / "snippetbox.yaml"
    config.write_text("snippetbox:\n  port: 8080\n  hash_workers: 2\n", encoding="utf-8")

    settings = load_settings(
        environ={
            "SNIPPETBOX_CONFIG": str(config),
            "SNIPPETBOX_PORT": "9000",
            "SNIPPETBOX_SESSION_SECURE": "off",
            "SNIPPETBOX_DB_PATH": str(tmp_path / "env.sqlite3"),
        }
    )

    assert settings.port == 9000
    assert settings.hash_workers == 2
    assert settings.secure_cookies is False
    assert settings.database_path == (tmp_path / "env.sqlite3").resolve()


@pytest.mark.parametrize(
    "key, value",
    [
        ("SNIPPETBOX_PORT", "70000"),
        ("SNIPPETBOX_PORT", "http"),
        ("SNIPPETBOX_SESSION_HOURS", "0"),
        ("SNIPPETBOX_SESSION_SECURE", "maybe"),
        ("SNIPPETBOX_HASH_WORKERS", "0"),
    ],
)
def test_invalid_values_raise(key: str, value: str) -> None:
    with pytest.raises(ValueError):
        load_settings(environ={key: value})


def test_config_file_must_be_mapping(tmp_path: Path) -> None:
    config = tmp_path / "broken.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_settings(config, environ={})


def test_resolve_config_path(tmp_path: Path) -> None:
    assert resolve_config_path(str(tmp_path / "x.yaml")) == (tmp_path / "x.yaml").resolve()


def test_settings_from_dict_without_values() -> None:
    settings = Settings.from_dict({})

    assert settings.ssl_certfile is None
    assert settings.ssl_keyfile is None

"""Command-line interface for the snippet service."""

from __future__ import annotations
import argparse
import logging
import sys
from dataclasses import replace
from getpass import getpass
from pathlib import Path
from typing import Sequence

from snippetbox.config import Settings, load_settings
from snippetbox.database import Database
from snippetbox.forms import PASSWORD_MIN_LENGTH, signup_form
from snippetbox.models import DuplicateEmailError

logger = logging.getLogger("snippetbox.main")

_KNOWN_COMMANDS = {"serve", "init-db", "create-user"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Snippetbox web service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: $SNIPPETBOX_CONFIG)",
    )

    subparsers.add_parser("init-db", parents=[common], help="Create the database tables")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Listen port (default: 4000)")
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )

    user_parser = subparsers.add_parser("create-user", parents=[common], help="Register a user account")
    user_parser.add_argument("name", help="Display name for the account")
    user_parser.add_argument("email", help="Login email address")

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in _KNOWN_COMMANDS:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load(args: argparse.Namespace) -> Settings:
    config = Path(args.config).expanduser() if getattr(args, "config", None) else None
    settings = load_settings(config)
    updates = {}
    if getattr(args, "host", None):
        updates["host"] = args.host
    if getattr(args, "port", None) is not None:
        updates["port"] = args.port
    if getattr(args, "ssl_certfile", None):
        updates["ssl_certfile"] = Path(args.ssl_certfile).expanduser()
    if getattr(args, "ssl_keyfile", None):
        updates["ssl_keyfile"] = Path(args.ssl_keyfile).expanduser()
    return replace(settings, **updates)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(settings: Settings) -> None:
    from snippetbox.application import create_application
    import uvicorn

    if bool(settings.ssl_certfile) ^ bool(settings.ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if settings.ssl_certfile else "http"
    logger.info("Starting server on %s://%s:%s", protocol, settings.host, settings.port)

    app = create_application(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
        ssl_certfile=str(settings.ssl_certfile) if settings.ssl_certfile else None,
        ssl_keyfile=str(settings.ssl_keyfile) if settings.ssl_keyfile else None,
    )


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {PASSWORD_MIN_LENGTH} characters): ")
        if len(password) < PASSWORD_MIN_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(database: Database, name: str, email: str) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return 1

    form = signup_form({"name": name, "email": email, "password": password})
    if not form.valid:
        for field, messages in form.errors.items():
            print(f"{field}: {messages[0]}")
        return 1

    try:
        user_id = database.insert_user(name, email, password)
    except DuplicateEmailError:
        print(f"A user with the email {email} already exists.")
        return 1

    print(f"Created user #{user_id}: {name} <{email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = _load(args)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings)
    elif args.command == "create-user":
        return _create_user(database, args.name, args.email)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

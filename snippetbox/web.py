"""HTML handlers for the snippet service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import anyio
from fastapi import status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.requests import Request

from .forms import NON_FIELD, Form, login_form, password_form, signup_form, snippet_form
from .middleware import LOGIN_PATH, csrf_token, current_user_id, get_session
from .models import (
    DuplicateEmailError,
    InvalidCredentialsError,
    NoRecordError,
    SnippetStore,
    UserStore,
)
from .sessions import AUTHENTICATED_USER_ID, FLASH, REDIRECT_AFTER_LOGIN

logger = logging.getLogger("snippetbox.web")

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
STATIC_DIR = Path(__file__).resolve().parent / "static"

DEFAULT_LANDING_PATH = "/snippet/create"
FORM_ERROR_STATUS = 422

T = TypeVar("T")


def _format_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%d %b %Y at %H:%M")


def _template_environment() -> Jinja2Templates:
    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.filters["human_date"] = _format_datetime
    return templates


def _safe_redirect_target(value: object) -> str:
    if isinstance(value, str) and value.startswith("/") and not value.startswith("//"):
        return value
    return DEFAULT_LANDING_PATH


def _see_other(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


def not_found() -> PlainTextResponse:
    return PlainTextResponse("Not Found", status_code=status.HTTP_404_NOT_FOUND)


async def ping(request: Request) -> Response:
    return PlainTextResponse("OK")


class Handlers:
    """Route handlers bound to the storage they operate on."""

    def __init__(
        self,
        *,
        users: UserStore,
        snippets: SnippetStore,
        templates: Optional[Jinja2Templates] = None,
        hash_workers: int = 4,
    ) -> None:
        if hash_workers < 1:
            raise ValueError("hash_workers must be at least 1")
        self.users = users
        self.snippets = snippets
        self.templates = templates if templates is not None else _template_environment()
        self._hash_workers = hash_workers
        self._limiter: Optional[anyio.CapacityLimiter] = None

    async def _offload(self, func: Callable[..., T], *args: Any) -> T:
        """Run blocking credential work on the bounded worker pool."""

        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self._hash_workers)
        return await anyio.to_thread.run_sync(func, *args, limiter=self._limiter)

    def render(
        self,
        request: Request,
        template: str,
        *,
        status_code: int = status.HTTP_200_OK,
        **context: Any,
    ) -> HTMLResponse:
        session = get_session(request)
        base = {
            "flash": session.pop(FLASH),
            "is_authenticated": current_user_id(request) is not None,
            "csrf_token": csrf_token(request),
            "current_year": datetime.now().year,
        }
        base.update(context)
        return self.templates.TemplateResponse(request, template, base, status_code=status_code)

    # ------------------------------------------------------------------
    # Snippets
    # ------------------------------------------------------------------
    async def home(self, request: Request) -> Response:
        snippets = self.snippets.latest_snippets()
        return self.render(request, "home.html", snippets=snippets)

    async def about(self, request: Request) -> Response:
        return self.render(request, "about.html")

    async def show_snippet(self, request: Request) -> Response:
        snippet_id = request.path_params.get("id")
        if not isinstance(snippet_id, int) or snippet_id < 1:
            return not_found()
        try:
            snippet = self.snippets.get_snippet(snippet_id)
        except NoRecordError:
            return not_found()
        return self.render(request, "show.html", snippet=snippet)

    async def create_snippet_form(self, request: Request) -> Response:
        return self.render(request, "create.html", form=Form({"expires": "365"}))

    async def create_snippet(self, request: Request) -> Response:
        form = snippet_form(await request.form())
        if not form.valid:
            return self.render(
                request,
                "create.html",
                form=form,
                status_code=FORM_ERROR_STATUS,
            )

        snippet_id = self.snippets.insert_snippet(
            form.get("title"),
            form.get("content"),
            int(form.get("expires")),
        )
        logger.info("User #%s created snippet #%s", request.state.user_id, snippet_id)
        get_session(request).put(FLASH, "Snippet successfully created!")
        return _see_other(f"/snippet/{snippet_id}")

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    async def signup_form(self, request: Request) -> Response:
        return self.render(request, "signup.html", form=Form())

    async def signup(self, request: Request) -> Response:
        form = signup_form(await request.form())
        if form.valid:
            try:
                await self._offload(
                    self.users.insert_user,
                    form.get("name"),
                    form.get("email"),
                    form.get("password"),
                )
            except DuplicateEmailError:
                form.add_error("email", "Address is already in use")

        if not form.valid:
            form.values.pop("password", None)
            return self.render(
                request,
                "signup.html",
                form=form,
                status_code=FORM_ERROR_STATUS,
            )

        get_session(request).put(FLASH, "Your signup was successful. Please log in.")
        return _see_other(LOGIN_PATH)

    async def login_form(self, request: Request) -> Response:
        return self.render(request, "login.html", form=Form())

    async def login(self, request: Request) -> Response:
        form = login_form(await request.form())
        user_id: Optional[int] = None
        if form.valid:
            try:
                user_id = await self._offload(
                    self.users.authenticate,
                    form.get("email"),
                    form.get("password"),
                )
            except InvalidCredentialsError:
                form.add_error(NON_FIELD, "Email or password is incorrect")

        if user_id is None:
            form.values.pop("password", None)
            return self.render(
                request,
                "login.html",
                form=form,
                status_code=FORM_ERROR_STATUS,
            )

        session = get_session(request)
        session.renew()
        session.put(AUTHENTICATED_USER_ID, user_id)
        target = _safe_redirect_target(session.pop(REDIRECT_AFTER_LOGIN))
        logger.info("User #%s logged in", user_id)
        return _see_other(target)

    async def logout(self, request: Request) -> Response:
        session = get_session(request)
        session.remove(AUTHENTICATED_USER_ID)
        session.renew()
        session.put(FLASH, "You've been logged out successfully!")
        logger.info("User #%s logged out", request.state.user_id)
        return _see_other("/")

    async def profile(self, request: Request) -> Response:
        try:
            user = self.users.get_user(request.state.user_id)
        except NoRecordError:
            session = get_session(request)
            session.remove(AUTHENTICATED_USER_ID)
            session.renew()
            return RedirectResponse(LOGIN_PATH, status_code=status.HTTP_302_FOUND)
        return self.render(request, "profile.html", user=user)

    async def change_password_form(self, request: Request) -> Response:
        return self.render(request, "password.html", form=Form())

    async def change_password(self, request: Request) -> Response:
        form = password_form(await request.form())
        if form.valid:
            try:
                await self._offload(
                    self.users.change_password,
                    request.state.user_id,
                    form.get("current_password"),
                    form.get("new_password"),
                )
            except InvalidCredentialsError:
                form.add_error("current_password", "Invalid credentials")

        if not form.valid:
            form.values.clear()
            return self.render(
                request,
                "password.html",
                form=form,
                status_code=FORM_ERROR_STATUS,
            )

        session = get_session(request)
        session.renew()
        session.put(FLASH, "Your password has been updated!")
        return _see_other("/user/profile")


__all__ = ["Handlers", "STATIC_DIR", "TEMPLATE_DIR", "not_found", "ping"]

"""Fixed route table for the snippet service.

Each entry pairs a method and path pattern with a handler and the middleware
chain it runs behind. The table is validated when it is built: two entries for
the same method may not match a common path unless one of them is strictly
more specific, and a pattern holds at most one parameter.
"""

from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from starlette.convertors import Convertor, register_url_convertor
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import BaseRoute, Mount, Route
from starlette.types import ASGIApp, Receive, Scope, Send

from .middleware import Chain, Handler, require_authentication
from .web import STATIC_DIR, Handlers, ping

_PARAM_SEGMENT = re.compile(r"^\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::(?P<convertor>[A-Za-z_]+))?\}$")


class PositiveIntConvertor(Convertor):
    """Matches integers >= 1 that fit a signed 64-bit column; leading zeros are allowed."""

    regex = "0*[1-9][0-9]{0,17}"

    def convert(self, value: str) -> int:
        return int(value)

    def to_string(self, value: int) -> str:
        number = int(value)
        if number < 1:
            raise ValueError("Positive integers only")
        return str(number)


register_url_convertor("positive", PositiveIntConvertor())


class RouteConflictError(ValueError):
    """Raised when two routes for the same method could match the same path."""


@dataclass(frozen=True)
class RouteEntry:
    method: str
    pattern: str
    handler: Handler
    chain: Chain
    name: Optional[str] = None


def _segments(pattern: str) -> Tuple[str, ...]:
    if not pattern.startswith("/"):
        raise ValueError(f"Route pattern must start with '/': {pattern!r}")
    return tuple(pattern.strip("/").split("/")) if pattern != "/" else ()


def _parameter_count(pattern: str) -> int:
    return sum(1 for segment in _segments(pattern) if _PARAM_SEGMENT.match(segment))


def _shape(pattern: str) -> Tuple[Optional[str], ...]:
    """Literal segments, with ``None`` standing in for a parameter."""

    return tuple(None if _PARAM_SEGMENT.match(segment) else segment for segment in _segments(pattern))


def _overlaps(first: Tuple[Optional[str], ...], second: Tuple[Optional[str], ...]) -> bool:
    if len(first) != len(second):
        return False
    return all(a is None or b is None or a == b for a, b in zip(first, second))


def _covers(general: Tuple[Optional[str], ...], specific: Tuple[Optional[str], ...]) -> bool:
    """True when every path ``specific`` matches is also matched by ``general``."""

    return len(general) == len(specific) and all(
        g is None or (s is not None and g == s) for g, s in zip(general, specific)
    )


def _ambiguous(first: str, second: str) -> bool:
    a, b = _shape(first), _shape(second)
    if not _overlaps(a, b):
        return False
    return _covers(a, b) == _covers(b, a)


class Router:
    """Ordered (method, pattern) table compiled into Starlette routes."""

    def __init__(self) -> None:
        self._entries: List[RouteEntry] = []
        self._mounts: List[Tuple[str, ASGIApp, Optional[str]]] = []

    @property
    def entries(self) -> Tuple[RouteEntry, ...]:
        return tuple(self._entries)

    def add(
        self,
        method: str,
        pattern: str,
        handler: Handler,
        chain: Optional[Chain] = None,
        *,
        name: Optional[str] = None,
    ) -> None:
        method = method.upper()
        if _parameter_count(pattern) > 1:
            raise ValueError(f"Route pattern may hold at most one parameter: {pattern!r}")

        for existing in self._entries:
            if existing.method == method and _ambiguous(existing.pattern, pattern):
                raise RouteConflictError(
                    f"{method} {pattern!r} is ambiguous with {existing.method} {existing.pattern!r}"
                )
        self._entries.append(RouteEntry(method, pattern, handler, chain if chain is not None else Chain(), name))

    def get(self, pattern: str, handler: Handler, chain: Optional[Chain] = None, *, name: Optional[str] = None) -> None:
        self.add("GET", pattern, handler, chain, name=name)

    def post(self, pattern: str, handler: Handler, chain: Optional[Chain] = None, *, name: Optional[str] = None) -> None:
        self.add("POST", pattern, handler, chain, name=name)

    def mount(self, path: str, app: ASGIApp, *, name: Optional[str] = None) -> None:
        self._mounts.append((path, app, name))

    def routes(self) -> List[BaseRoute]:
        """Compile the table; literal paths are tried before parameterised ones."""

        grouped: "OrderedDict[str, Dict[str, Handler]]" = OrderedDict()
        names: Dict[str, Optional[str]] = {}
        for entry in self._entries:
            methods = grouped.setdefault(entry.pattern, OrderedDict())
            methods[entry.method] = entry.chain.then(entry.handler)
            names.setdefault(entry.pattern, entry.name)

        ordered = sorted(grouped, key=_parameter_count)
        compiled: List[BaseRoute] = []
        for pattern in ordered:
            methods = grouped[pattern]
            if "GET" in methods and "HEAD" not in methods:
                methods["HEAD"] = methods["GET"]
            compiled.append(Route(pattern, endpoint=_MethodDispatcher(methods), name=names[pattern]))
        for path, app, name in self._mounts:
            compiled.append(Mount(path, app=app, name=name))
        return compiled


class _MethodDispatcher:
    """ASGI endpoint that picks the handler registered for the request method."""

    def __init__(self, methods: Dict[str, Handler]) -> None:
        self._methods = dict(methods)
        self.allow = ", ".join(self._methods)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive, send)
        handler = self._methods.get(request.method)
        if handler is None:
            response: Response = PlainTextResponse(
                "Method Not Allowed",
                status_code=405,
                headers={"Allow": self.allow},
            )
        else:
            response = await handler(request)
        await response(scope, receive, send)


def build_router(
    handlers: Handlers,
    *,
    dynamic: Chain,
    static_dir: Path = STATIC_DIR,
) -> Router:
    """Register every route together with the middleware it runs behind."""

    protected = dynamic.append(require_authentication)

    router = Router()
    router.get("/", handlers.home, dynamic, name="home")
    router.get("/about", handlers.about, dynamic, name="about")
    router.get("/snippet/create", handlers.create_snippet_form, protected, name="create_snippet")
    router.post("/snippet/create", handlers.create_snippet, protected)
    router.get("/snippet/{id:positive}", handlers.show_snippet, dynamic, name="show_snippet")

    router.get("/user/signup", handlers.signup_form, dynamic, name="signup")
    router.post("/user/signup", handlers.signup, dynamic)
    router.get("/user/login", handlers.login_form, dynamic, name="login")
    router.post("/user/login", handlers.login, dynamic)
    router.post("/user/logout", handlers.logout, protected, name="logout")
    router.get("/user/profile", handlers.profile, protected, name="profile")
    router.get("/user/change-password", handlers.change_password_form, protected, name="change_password")
    router.post("/user/change-password", handlers.change_password, protected)

    router.get("/ping", ping, name="ping")
    router.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
    return router


__all__ = ["PositiveIntConvertor", "RouteConflictError", "RouteEntry", "Router", "build_router"]

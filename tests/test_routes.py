from __future__ import annotations

import pytest
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Mount, Route

from snippetbox.routes import PositiveIntConvertor, RouteConflictError, Router


async def _handler(request: Request) -> Response:
    return PlainTextResponse("ok")


def test_same_shape_for_same_method_conflicts() -> None:
    router = Router()
    router.get("/snippet/{id:positive}", _handler)

    with pytest.raises(RouteConflictError):
        router.get("/snippet/{slug}", _handler)


def test_duplicate_literal_route_conflicts() -> None:
    router = Router()
    router.post("/user/login", _handler)

    with pytest.raises(RouteConflictError):
        router.add("post", "/user/login", _handler)


def test_crossed_parameters_conflict() -> None:
    router = Router()
    router.get("/a/{x}", _handler)

    with pytest.raises(RouteConflictError):
        router.get("/{y}/b", _handler)

    router.post("/{y}/b", _handler)
    router.get("/a/b/c", _handler)
    assert len(router.entries) == 3


def test_literal_and_parameter_segments_coexist() -> None:
    router = Router()
    router.get("/snippet/{id:positive}", _handler)
    router.get("/snippet/create", _handler)
    router.post("/snippet/{id:positive}", _handler)

    assert len(router.entries) == 3


def test_pattern_rules() -> None:
    router = Router()

    with pytest.raises(ValueError):
        router.get("/a/{x}/{y}", _handler)
    with pytest.raises(ValueError):
        router.get("no-leading-slash", _handler)


def test_literal_routes_compile_first() -> None:
    router = Router()
    router.get("/snippet/{id:positive}", _handler)
    router.get("/snippet/create", _handler)
    router.post("/snippet/create", _handler)
    router.mount("/static", PlainTextResponse("static"))

    compiled = router.routes()

    assert [type(route) for route in compiled] == [Route, Route, Mount]
    assert [route.path for route in compiled[:2]] == ["/snippet/create", "/snippet/{id:positive}"]


def test_positive_convertor() -> None:
    convertor = PositiveIntConvertor()

    assert convertor.convert("42") == 42
    assert convertor.convert("007") == 7
    assert convertor.to_string(7) == "7"
    with pytest.raises(ValueError):
        convertor.to_string(0)

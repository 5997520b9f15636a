"""Tests for RouteScope route records, normalization and dynamic segments."""

import json

import pytest

from routescope.core.routes import (
    HTTP_METHODS,
    DynamicSegment,
    ParsedRoute,
    RouteHandler,
    RouteNormalizer,
    RouteType,
    convert_body_to_query,
    normalize_route_path,
    should_include_body,
    sort_routes,
)
from routescope.extractors.next_shared import (
    classify_segment,
    convert_dynamic_segments,
    extract_dynamic_segments,
)


def make_handler(**kwargs) -> RouteHandler:
    defaults = dict(
        route_type=RouteType.NEXTJS_APP,
        path="/api/items",
        method="GET",
        file_path="/project/app/api/items/route.ts",
    )
    defaults.update(kwargs)
    return RouteHandler(**defaults)


class TestDynamicSegments:
    """Bracketed path segment parsing and conversion."""

    @pytest.mark.parametrize("path", [
        "/api/users/[id]",
        "/docs/[...slug]",
        "/shop/[[...filters]]",
        "/a/[org]/b/[...rest]",
        "/static/path",
    ])
    def test_conversion_is_idempotent(self, path):
        """Converting twice equals converting once."""
        once = convert_dynamic_segments(path)
        assert convert_dynamic_segments(once) == once

    def test_plain_segment(self):
        """[id] becomes :id."""
        assert convert_dynamic_segments("/api/users/[id]") == "/api/users/:id"

    def test_catch_all_segment(self):
        """[...slug] becomes :slug*."""
        assert convert_dynamic_segments("/docs/[...slug]") == "/docs/:slug*"

    def test_optional_catch_all_segment(self):
        """[[...slug]] becomes :slug*?."""
        assert convert_dynamic_segments("/docs/[[...slug]]") == "/docs/:slug*?"

    def test_extract_agrees_with_convert(self):
        """Extraction and conversion see the same segments with the same flags."""
        path = "/a/[id]/b/[...rest]/c/[[...opt]]"
        segments = extract_dynamic_segments(path)
        converted = convert_dynamic_segments(path)

        assert [s.to_param() for s in segments] == [p for p in converted.split("/") if p.startswith(":")]
        assert [(s.is_catch_all, s.is_optional) for s in segments] == [
            (False, False),
            (True, False),
            (True, True),
        ]

    def test_static_segment_is_not_dynamic(self):
        """Plain names classify as static."""
        assert classify_segment("users") is None
        assert classify_segment(":id") is None

    def test_segment_to_dict(self):
        """Segments serialize with camelCase flags."""
        assert DynamicSegment("slug", is_catch_all=True).to_dict() == {
            "name": "slug",
            "isCatchAll": True,
            "isOptional": False,
        }


class TestPathNormalization:
    """Path cleanup rules."""

    def test_leading_slash_added(self):
        """Paths always start with a slash."""
        assert normalize_route_path("api/users") == "/api/users"

    def test_duplicate_and_trailing_slashes(self):
        """Duplicate slashes collapse and trailing ones are dropped."""
        assert normalize_route_path("//api//users/") == "/api/users"

    def test_root(self):
        """Empty and root paths normalize to /."""
        assert normalize_route_path("") == "/"
        assert normalize_route_path("/") == "/"


class TestBodyToQuery:
    """Flattening example bodies into query placeholders."""

    def test_primitives_and_null(self):
        """Primitives are stringified and null becomes an empty placeholder."""
        body = json.dumps({"q": "", "page": 0, "active": False, "cursor": None})
        assert convert_body_to_query(body) == {"q": "", "page": "0", "active": "false", "cursor": ""}

    def test_nested_values_dropped(self):
        """Objects and arrays are not query parameters."""
        body = json.dumps({"filter": {"a": 1}, "ids": [], "name": ""})
        assert convert_body_to_query(body) == {"name": ""}

    def test_invalid_json(self):
        """Invalid JSON yields no parameters."""
        assert convert_body_to_query("{not json") == {}
        assert convert_body_to_query(None) == {}

    def test_should_include_body(self):
        """Only POST/PUT/PATCH carry bodies."""
        assert should_include_body("post")
        assert should_include_body("PATCH")
        assert not should_include_body("GET")
        assert not should_include_body("DELETE")


class TestRouteNormalizer:
    """Assembling ParsedRoute records."""

    def test_empty_maps_become_none(self):
        """Nothing inferred means no headers, query or body keys."""
        route = RouteNormalizer().normalize(make_handler())
        assert route.headers is None
        assert route.query is None
        assert route.body is None
        assert set(route.to_dict()) == {"name", "path", "method", "filePath", "type"}

    def test_body_dropped_for_get(self):
        """GET routes never carry a body."""
        route = RouteNormalizer().normalize(make_handler(body='{"a": ""}'))
        assert route.body is None

    def test_empty_object_body_dropped(self):
        """An empty example body is treated as no body."""
        route = RouteNormalizer().normalize(make_handler(method="POST", body="{}"))
        assert route.body is None

    def test_body_kept_for_post(self):
        """POST keeps its example body."""
        route = RouteNormalizer().normalize(make_handler(method="POST", body='{\n  "a": ""\n}'))
        assert json.loads(route.body) == {"a": ""}

    def test_body_to_query(self):
        """Query-style handlers move the body into query placeholders."""
        handler = make_handler(
            route_type=RouteType.TRPC,
            body='{"id": "", "limit": 0}',
            body_to_query=True,
            query={"id": "existing"},
        )
        route = RouteNormalizer().normalize(handler)
        assert route.body is None
        assert route.query == {"id": "existing", "limit": "0"}

    def test_unsupported_method_skipped(self):
        """Methods outside the fixed verb set produce no route."""
        assert RouteNormalizer().normalize(make_handler(method="TRACE")) is None

    def test_method_uppercased_and_path_normalized(self):
        """Every output has a leading slash and a known verb."""
        routes = RouteNormalizer().normalize_all([
            make_handler(method="get", path="api//things/"),
            make_handler(method="delete", path="x"),
        ])
        for route in routes:
            assert route.path.startswith("/")
            assert route.method in HTTP_METHODS
        assert routes[0].path == "/api/things"

    def test_default_name(self):
        """The label defaults to method and path."""
        route = RouteNormalizer().normalize(make_handler(path="/api/a", method="PUT"))
        assert route.name == "PUT /api/a"


class TestParsedRoute:
    """Serialization and ordering."""

    def test_round_trip(self):
        """from_dict restores a serialized route."""
        route = ParsedRoute(
            name="GET /a", path="/a", method="GET", file_path="/p/a.ts",
            type="nextjs-app", headers={"X": "1"},
        )
        assert ParsedRoute.from_dict(route.to_dict()) == route

    def test_external_id(self):
        """The identity combines framework, file, handler and method."""
        route = ParsedRoute(name="n", path="/a", method="GET", file_path="/p/a.ts",
                            type="nextjs-app", handler_name="GET")
        assert route.external_id == "nextjs-app:/p/a.ts#GET:GET"

    def test_sort_routes(self):
        """Sorted by path, then verb order."""
        routes = [
            ParsedRoute(name="", path="/b", method="GET", file_path="f", type="t"),
            ParsedRoute(name="", path="/a", method="POST", file_path="f", type="t"),
            ParsedRoute(name="", path="/a", method="GET", file_path="f", type="t"),
        ]
        ordered = [(r.path, r.method) for r in sort_routes(routes)]
        assert ordered == [("/a", "GET"), ("/a", "POST"), ("/b", "GET")]

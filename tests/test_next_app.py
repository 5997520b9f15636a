"""Tests for the Next.js App Router extractor."""

import json
import logging

import pytest

from routescope.core.routes import RouteType
from routescope.extractors.next_app import (
    NextAppExtractor,
    derive_app_route_path,
    is_app_router_file,
    parse_next_app_routes,
)

NEXT = {"next": "14.2.0"}


def by_method(routes):
    return {route.method: route for route in routes}


class TestAppPaths:
    """Route file selection and path derivation."""

    def test_route_files(self):
        """Only route.* files inside an app tree, outside private folders."""
        assert is_app_router_file("app/api/users/route.ts")
        assert is_app_router_file("src/app/route.js")
        assert not is_app_router_file("app/api/users/page.tsx")
        assert not is_app_router_file("lib/route.ts")
        assert not is_app_router_file("app/_internal/route.ts")

    def test_groups_and_slots_removed(self):
        """Route groups and parallel slots don't contribute segments."""
        assert derive_app_route_path("src/app/(shop)/api/items/[id]/route.ts") == "/api/items/[id]"
        assert derive_app_route_path("app/@modal/api/login/route.ts") == "/api/login"
        assert derive_app_route_path("app/route.ts") == "/"


class TestNextAppExtractor:
    """Structured extraction with a tsconfig."""

    def test_dynamic_get_route(self, make_project):
        """A GET handler under [id] becomes /api/users/:id."""
        root = make_project({
            "app/api/users/[id]/route.ts": (
                "import { NextResponse } from 'next/server';\n"
                "export async function GET(request: Request, { params }: { params: { id: string } }) {\n"
                "  return NextResponse.json({ id: params.id });\n"
                "}\n"
            ),
        }, dependencies=NEXT)

        routes = NextAppExtractor(root).parse()
        assert len(routes) == 1
        route = routes[0]
        assert route.method == "GET"
        assert route.path == "/api/users/:id"
        assert route.type == RouteType.NEXTJS_APP.value
        assert route.handler_name == "GET"
        assert route.name == "GET /api/users/:id"
        assert route.headers == {"Content-Type": "application/json"}
        assert route.body is None

    def test_catch_all_segments(self, make_project):
        """Catch-all and optional catch-all folders."""
        root = make_project({
            "app/docs/[...slug]/route.ts": "export function GET() {}\n",
            "app/files/[[...path]]/route.ts": "export function GET() {}\n",
        }, dependencies=NEXT)
        paths = sorted(route.path for route in NextAppExtractor(root).parse())
        assert paths == ["/docs/:slug*", "/files/:path*?"]

    def test_post_body_from_schema(self, make_project):
        """A schema parsed in the handler provides the example body."""
        root = make_project({
            "app/api/users/route.ts": (
                "import { z } from 'zod';\n"
                "const createSchema = z.object({ name: z.string(), age: z.number().optional() });\n"
                "export async function POST(req: Request) {\n"
                "  const data = createSchema.parse(await req.json());\n"
                "  return Response.json(data);\n"
                "}\n"
                "export async function GET(req: Request) {\n"
                "  const { searchParams } = new URL(req.url);\n"
                "  const q = searchParams.get('q');\n"
                "  return Response.json([]);\n"
                "}\n"
            ),
        }, dependencies=NEXT)

        routes = by_method(NextAppExtractor(root).parse())
        assert json.loads(routes["POST"].body) == {"name": ""}
        assert routes["GET"].body is None
        assert routes["GET"].query == {"q": ""}

    def test_export_conventions(self, make_project):
        """Const arrows, export clauses and re-exports all count."""
        root = make_project({
            "app/api/a/route.ts": (
                "function handler() {}\n"
                "export const POST = async () => new Response();\n"
                "export { handler as GET };\n"
            ),
            "app/api/b/route.ts": "export { DELETE } from './impl';\n",
            "app/api/b/impl.ts": "export async function DELETE() {}\n",
        }, dependencies=NEXT)

        routes = NextAppExtractor(root).parse()
        pairs = sorted((route.path, route.method) for route in routes)
        assert pairs == [("/api/a", "GET"), ("/api/a", "POST"), ("/api/b", "DELETE")]

    def test_methods_array(self, make_project):
        """``export const methods = [...]`` declares verbs without handlers."""
        root = make_project({
            "app/api/proxy/route.ts": (
                "const allowed = ['GET', 'PATCH'] as const;\n"
                "export const methods = allowed;\n"
            ),
        }, dependencies=NEXT)
        routes = NextAppExtractor(root).parse()
        assert sorted(route.method for route in routes) == ["GET", "PATCH"]

    def test_trpc_adapter_skipped(self, make_project):
        """The tRPC fetch adapter route isn't reported."""
        root = make_project({
            "app/api/trpc/[trpc]/route.ts": (
                "import { fetchRequestHandler } from '@trpc/server/adapters/fetch';\n"
                "const handler = (req: Request) => fetchRequestHandler({ req });\n"
                "export { handler as GET, handler as POST };\n"
            ),
        }, dependencies=NEXT)
        assert NextAppExtractor(root).parse() == []

    def test_no_methods(self, make_project):
        """Files without verb exports produce nothing."""
        root = make_project({"app/api/empty/route.ts": "export const revalidate = 60;\n"}, dependencies=NEXT)
        assert NextAppExtractor(root).parse() == []

    def test_broken_file_does_not_abort(self, make_project):
        """A syntax error in one file doesn't lose the others."""
        root = make_project({
            "app/api/ok/route.ts": "export function GET() {}\n",
            "app/api/broken/route.ts": "export function POST( {\n",
        }, dependencies=NEXT)
        paths = [route.path for route in NextAppExtractor(root).parse()]
        assert "/api/ok" in paths

    def test_failing_file_is_skipped_with_warning(self, make_project, monkeypatch, caplog):
        """An error inside one route file is logged with its path and the rest still parse."""
        root = make_project({
            "app/api/ok/route.ts": "export function GET() {}\n",
            "app/api/bad/route.ts": "export function POST() {}\n",
        }, dependencies=NEXT)
        parse_file = NextAppExtractor.parse_file

        def failing_parse_file(self, source_file, project, analyzer):
            if "bad" in str(source_file.path):
                raise RuntimeError("unexpected node")
            return parse_file(self, source_file, project, analyzer)

        monkeypatch.setattr(NextAppExtractor, "parse_file", failing_parse_file)
        with caplog.at_level(logging.WARNING, logger="routescope"):
            routes = NextAppExtractor(root).parse()

        assert [(route.method, route.path) for route in routes] == [("GET", "/api/ok")]
        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert any("app/api/bad/route.ts" in message and "unexpected node" in message for message in warnings)


class TestNextAppFallback:
    """Text-only extraction without a tsconfig."""

    def test_basic_mode(self, make_project):
        """Exported verbs are found by pattern matching."""
        root = make_project({
            "app/api/items/[id]/route.js": (
                "export async function GET(req) {\n"
                "  return Response.json({});\n"
                "}\n"
                "export const DELETE = async () => {};\n"
            ),
        }, dependencies=NEXT, tsconfig=False)

        routes = parse_next_app_routes(root)
        assert sorted((route.method, route.path) for route in routes) == [
            ("DELETE", "/api/items/:id"),
            ("GET", "/api/items/:id"),
        ]

    @pytest.mark.parametrize("content", ["", "export function helper() {}\n"])
    def test_basic_mode_no_verbs(self, make_project, content):
        """No exported verbs means no routes."""
        root = make_project({"app/api/x/route.ts": content}, dependencies=NEXT, tsconfig=False)
        assert parse_next_app_routes(root) == []

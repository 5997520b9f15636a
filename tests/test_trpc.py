"""Tests for tRPC router detection, composition and extraction."""

import json
import logging
from pathlib import Path

import pytest

from routescope.core.graph import MountEdge, RouterGraph, RouterMeta, normalize_router_name
from routescope.core.options import ParserOptions
from routescope.core.parser import TypeScriptParser
from routescope.core.routes import RouteType
from routescope.extractors.trpc import TrpcExtractor, derive_router_name, parse_trpc_routes
from routescope.extractors.trpc_detection import (
    build_router_detection_config,
    collect_router_call_sites,
    normalize_factory_names,
)

TRPC = {"@trpc/server": "10.45.0", "next": "14.0.0"}

AUTH_ROUTER = """\
import { z } from "zod";
import { createTRPCRouter, publicProcedure, protectedProcedure } from "../trpc";

export const authRouter = createTRPCRouter({
  login: publicProcedure
    .input(z.object({ email: z.string().email(), rememberMe: z.boolean().optional() }))
    .mutation(async ({ ctx, input }) => {
      return ctx.db.user.findUnique({ where: { email: input.email } });
    }),
  session: protectedProcedure
    .input(z.object({ id: z.string(), verbose: z.boolean().default(false) }))
    .query(({ ctx }) => ctx.session),
});
"""

ROOT_ROUTER = """\
import { createTRPCRouter, publicProcedure } from "./trpc";
import { authRouter } from "./routers/auth";

export const appRouter = createTRPCRouter({
  auth: authRouter,
  health: publicProcedure.query(() => "ok"),
});
"""


@pytest.fixture
def t3_project(make_project):
    return make_project({
        "src/server/api/routers/auth.ts": AUTH_ROUTER,
        "src/server/api/root.ts": ROOT_ROUTER,
    }, dependencies=TRPC)


def by_path(routes):
    return {route.path: route for route in routes}


class TestRouterNames:
    """Router naming rules."""

    def test_normalize(self):
        """Common prefixes and suffixes are stripped."""
        assert normalize_router_name("authRouter") == "auth"
        assert normalize_router_name("createPostRouter") == "post"
        assert normalize_router_name("user_router") == "user"
        assert normalize_router_name("api.router") == "api"

    def test_prefix_needs_word_boundary(self):
        """Builder prefixes are only stripped in front of a capitalised word."""
        assert normalize_router_name("userRouter") == "user"
        assert normalize_router_name("usersRouter") == "users"
        assert normalize_router_name("buildingRouter") == "building"
        assert normalize_router_name("maker_router") == "maker"
        assert normalize_router_name("useCasesRouter") == "cases"

    def test_derive_from_file(self):
        """Unnamed routers fall back to their file or directory."""
        assert derive_router_name("router", "src/server/routers/billing.ts") == "billing"
        assert derive_router_name("router", "src/server/routers/billing/router.ts") == "billing"

    def test_factory_names(self):
        """Comma-separated names are flattened and deduplicated."""
        assert normalize_factory_names(["a, b", "b"]) == ["a", "b"]
        assert normalize_factory_names([]) == ["createTRPCRouter", "router"]


class TestRouterDetection:
    """Finding router-building calls."""

    def test_call_sites(self):
        """Factory calls by name and by member property are detected and named."""
        sf = TypeScriptParser().parse_source(
            "export const userRouter = createTRPCRouter({});\n"
            "export const postRouter = t.router({});\n"
            "const other = makeThing({});\n",
            Path("routers.ts"),
        )
        config = build_router_detection_config()
        names = [name for _, name in collect_router_call_sites(sf, config)]
        assert names == ["userRouter", "postRouter"]

    def test_custom_factory(self):
        """Configured factories replace the defaults."""
        sf = TypeScriptParser().parse_source("export const api = buildApi({});\n", Path("r.ts"))
        config = build_router_detection_config(["buildApi"])
        assert [name for _, name in collect_router_call_sites(sf, config)] == ["api"]


class TestRouterGraph:
    """Mount resolution."""

    def test_nested_mounts(self):
        """a mounts b as "b", b mounts c as "c": c resolves to b.c."""
        graph = RouterGraph()
        for name in ("a", "b", "c"):
            graph.add_router(RouterMeta(name, f"{name}.ts", 1, 5))
        graph.add_mount(MountEdge(parent="a", property="b", target="bRouter"))
        graph.add_mount(MountEdge(parent="b", property="c", target="cRouter"))
        assert graph.resolve_paths() == {"a": "", "b": "b", "c": "b.c"}

    def test_mount_property_differs_from_name(self):
        """The property name, not the variable, forms the path."""
        graph = RouterGraph()
        graph.add_router(RouterMeta("app", "root.ts", 1, 5))
        graph.add_router(RouterMeta("post", "post.ts", 1, 5))
        graph.add_mount(MountEdge(parent="app", property="posts", target="postRouter"))
        assert graph.resolve_paths()["post"] == "posts"

    def test_self_mount_terminates(self):
        """A router mounted under itself resolves without recursing forever."""
        graph = RouterGraph()
        graph.add_router(RouterMeta("loop", "loop.ts", 1, 5))
        graph.add_mount(MountEdge(parent="loop", property="loop", target="loopRouter"))
        assert graph.resolve_paths()["loop"] == "loop.loop"
        assert graph.find_cycles() == [["loop"]]


class TestTrpcExtractor:
    """Procedures as routes."""

    def test_login_mutation(self, t3_project):
        """auth.login is a POST with the required fields in its body."""
        routes = by_path(TrpcExtractor(t3_project).parse())
        login = routes["/api/trpc/auth.login"]
        assert login.method == "POST"
        assert login.type == RouteType.TRPC.value
        assert login.handler_name == "auth.login"
        assert login.headers == {"Content-Type": "application/json"}
        body = json.loads(login.body)
        assert body == {"email": ""}
        assert "rememberMe" not in body
        assert login.file_path.endswith("src/server/api/routers/auth.ts")

    def test_query_input_becomes_query(self, t3_project):
        """Queries are GETs whose input is sent as query parameters."""
        session = by_path(TrpcExtractor(t3_project).parse())["/api/trpc/auth.session"]
        assert session.method == "GET"
        assert session.body is None
        assert session.query == {"id": "", "verbose": "false"}

    def test_root_procedures(self, t3_project):
        """Procedures declared on the root keep its name."""
        assert "/api/trpc/app.health" in by_path(TrpcExtractor(t3_project).parse())

    def test_procedure_details(self, t3_project):
        """Visibility and resolver facts are captured for analysis."""
        result = TrpcExtractor(t3_project).analyze()
        procedures = {p.qualified_name: p for p in result.procedures}
        assert procedures["auth.login"].visibility == "public"
        assert procedures["auth.login"].uses_db
        assert procedures["auth.session"].visibility == "protected"
        assert procedures["auth.session"].kind == "query"
        assert {m.target for m in result.graph.mounts} == {"authRouter"}

    def test_shorthand_procedure(self, make_project):
        """A shorthand entry resolving to a procedure is captured."""
        root = make_project({
            "src/server/api/greet.ts": (
                "const hello = publicProcedure.query(() => 'hi');\n"
                "export const greetRouter = createTRPCRouter({ hello });\n"
            ),
        }, dependencies=TRPC)
        assert [route.path for route in parse_trpc_routes(root)] == ["/api/trpc/greet.hello"]

    def test_custom_base_path(self, t3_project):
        """The base path is configurable."""
        options = ParserOptions(trpc_base_path="/trpc/")
        paths = by_path(TrpcExtractor(t3_project, options=options).parse())
        assert "/trpc/auth.login" in paths

    def test_requires_tsconfig(self, make_project):
        """Without a tsconfig no procedures are reported."""
        root = make_project({"src/server/api/root.ts": ROOT_ROUTER}, dependencies=TRPC, tsconfig=False)
        assert TrpcExtractor(root).parse() == []

    def test_standalone_user_router(self, make_project):
        """A root router named after a plain word keeps that word as its prefix."""
        root = make_project({
            "src/server/api/routers/user.ts": (
                "export const userRouter = createTRPCRouter({\n"
                "  list: publicProcedure.query(() => []),\n"
                "});\n"
            ),
        }, dependencies=TRPC)
        assert [route.path for route in TrpcExtractor(root).parse()] == ["/api/trpc/user.list"]

    def test_failing_file_is_skipped_with_warning(self, t3_project, monkeypatch, caplog):
        """An error while scanning one file is logged with its path and the rest still parse."""
        scan_file = TrpcExtractor.scan_file

        def failing_scan_file(self, source_file, resolver, schemas, result):
            if source_file.path.name == "root.ts":
                raise RuntimeError("unexpected node")
            return scan_file(self, source_file, resolver, schemas, result)

        monkeypatch.setattr(TrpcExtractor, "scan_file", failing_scan_file)
        with caplog.at_level(logging.WARNING, logger="routescope"):
            routes = TrpcExtractor(t3_project).parse()

        assert {route.path for route in routes} == {"/api/trpc/auth.login", "/api/trpc/auth.session"}
        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert any("src/server/api/root.ts" in message and "unexpected node" in message for message in warnings)

"""Tests for the concurrent detection and extraction engine."""

import asyncio

import pytest

from routescope import (
    ParserOptions,
    RouteType,
    detect_and_parse_routes,
    detect_frameworks,
    detect_routes,
    has_any_project_type,
    scan_project,
)
from routescope.extractors.next_app import NextAppExtractor

MIXED_FILES = {
    "app/api/hello/route.ts": "export async function GET() { return Response.json({}); }\n",
    "app/api/trpc/[trpc]/route.ts": (
        "import { fetchRequestHandler } from '@trpc/server/adapters/fetch';\n"
        "const handler = (req: Request) => fetchRequestHandler({ req });\n"
        "export { handler as GET, handler as POST };\n"
    ),
    "pages/api/legacy.ts": "export default function handler(req, res) { res.json({}); }\n",
    "src/server/api/routers/post.ts": (
        "export const postRouter = createTRPCRouter({\n"
        "  list: publicProcedure.query(() => []),\n"
        "});\n"
    ),
}

MIXED_DEPENDENCIES = {"next": "14.1.0", "@trpc/server": "10.45.0"}


@pytest.fixture
def mixed_project(make_project):
    return make_project(MIXED_FILES, dependencies=MIXED_DEPENDENCIES)


class TestDetection:
    """Framework detection map."""

    def test_detect_routes(self, mixed_project):
        """All four keys are present, in extraction order."""
        detection = asyncio.run(detect_routes(mixed_project))
        assert detection == {"nextApp": True, "nextPages": True, "trpc": True, "nestjs": False}
        assert list(detection) == ["nextApp", "nextPages", "trpc", "nestjs"]

    def test_sync_wrapper(self, mixed_project):
        """detect_frameworks matches the async detector."""
        assert detect_frameworks(mixed_project) == asyncio.run(detect_routes(mixed_project))

    def test_has_any_project_type(self, make_project, tmp_path_factory):
        """True when something is declared, False for a bare directory."""
        assert asyncio.run(has_any_project_type(make_project({}, dependencies={"@nestjs/core": "10"})))
        assert not asyncio.run(has_any_project_type(tmp_path_factory.mktemp("bare")))


class TestDetectAndParse:
    """End-to-end extraction."""

    def test_concatenation_order(self, mixed_project):
        """Results are grouped App, Pages, tRPC; adapter routes are skipped."""
        routes = asyncio.run(detect_and_parse_routes(mixed_project))
        assert [(r.type, r.method, r.path) for r in routes] == [
            ("nextjs-app", "GET", "/api/hello"),
            ("nextjs-page", "GET", "/api/legacy"),
            ("trpc", "GET", "/api/trpc/post.list"),
        ]

    def test_framework_filter(self, mixed_project):
        """Restricting frameworks runs only those extractors."""
        routes = asyncio.run(detect_and_parse_routes(mixed_project, frameworks=[RouteType.TRPC]))
        assert [r.type for r in routes] == ["trpc"]

    def test_filter_still_needs_detection(self, mixed_project):
        """An undetected framework isn't run even when requested."""
        assert asyncio.run(detect_and_parse_routes(mixed_project, frameworks=[RouteType.NESTJS])) == []

    def test_missing_root(self, tmp_path):
        """A missing directory yields an empty result."""
        result = scan_project(tmp_path / "missing")
        assert result.routes == []
        assert result.detection == {}

    def test_nothing_detected(self, tmp_path):
        """No manifest means every key is False and no routes."""
        result = scan_project(tmp_path)
        assert not any(result.detection.values())
        assert result.routes == []

    def test_failing_extractor_isolated(self, mixed_project, monkeypatch):
        """One extractor blowing up doesn't lose the others."""

        def boom(self):
            raise RuntimeError("boom")

        monkeypatch.setattr(NextAppExtractor, "parse", boom)
        types = {r.type for r in asyncio.run(detect_and_parse_routes(mixed_project))}
        assert types == {"nextjs-page", "trpc"}

    def test_output_target_receives_logs(self, mixed_project):
        """Log lines reach a configured output target."""

        class Channel:
            def __init__(self):
                self.lines = []

            def append_line(self, line):
                self.lines.append(line)

        channel = Channel()
        scan_project(mixed_project, ParserOptions(output=channel))
        assert any("routes" in line for line in channel.lines)


class TestScanResult:
    """Scan summaries."""

    def test_summary(self, mixed_project):
        """Counts by type and method."""
        result = scan_project(mixed_project)
        summary = result.summary()
        assert summary["total_routes"] == 3
        assert summary["frameworks"] == ["nextApp", "nextPages", "trpc"]
        assert summary["by_type"] == {"nextjs-app": 1, "nextjs-page": 1, "trpc": 1}
        assert summary["by_method"] == {"GET": 3}

    def test_to_dict_sorted(self, mixed_project):
        """Serialized routes are sorted by path."""
        paths = [r["path"] for r in scan_project(mixed_project).to_dict()["routes"]]
        assert paths == sorted(paths)

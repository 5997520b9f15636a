"""Tests for the RouteScope command line interface."""

import json
import logging

import pytest
import yaml
from click.testing import CliRunner

from routescope import __version__
from routescope.cli import main

NEXT_AND_TRPC = {"next": "14.0.0", "@trpc/server": "10.0.0"}

FILES = {
    "app/api/users/[id]/route.ts": "export async function GET() { return Response.json({}); }\n",
    "src/server/api/routers/auth.ts": (
        "export const authRouter = createTRPCRouter({\n"
        "  login: publicProcedure\n"
        "    .input(z.object({ email: z.string() }))\n"
        "    .mutation(({ input }) => input),\n"
        "});\n"
    ),
}


@pytest.fixture(autouse=True)
def restore_package_logger():
    """The CLI reconfigures the package logger; put it back afterwards."""
    package_logger = logging.getLogger("routescope")
    handlers, level, propagate = list(package_logger.handlers), package_logger.level, package_logger.propagate
    yield
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate


@pytest.fixture
def project(make_project):
    return make_project(FILES, dependencies=NEXT_AND_TRPC)


class TestCliBasics:
    """Version, info and argument validation."""

    def test_version(self):
        """--version prints the package version."""
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_info(self):
        """info lists capabilities."""
        result = CliRunner().invoke(main, ["info"])
        assert result.exit_code == 0
        assert "RouteScope" in result.output

    def test_missing_path(self, tmp_path):
        """A non-existent project path is a usage error."""
        result = CliRunner().invoke(main, ["scan", str(tmp_path / "nope")])
        assert result.exit_code == 2


class TestDetectCommand:
    """routescope detect."""

    def test_detect(self, project):
        """Each framework key is listed."""
        result = CliRunner().invoke(main, ["detect", str(project)])
        assert result.exit_code == 0
        for key in ("nextApp", "nextPages", "trpc", "nestjs"):
            assert key in result.output


class TestScanCommand:
    """routescope scan."""

    def test_json_stdout(self, project):
        """JSON goes to stdout undecorated."""
        result = CliRunner().invoke(main, ["scan", str(project), "-f", "json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [(r["method"], r["path"]) for r in data["routes"]] == [
            ("POST", "/api/trpc/auth.login"),
            ("GET", "/api/users/:id"),
        ]

    def test_framework_filter(self, project):
        """--framework narrows the scan."""
        result = CliRunner().invoke(main, ["scan", str(project), "-f", "json", "--framework", "trpc"])
        assert result.exit_code == 0
        assert {r["type"] for r in json.loads(result.stdout)["routes"]} == {"trpc"}

    def test_yaml_file(self, project, tmp_path):
        """YAML export to a file."""
        output = tmp_path / "routes.yaml"
        result = CliRunner().invoke(main, ["scan", str(project), "-f", "yaml", "-o", str(output)])
        assert result.exit_code == 0
        data = yaml.safe_load(output.read_text())
        assert set(data["routes"]) == {"nextjs-app", "trpc"}

    def test_config_file(self, project):
        """A routescope.yaml at the root is picked up."""
        (project / "routescope.yaml").write_text("trpc:\n  base_path: /rpc\n")
        result = CliRunner().invoke(main, ["scan", str(project), "-f", "json", "--framework", "trpc"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["routes"][0]["path"] == "/rpc/auth.login"

    def test_table(self, project):
        """The default table lists methods."""
        result = CliRunner().invoke(main, ["scan", str(project)])
        assert result.exit_code == 0
        assert "GET" in result.output
        assert "POST" in result.output

    def test_nothing_detected(self, tmp_path):
        """Projects without known frameworks say so."""
        result = CliRunner().invoke(main, ["scan", str(tmp_path)])
        assert result.exit_code == 0
        assert "No supported frameworks detected" in result.output


class TestAnalyzeCommand:
    """routescope analyze."""

    def test_findings_and_strict(self, project):
        """Error findings only fail the run with --strict."""
        relaxed = CliRunner().invoke(main, ["analyze", str(project)])
        assert relaxed.exit_code == 0
        assert "Errors: 1" in relaxed.output

        strict = CliRunner().invoke(main, ["analyze", str(project), "--strict"])
        assert strict.exit_code == 1

    def test_findings_file(self, project, tmp_path):
        """--output writes findings as JSON."""
        output = tmp_path / "findings.json"
        result = CliRunner().invoke(main, ["analyze", str(project), "-o", str(output)])
        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert data["findings"]["summary"]["error"] >= 1
        assert data["metadata"]["name"] == project.name

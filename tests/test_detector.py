"""Tests for RouteScope framework detection and scan options."""

import json
import logging

import pytest

from routescope.core.detector import (
    DETECTORS,
    has_workspace_dependency,
    is_nestjs_project,
    is_next_app_project,
    is_next_pages_project,
    is_trpc_project,
    read_declared_dependencies,
)
from routescope.core.options import (
    DEFAULT_TRPC_BASE_PATH,
    ParserOptions,
    find_config_file,
    load_config,
)


def write_manifest(root, dependencies=None, dev_dependencies=None):
    data = {"name": "app"}
    if dependencies is not None:
        data["dependencies"] = dependencies
    if dev_dependencies is not None:
        data["devDependencies"] = dev_dependencies
    (root / "package.json").write_text(json.dumps(data))


class TestFrameworkDetector:
    """Dependency-marker detection."""

    def test_next_detected_for_both_routers(self, tmp_path):
        """`next` enables App and Pages Router extraction."""
        write_manifest(tmp_path, {"next": "14.0.0", "react": "18.2.0"})
        assert is_next_app_project(tmp_path)
        assert is_next_pages_project(tmp_path)
        assert not is_trpc_project(tmp_path)
        assert not is_nestjs_project(tmp_path)

    def test_dev_dependencies_count(self, tmp_path):
        """devDependencies are checked too."""
        write_manifest(tmp_path, {}, {"@trpc/server": "^10.0.0"})
        assert is_trpc_project(tmp_path)

    def test_nestjs_markers(self, tmp_path):
        """Either NestJS package marks the project."""
        write_manifest(tmp_path, {"@nestjs/common": "^10.0.0"})
        assert is_nestjs_project(tmp_path)

    def test_missing_manifest(self, tmp_path):
        """No package.json means nothing is detected."""
        assert not any(detector.detect(tmp_path) for detector in DETECTORS)

    def test_malformed_manifest(self, tmp_path):
        """Invalid JSON is treated as framework absent."""
        (tmp_path / "package.json").write_text("{ not json")
        assert not has_workspace_dependency(tmp_path, ["next"])

    def test_non_object_manifest(self, tmp_path):
        """A manifest that isn't an object declares nothing."""
        (tmp_path / "package.json").write_text("[]")
        assert read_declared_dependencies(tmp_path) == {}

    def test_detection_keys(self):
        """Detectors expose the detection map keys in extraction order."""
        assert [d.key for d in DETECTORS] == ["nextApp", "nextPages", "trpc", "nestjs"]


class TestParserOptions:
    """Options defaults, YAML loading and logging."""

    def test_defaults(self):
        """Defaults match the documented values."""
        options = ParserOptions()
        assert options.trpc_base_path == DEFAULT_TRPC_BASE_PATH
        assert options.max_type_depth == 3
        assert "createTRPCRouter" in options.router_factories
        assert options.bootstrap_files == ["src/main.ts", "main.ts"]

    def test_from_dict(self, tmp_path):
        """Nested YAML sections map onto fields; relative tsconfig resolves to the base dir."""
        options = ParserOptions.from_dict(
            {
                "tsconfig": "tsconfig.app.json",
                "max_type_depth": 5,
                "trpc": {"base_path": "/trpc", "router_factories": ["makeRouter"]},
                "nestjs": {"bootstrap_files": ["apps/api/main.ts"]},
                "unknown_key": True,
            },
            base_dir=tmp_path,
        )
        assert options.tsconfig_path == tmp_path / "tsconfig.app.json"
        assert options.max_type_depth == 5
        assert options.trpc_base_path == "/trpc"
        assert options.router_factories == ["makeRouter"]
        assert options.bootstrap_files == ["apps/api/main.ts"]

    def test_load_config(self, tmp_path):
        """Config files at the project root are discovered and loaded."""
        (tmp_path / ".routescope.yaml").write_text("exclude:\n  - '**/legacy/**'\n")
        path = find_config_file(tmp_path)
        assert path is not None
        assert load_config(path).exclude == ["**/legacy/**"]

    def test_load_config_missing(self, tmp_path):
        """A missing config file raises."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_load_config_not_mapping(self, tmp_path):
        """A config must be a mapping."""
        path = tmp_path / "routescope.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_config(path)

    def test_output_target_receives_lines(self):
        """Records go to the output target with level and component."""

        class Channel:
            def __init__(self):
                self.lines = []

            def append_line(self, line):
                self.lines.append(line)

        channel = Channel()
        options = ParserOptions(output=channel)
        options.get_logger("nextjs-app").warning("no tsconfig")
        assert len(channel.lines) == 1
        assert channel.lines[0].startswith("[WARNING] [")
        assert channel.lines[0].endswith("nextjs-app] no tsconfig")

    def test_output_loggers_not_registered(self):
        """Output-target loggers live with their options, not in the logging registry."""

        class Channel:
            def __init__(self):
                self.lines = []

            def append_line(self, line):
                self.lines.append(line)

        base = logging.getLogger("host.extension")
        registered = set(logging.Logger.manager.loggerDict)
        channel = Channel()
        options = ParserOptions(logger=base, output=channel)
        component = options.get_logger("trpc")

        assert options.get_logger("trpc") is component
        assert component.name == "host.extension.trpc"
        assert component.parent is base
        assert len(component.handlers) == 1
        assert set(logging.Logger.manager.loggerDict) == registered

        component.info("scanning")
        assert channel.lines == ["[INFO] [host.extension.trpc] scanning"]

    def test_child_of_supplied_logger(self):
        """Component loggers are children of the supplied logger."""
        base = logging.getLogger("host.extension")
        options = ParserOptions(logger=base)
        assert options.get_logger("trpc").name == "host.extension.trpc"

"""Shared fixtures for RouteScope tests."""

import json
from pathlib import Path
from typing import Dict

import pytest


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Write ``{relative path: content}`` under root, creating directories."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def make_project(tmp_path):
    """
    Build a throwaway project.

    Usage:
        root = make_project({"app/api/route.ts": "..."}, dependencies={"next": "14.0.0"})
    """

    def _make(files: Dict[str, str], dependencies: Dict[str, str] = None, tsconfig: bool = True):
        manifest = {"name": "fixture", "dependencies": dependencies or {}}
        (tmp_path / "package.json").write_text(json.dumps(manifest))
        if tsconfig:
            (tmp_path / "tsconfig.json").write_text(json.dumps({
                "compilerOptions": {"baseUrl": ".", "paths": {"@/*": ["src/*"]}},
            }))
        return write_tree(tmp_path, files)

    return _make

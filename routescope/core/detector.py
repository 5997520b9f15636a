"""
Framework Detector for RouteScope

Decides which extractors to run by looking for dependency markers in the
project's package.json. Only declared dependencies and devDependencies are
checked: no semver evaluation, no transitive resolution.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from routescope.core.routes import RouteType

logger = logging.getLogger(__name__)


MANIFEST_FILENAME = "package.json"
DEPENDENCY_SECTIONS = ("dependencies", "devDependencies")


def read_declared_dependencies(root_dir: Path) -> Dict[str, str]:
    """
    Read the declared dependencies of a project.

    Raises:
        OSError: If package.json can't be read
        ValueError: If package.json isn't valid JSON
    """
    manifest = Path(root_dir) / MANIFEST_FILENAME
    with open(manifest, "r", encoding="utf-8") as f:
        data = json.load(f)

    declared = {}
    if not isinstance(data, dict):
        return declared
    for section in DEPENDENCY_SECTIONS:
        deps = data.get(section)
        if isinstance(deps, dict):
            declared.update(deps)
    return declared


def has_workspace_dependency(root_dir: Path, names: List[str]) -> bool:
    """True if any of ``names`` is declared. Never raises."""
    try:
        declared = read_declared_dependencies(root_dir)
    except (OSError, ValueError) as e:
        logger.debug(f"No usable {MANIFEST_FILENAME} in {root_dir}: {e}")
        return False
    return any(name in declared for name in names)


@dataclass
class FrameworkDetector:
    """
    Detects one framework from package.json.

    Usage:
        detector = FrameworkDetector(RouteType.TRPC, ["@trpc/server"])
        if detector.detect(root):
            ...
    """
    route_type: RouteType
    dependency_names: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return DETECTION_KEYS[self.route_type]

    def detect(self, root_dir: Path) -> bool:
        found = has_workspace_dependency(root_dir, self.dependency_names)
        if found:
            logger.debug(f"Detected {self.route_type.value} in {root_dir}")
        return found


# Keys of the detection map, in extraction order
DETECTION_KEYS = {
    RouteType.NEXTJS_APP: "nextApp",
    RouteType.NEXTJS_PAGE: "nextPages",
    RouteType.TRPC: "trpc",
    RouteType.NESTJS: "nestjs",
}

DETECTORS = [
    FrameworkDetector(RouteType.NEXTJS_APP, ["next"]),
    FrameworkDetector(RouteType.NEXTJS_PAGE, ["next"]),
    FrameworkDetector(RouteType.TRPC, ["@trpc/server"]),
    FrameworkDetector(RouteType.NESTJS, ["@nestjs/core", "@nestjs/common"]),
]


def get_detector(route_type: RouteType) -> FrameworkDetector:
    for detector in DETECTORS:
        if detector.route_type == route_type:
            return detector
    raise KeyError(route_type)


def is_next_app_project(root_dir: Path) -> bool:
    return get_detector(RouteType.NEXTJS_APP).detect(root_dir)


def is_next_pages_project(root_dir: Path) -> bool:
    return get_detector(RouteType.NEXTJS_PAGE).detect(root_dir)


def is_trpc_project(root_dir: Path) -> bool:
    return get_detector(RouteType.TRPC).detect(root_dir)


def is_nestjs_project(root_dir: Path) -> bool:
    return get_detector(RouteType.NESTJS).detect(root_dir)

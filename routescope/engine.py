"""
RouteScope Engine - run detection and extraction across frameworks.

Detectors and extractors are independent per framework, so each one runs
in its own worker thread and the results are gathered:

    detection = await detect_routes(root)
    # {"nextApp": True, "nextPages": False, "trpc": True, "nestjs": False}

    routes = await detect_and_parse_routes(root)

Routes are concatenated in the fixed order nextjs-app, nextjs-page, trpc,
nestjs. Within one framework the order follows project traversal; call
``sort_routes`` for a deterministic listing.

Synchronous callers use ``scan_project``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Type

from routescope.core.detector import DETECTORS, FrameworkDetector
from routescope.core.options import ParserOptions
from routescope.core.routes import ParsedRoute, RouteType, sort_routes
from routescope.extractors.base import RouteExtractor, RoutePathCache
from routescope.extractors.nestjs import NestJsExtractor
from routescope.extractors.next_app import NextAppExtractor
from routescope.extractors.next_pages import NextPagesExtractor
from routescope.extractors.trpc import TrpcExtractor

logger = logging.getLogger(__name__)


# Concatenation order of extractor results
EXTRACTORS: Dict[RouteType, Type[RouteExtractor]] = {
    RouteType.NEXTJS_APP: NextAppExtractor,
    RouteType.NEXTJS_PAGE: NextPagesExtractor,
    RouteType.TRPC: TrpcExtractor,
    RouteType.NESTJS: NestJsExtractor,
}


@dataclass
class ScanResult:
    """Detection map plus the routes found for one project root."""
    root_dir: Path
    detection: Dict[str, bool] = field(default_factory=dict)
    routes: List[ParsedRoute] = field(default_factory=list)

    def summary(self) -> Dict:
        by_type: Dict[str, int] = {}
        by_method: Dict[str, int] = {}
        for route in self.routes:
            by_type[route.type] = by_type.get(route.type, 0) + 1
            by_method[route.method] = by_method.get(route.method, 0) + 1
        return {
            "root": str(self.root_dir),
            "frameworks": [key for key, found in self.detection.items() if found],
            "total_routes": len(self.routes),
            "by_type": by_type,
            "by_method": by_method,
        }

    def to_dict(self) -> Dict:
        return {
            "summary": self.summary(),
            "detection": self.detection,
            "routes": [route.to_dict() for route in sort_routes(self.routes)],
        }


def _run_detector(detector: FrameworkDetector, root_dir: Path) -> bool:
    return detector.detect(root_dir)


async def detect_routes(root_dir: Path, options: Optional[ParserOptions] = None) -> Dict[str, bool]:
    """
    Run every framework detector concurrently.

    Returns:
        {"nextApp": bool, "nextPages": bool, "trpc": bool, "nestjs": bool}
    """
    options = options or ParserOptions()
    log = options.get_logger("engine")
    root_dir = Path(root_dir)

    results = await asyncio.gather(
        *(asyncio.to_thread(_run_detector, detector, root_dir) for detector in DETECTORS)
    )
    detection = {detector.key: bool(found) for detector, found in zip(DETECTORS, results)}
    found = [key for key, value in detection.items() if value]
    log.debug(f"Detected frameworks in {root_dir}: {', '.join(found) or 'none'}")
    return detection


async def has_any_project_type(root_dir: Path, options: Optional[ParserOptions] = None) -> bool:
    """Whether any supported framework is declared in the project."""
    detection = await detect_routes(root_dir, options)
    return any(detection.values())


def create_extractor(route_type: RouteType, root_dir: Path,
                     options: Optional[ParserOptions] = None,
                     cache: Optional[RoutePathCache] = None) -> RouteExtractor:
    return EXTRACTORS[route_type](root_dir, options=options, cache=cache)


async def detect_and_parse_routes(
    root_dir: Path,
    options: Optional[ParserOptions] = None,
    frameworks: Optional[List[RouteType]] = None,
) -> List[ParsedRoute]:
    """
    Detect frameworks, then extract routes for each detected one concurrently.

    Args:
        root_dir: Project root
        options: Parser options shared by every extractor
        frameworks: Restrict to these frameworks (still subject to detection)

    Returns:
        Concatenated routes; [] on any failure
    """
    result = await scan_project_async(root_dir, options, frameworks)
    return result.routes


async def scan_project_async(
    root_dir: Path,
    options: Optional[ParserOptions] = None,
    frameworks: Optional[List[RouteType]] = None,
) -> ScanResult:
    options = options or ParserOptions()
    log = options.get_logger("engine")
    root_dir = Path(root_dir).resolve()
    result = ScanResult(root_dir=root_dir)

    if not root_dir.is_dir():
        log.warning(f"Not a directory: {root_dir}")
        return result

    try:
        result.detection = await detect_routes(root_dir, options)
    except Exception as e:
        log.error(f"Framework detection failed: {e}", exc_info=True)
        return result

    selected = []
    for detector in DETECTORS:
        if not result.detection.get(detector.key):
            continue
        if frameworks and detector.route_type not in frameworks:
            continue
        selected.append(detector.route_type)

    if not selected:
        log.info(f"No supported frameworks detected in {root_dir}")
        return result

    # One path cache per invocation, shared by this scan's extractors
    cache = RoutePathCache()
    extractors = [create_extractor(route_type, root_dir, options, cache) for route_type in selected]
    outputs = await asyncio.gather(
        *(asyncio.to_thread(extractor.parse) for extractor in extractors),
        return_exceptions=True,
    )

    for extractor, output in zip(extractors, outputs):
        if isinstance(output, BaseException):
            log.error(f"{extractor.name} extraction failed: {output}")
            continue
        result.routes.extend(output)

    log.info(f"Found {len(result.routes)} routes in {root_dir}")
    return result


def scan_project(
    root_dir: Path,
    options: Optional[ParserOptions] = None,
    frameworks: Optional[List[RouteType]] = None,
) -> ScanResult:
    """
    Synchronous scan: detection map plus routes.

    Usage:
        result = scan_project("/path/to/project")
        for route in sort_routes(result.routes):
            print(route.method, route.path)
    """
    return asyncio.run(scan_project_async(root_dir, options, frameworks))


def detect_frameworks(root_dir: Path, options: Optional[ParserOptions] = None) -> Dict[str, bool]:
    """Synchronous wrapper around ``detect_routes``."""
    return asyncio.run(detect_routes(root_dir, options))

"""
Route Extractor Base for RouteScope

Every framework extractor follows the same two-strategy shape:

    try_structured_extraction()   syntax-tree analysis, needs a tsconfig
    fallback_regex_extraction()   best-effort text matching (optional)

``parse()`` is the public entry point and never raises: a missing tsconfig
switches to the fallback, any other failure is logged and yields [].
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from routescope.core.detector import get_detector
from routescope.core.options import ParserOptions
from routescope.core.parser import SourceFile
from routescope.core.routes import ParsedRoute, RouteHandler, RouteNormalizer, RouteType
from routescope.core.scanner import ProjectLoader, SourceProject

logger = logging.getLogger(__name__)


class RouteScopeError(Exception):
    """Base class for RouteScope errors."""


class ConfigurationMissingError(RouteScopeError):
    """No project configuration file could be found."""


class RoutePathCache:
    """
    Memoized path derivations keyed by (root, file).

    Entries remember the file's mtime and are recomputed when it changes.
    One cache belongs to one engine invocation.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], Tuple[Optional[float], str]] = {}

    def __len__(self):
        return len(self._entries)

    def get_or_compute(self, root_dir: Path, file_path: Path, compute: Callable[[], str]) -> str:
        key = (str(Path(root_dir).resolve()), str(Path(file_path).resolve()))
        try:
            mtime = os.stat(file_path).st_mtime
        except OSError:
            mtime = None

        cached = self._entries.get(key)
        if cached is not None and cached[0] == mtime:
            return cached[1]

        value = compute()
        self._entries[key] = (mtime, value)
        return value

    def clear(self):
        self._entries.clear()


class RouteExtractor(ABC):
    """
    Base class for framework route extractors.

    Usage:
        extractor = NextAppExtractor('/path/to/project')
        if extractor.detect():
            routes = extractor.parse()
    """

    route_type: RouteType
    file_patterns: List[str] = []
    # Whether a text-only mode exists for projects without a tsconfig
    supports_fallback = True

    def __init__(
        self,
        root_dir: Path,
        options: Optional[ParserOptions] = None,
        cache: Optional[RoutePathCache] = None,
    ):
        self.root_dir = Path(root_dir).resolve()
        self.options = options or ParserOptions()
        self.cache = cache if cache is not None else RoutePathCache()
        self.logger = self.options.get_logger(self.route_type.value)
        self.normalizer = RouteNormalizer()

    @property
    def name(self) -> str:
        return self.route_type.value

    def detect(self) -> bool:
        """Whether this framework is declared in package.json. Never raises."""
        return get_detector(self.route_type).detect(self.root_dir)

    def create_loader(self) -> ProjectLoader:
        return ProjectLoader(
            self.root_dir,
            tsconfig_path=self.options.tsconfig_path,
            exclude_patterns=self.options.exclude,
        )

    def require_tsconfig(self, loader: ProjectLoader) -> Path:
        path = loader.find_tsconfig()
        if path is None:
            raise ConfigurationMissingError(f"No tsconfig.json found in {self.root_dir}")
        self.logger.debug(f"Using tsconfig at {path}")
        return path

    def relative_path(self, path: Path) -> str:
        try:
            return Path(path).resolve().relative_to(self.root_dir).as_posix()
        except ValueError:
            return Path(path).as_posix()

    def derive_path(self, file_path: Path, compute: Callable[[str], str]) -> str:
        """Route path for a file, memoized in the path cache."""
        rel = self.relative_path(file_path)
        return self.cache.get_or_compute(self.root_dir, file_path, lambda: compute(rel))

    @abstractmethod
    def try_structured_extraction(self) -> List[RouteHandler]:
        """Syntax-tree extraction. Raises ConfigurationMissingError without a tsconfig."""

    def fallback_regex_extraction(self) -> List[RouteHandler]:
        """Degraded extraction used when no tsconfig exists."""
        return []

    def extract_handlers(self) -> List[RouteHandler]:
        try:
            return self.try_structured_extraction()
        except ConfigurationMissingError as e:
            if not self.supports_fallback:
                self.logger.warning(f"{e}; cannot parse {self.name} routes without it")
                return []
            self.logger.warning(f"{e}; using basic {self.name} extraction")
            return self.fallback_regex_extraction()

    def parse(self) -> List[ParsedRoute]:
        """Extract and normalize routes. Returns [] on any failure."""
        try:
            handlers = self.extract_handlers()
            routes = self.normalizer.normalize_all(handlers)
        except Exception as e:
            self.logger.error(f"Failed to parse {self.name} routes: {e}", exc_info=True)
            return []
        self.logger.info(f"Parsed {len(routes)} {self.name} routes")
        return routes

    def collect_per_file(
        self,
        files: Iterable[SourceFile],
        handle: Callable[[SourceFile], List[RouteHandler]],
    ) -> List[RouteHandler]:
        """Run ``handle`` on each file; a failing file is logged and skipped."""
        handlers = []
        for source_file in files:
            try:
                handlers.extend(handle(source_file))
            except Exception as e:
                self.logger.warning(f"Skipping {self.relative_path(source_file.path)}: {e}")
        return handlers

    def iter_project_files(self, project: SourceProject,
                           accept: Callable[[str], bool]) -> Iterable[SourceFile]:
        """Parsed project files whose root-relative path passes ``accept``."""
        for path in project.file_paths():
            if not accept(self.relative_path(path)):
                continue
            source_file = project.get_source_file(path)
            if source_file is not None:
                yield source_file

"""
Project Loader for RouteScope

Discovers the TypeScript project configuration (tsconfig.json / jsconfig.json),
expands its include/exclude/files settings plus framework-specific glob
patterns, and builds a SourceProject: an in-memory set of lazily parsed
syntax trees rooted at the project directory.

Only files physically under the project root are retained, even when the
configuration references files elsewhere.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from routescope.core.parser import SOURCE_EXTENSIONS, SourceFile, TypeScriptParser

logger = logging.getLogger(__name__)


CONFIG_CANDIDATES = ["tsconfig.json", "jsconfig.json"]

TS_EXTENSIONS = {".ts", ".tsx", ".mts", ".cts"}
JS_EXTENSIONS = {".js", ".jsx", ".mjs", ".cjs"}

# Suffixes tried, in order, when resolving an import specifier to a file
RESOLVE_SUFFIXES = [".ts", ".tsx", ".mts", ".js", ".jsx", ".mjs"]

_JSONC_TOKENS = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


# ---------------------------------------------------------------------------
# Glob matching
# ---------------------------------------------------------------------------

def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternatives: ``*.{ts,js}`` -> ``*.ts``, ``*.js``."""
    match = re.search(r"\{([^{}]*)\}", pattern)
    if match is None:
        return [pattern]
    expanded = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(pattern[:match.start()] + option + pattern[match.end():]))
    return expanded


def glob_to_regex(pattern: str) -> "re.Pattern":
    """
    Compile a glob into a regex over forward-slash relative paths.

    ``**/`` matches zero or more directories, ``*`` and ``?`` never cross a
    directory boundary.
    """
    pattern = pattern.replace("\\", "/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    parts = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:[^/]+/)*")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


class GlobMatcher:
    """Matches relative paths against a list of (brace-expanded) globs."""

    def __init__(self, patterns: Iterable[str]):
        self.patterns = list(patterns)
        self._regexes = [
            glob_to_regex(expanded)
            for pattern in self.patterns
            for expanded in expand_braces(pattern)
        ]

    def __bool__(self):
        return bool(self._regexes)

    def matches(self, rel_path: str) -> bool:
        rel_path = rel_path.replace("\\", "/")
        return any(regex.match(rel_path) for regex in self._regexes)


def _as_directory_pattern(pattern: str) -> str:
    """tsconfig treats a wildcard-free, extension-free include as a directory."""
    pattern = pattern.rstrip("/")
    last = pattern.split("/")[-1]
    if not any(ch in last for ch in "*?") and "." not in last:
        return f"{pattern}/**/*"
    return pattern


# ---------------------------------------------------------------------------
# tsconfig
# ---------------------------------------------------------------------------

def read_jsonc(path: Path) -> Dict:
    """
    Read a JSON-with-comments file (tsconfig style).

    Raises:
        OSError: If the file can't be read
        ValueError: If it isn't valid JSON after stripping comments
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except ValueError:
        stripped = _JSONC_TOKENS.sub(lambda m: m.group(1) or "", text)
        stripped = _TRAILING_COMMA.sub(r"\1", stripped)
        data = json.loads(stripped)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


@dataclass
class TsConfig:
    """The parts of a tsconfig.json relevant to file discovery and imports."""
    path: Path
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None
    files: Optional[List[str]] = None
    allow_js: bool = False
    base_url: Optional[Path] = None
    paths: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def extensions(self) -> set:
        return TS_EXTENSIONS | JS_EXTENSIONS if self.allow_js else set(TS_EXTENSIONS)

    def effective_include(self) -> List[str]:
        if self.include is not None:
            return [_as_directory_pattern(p) for p in self.include]
        if self.files:
            return []
        return ["**/*"]

    def effective_exclude(self) -> List[str]:
        if self.exclude is not None:
            return [_as_directory_pattern(p) for p in self.exclude]
        return ["node_modules/**", "bower_components/**", "jspm_packages/**"]

    @classmethod
    def load(cls, path: Path, _seen: Optional[set] = None) -> "TsConfig":
        """
        Load a tsconfig, following a relative ``extends`` chain.

        Raises:
            OSError / ValueError: If the file can't be read or parsed
        """
        path = Path(path).resolve()
        seen = _seen or set()
        seen.add(path)
        data = read_jsonc(path)

        parent = None
        extends = data.get("extends")
        if isinstance(extends, str) and extends.startswith("."):
            parent_path = (path.parent / extends)
            if parent_path.suffix != ".json":
                parent_path = parent_path.with_name(parent_path.name + ".json")
            if parent_path.resolve() not in seen and parent_path.exists():
                try:
                    parent = cls.load(parent_path, seen)
                except (OSError, ValueError) as e:
                    logger.debug(f"Ignoring unreadable extended config {parent_path}: {e}")

        options = data.get("compilerOptions") or {}
        config = cls(path=path)

        config.include = data.get("include", parent.include if parent else None)
        config.exclude = data.get("exclude", parent.exclude if parent else None)
        config.files = data.get("files", parent.files if parent else None)
        config.allow_js = bool(options.get("allowJs", parent.allow_js if parent else False))

        if "baseUrl" in options:
            config.base_url = (path.parent / options["baseUrl"]).resolve()
        elif parent is not None:
            config.base_url = parent.base_url

        if "paths" in options and isinstance(options["paths"], dict):
            config.paths = {k: list(v) for k, v in options["paths"].items() if isinstance(v, list)}
            if config.base_url is None:
                config.base_url = path.parent
        elif parent is not None:
            config.paths = dict(parent.paths)
        return config


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

class SourceProject:
    """
    Lazily parsed set of source files under one project root.

    Usage:
        project = ProjectLoader(root).load(["**/app/**/route.{ts,js}"])
        for source_file in project.source_files():
            ...
    """

    def __init__(
        self,
        root_dir: Path,
        tsconfig: Optional[TsConfig] = None,
        parser: Optional[TypeScriptParser] = None,
    ):
        self.root_dir = Path(root_dir).resolve()
        self.tsconfig = tsconfig
        self.parser = parser or TypeScriptParser()
        self._files: Dict[Path, Optional[SourceFile]] = {}
        self._parsed: Dict[Path, Optional[SourceFile]] = {}

    def __len__(self):
        return len(self._files)

    def __contains__(self, path) -> bool:
        return Path(path).resolve() in self._files

    def is_under_root(self, path: Path) -> bool:
        try:
            Path(path).resolve().relative_to(self.root_dir)
        except ValueError:
            return False
        return True

    def relative_path(self, path: Path) -> str:
        """Forward-slash path relative to the project root."""
        try:
            rel = Path(path).resolve().relative_to(self.root_dir)
        except ValueError:
            rel = Path(path)
        return rel.as_posix()

    def add_file(self, path: Path) -> bool:
        path = Path(path).resolve()
        if not self.is_under_root(path):
            logger.debug(f"Ignoring file outside project root: {path}")
            return False
        if path not in self._files:
            self._files[path] = None
        return True

    def add_files(self, paths: Iterable[Path]) -> int:
        return sum(1 for path in paths if self.add_file(path))

    def file_paths(self) -> List[Path]:
        return list(self._files)

    def get_source_file(self, path: Path) -> Optional[SourceFile]:
        """Parse (once) and return a file under the root, or None."""
        path = Path(path).resolve()
        if path in self._parsed:
            return self._parsed[path]
        if not self.is_under_root(path) or not path.is_file():
            return None
        source_file = self.parser.parse_file(path)
        self._parsed[path] = source_file
        if path in self._files:
            self._files[path] = source_file
        return source_file

    def source_files(self) -> Iterator[SourceFile]:
        for path in list(self._files):
            source_file = self.get_source_file(path)
            if source_file is not None:
                yield source_file

    def resolve_module(self, specifier: str, from_file: SourceFile) -> Optional[SourceFile]:
        """
        Resolve an import specifier to a project file.

        Handles relative specifiers, tsconfig ``paths`` aliases and
        ``baseUrl``-relative specifiers. Packages resolve to None.
        """
        for base in self._module_candidates(specifier, from_file):
            found = self._resolve_file(base)
            if found is not None:
                return self.get_source_file(found)
        return None

    def _module_candidates(self, specifier: str, from_file: SourceFile) -> List[Path]:
        if specifier.startswith("."):
            return [from_file.path.parent / specifier]

        candidates = []
        if self.tsconfig is not None:
            base_url = self.tsconfig.base_url or self.tsconfig.directory
            for alias, targets in self.tsconfig.paths.items():
                if alias.endswith("*"):
                    prefix = alias[:-1]
                    if not specifier.startswith(prefix):
                        continue
                    rest = specifier[len(prefix):]
                    candidates.extend(base_url / t.replace("*", rest) for t in targets)
                elif alias == specifier:
                    candidates.extend(base_url / t for t in targets)
            if self.tsconfig.base_url is not None:
                candidates.append(self.tsconfig.base_url / specifier)
        return candidates

    def _resolve_file(self, base: Path) -> Optional[Path]:
        if base.suffix in SOURCE_EXTENSIONS and base.is_file():
            return base
        if base.suffix in JS_EXTENSIONS:
            # ESM-style "./x.js" specifiers that point at TypeScript sources
            stem = base.with_suffix("")
            for suffix in (".ts", ".tsx"):
                if stem.with_suffix(suffix).is_file():
                    return stem.with_suffix(suffix)
        for suffix in RESOLVE_SUFFIXES:
            candidate = base.with_name(base.name + suffix)
            if candidate.is_file():
                return candidate
        for suffix in RESOLVE_SUFFIXES:
            candidate = base / f"index{suffix}"
            if candidate.is_file():
                return candidate
        return None


class ProjectLoader:
    """
    Build a SourceProject for one framework.

    Features:
    - tsconfig discovery (or explicit override)
    - tsconfig include/exclude/files expansion
    - Framework glob patterns with brace expansion
    - Built-in ignored directories (node_modules, .next, dist, ...)

    Usage:
        loader = ProjectLoader('/path/to/next-app')
        if loader.find_tsconfig() is None:
            ...  # fall back to regex mode
        project = loader.load(["**/app/**/route.{ts,js}"])
    """

    # Directories never descended into
    IGNORE_DIRS = {
        "node_modules",
        ".git",
        ".next",
        "dist",
        "build",
        "coverage",
        "out",
        ".turbo",
        ".vercel",
    }

    def __init__(
        self,
        root_dir: Path,
        tsconfig_path: Optional[Path] = None,
        exclude_patterns: Optional[List[str]] = None,
        parser: Optional[TypeScriptParser] = None,
    ):
        """
        Args:
            root_dir: Project root directory
            tsconfig_path: Explicit config file, absolute or relative to root
            exclude_patterns: Extra globs (relative to root) to leave out
            parser: Shared parser instance
        """
        self.root_dir = Path(root_dir).resolve()
        if not self.root_dir.exists():
            raise ValueError(f"Path does not exist: {root_dir}")
        if not self.root_dir.is_dir():
            raise ValueError(f"Path is not a directory: {root_dir}")

        self.tsconfig_path = Path(tsconfig_path) if tsconfig_path else None
        self.exclude = GlobMatcher(exclude_patterns or [])
        self.parser = parser or TypeScriptParser()

    def find_tsconfig(self) -> Optional[Path]:
        """Locate the project configuration file, or None."""
        if self.tsconfig_path is not None:
            candidate = self.tsconfig_path
            if not candidate.is_absolute():
                candidate = self.root_dir / candidate
            if candidate.is_file():
                return candidate.resolve()
            logger.warning(f"Configured tsconfig not found: {candidate}")
            return None

        for name in CONFIG_CANDIDATES:
            candidate = self.root_dir / name
            if candidate.is_file():
                return candidate
        return None

    def read_tsconfig(self) -> Optional[TsConfig]:
        path = self.find_tsconfig()
        if path is None:
            return None
        try:
            return TsConfig.load(path)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return TsConfig(path=path.resolve())

    def load(self, patterns: Iterable[str], use_tsconfig: bool = True) -> SourceProject:
        """
        Build a project from the tsconfig file set plus ``patterns``.

        Args:
            patterns: Framework globs, relative to the project root
            use_tsconfig: Whether to add the files the tsconfig includes
        """
        tsconfig = self.read_tsconfig()
        project = SourceProject(self.root_dir, tsconfig=tsconfig, parser=self.parser)

        if tsconfig is not None and use_tsconfig:
            added = project.add_files(self.tsconfig_files(tsconfig))
            logger.debug(f"Added {added} files from {tsconfig.path}")

        added = project.add_files(self.find_files(patterns))
        logger.debug(f"Added {added} files matching {list(patterns)}")
        return project

    def find_files(self, patterns: Iterable[str]) -> List[Path]:
        """Source files under the root matching any of ``patterns``."""
        matcher = GlobMatcher(patterns)
        if not matcher:
            return []
        return [
            path for path, rel in self._walk(self.root_dir, self.root_dir)
            if matcher.matches(rel)
        ]

    def tsconfig_files(self, tsconfig: TsConfig) -> List[Path]:
        """Files selected by a tsconfig's files/include/exclude settings."""
        config_dir = tsconfig.directory
        selected = []

        for name in tsconfig.files or []:
            path = (config_dir / name).resolve()
            if path.is_file():
                selected.append(path)

        include = GlobMatcher(tsconfig.effective_include())
        if not include:
            return selected
        exclude = GlobMatcher(tsconfig.effective_exclude())

        # Don't walk above the project root when the config lives there
        walk_base = config_dir
        try:
            self.root_dir.relative_to(config_dir)
            walk_base = self.root_dir
        except ValueError:
            pass

        for path, rel in self._walk(walk_base, config_dir):
            if path.suffix not in tsconfig.extensions:
                continue
            if include.matches(rel) and not exclude.matches(rel):
                selected.append(path)
        return selected

    def _walk(self, base: Path, relative_to: Path) -> Iterator:
        """(absolute path, relative posix path) of candidate source files."""
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if d not in self.IGNORE_DIRS)
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if path.suffix not in SOURCE_EXTENSIONS or filename.endswith(".d.ts"):
                    continue
                if self.exclude and self.exclude.matches(self._root_relative(path)):
                    continue
                try:
                    rel = path.relative_to(relative_to).as_posix()
                except ValueError:
                    continue
                yield path.resolve(), rel

    def _root_relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.root_dir).as_posix()
        except ValueError:
            return path.as_posix()

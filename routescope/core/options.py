"""
RouteScope Options - configuration for a route scan.

Options can be built in code or loaded from a YAML file:

```yaml
tsconfig: tsconfig.app.json
exclude:
  - "**/legacy/**"
max_type_depth: 3
trpc:
  router_factories: [createTRPCRouter, router]
  router_identifier_pattern: "router$"
  include:
    - "src/server/api/**/*.{ts,tsx}"
  base_path: /api/trpc
nestjs:
  bootstrap_files: [src/main.ts, main.ts]
```
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_ROUTER_FACTORIES = ["createTRPCRouter", "router"]
DEFAULT_ROUTER_IDENTIFIER_PATTERN = r"router$"
DEFAULT_TRPC_INCLUDE = ["src/server/api/**/*.{ts,tsx}"]
DEFAULT_TRPC_BASE_PATH = "/api/trpc"
DEFAULT_BOOTSTRAP_FILES = ["src/main.ts", "main.ts"]
DEFAULT_MAX_TYPE_DEPTH = 3

CONFIG_FILENAMES = [
    "routescope.yaml",
    "routescope.yml",
    ".routescope.yaml",
    ".routescope.yml",
]

LOG_FORMAT = "[%(levelname)s] [%(name)s] %(message)s"


class AppendLineHandler(logging.Handler):
    """
    Logging handler that forwards formatted records to an output target.

    The target is any object with an ``append_line(str)`` method, such as an
    editor output channel.
    """

    def __init__(self, output: Any, level: int = logging.NOTSET):
        super().__init__(level)
        self.output = output
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def emit(self, record: logging.LogRecord):
        try:
            self.output.append_line(self.format(record))
        except Exception:
            self.handleError(record)


@dataclass
class ParserOptions:
    """Settings shared by the detectors and extractors of one scan."""
    tsconfig_path: Optional[Path] = None
    logger: Optional[logging.Logger] = None
    output: Optional[Any] = None
    exclude: List[str] = field(default_factory=list)
    max_type_depth: int = DEFAULT_MAX_TYPE_DEPTH
    router_factories: List[str] = field(default_factory=lambda: list(DEFAULT_ROUTER_FACTORIES))
    router_identifier_pattern: str = DEFAULT_ROUTER_IDENTIFIER_PATTERN
    trpc_include: List[str] = field(default_factory=lambda: list(DEFAULT_TRPC_INCLUDE))
    trpc_base_path: str = DEFAULT_TRPC_BASE_PATH
    bootstrap_files: List[str] = field(default_factory=lambda: list(DEFAULT_BOOTSTRAP_FILES))
    _output_loggers: Dict[str, logging.Logger] = field(default_factory=dict, init=False, repr=False,
                                                       compare=False)

    def get_logger(self, name: str) -> logging.Logger:
        """
        Logger for one component of the scan.

        Children of the supplied logger, or of the package logger. When an
        output target is set, records also go to it.
        """
        base = self.logger or logging.getLogger("routescope")
        if self.output is None:
            return base.getChild(name)
        return self._get_output_logger(base, name)

    def _get_output_logger(self, base: logging.Logger, name: str) -> logging.Logger:
        # Not registered with the logging manager; dropped with these options
        component = self._output_loggers.get(name)
        if component is None:
            component = logging.Logger(f"{base.name}.{name}", logging.DEBUG)
            component.parent = base
            component.addHandler(AppendLineHandler(self.output))
            self._output_loggers[name] = component
        return component

    @classmethod
    def from_dict(cls, data: Dict, base_dir: Optional[Path] = None) -> "ParserOptions":
        """Create options from a config dictionary (YAML layout)."""
        data = data or {}
        known = {"tsconfig", "exclude", "max_type_depth", "trpc", "nestjs"}
        for key in data:
            if key not in known:
                logger.debug(f"Ignoring unknown config key: {key}")

        trpc = data.get("trpc") or {}
        nestjs = data.get("nestjs") or {}

        tsconfig_path = None
        if data.get("tsconfig"):
            tsconfig_path = Path(data["tsconfig"])
            if base_dir is not None and not tsconfig_path.is_absolute():
                tsconfig_path = Path(base_dir) / tsconfig_path

        return cls(
            tsconfig_path=tsconfig_path,
            exclude=list(data.get("exclude", [])),
            max_type_depth=int(data.get("max_type_depth", DEFAULT_MAX_TYPE_DEPTH)),
            router_factories=list(trpc.get("router_factories", DEFAULT_ROUTER_FACTORIES)),
            router_identifier_pattern=trpc.get(
                "router_identifier_pattern", DEFAULT_ROUTER_IDENTIFIER_PATTERN
            ),
            trpc_include=list(trpc.get("include", DEFAULT_TRPC_INCLUDE)),
            trpc_base_path=trpc.get("base_path", DEFAULT_TRPC_BASE_PATH),
            bootstrap_files=list(nestjs.get("bootstrap_files", DEFAULT_BOOTSTRAP_FILES)),
        )

    def to_dict(self) -> Dict:
        return {
            "tsconfig": str(self.tsconfig_path) if self.tsconfig_path else None,
            "exclude": self.exclude,
            "max_type_depth": self.max_type_depth,
            "trpc": {
                "router_factories": self.router_factories,
                "router_identifier_pattern": self.router_identifier_pattern,
                "include": self.trpc_include,
                "base_path": self.trpc_base_path,
            },
            "nestjs": {"bootstrap_files": self.bootstrap_files},
        }


def find_config_file(root_dir: Path) -> Optional[Path]:
    """Return the first routescope config file found at the project root."""
    for name in CONFIG_FILENAMES:
        candidate = Path(root_dir) / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path) -> ParserOptions:
    """
    Load scan options from a YAML file.

    Args:
        path: Path to the config YAML file

    Returns:
        ParserOptions object

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info(f"Loading config: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    return ParserOptions.from_dict(data, base_dir=path.parent)

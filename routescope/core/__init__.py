"""
RouteScope Core - routes, options, detection, project loading and parsing
"""

from routescope.core.routes import ParsedRoute, RouteHandler, RouteNormalizer, RouteType
from routescope.core.options import ParserOptions, load_config
from routescope.core.detector import FrameworkDetector, DETECTORS
from routescope.core.scanner import ProjectLoader, SourceProject
from routescope.core.parser import SourceFile, TypeScriptParser
from routescope.core.symbols import SymbolResolver, Resolved, Unresolved
from routescope.core.graph import RouterGraph, RouterMeta, ProcedureNode, MountEdge

__all__ = [
    "ParsedRoute",
    "RouteHandler",
    "RouteNormalizer",
    "RouteType",
    "ParserOptions",
    "load_config",
    "FrameworkDetector",
    "DETECTORS",
    "ProjectLoader",
    "SourceProject",
    "SourceFile",
    "TypeScriptParser",
    "SymbolResolver",
    "Resolved",
    "Unresolved",
    "RouterGraph",
    "RouterMeta",
    "ProcedureNode",
    "MountEdge",
]

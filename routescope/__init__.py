"""
RouteScope - HTTP route discovery for TypeScript projects

Statically analyzes Next.js (App and Pages Router), tRPC and NestJS source
trees and produces a normalized list of endpoints: method, path, headers,
query parameters and a synthesized example body.

Usage:
    routescope detect ~/my_app
    routescope scan ~/my_app --format json
    routescope analyze ~/my_app --strict

Features:
    - Framework detection from package.json
    - tsconfig-aware project loading with path aliases
    - Example bodies from zod schemas and TypeScript types
    - tRPC router composition graph
    - Route lint rules
    - JSON and YAML export
"""

__version__ = "1.0.0"

from routescope.core.options import ParserOptions
from routescope.core.routes import ParsedRoute, RouteType, sort_routes
from routescope.engine import (
    ScanResult,
    detect_and_parse_routes,
    detect_frameworks,
    detect_routes,
    has_any_project_type,
    scan_project,
)

__all__ = [
    "__version__",
    "ParserOptions",
    "ParsedRoute",
    "RouteType",
    "sort_routes",
    "ScanResult",
    "detect_routes",
    "detect_and_parse_routes",
    "detect_frameworks",
    "has_any_project_type",
    "scan_project",
]

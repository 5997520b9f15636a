"""
RouteScope Analyzers

- rules.py - Route and tRPC procedure lint rules
"""

from routescope.analyzers.rules import (
    RouteLintAnalyzer,
    RouteFinding,
    analyze_routes,
    summarize_findings,
)

__all__ = [
    "RouteLintAnalyzer",
    "RouteFinding",
    "analyze_routes",
    "summarize_findings",
]

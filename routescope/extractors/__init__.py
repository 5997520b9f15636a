"""
RouteScope Extractors - one route extractor per framework

- next_app.py - Next.js App Router route handlers
- next_pages.py - Next.js Pages Router API routes
- trpc.py - tRPC procedures and router composition
- nestjs.py - NestJS controllers
"""

from routescope.extractors.base import (
    RouteExtractor,
    RoutePathCache,
    RouteScopeError,
    ConfigurationMissingError,
)
from routescope.extractors.next_app import NextAppExtractor, parse_next_app_routes
from routescope.extractors.next_pages import NextPagesExtractor, parse_next_pages_routes
from routescope.extractors.trpc import TrpcExtractor, parse_trpc_routes, get_trpc_base_path
from routescope.extractors.nestjs import NestJsExtractor, parse_nestjs_routes

__all__ = [
    "RouteExtractor",
    "RoutePathCache",
    "RouteScopeError",
    "ConfigurationMissingError",
    "NextAppExtractor",
    "parse_next_app_routes",
    "NextPagesExtractor",
    "parse_next_pages_routes",
    "TrpcExtractor",
    "parse_trpc_routes",
    "get_trpc_base_path",
    "NestJsExtractor",
    "parse_nestjs_routes",
]

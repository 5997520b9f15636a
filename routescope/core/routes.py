"""
RouteScope Routes - shared route descriptors and normalization.

Every extractor emits RouteHandler records (one per discovered endpoint,
carrying framework-specific flags). RouteNormalizer turns them into the
ParsedRoute shape consumed downstream:
- .http document serializers read path/method/headers/query/body
- tree views read name/path/method
- endpoint merging keys on ParsedRoute.external_id
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

# Verbs whose requests conventionally carry a body
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class RouteType(Enum):
    """Framework that produced a route."""
    NEXTJS_APP = "nextjs-app"
    NEXTJS_PAGE = "nextjs-page"
    TRPC = "trpc"
    NESTJS = "nestjs"


@dataclass
class DynamicSegment:
    """A bracketed path segment bound to a request-time value."""
    name: str
    is_catch_all: bool = False
    is_optional: bool = False

    def to_param(self) -> str:
        if self.is_optional:
            return f":{self.name}*?"
        if self.is_catch_all:
            return f":{self.name}*"
        return f":{self.name}"

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "isCatchAll": self.is_catch_all,
            "isOptional": self.is_optional,
        }


@dataclass
class ParsedRoute:
    """
    Normalized endpoint descriptor.

    headers/query/body are None when nothing was inferred; they are never
    present as empty maps or empty strings.
    """
    name: str
    path: str
    method: str
    file_path: str
    type: str
    handler_name: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    query: Optional[Dict[str, str]] = None
    body: Optional[str] = None

    @property
    def external_id(self) -> str:
        """Stable identity used to match routes against persisted endpoints."""
        handler = self.handler_name or self.path
        return f"{self.type}:{self.file_path}#{handler}:{self.method}"

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization (camelCase, None omitted)."""
        data = {
            "name": self.name,
            "path": self.path,
            "method": self.method,
            "filePath": self.file_path,
            "type": self.type,
            "handlerName": self.handler_name,
            "headers": self.headers,
            "query": self.query,
            "body": self.body,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict) -> "ParsedRoute":
        return cls(
            name=data["name"],
            path=data["path"],
            method=data["method"],
            file_path=data.get("filePath", data.get("file_path", "")),
            type=data["type"],
            handler_name=data.get("handlerName"),
            headers=data.get("headers"),
            query=data.get("query"),
            body=data.get("body"),
        )


@dataclass
class RouteHandler:
    """
    Intermediate per-endpoint record produced by an extractor.

    The usesDb / hasErrorHandling / hasValidation / hasSideEffects flags come
    from regex matches over handler text. They are heuristics for linting,
    not facts about the code.
    """
    route_type: RouteType
    path: str
    method: str
    file_path: str
    name: Optional[str] = None
    handler_name: Optional[str] = None
    line_number: int = 0
    handler_lines: int = 0
    dynamic_segments: List[DynamicSegment] = field(default_factory=list)
    has_middleware: bool = False
    is_server_action: bool = False
    uses_db: bool = False
    has_error_handling: bool = False
    has_validation: bool = False
    has_side_effects: bool = False
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    # GET-destined procedure inputs travel as query parameters
    body_to_query: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.route_type.value,
            "path": self.path,
            "method": self.method,
            "file_path": self.file_path,
            "name": self.name,
            "handler_name": self.handler_name,
            "line_number": self.line_number,
            "handler_lines": self.handler_lines,
            "dynamic_segments": [s.to_dict() for s in self.dynamic_segments],
            "has_middleware": self.has_middleware,
            "is_server_action": self.is_server_action,
            "uses_db": self.uses_db,
            "has_error_handling": self.has_error_handling,
            "has_validation": self.has_validation,
            "has_side_effects": self.has_side_effects,
            "headers": self.headers,
            "query": self.query,
            "body": self.body,
            "metadata": self.metadata,
        }


def normalize_route_path(path: str) -> str:
    """Collapse duplicate slashes, force a leading slash, drop a trailing one."""
    path = re.sub(r"/{2,}", "/", (path or "").strip())
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path


def should_include_body(method: str) -> bool:
    return method.upper() in BODY_METHODS


def convert_body_to_query(body: Optional[str]) -> Dict[str, str]:
    """
    Flatten a JSON example body into query placeholders.

    null becomes "", primitives are stringified, nested objects and arrays
    are dropped.
    """
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        logger.debug("Example body is not valid JSON, no query parameters derived")
        return {}
    if not isinstance(data, dict):
        return {}

    query = {}
    for key, value in data.items():
        if value is None:
            query[key] = ""
        elif isinstance(value, (dict, list)):
            continue
        elif isinstance(value, bool):
            query[key] = "true" if value else "false"
        else:
            query[key] = str(value)
    return query


class RouteNormalizer:
    """
    Assemble intermediate handler records into ParsedRoute descriptors.

    Usage:
        normalizer = RouteNormalizer()
        routes = normalizer.normalize_all(handlers)
    """

    def normalize(self, handler: RouteHandler) -> Optional[ParsedRoute]:
        method = (handler.method or "").upper()
        if method not in HTTP_METHODS:
            logger.debug(f"Skipping {handler.file_path}: unsupported method {handler.method!r}")
            return None

        path = normalize_route_path(handler.path)
        headers = dict(handler.headers)
        query = dict(handler.query)
        body = handler.body

        if handler.body_to_query:
            for key, value in convert_body_to_query(body).items():
                query.setdefault(key, value)
            body = None
        elif not should_include_body(method):
            body = None

        if body is not None and body.strip() in ("", "{}"):
            body = None

        return ParsedRoute(
            name=handler.name or f"{method} {path}",
            path=path,
            method=method,
            file_path=handler.file_path,
            type=handler.route_type.value,
            handler_name=handler.handler_name,
            headers=headers or None,
            query=query or None,
            body=body,
        )

    def normalize_all(self, handlers: Iterable[RouteHandler]) -> List[ParsedRoute]:
        routes = []
        for handler in handlers:
            route = self.normalize(handler)
            if route is not None:
                routes.append(route)
        return routes


def sort_routes(routes: Iterable[ParsedRoute]) -> List[ParsedRoute]:
    """Deterministic ordering by path, then verb order, then file."""
    return sorted(
        routes,
        key=lambda r: (r.path, HTTP_METHODS.index(r.method), r.file_path),
    )

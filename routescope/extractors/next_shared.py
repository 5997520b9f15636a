"""
Shared helpers for the Next.js App Router and Pages Router extractors.

- Dynamic segment parsing ([id], [...slug], [[...slug]])
- Handler analysis: line count, code-smell flags, headers, query names,
  body example from a validation schema
- The exported ``methods`` array convention
- Content/path sniffing for files that belong to other frameworks
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tree_sitter import Node

from routescope.core.parser import (
    FUNCTION_TYPES,
    SourceFile,
    is_function_node,
    iter_descendants,
    node_text,
    span_lines,
    string_value,
    unwrap_expression,
)
from routescope.core.routes import HTTP_METHODS, DynamicSegment
from routescope.core.symbols import SymbolResolver
from routescope.schema.zod import ZodSchemaInterpreter

logger = logging.getLogger(__name__)


DB_PATTERNS = re.compile(r"\b(prisma\.|drizzle\.|db\.|query\(|execute\(|sql`|fetch\()")
VALIDATION_PATTERNS = re.compile(r"\b(zod|yup|joi|validator|validate|schema|parse)", re.IGNORECASE)
ERROR_PATTERNS = re.compile(
    r"(try\s*\{|catch\s*\(|throw\s+new|\.catch\(|NextResponse\.error|\.status\(4|\.status\(5)"
)
MIDDLEWARE_PATTERNS = re.compile(r"middleware|NextRequest|authenticate|authorize|auth\(")

TRPC_MARKERS = re.compile(r"@trpc/server|fetchRequestHandler|createNextApiHandler")
TRPC_HANDLER_CALLS = re.compile(r"fetchRequestHandler|createNextApiHandler")

# Payload CMS mounts its admin UI and REST API as catch-all Next routes
PAYLOAD_PATH_PATTERNS = [
    re.compile(r"(^|/)\(payload\)(/|$)"),
    re.compile(r"(^|/)admin/\[\[\.\.\.[^\]]+\]\](/|$)"),
]

RESERVED_SEGMENTS = {"_app", "_document", "_error", "404", "500"}

METHODS_EXPORT_NAME = "methods"

_OPTIONAL_CATCH_ALL = re.compile(r"^\[\[\.\.\.(.+)\]\]$")
_CATCH_ALL = re.compile(r"^\[\.\.\.(.+)\]$")
_PLAIN_PARAM = re.compile(r"^\[(.+)\]$")

_HEADER_BLOCK = re.compile(r"headers:\s*\{([^}]+)\}")
_HEADER_PAIR = re.compile(r"['\"]([^'\"]+)['\"]\s*:\s*['\"]([^'\"]+)['\"]")
_SET_HEADER = re.compile(r"res\.setHeader\(['\"]([^'\"]+)['\"]\s*,\s*['\"]([^'\"]+)['\"]\)")
_HEADERS_SET = re.compile(r"headers\(\)\.set\(['\"]([^'\"]+)['\"]\s*,\s*['\"]([^'\"]+)['\"]\)")
_JSON_RESPONSE = re.compile(r"NextResponse\.json|Response\.json|\bres(?:\.status\([^)]*\))*\.json\(")

_SEARCH_PARAMS_GET = re.compile(r"searchParams\.get\(['\"]([^'\"]+)['\"]\)")
_REQ_QUERY_ACCESS = re.compile(r"(?:req|context)\.query\.(\w+)")
_SEARCH_PARAMS_DESTRUCTURE = re.compile(r"const\s*\{([^}]+)\}\s*=\s*searchParams")
_REQ_QUERY_DESTRUCTURE = re.compile(r"const\s*\{([^}]+)\}\s*=\s*(?:req|context)\.query")

_SCHEMA_NAME = re.compile(r"schema", re.IGNORECASE)
PARSE_METHODS = {"parse", "safeParse", "parseAsync", "safeParseAsync"}


# ---------------------------------------------------------------------------
# Dynamic segments
# ---------------------------------------------------------------------------

def classify_segment(segment: str) -> Optional[DynamicSegment]:
    """Dynamic segment for one path component, or None for a static one."""
    match = _OPTIONAL_CATCH_ALL.match(segment)
    if match:
        return DynamicSegment(match.group(1), is_catch_all=True, is_optional=True)
    match = _CATCH_ALL.match(segment)
    if match:
        return DynamicSegment(match.group(1), is_catch_all=True)
    match = _PLAIN_PARAM.match(segment)
    if match:
        return DynamicSegment(match.group(1))
    return None


def extract_dynamic_segments(route_path: str) -> List[DynamicSegment]:
    segments = []
    for part in route_path.split("/"):
        segment = classify_segment(part)
        if segment is not None:
            segments.append(segment)
    return segments


def convert_dynamic_segments(route_path: str) -> str:
    """``/users/[id]/[...rest]`` -> ``/users/:id/:rest*``."""
    parts = []
    for part in route_path.split("/"):
        segment = classify_segment(part)
        parts.append(segment.to_param() if segment is not None else part)
    return "/".join(parts)


def is_route_group(segment: str) -> bool:
    return segment.startswith("(") and segment.endswith(")")


def is_parallel_slot(segment: str) -> bool:
    return segment.startswith("@")


# ---------------------------------------------------------------------------
# Framework sniffing
# ---------------------------------------------------------------------------

def is_trpc_handler_content(text: str) -> bool:
    """tRPC's Next adapter lives in route files but isn't a plain route."""
    if not TRPC_MARKERS.search(text):
        return False
    return bool(TRPC_HANDLER_CALLS.search(text))


def is_payload_path(rel_path: str) -> bool:
    return any(pattern.search(rel_path) for pattern in PAYLOAD_PATH_PATTERNS)


def has_middleware(text: str) -> bool:
    return bool(MIDDLEWARE_PATTERNS.search(text))


def is_server_action(text: str) -> bool:
    return "'use server'" in text or '"use server"' in text


# ---------------------------------------------------------------------------
# Text heuristics
# ---------------------------------------------------------------------------

def extract_headers(handler_text: str) -> Dict[str, str]:
    """Headers a handler sets on its response, from known idioms."""
    headers = {}
    for block in _HEADER_BLOCK.finditer(handler_text):
        for key, value in _HEADER_PAIR.findall(block.group(1)):
            headers[key] = value
    for key, value in _SET_HEADER.findall(handler_text):
        headers[key] = value
    for key, value in _HEADERS_SET.findall(handler_text):
        headers[key] = value

    if "Content-Type" not in headers and _JSON_RESPONSE.search(handler_text):
        headers["Content-Type"] = "application/json"
    return headers


def _destructured_keys(block: str) -> List[str]:
    keys = []
    for entry in block.split(","):
        key = entry.strip().split(":")[0].split("=")[0].strip()
        if key and "..." not in key and re.fullmatch(r"[\w$]+", key):
            keys.append(key)
    return keys


def extract_query_params(handler_text: str) -> Dict[str, str]:
    """Query parameter names a handler reads, with empty placeholder values."""
    query = {}
    for name in _SEARCH_PARAMS_GET.findall(handler_text):
        query[name] = ""
    for name in _REQ_QUERY_ACCESS.findall(handler_text):
        query[name] = ""
    for pattern in (_SEARCH_PARAMS_DESTRUCTURE, _REQ_QUERY_DESTRUCTURE):
        for block in pattern.findall(handler_text):
            for key in _destructured_keys(block):
                query[key] = ""
    return query


def extract_method_literal(node: Optional[Node]) -> Optional[str]:
    value = string_value(node)
    if value is None:
        return None
    value = value.upper()
    return value if value in HTTP_METHODS else None


def methods_from_expression(node: Optional[Node], source_file: SourceFile) -> List[str]:
    """
    HTTP verbs listed in an array literal.

    Follows a same-file identifier and unwraps ``as``/``satisfies``/``<T>``
    casts and parentheses.
    """
    node = unwrap_expression(node)
    seen = set()
    while node is not None and node.type == "identifier":
        name = node_text(node)
        if name in seen:
            return []
        seen.add(name)
        decl = source_file.get_variable(name)
        node = unwrap_expression(decl.value) if decl is not None else None

    methods = []
    if node is None or node.type != "array":
        return methods
    for element in node.named_children:
        method = extract_method_literal(element)
        if method and method not in methods:
            methods.append(method)
    return methods


def detect_exported_methods(source_file: SourceFile) -> List[str]:
    """The ``export const methods = [...]`` convention."""
    methods = []
    for decl in source_file.variable_declarations():
        if decl.name != METHODS_EXPORT_NAME or not decl.exported or decl.destructured:
            continue
        for method in methods_from_expression(decl.value, source_file):
            if method not in methods:
                methods.append(method)
    if methods:
        logger.debug(f"Detected exported methods array in {source_file.path.name}: {', '.join(methods)}")
    return methods


# ---------------------------------------------------------------------------
# Handler analysis
# ---------------------------------------------------------------------------

@dataclass
class HandlerAnalysis:
    """Best-effort facts about one handler."""
    handler_lines: int = 0
    uses_db: bool = False
    has_error_handling: bool = False
    has_validation: bool = False
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


def handler_line_count(handler: Node) -> int:
    if handler.type in FUNCTION_TYPES:
        return span_lines(handler)
    if handler.type == "variable_declarator":
        value = handler.child_by_field_name("value")
        return span_lines(value) if value is not None else 0
    return 0


class HandlerAnalyzer:
    """
    Analyze a Next.js handler node (function, declarator or whole file).

    Usage:
        analyzer = HandlerAnalyzer(SymbolResolver(project))
        analysis = analyzer.analyze(handler_node, source_file)
    """

    def __init__(self, resolver: Optional[SymbolResolver] = None):
        self.resolver = resolver or SymbolResolver()
        self.schemas = ZodSchemaInterpreter(self.resolver)

    def analyze(self, handler: Node, source_file: SourceFile) -> HandlerAnalysis:
        text = node_text(handler)
        return HandlerAnalysis(
            handler_lines=handler_line_count(handler),
            uses_db=bool(DB_PATTERNS.search(text)),
            has_error_handling=bool(ERROR_PATTERNS.search(text)),
            has_validation=bool(VALIDATION_PATTERNS.search(text)),
            headers=extract_headers(text),
            query=extract_query_params(text),
            body=self.extract_body(handler, source_file),
        )

    def extract_body(self, handler: Node, source_file: SourceFile) -> Optional[str]:
        """
        Body example from a validation schema used by the handler.

        Looks first at schema-like variables declared inside the handler,
        then at ``<schema>.parse(...)`` / ``.safeParse(...)`` calls.
        """
        for declarator in iter_descendants(handler, {"variable_declarator"}):
            name_node = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            if name_node is None or value is None:
                continue
            name = node_text(name_node)
            value_text = node_text(value)
            if _SCHEMA_NAME.search(name) or value_text.startswith("z.") or "z.object" in value_text:
                body = self.schemas.extract_body(value, source_file)
                if body and body != "{}":
                    logger.debug(f"Found schema body example in variable {name}")
                    return body

        for call in iter_descendants(handler, {"call_expression"}):
            function = call.child_by_field_name("function")
            if function is None or function.type != "member_expression":
                continue
            method = node_text(function.child_by_field_name("property"))
            if method not in PARSE_METHODS:
                continue
            base = function.child_by_field_name("object")
            base_text = node_text(base)
            if "z." in base_text or _SCHEMA_NAME.search(base_text):
                body = self.schemas.extract_body(base, source_file)
                if body and body != "{}":
                    logger.debug(f"Found schema body example from .{method}() call")
                    return body
        return None


def function_of(node: Optional[Node]) -> Optional[Node]:
    """The function a handler node stands for (declarator initializers unwrapped)."""
    if node is None:
        return None
    if is_function_node(node):
        return node
    if node.type == "variable_declarator":
        value = unwrap_expression(node.child_by_field_name("value"))
        return value if is_function_node(value) else None
    return None

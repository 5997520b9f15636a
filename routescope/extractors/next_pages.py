"""
Next.js Pages Router Extractor for RouteScope

Finds API routes under ``pages/api`` and infers their HTTP methods from the
default-exported handler body:

    // pages/api/widgets.ts  ->  POST /api/widgets, DELETE /api/widgets
    export default function handler(req, res) {
        if (req.method === "POST") { ... }
        switch (req.method) { case "DELETE": ... }
    }

A handler with no recognizable method check is reported as GET.
"""

import re
from pathlib import Path
from typing import List, Optional, Set

from tree_sitter import Node

from routescope.core.parser import (
    SourceFile,
    call_arguments,
    function_parameters,
    is_function_node,
    iter_descendants,
    line_of,
    node_text,
    parameter_name,
    property_key,
    unwrap_expression,
)
from routescope.core.routes import HTTP_METHODS, RouteHandler, RouteType, normalize_route_path
from routescope.core.symbols import SymbolResolver
from routescope.extractors.base import RouteExtractor
from routescope.extractors.next_shared import (
    RESERVED_SEGMENTS,
    HandlerAnalyzer,
    convert_dynamic_segments,
    detect_exported_methods,
    extract_dynamic_segments,
    extract_headers,
    extract_method_literal,
    extract_query_params,
    has_middleware,
    is_payload_path,
    is_trpc_handler_content,
)

FILE_PATTERNS = ["**/pages/api/**/*.{ts,tsx,js,jsx,mjs}"]

REQUEST_NAMES = {"req", "request"}
COMPARISON_OPERATORS = {"===", "=="}
DEFAULT_METHOD = "GET"
MAX_UNWRAP_DEPTH = 8

SOURCE_SUFFIX = re.compile(r"\.(ts|tsx|js|jsx|mjs)$")
TEST_FILE = re.compile(r"\.(test|spec)\.(ts|tsx|js|jsx|mjs)$")

_BASIC_METHOD_CHECK = re.compile(
    r"req(?:uest)?\.method\s*===?\s*['\"](GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)['\"]"
)
_BASIC_METHOD_CHECK_REVERSED = re.compile(
    r"['\"](GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)['\"]\s*===?\s*req(?:uest)?\.method"
)
_BASIC_CASE = re.compile(r"case\s+['\"](GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)['\"]\s*:")


def _pages_segments(rel_path: str) -> Optional[List[str]]:
    """Path segments below the ``pages`` root, or None if not under one."""
    parts = rel_path.replace("\\", "/").split("/")
    if "pages" not in parts[:-1]:
        return None
    start = parts.index("pages")
    return parts[start + 1:]


def is_pages_api_file(rel_path: str) -> bool:
    """True for a routable source file inside ``pages/api``."""
    segments = _pages_segments(rel_path)
    if not segments or len(segments) < 2 or segments[0] != "api":
        return False
    filename = segments[-1]
    if not SOURCE_SUFFIX.search(filename) or filename.endswith(".d.ts"):
        return False
    if TEST_FILE.search(filename) or "__tests__" in segments:
        return False
    stem = SOURCE_SUFFIX.sub("", filename)
    return stem not in RESERVED_SEGMENTS and not stem.startswith("_")


def derive_pages_route_path(rel_path: str) -> str:
    """
    Request path (bracket syntax kept) for a Pages API file.

    ``src/pages/api/users/[id].ts`` -> ``/api/users/[id]``
    ``pages/api/posts/index.ts``    -> ``/api/posts``
    """
    segments = list(_pages_segments(rel_path) or [])
    if segments:
        segments[-1] = SOURCE_SUFFIX.sub("", segments[-1])
        if segments[-1] == "index":
            segments.pop()
    return "/" + "/".join(segments) if segments else "/"


def find_handler_function(node: Optional[Node], source_file: SourceFile, depth: int = 0) -> Optional[Node]:
    """
    The function behind a default export.

    Follows same-file identifiers and unwraps wrapper calls such as
    ``withAuth(handler)`` or ``cors(withSession(handler))``.
    """
    node = unwrap_expression(node)
    if node is None or depth > MAX_UNWRAP_DEPTH:
        return None
    if is_function_node(node):
        return node
    if node.type == "identifier":
        decl = source_file.find_local_declaration(node_text(node))
        if decl is None:
            return None
        if decl.type == "variable_declarator":
            return find_handler_function(decl.child_by_field_name("value"), source_file, depth + 1)
        return decl if is_function_node(decl) else None
    if node.type == "variable_declarator":
        return find_handler_function(node.child_by_field_name("value"), source_file, depth + 1)
    if node.type == "call_expression":
        for arg in call_arguments(node):
            found = find_handler_function(arg, source_file, depth + 1)
            if found is not None:
                return found
    return None


class MethodDetector:
    """
    Collect HTTP verbs a Pages handler branches on.

    Recognizes ``req.method === "POST"`` (either operand order, ``==`` too),
    ``switch (req.method)`` cases, ``const { method } = req`` aliases,
    ``const method = req.method`` and ``["PUT", "PATCH"].includes(req.method)``.
    """

    def __init__(self, handler: Node):
        self.handler = handler
        self.request_names: Set[str] = set(REQUEST_NAMES)
        params = function_parameters(handler) if is_function_node(handler) else []
        if params:
            first = parameter_name(params[0])
            if first:
                self.request_names.add(first)
        self.method_aliases = self._collect_aliases()

    def _collect_aliases(self) -> Set[str]:
        aliases = set()
        for declarator in iter_descendants(self.handler, {"variable_declarator"}):
            name = declarator.child_by_field_name("name")
            value = unwrap_expression(declarator.child_by_field_name("value"))
            if name is None or value is None:
                continue
            if name.type == "identifier" and self._is_request_method_access(value):
                aliases.add(node_text(name))
            elif name.type == "object_pattern" and value.type == "identifier" \
                    and node_text(value) in self.request_names:
                aliases.update(self._method_bindings(name))
        return aliases

    @staticmethod
    def _method_bindings(pattern: Node) -> List[str]:
        bindings = []
        for child in pattern.named_children:
            if child.type == "shorthand_property_identifier_pattern" and node_text(child) == "method":
                bindings.append("method")
            elif child.type == "object_assignment_pattern":
                left = child.child_by_field_name("left")
                if left is not None and node_text(left) == "method":
                    bindings.append("method")
            elif child.type == "pair_pattern" and property_key(child.child_by_field_name("key")) == "method":
                value = child.child_by_field_name("value")
                if value is not None and value.type == "identifier":
                    bindings.append(node_text(value))
                elif value is not None and value.type == "assignment_pattern":
                    left = value.child_by_field_name("left")
                    if left is not None:
                        bindings.append(node_text(left))
        return bindings

    def _is_request_method_access(self, node: Optional[Node]) -> bool:
        node = unwrap_expression(node)
        if node is None or node.type != "member_expression":
            return False
        obj = unwrap_expression(node.child_by_field_name("object"))
        prop = node.child_by_field_name("property")
        return obj is not None and obj.type == "identifier" \
            and node_text(obj) in self.request_names and node_text(prop) == "method"

    def _is_method_reference(self, node: Optional[Node]) -> bool:
        node = unwrap_expression(node)
        if node is None:
            return False
        if node.type == "identifier":
            return node_text(node) in self.method_aliases
        if node.type == "call_expression":
            # req.method?.toUpperCase()
            function = node.child_by_field_name("function")
            if function is not None and function.type == "member_expression":
                return self._is_method_reference(function.child_by_field_name("object"))
            return False
        return self._is_request_method_access(node)

    def detect(self) -> List[str]:
        found = []

        def add(method: Optional[str]):
            if method and method not in found:
                found.append(method)

        for node in iter_descendants(self.handler, {"binary_expression", "switch_statement", "call_expression"}):
            if node.type == "binary_expression":
                operator = node.child_by_field_name("operator")
                if node_text(operator) not in COMPARISON_OPERATORS:
                    continue
                left = node.child_by_field_name("left")
                right = node.child_by_field_name("right")
                if self._is_method_reference(left):
                    add(extract_method_literal(right))
                elif self._is_method_reference(right):
                    add(extract_method_literal(left))

            elif node.type == "switch_statement":
                if not self._is_method_reference(node.child_by_field_name("value")):
                    continue
                body = node.child_by_field_name("body")
                for case in (body.named_children if body is not None else []):
                    if case.type == "switch_case":
                        add(extract_method_literal(case.child_by_field_name("value")))

            else:
                function = node.child_by_field_name("function")
                if function is None or function.type != "member_expression":
                    continue
                if node_text(function.child_by_field_name("property")) != "includes":
                    continue
                args = call_arguments(node)
                if not args or not self._is_method_reference(args[0]):
                    continue
                array = unwrap_expression(function.child_by_field_name("object"))
                if array is not None and array.type == "array":
                    for element in array.named_children:
                        add(extract_method_literal(element))
        return found


class NextPagesExtractor(RouteExtractor):
    """
    Extract Pages Router API routes.

    Usage:
        extractor = NextPagesExtractor('/path/to/next-app')
        routes = extractor.parse()
    """

    route_type = RouteType.NEXTJS_PAGE
    file_patterns = FILE_PATTERNS

    def try_structured_extraction(self) -> List[RouteHandler]:
        loader = self.create_loader()
        self.require_tsconfig(loader)
        project = loader.load(self.file_patterns)

        analyzer = HandlerAnalyzer(SymbolResolver(project))
        files = list(self.iter_project_files(project, self.accepts))
        self.logger.debug(f"Found {len(files)} Pages API files")
        return self.collect_per_file(files, lambda source_file: self.parse_file(source_file, analyzer))

    def accepts(self, rel_path: str) -> bool:
        if not is_pages_api_file(rel_path):
            return False
        if is_payload_path(rel_path):
            self.logger.debug(f"Skipping Payload route {rel_path}")
            return False
        return True

    def route_path_for(self, file_path: Path) -> str:
        return self.derive_path(file_path, derive_pages_route_path)

    def find_handler(self, source_file: SourceFile) -> Optional[Node]:
        """Default-exported handler, else a ``handler`` named export; the file root if unresolvable."""
        default = source_file.default_export()
        if default is not None:
            return find_handler_function(default, source_file) or source_file.root

        named = source_file.get_export("handler")
        if named is not None and named.node is not None:
            return find_handler_function(named.node, source_file) or source_file.root
        return None

    def parse_file(self, source_file: SourceFile, analyzer: HandlerAnalyzer) -> List[RouteHandler]:
        rel = self.relative_path(source_file.path)
        text = source_file.text
        if is_trpc_handler_content(text):
            self.logger.debug(f"Skipping tRPC handler {rel}")
            return []

        handler = self.find_handler(source_file)
        if handler is None:
            self.logger.debug(f"No default export handler in {rel}")
            return []

        raw_path = self.route_path_for(source_file.path)
        segments = extract_dynamic_segments(raw_path)
        path = normalize_route_path(convert_dynamic_segments(raw_path))

        methods = MethodDetector(handler).detect() if handler is not source_file.root else []
        for method in detect_exported_methods(source_file):
            if method not in methods:
                methods.append(method)
        if not methods:
            methods = [DEFAULT_METHOD]

        analysis = analyzer.analyze(handler, source_file)
        middleware = has_middleware(text)

        handlers = []
        for method in methods:
            handlers.append(RouteHandler(
                route_type=self.route_type,
                path=path,
                method=method,
                file_path=str(source_file.path),
                name=f"{method} {path}",
                handler_name="default",
                line_number=line_of(handler),
                handler_lines=analysis.handler_lines,
                dynamic_segments=segments,
                has_middleware=middleware,
                uses_db=analysis.uses_db,
                has_error_handling=analysis.has_error_handling,
                has_validation=analysis.has_validation,
                headers=analysis.headers,
                query=analysis.query,
                body=analysis.body,
            ))
        self.logger.debug(f"Found Pages API route {path} [{', '.join(methods)}]")
        return handlers

    def fallback_regex_extraction(self) -> List[RouteHandler]:
        """Text-only extraction for projects without a tsconfig."""
        loader = self.create_loader()
        handlers = []
        for path in loader.find_files(self.file_patterns):
            rel = self.relative_path(path)
            if not self.accepts(rel):
                continue
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                self.logger.warning(f"Error reading {rel}: {e}")
                continue
            if is_trpc_handler_content(text) or "export default" not in text:
                continue

            raw_path = self.route_path_for(path)
            route_path = normalize_route_path(convert_dynamic_segments(raw_path))
            found = set(_BASIC_METHOD_CHECK.findall(text))
            found.update(_BASIC_METHOD_CHECK_REVERSED.findall(text))
            found.update(_BASIC_CASE.findall(text))
            methods = [m for m in HTTP_METHODS if m in found] or [DEFAULT_METHOD]

            for method in methods:
                handlers.append(RouteHandler(
                    route_type=self.route_type,
                    path=route_path,
                    method=method,
                    file_path=str(path),
                    name=f"{method} {route_path}",
                    handler_name="default",
                    dynamic_segments=extract_dynamic_segments(raw_path),
                    headers=extract_headers(text),
                    query=extract_query_params(text),
                ))
        self.logger.debug(f"Basic mode found {len(handlers)} Pages API handlers")
        return handlers


def parse_next_pages_routes(root_dir: Path, options=None, cache=None):
    """Convenience function to parse Pages Router API routes."""
    return NextPagesExtractor(root_dir, options=options, cache=cache).parse()

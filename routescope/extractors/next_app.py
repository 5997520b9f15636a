"""
Next.js App Router Extractor for RouteScope

Finds ``app/**/route.{ts,js}`` handler files and reports one route per
exported HTTP verb:

    // app/api/users/[id]/route.ts  ->  GET /api/users/:id
    export async function GET(request: Request, { params }) { ... }

Recognized verb conventions:
- ``export function GET`` / ``export const POST = async () => ...``
- ``export { handler as GET }`` and ``export { GET } from "./impl"``
- ``export const { GET, POST } = handlers``
- ``export const methods = ["GET", "POST"] as const``
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from tree_sitter import Node

from routescope.core.parser import SourceFile, line_of
from routescope.core.routes import HTTP_METHODS, RouteHandler, RouteType, normalize_route_path
from routescope.core.scanner import SourceProject
from routescope.core.symbols import SymbolResolver
from routescope.extractors.base import RouteExtractor
from routescope.extractors.next_shared import (
    HandlerAnalyzer,
    convert_dynamic_segments,
    detect_exported_methods,
    extract_dynamic_segments,
    extract_headers,
    extract_query_params,
    has_middleware,
    is_parallel_slot,
    is_payload_path,
    is_route_group,
    is_server_action,
    is_trpc_handler_content,
)

FILE_PATTERNS = ["**/app/**/route.{ts,tsx,js,jsx,mjs}"]

ROUTE_FILENAME = re.compile(r"^route\.(ts|tsx|js|jsx|mjs)$")

_BASIC_FUNCTION_EXPORT = re.compile(
    r"export\s+(?:async\s+)?function\s+(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)\b"
)
_BASIC_CONST_EXPORT = re.compile(
    r"export\s+const\s+(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)\s*[=:]"
)

HANDLER_NODE_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "variable_declarator",
}


def _app_segments(rel_path: str) -> Optional[List[str]]:
    """Directory segments below the ``app`` root, or None if not under one."""
    parts = rel_path.replace("\\", "/").split("/")
    if "app" not in parts[:-1]:
        return None
    start = parts.index("app")
    return parts[start + 1:-1]


def is_app_router_file(rel_path: str) -> bool:
    """True for a routable ``route.*`` file inside an ``app`` tree."""
    filename = rel_path.replace("\\", "/").split("/")[-1]
    if not ROUTE_FILENAME.match(filename):
        return False
    segments = _app_segments(rel_path)
    if segments is None:
        return False
    # _folders are private and never routable
    return not any(s.startswith("_") for s in segments)


def derive_app_route_path(rel_path: str) -> str:
    """
    Request path (bracket syntax kept) for a route file.

    ``src/app/(shop)/api/items/[id]/route.ts`` -> ``/api/items/[id]``
    """
    segments = _app_segments(rel_path) or []
    kept = [s for s in segments if not is_route_group(s) and not is_parallel_slot(s)]
    return "/" + "/".join(kept) if kept else "/"


class NextAppExtractor(RouteExtractor):
    """
    Extract App Router routes.

    Usage:
        extractor = NextAppExtractor('/path/to/next-app')
        routes = extractor.parse()
    """

    route_type = RouteType.NEXTJS_APP
    file_patterns = FILE_PATTERNS

    def try_structured_extraction(self) -> List[RouteHandler]:
        loader = self.create_loader()
        self.require_tsconfig(loader)
        project = loader.load(self.file_patterns)

        resolver = SymbolResolver(project)
        analyzer = HandlerAnalyzer(resolver)

        files = list(self.iter_project_files(project, self.accepts))
        self.logger.debug(f"Found {len(files)} App Router route files")
        return self.collect_per_file(
            files, lambda source_file: self.parse_file(source_file, project, analyzer)
        )

    def accepts(self, rel_path: str) -> bool:
        if not is_app_router_file(rel_path):
            return False
        if is_payload_path(rel_path):
            self.logger.debug(f"Skipping Payload route {rel_path}")
            return False
        return True

    def route_path_for(self, file_path: Path) -> str:
        return self.derive_path(file_path, derive_app_route_path)

    def parse_file(self, source_file: SourceFile, project: SourceProject,
                   analyzer: HandlerAnalyzer) -> List[RouteHandler]:
        rel = self.relative_path(source_file.path)
        text = source_file.text
        if is_trpc_handler_content(text):
            self.logger.debug(f"Skipping tRPC handler {rel}")
            return []

        raw_path = self.route_path_for(source_file.path)
        segments = extract_dynamic_segments(raw_path)
        path = normalize_route_path(convert_dynamic_segments(raw_path))

        method_handlers = self.collect_method_handlers(source_file, project)
        methods = list(method_handlers)
        for method in detect_exported_methods(source_file):
            if method not in methods:
                methods.append(method)

        if not methods:
            self.logger.debug(f"No HTTP method exports in {rel}")
            return []

        middleware = has_middleware(text)
        server_action = is_server_action(text)

        handlers = []
        for method in methods:
            node, owner = method_handlers.get(method, (source_file.root, source_file))
            analysis = analyzer.analyze(node, owner)
            handlers.append(RouteHandler(
                route_type=self.route_type,
                path=path,
                method=method,
                file_path=str(source_file.path),
                name=f"{method} {path}",
                handler_name=method,
                line_number=line_of(node),
                handler_lines=analysis.handler_lines,
                dynamic_segments=segments,
                has_middleware=middleware,
                is_server_action=server_action,
                uses_db=analysis.uses_db,
                has_error_handling=analysis.has_error_handling,
                has_validation=analysis.has_validation,
                headers=analysis.headers,
                query=analysis.query,
                body=analysis.body,
            ))
            self.logger.debug(f"Found App Router {method} handler at {path} (line {line_of(node)})")
        return handlers

    def collect_method_handlers(self, source_file: SourceFile,
                                project: SourceProject) -> Dict[str, Tuple[Node, SourceFile]]:
        """Exported verb name -> (handler node, file declaring it)."""
        handlers: Dict[str, Tuple[Node, SourceFile]] = {}
        for export in source_file.exports():
            if export.name not in HTTP_METHODS or export.name in handlers:
                continue

            node, owner = export.node, source_file
            if export.module:
                target = project.resolve_module(export.module, source_file)
                if target is None:
                    self.logger.debug(f"Cannot follow re-export of {export.name} from {export.module}")
                    continue
                node, owner = target.find_local_declaration(export.local_name or export.name), target

            if node is None or node.type not in HANDLER_NODE_TYPES:
                continue
            handlers[export.name] = (node, owner)
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
            if is_trpc_handler_content(text):
                self.logger.debug(f"Skipping tRPC handler {rel}")
                continue

            raw_path = self.route_path_for(path)
            route_path = normalize_route_path(convert_dynamic_segments(raw_path))
            found = _BASIC_FUNCTION_EXPORT.findall(text) + _BASIC_CONST_EXPORT.findall(text)
            methods = [m for m in HTTP_METHODS if m in found]

            for method in methods:
                handlers.append(RouteHandler(
                    route_type=self.route_type,
                    path=route_path,
                    method=method,
                    file_path=str(path),
                    name=f"{method} {route_path}",
                    handler_name=method,
                    dynamic_segments=extract_dynamic_segments(raw_path),
                    headers=extract_headers(text),
                    query=extract_query_params(text),
                ))
        self.logger.debug(f"Basic mode found {len(handlers)} App Router handlers")
        return handlers


def parse_next_app_routes(root_dir: Path, options=None, cache=None):
    """
    Convenience function to parse App Router routes.

    Args:
        root_dir: Project root
        options: Optional ParserOptions
        cache: Optional RoutePathCache shared across extractors

    Returns:
        List of ParsedRoute
    """
    return NextAppExtractor(root_dir, options=options, cache=cache).parse()

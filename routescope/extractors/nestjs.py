"""
NestJS Controller Extractor for RouteScope

Reads decorator-annotated controller classes:

    @Controller({ path: "users", version: "1" })
    export class UsersController {
        @Get(":id")
        findOne(@Param("id") id: string, @Query() filter: UserFilter) { ... }

        @Post()
        @Header("Cache-Control", "none")
        create(@Body() dto: CreateUserDto) { ... }
    }

With ``app.setGlobalPrefix("api")`` in ``src/main.ts`` this yields
``GET /api/v1/users/:id`` and ``POST /api/v1/users``. Request bodies and
query parameters are synthesized from the declared parameter types.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from tree_sitter import Node

from routescope.core.parser import (
    SourceFile,
    call_arguments,
    callee_name,
    decorator_arguments,
    decorator_name,
    decorators_of,
    find_decorator,
    function_parameters,
    get_object_property,
    iter_descendants,
    line_of,
    node_text,
    span_lines,
    string_value,
    unwrap_expression,
)
from routescope.core.routes import BODY_METHODS, HTTP_METHODS, RouteHandler, RouteType
from routescope.core.symbols import SymbolResolver
from routescope.extractors.base import RouteExtractor
from routescope.extractors.next_shared import DB_PATTERNS, ERROR_PATTERNS, VALIDATION_PATTERNS
from routescope.schema.examples import (
    ARRAY_CLASS,
    OBJECT_CLASS,
    PRIMITIVE,
    UNKNOWN_CLASS,
    TypeExampleSynthesizer,
    serialize_query_value,
)
from routescope.schema.types import TypeResolver, enum_members
from routescope.schema.zod import ABSENT

FILE_PATTERNS = ["**/*.controller.{ts,js}"]

CONTROLLER_DECORATOR = "Controller"
HEADER_DECORATOR = "Header"
BODY_DECORATOR = "Body"
QUERY_DECORATOR = "Query"
VERSION_DECORATOR = "Version"

# Decorator name -> verbs it routes
METHOD_DECORATORS = {
    "Get": ["GET"],
    "Post": ["POST"],
    "Put": ["PUT"],
    "Patch": ["PATCH"],
    "Delete": ["DELETE"],
    "Head": ["HEAD"],
    "Options": ["OPTIONS"],
    "All": list(HTTP_METHODS),
}

GLOBAL_PREFIX_CALL = "setGlobalPrefix"
VERSIONING_CALL = "enableVersioning"


def normalize_versions(versions: Optional[List[str]]) -> List[str]:
    """Prefix each version with ``v`` unless already so prefixed."""
    normalized = []
    for version in versions or []:
        if not version:
            continue
        normalized.append(version if version.startswith("v") else f"v{version}")
    return normalized


def build_route_paths(controller_path: str, method_path: str,
                      global_prefix: Optional[str] = None,
                      versions: Optional[List[str]] = None) -> List[str]:
    """
    Join prefix, version, controller path and method path.

    Empty segments are dropped and the result always has one leading ``/``.
    One path per version, or a single unversioned path.
    """
    def build(version_prefix: str) -> str:
        parts = [global_prefix or "", version_prefix, controller_path, method_path]
        parts = [p.strip("/") for p in parts]
        parts = [p for p in parts if p]
        return "/" + "/".join(parts) if parts else "/"

    prefixes = normalize_versions(versions)
    if not prefixes:
        return [build("")]
    return [build(prefix) for prefix in prefixes]


class NestJsExtractor(RouteExtractor):
    """
    Extract routes from NestJS controllers.

    Usage:
        extractor = NestJsExtractor('/path/to/nest-app')
        routes = extractor.parse()
    """

    route_type = RouteType.NESTJS
    file_patterns = FILE_PATTERNS

    def __init__(self, root_dir, options=None, cache=None):
        super().__init__(root_dir, options=options, cache=cache)
        self.resolver = SymbolResolver()
        self.types = TypeResolver(self.resolver)
        self.synthesizer = TypeExampleSynthesizer(max_depth=self.options.max_type_depth)

    def try_structured_extraction(self) -> List[RouteHandler]:
        loader = self.create_loader()
        if loader.find_tsconfig() is None:
            self.logger.debug("No tsconfig.json found, scanning controller files only")
        project = loader.load(self.file_patterns)
        self.resolver.project = project

        global_prefix, default_versions = self.read_bootstrap(project)

        candidates = [sf for sf in project.source_files() if CONTROLLER_DECORATOR in sf.text]
        self.logger.debug(f"Found {len(candidates)} candidate controller files")
        return self.collect_per_file(
            candidates,
            lambda source_file: self.parse_controller_file(source_file, global_prefix, default_versions),
        )

    # -- bootstrap ------------------------------------------------------------

    def read_bootstrap(self, project) -> Tuple[Optional[str], List[str]]:
        """Global prefix and default versions from the application bootstrap file."""
        global_prefix = None
        default_versions: List[str] = []
        for name in self.options.bootstrap_files:
            path = self.root_dir / name
            if not path.is_file():
                continue
            source_file = project.get_source_file(path)
            if source_file is None:
                continue

            for call in iter_descendants(source_file.root, {"call_expression"}):
                function = unwrap_expression(call.child_by_field_name("function"))
                if function is None or function.type != "member_expression":
                    continue
                args = call_arguments(call)
                name_called = callee_name(call)
                if name_called == GLOBAL_PREFIX_CALL and args and global_prefix is None:
                    global_prefix = self.resolve_string(args[0], source_file)
                elif name_called == VERSIONING_CALL and args and not default_versions:
                    default = get_object_property(args[0], "defaultVersion")
                    if default is not None:
                        default_versions = self.extract_versions(default, source_file)

            if global_prefix:
                self.logger.debug(f"Detected NestJS global prefix: {global_prefix}")
            if default_versions:
                self.logger.debug(f"Detected NestJS default version(s): {', '.join(default_versions)}")
            if global_prefix or default_versions:
                break
        return global_prefix, default_versions

    # -- literal resolution -----------------------------------------------------

    def resolve_string(self, node: Optional[Node], source_file: SourceFile) -> Optional[str]:
        """
        String value of a literal, a constant, or an enum/object member.

        ``"users"``, ``USERS_PATH``, ``Routes.Users`` and ``PATHS.users`` all
        resolve when declared in the same file or one import away.
        """
        node = unwrap_expression(node)
        value = string_value(node)
        if value is not None or node is None:
            return value

        if node.type == "identifier":
            found = self.resolver.resolve_value(node_text(node), source_file)
            if found:
                return string_value(unwrap_expression(found.node))
            return None

        if node.type == "member_expression":
            obj = unwrap_expression(node.child_by_field_name("object"))
            member = node_text(node.child_by_field_name("property"))
            if obj is None or obj.type != "identifier":
                return None
            declared = self.resolver.resolve_type(node_text(obj), source_file)
            if declared and declared.node.type == "enum_declaration":
                value = dict(enum_members(declared.node)).get(member)
                return value if isinstance(value, str) else None
            found = self.resolver.resolve_value(node_text(obj), source_file)
            if found:
                return string_value(unwrap_expression(get_object_property(found.node, member)))
        return None

    def extract_paths(self, node: Optional[Node], source_file: SourceFile) -> List[str]:
        node = unwrap_expression(node)
        if node is None:
            return [""]
        literal = self.resolve_string(node, source_file)
        if literal is not None:
            return [literal]
        if node.type == "array":
            paths = []
            for element in node.named_children:
                paths.extend(self.extract_paths(element, source_file))
            return paths
        if node.type == "object":
            path_node = get_object_property(node, "path")
            if path_node is not None:
                return self.extract_paths(path_node, source_file)
        return [""]

    def extract_versions(self, node: Optional[Node], source_file: SourceFile) -> List[str]:
        node = unwrap_expression(node)
        if node is None:
            return []
        literal = self.resolve_string(node, source_file)
        if literal is not None:
            return [literal]
        if node.type == "array":
            versions = []
            for element in node.named_children:
                versions.extend(self.extract_versions(element, source_file))
            return versions
        return []

    # -- controllers ------------------------------------------------------------

    def controller_config(self, decorator: Node, source_file: SourceFile) -> Tuple[List[str], List[str]]:
        """(paths, versions) of a ``@Controller(...)`` decorator."""
        args = decorator_arguments(decorator)
        if not args:
            return [""], []

        first = unwrap_expression(args[0])
        if first is not None and first.type == "object":
            path_node = get_object_property(first, "path")
            version_node = get_object_property(first, "version")
            paths = self.extract_paths(path_node, source_file) if path_node is not None else [""]
            versions = self.extract_versions(version_node, source_file) if version_node is not None else []
            return paths or [""], versions
        return self.extract_paths(first, source_file) or [""], []

    def route_decorators(self, method: Node) -> List[Tuple[Node, List[str]]]:
        routes = []
        for decorator in decorators_of(method):
            verbs = METHOD_DECORATORS.get(decorator_name(decorator))
            if verbs:
                routes.append((decorator, verbs))
        return routes

    def parse_controller_file(self, source_file: SourceFile, global_prefix: Optional[str],
                              default_versions: List[str]) -> List[RouteHandler]:
        handlers = []
        for cls in source_file.class_declarations():
            decorator = find_decorator(cls.node, {CONTROLLER_DECORATOR})
            if decorator is None:
                continue
            controller_paths, controller_versions = self.controller_config(decorator, source_file)
            self.logger.debug(f"Controller {cls.name} at {', '.join(repr(p) for p in controller_paths)}")

            for method in cls.methods():
                handlers.extend(self.parse_method(
                    method, cls.name, source_file, controller_paths,
                    controller_versions or default_versions, global_prefix,
                ))
        return handlers

    def parse_method(self, method: Node, class_name: str, source_file: SourceFile,
                     controller_paths: List[str], controller_versions: List[str],
                     global_prefix: Optional[str]) -> List[RouteHandler]:
        routes = self.route_decorators(method)
        if not routes:
            return []

        method_name = node_text(method.child_by_field_name("name"))
        versions = self.method_versions(method, source_file) or controller_versions
        headers = self.extract_headers(method, source_file)
        body = self.extract_body(method, source_file)
        query = self.extract_query(method, source_file)
        text = node_text(method)

        handlers = []
        for decorator, verbs in routes:
            args = decorator_arguments(decorator)
            method_paths = self.extract_paths(args[0], source_file) if args else [""]
            for controller_path in controller_paths:
                for method_path in method_paths or [""]:
                    for verb in verbs:
                        for route_path in build_route_paths(controller_path, method_path,
                                                            global_prefix, versions):
                            handlers.append(self._handler(
                                route_path, verb, source_file, method, f"{class_name}.{method_name}",
                                headers, query, body, text,
                            ))
                            self.logger.debug(
                                f"Found NestJS {verb} handler at {route_path} (line {line_of(method)})"
                            )
        return handlers

    def _handler(self, path: str, verb: str, source_file: SourceFile, method: Node, handler_name: str,
                 headers: Dict[str, str], query: Dict[str, str], body: Optional[str], text: str) -> RouteHandler:
        effective_body = body if verb in BODY_METHODS else None
        final_headers = dict(headers)
        if effective_body and not any(k.lower() == "content-type" for k in final_headers):
            final_headers["Content-Type"] = "application/json"
        return RouteHandler(
            route_type=self.route_type,
            path=path,
            method=verb,
            file_path=str(source_file.path),
            name=f"{verb} {path}",
            handler_name=handler_name,
            line_number=line_of(method),
            handler_lines=span_lines(method),
            uses_db=bool(DB_PATTERNS.search(text)),
            has_error_handling=bool(ERROR_PATTERNS.search(text)),
            has_validation=bool(VALIDATION_PATTERNS.search(text)) or "Pipe" in text,
            headers=final_headers,
            query=dict(query),
            body=effective_body,
        )

    def method_versions(self, method: Node, source_file: SourceFile) -> List[str]:
        decorator = find_decorator(method, {VERSION_DECORATOR})
        if decorator is None:
            return []
        args = decorator_arguments(decorator)
        return self.extract_versions(args[0], source_file) if args else []

    def extract_headers(self, method: Node, source_file: SourceFile) -> Dict[str, str]:
        headers = {}
        for decorator in decorators_of(method):
            if decorator_name(decorator) != HEADER_DECORATOR:
                continue
            args = decorator_arguments(decorator)
            if len(args) < 2:
                continue
            key = self.resolve_string(args[0], source_file)
            value = self.resolve_string(args[1], source_file)
            if key and value:
                headers[key] = value
        return headers

    # -- parameters -------------------------------------------------------------

    def decorated_parameters(self, method: Node, name: str) -> List[Tuple[Node, Node]]:
        """(parameter, decorator) for parameters carrying ``@<name>()``."""
        found = []
        for param in function_parameters(method):
            for decorator in decorators_of(param):
                if decorator_name(decorator) == name:
                    found.append((param, decorator))
                    break
        return found

    def _parameter_key(self, decorator: Node, source_file: SourceFile) -> Optional[str]:
        args = decorator_arguments(decorator)
        return self.resolve_string(args[0], source_file) if args else None

    def _parameter_example(self, param: Node, source_file: SourceFile) -> Tuple[Any, str]:
        param_type = self.types.type_of_parameter(param, source_file)
        return self.synthesizer.example(param_type), self.synthesizer.classify(param_type)

    def extract_body(self, method: Node, source_file: SourceFile) -> Optional[str]:
        """
        JSON body example from ``@Body()`` parameters.

        A keyed ``@Body("name")`` nests its example under that key; an
        unkeyed object DTO is spliced into the body; an unkeyed primitive
        or array becomes the whole body.
        """
        params = self.decorated_parameters(method, BODY_DECORATOR)
        if not params:
            return None

        body_object: Dict[str, Any] = {}
        has_object_body = False
        whole_body: Any = ABSENT

        for param, decorator in params:
            example, classification = self._parameter_example(param, source_file)
            if example is ABSENT:
                continue
            key = self._parameter_key(decorator, source_file)
            if key:
                body_object[key] = example
                has_object_body = True
            elif isinstance(example, dict) and example and classification in (OBJECT_CLASS, UNKNOWN_CLASS):
                body_object.update(example)
                has_object_body = True
            elif classification in (PRIMITIVE, ARRAY_CLASS):
                whole_body = example

        if has_object_body:
            return json.dumps(body_object, indent=2, ensure_ascii=False)
        if whole_body is not ABSENT:
            return json.dumps(whole_body, indent=2, ensure_ascii=False)
        self.logger.debug(f"No body example for {node_text(method.child_by_field_name('name'))}")
        return None

    def extract_query(self, method: Node, source_file: SourceFile) -> Dict[str, str]:
        """Query placeholders from ``@Query()`` parameters (keyed or DTO)."""
        query: Dict[str, str] = {}
        for param, decorator in self.decorated_parameters(method, QUERY_DECORATOR):
            example, _ = self._parameter_example(param, source_file)
            key = self._parameter_key(decorator, source_file)
            if key:
                serialized = serialize_query_value(example)
                if serialized is not None:
                    query[key] = serialized
                continue
            if isinstance(example, dict):
                for name, value in example.items():
                    serialized = serialize_query_value(value)
                    if serialized is not None:
                        query[name] = serialized
        return query


def parse_nestjs_routes(root_dir: Path, options=None, cache=None):
    """Convenience function to parse NestJS controller routes."""
    return NestJsExtractor(root_dir, options=options, cache=cache).parse()

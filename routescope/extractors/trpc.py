"""
tRPC Router Extractor for RouteScope

Scans router-builder call sites, collects their procedures and the mounts
between routers, then resolves every procedure to a dotted path:

    // src/server/api/routers/auth.ts
    export const authRouter = createTRPCRouter({
        login: publicProcedure
            .input(z.object({ email: z.string(), rememberMe: z.boolean().optional() }))
            .mutation(async ({ input }) => { ... }),
    });

    // src/server/api/root.ts
    export const appRouter = createTRPCRouter({ auth: authRouter });

yields ``POST /api/trpc/auth.login`` with body ``{"email": ""}``.
Queries map to GET and send their input as query parameters.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from tree_sitter import Node

from routescope.core.graph import (
    MUTATION,
    QUERY,
    UNKNOWN_VISIBILITY,
    VISIBILITY_TAGS,
    MountEdge,
    ProcedureNode,
    RouterGraph,
    RouterMeta,
    normalize_router_name,
)
from routescope.core.options import DEFAULT_TRPC_BASE_PATH
from routescope.core.parser import (
    SourceFile,
    call_arguments,
    end_line_of,
    is_function_node,
    iter_descendants,
    line_of,
    node_text,
    object_properties,
    span_lines,
    unwrap_expression,
)
from routescope.core.routes import RouteHandler, RouteType
from routescope.core.symbols import SymbolResolver
from routescope.extractors.base import RouteExtractor
from routescope.extractors.trpc_detection import (
    RouterDetectionConfig,
    build_router_detection_config,
    collect_router_call_sites,
    get_router_reference_name,
    is_router_factory_call,
    is_router_reference,
)
from routescope.schema.zod import ZodSchemaInterpreter

DB_PATTERN = re.compile(r"\b(db\.|prisma\.)")
SIDE_EFFECT_PATTERNS = re.compile(
    r"sendMail|sendEmail|resend\.|mail\(|writeFile|fs\.|axios\(|fetch\(|update\(|insert\(|delete\(",
    re.IGNORECASE,
)
TRPC_ERROR = "TRPCError"
JSON_HEADERS = {"Content-Type": "application/json"}


@dataclass
class TrpcParseResult:
    """Everything one scan found: procedures, routers and their graph."""
    procedures: List[ProcedureNode] = field(default_factory=list)
    graph: RouterGraph = field(default_factory=RouterGraph)

    @property
    def routers(self) -> List[RouterMeta]:
        return self.graph.routers


def map_visibility(identifier: str, fallback: str) -> str:
    return VISIBILITY_TAGS.get(identifier, fallback)


def derive_router_name(router_name: str, rel_path: str) -> str:
    """Display name for a router: its variable, else its file or directory name."""
    from_name = normalize_router_name(router_name)
    if from_name:
        return from_name
    parts = rel_path.split("/")
    from_file = normalize_router_name(re.sub(r"\.[^.]+$", "", parts[-1]))
    if from_file:
        return from_file
    if len(parts) > 1:
        from_dir = normalize_router_name(parts[-2])
        if from_dir:
            return from_dir
    return router_name


class TrpcExtractor(RouteExtractor):
    """
    Extract tRPC procedures as HTTP routes.

    Usage:
        extractor = TrpcExtractor('/path/to/t3-app')
        routes = extractor.parse()

        # Procedure-level detail for linting
        result = extractor.analyze()
        for procedure in result.procedures:
            print(procedure.qualified_name, procedure.visibility)
    """

    route_type = RouteType.TRPC
    supports_fallback = False

    def __init__(self, root_dir, options=None, cache=None):
        super().__init__(root_dir, options=options, cache=cache)
        self.file_patterns = list(self.options.trpc_include)
        self.detection: RouterDetectionConfig = build_router_detection_config(
            self.options.router_factories, self.options.router_identifier_pattern
        )

    def try_structured_extraction(self) -> List[RouteHandler]:
        result = self.analyze()
        return [self.to_handler(procedure) for procedure in result.procedures]

    def analyze(self) -> TrpcParseResult:
        """Scan the project and resolve router composition."""
        loader = self.create_loader()
        self.require_tsconfig(loader)
        project = loader.load(self.file_patterns)
        self.logger.debug(f"Found {len(project)} source files under {self.root_dir}")

        resolver = SymbolResolver(project)
        schemas = ZodSchemaInterpreter(resolver)
        result = TrpcParseResult()

        for source_file in project.source_files():
            rel = self.relative_path(source_file.path)
            try:
                self.scan_file(source_file, resolver, schemas, result)
            except Exception as e:
                self.logger.warning(f"Skipping {rel}: {e}")

        self.logger.debug(
            f"Found {len(result.graph.routers)} routers, {len(result.graph.mounts)} mounts, "
            f"{len(result.procedures)} procedures"
        )
        for cycle in result.graph.find_cycles():
            self.logger.warning(f"Router mount cycle: {' -> '.join(cycle)}")

        result.graph.apply(result.procedures)
        return result

    def scan_file(self, source_file: SourceFile, resolver: SymbolResolver,
                  schemas: ZodSchemaInterpreter, result: TrpcParseResult):
        rel = self.relative_path(source_file.path)
        calls = collect_router_call_sites(source_file, self.detection)
        if not calls:
            self.logger.debug(f"No tRPC router found in {rel}")
            return

        for call, name in calls:
            self.parse_router(call, name, source_file, resolver, schemas, result)

    def parse_router(self, call: Node, router_name: str, source_file: SourceFile,
                     resolver: SymbolResolver, schemas: ZodSchemaInterpreter,
                     result: TrpcParseResult) -> Optional[RouterMeta]:
        args = call_arguments(call)
        routes_arg = unwrap_expression(args[0]) if args else None
        if routes_arg is None or routes_arg.type != "object":
            return None

        rel = self.relative_path(source_file.path)
        display_name = derive_router_name(router_name, rel)
        router = RouterMeta(
            name=display_name,
            file_path=rel,
            line_number=line_of(call),
            end_line=end_line_of(call),
        )

        count = 0
        for prop_name, value, prop in object_properties(routes_arg):
            if is_router_reference(value, self.detection):
                target = get_router_reference_name(value) or node_text(value)
                result.graph.add_mount(MountEdge(parent=display_name, property=prop_name, target=target))
                self.logger.debug(f"Property '{prop_name}' in router '{router_name}' mounts {target}")
                continue

            expression, owner = value, source_file
            if unwrap_expression(value).type in ("identifier", "shorthand_property_identifier"):
                found = resolver.resolve_value(node_text(value), source_file)
                if not found:
                    self.logger.debug(f"Cannot resolve '{prop_name}' in router '{router_name}': {found.reason}")
                    continue
                expression, owner = unwrap_expression(found.node), found.source_file
                if expression.type == "call_expression" and is_router_factory_call(expression, self.detection):
                    result.graph.add_mount(
                        MountEdge(parent=display_name, property=prop_name, target=node_text(value))
                    )
                    continue

            procedure = self.parse_procedure(expression, prop_name, display_name, line_of(prop), owner, schemas)
            if procedure is None:
                self.logger.debug(f"Skipping property '{prop_name}' in router '{router_name}' (not a procedure)")
                continue
            result.procedures.append(procedure)
            count += 1
            self.logger.debug(
                f"Captured procedure '{prop_name}' ({procedure.kind}) in router '{router_name}' "
                f"at line {procedure.line_number}"
            )

        result.graph.add_router(router)
        self.logger.debug(f"Found router '{display_name}' in {rel} with {count} procedure(s)")
        return router

    def parse_procedure(self, expression: Node, name: str, router: str, line: int,
                        source_file: SourceFile, schemas: ZodSchemaInterpreter) -> Optional[ProcedureNode]:
        """
        Read a procedure builder chain.

        The ``query``/``mutation`` terminal fixes the kind and supplies the
        resolver, ``input`` supplies the body schema, and the chain's base
        identifier gives the visibility.
        """
        state = {
            "kind": None,
            "input": None,
            "has_input": False,
            "has_output": False,
            "resolver": None,
            "visibility": UNKNOWN_VISIBILITY,
        }

        def walk(target: Optional[Node]):
            target = unwrap_expression(target)
            if target is None or target.type != "call_expression":
                return
            function = unwrap_expression(target.child_by_field_name("function"))
            if function is None:
                return

            if function.type == "member_expression":
                method = node_text(function.child_by_field_name("property"))
                args = call_arguments(target)
                if method == "input":
                    state["has_input"] = True
                    if args:
                        state["input"] = args[0]
                elif method == "output":
                    state["has_output"] = True
                elif method in (QUERY, MUTATION):
                    state["kind"] = method
                    if args and is_function_node(unwrap_expression(args[0])):
                        state["resolver"] = unwrap_expression(args[0])

                base = unwrap_expression(function.child_by_field_name("object"))
                if base is not None and base.type == "identifier":
                    state["visibility"] = map_visibility(node_text(base), state["visibility"])
                walk(base)
                return

            if function.type == "identifier":
                state["visibility"] = map_visibility(node_text(function), state["visibility"])
            for child in target.named_children:
                walk(child)

        walk(expression)

        if state["kind"] is None:
            self.logger.debug(f"Expression for '{name}' in router '{router}' is not a query/mutation")
            return None

        procedure = ProcedureNode(
            router=router,
            name=name,
            kind=state["kind"],
            file_path=self.relative_path(source_file.path),
            line_number=line,
            visibility=state["visibility"],
            has_input=state["has_input"],
            has_output=state["has_output"],
            headers=dict(JSON_HEADERS),
        )
        self.analyze_resolver(state["resolver"], procedure)
        if state["input"] is not None:
            procedure.body = schemas.extract_body(state["input"], source_file)
        return procedure

    @staticmethod
    def analyze_resolver(resolver: Optional[Node], procedure: ProcedureNode):
        if resolver is None:
            return
        body = resolver.child_by_field_name("body") or resolver
        text = node_text(body)
        procedure.resolver_lines = span_lines(resolver)
        procedure.uses_db = bool(DB_PATTERN.search(text))
        procedure.has_error_handling = TRPC_ERROR in text or any(
            True for _ in iter_descendants(body, {"try_statement"})
        )
        procedure.has_side_effects = bool(SIDE_EFFECT_PATTERNS.search(text))

    def procedure_path(self, procedure: ProcedureNode) -> str:
        base = self.options.trpc_base_path.rstrip("/")
        return f"{base}/{procedure.qualified_name}"

    def to_handler(self, procedure: ProcedureNode) -> RouteHandler:
        path = self.procedure_path(procedure)
        method = procedure.method
        return RouteHandler(
            route_type=self.route_type,
            path=path,
            method=method,
            file_path=str(self.root_dir / procedure.file_path),
            name=f"{method} {path}",
            handler_name=procedure.qualified_name,
            line_number=procedure.line_number,
            handler_lines=procedure.resolver_lines,
            uses_db=procedure.uses_db,
            has_error_handling=procedure.has_error_handling,
            has_validation=procedure.has_input,
            has_side_effects=procedure.has_side_effects,
            headers=dict(procedure.headers),
            body=procedure.body,
            body_to_query=procedure.kind == QUERY,
            metadata={
                "router": procedure.router,
                "procedure": procedure.name,
                "kind": procedure.kind,
                "visibility": procedure.visibility,
                "has_output": procedure.has_output,
            },
        )


def get_trpc_base_path(options=None) -> str:
    """Base URL path tRPC procedures are served under."""
    return options.trpc_base_path if options is not None else DEFAULT_TRPC_BASE_PATH


def parse_trpc_routes(root_dir: Path, options=None, cache=None):
    """Convenience function to parse tRPC procedures as routes."""
    return TrpcExtractor(root_dir, options=options, cache=cache).parse()

"""
RouteScope Router Graph - NetworkX-based composition graph for tRPC routers.

Routers are graph nodes; mounting one router under a property of another
is an edge ``parent -> child`` carrying the property name:

    export const appRouter = createTRPCRouter({
        auth: authRouter,          // edge app -> auth  (property "auth")
        posts: postRouter,         // edge app -> post  (property "posts")
    });

A router with no incoming mount is a root and resolves to the empty path;
every other router resolves to its parent's path joined with the mount
property by ``.``.

Supports:
- Root discovery
- Cycle reporting
- Dotted path resolution (cycle-safe)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import networkx as nx

logger = logging.getLogger(__name__)


QUERY = "query"
MUTATION = "mutation"

VISIBILITY_TAGS = {
    "publicProcedure": "public",
    "privateProcedure": "private",
    "protectedProcedure": "protected",
    "adminProcedure": "admin",
}
UNKNOWN_VISIBILITY = "unknown"

_SUFFIX_SEPARATORS = re.compile(r"[.\-_]+(\w)")


def normalize_router_name(value: str) -> str:
    """
    Canonical router name used to match mounts against declarations.

    ``authRouter`` -> ``auth``, ``createPostRouter`` -> ``post``,
    ``user_router`` -> ``user``, ``api.router`` -> ``api``.
    """
    cleaned = re.sub(r"\.(router|trpc)$", "", value, flags=re.IGNORECASE)
    cleaned = re.sub(r"^(create|build|make|use)(?=[A-Z])", "", cleaned)
    cleaned = re.sub(r"router$", "", cleaned, flags=re.IGNORECASE).strip("._-")
    cleaned = _SUFFIX_SEPARATORS.sub(lambda m: m.group(1).upper(), cleaned)
    if not cleaned:
        return ""
    return cleaned[0].lower() + cleaned[1:]


@dataclass
class RouterMeta:
    """One router-builder call site."""
    name: str
    file_path: str
    line_number: int
    end_line: int

    @property
    def lines_of_code(self) -> int:
        return self.end_line - self.line_number + 1

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "end_line": self.end_line,
            "lines_of_code": self.lines_of_code,
        }


@dataclass
class ProcedureNode:
    """A query or mutation entry inside a router."""
    router: str
    name: str
    kind: str  # query | mutation
    file_path: str
    line_number: int
    visibility: str = UNKNOWN_VISIBILITY
    has_input: bool = False
    has_output: bool = False
    body: Optional[str] = None
    resolver_lines: int = 0
    uses_db: bool = False
    has_error_handling: bool = False
    has_side_effects: bool = False
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def method(self) -> str:
        return "GET" if self.kind == QUERY else "POST"

    @property
    def qualified_name(self) -> str:
        return f"{self.router}.{self.name}" if self.router else self.name

    def to_dict(self) -> Dict:
        return {
            "router": self.router,
            "name": self.name,
            "kind": self.kind,
            "visibility": self.visibility,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "has_input": self.has_input,
            "has_output": self.has_output,
            "resolver_lines": self.resolver_lines,
            "uses_db": self.uses_db,
            "has_error_handling": self.has_error_handling,
            "has_side_effects": self.has_side_effects,
        }


@dataclass
class MountEdge:
    """Router ``target`` nested under ``parent`` at key ``property``."""
    parent: str
    property: str
    target: str

    def to_dict(self) -> Dict:
        return {"parent": self.parent, "property": self.property, "target": self.target}


class RouterGraph:
    """
    Router composition graph.

    Usage:
        graph = RouterGraph()
        graph.add_router(RouterMeta("app", "src/server/root.ts", 1, 10))
        graph.add_router(RouterMeta("auth", "src/server/auth.ts", 1, 20))
        graph.add_mount(MountEdge(parent="app", property="auth", target="authRouter"))
        graph.resolve_paths()   # {"app": "", "auth": "auth"}
    """

    def __init__(self):
        self._graph = nx.MultiDiGraph()
        self.routers: List[RouterMeta] = []
        self.mounts: List[MountEdge] = []
        self._built = False

    def add_router(self, router: RouterMeta):
        self.routers.append(router)
        self._built = False

    def add_mount(self, mount: MountEdge):
        self.mounts.append(mount)
        self._built = False

    @property
    def graph(self) -> "nx.MultiDiGraph":
        self._build()
        return self._graph

    def _build(self):
        if self._built:
            return
        self._graph = nx.MultiDiGraph()

        by_normalized: Dict[str, str] = {}
        for router in self.routers:
            self._graph.add_node(router.name, file_path=router.file_path, line_number=router.line_number)
            by_normalized[normalize_router_name(router.name) or router.name] = router.name

        for order, mount in enumerate(self.mounts):
            candidates = [c for c in (normalize_router_name(mount.target),
                                      normalize_router_name(mount.property)) if c]
            if not candidates:
                continue
            key = next((by_normalized[c] for c in candidates if c in by_normalized), candidates[0])
            self._graph.add_edge(mount.parent, key, property=mount.property,
                                 target=mount.target, order=order)
        self._built = True

    def incoming(self, name: str) -> List[MountEdge]:
        """Mounts of ``name`` (by raw or normalized name), in declaration order."""
        graph = self.graph
        normalized = normalize_router_name(name) or name
        for key in (name, normalized):
            if key not in graph:
                continue
            edges = sorted(graph.in_edges(key, data=True), key=lambda e: e[2]["order"])
            if edges:
                return [MountEdge(parent=src, property=data["property"], target=data["target"])
                        for src, _, data in edges]
        return []

    def roots(self) -> Set[str]:
        """Routers nothing mounts, under both raw and normalized names."""
        roots = set()
        for router in self.routers:
            if not self.incoming(router.name):
                roots.add(router.name)
                roots.add(normalize_router_name(router.name) or router.name)
        return roots

    def find_cycles(self) -> List[List[str]]:
        """Mount cycles (including self-mounts)."""
        simple = nx.DiGraph(self.graph)
        return [cycle for cycle in nx.simple_cycles(simple)]

    def resolve_paths(self) -> Dict[str, str]:
        """
        Router name -> dotted mount path.

        Roots resolve to "". A router reached again while its own path is
        being resolved yields its raw name instead of recursing.
        """
        roots = self.roots()
        resolved: Dict[str, str] = {}
        resolving: Set[str] = set()

        def resolve(name: str) -> str:
            if name in resolved:
                return resolved[name]
            if name in resolving:
                return name
            resolving.add(name)

            edges = self.incoming(name)
            if not edges:
                normalized = normalize_router_name(name) or name
                base = "" if name in roots or normalized in roots else name
                resolved[name] = base
                resolving.discard(name)
                return base

            edge = edges[0]
            parent_path = resolve(edge.parent)
            path = f"{parent_path}.{edge.property}" if parent_path else edge.property
            resolved[name] = path
            resolving.discard(name)
            return path

        for router in self.routers:
            resolve(router.name)

        if resolved:
            logger.debug("Router path map: " + ", ".join(f"{k}->{v}" for k, v in resolved.items()))
        return resolved

    def apply(self, procedures: List[ProcedureNode]) -> Dict[str, str]:
        """Rewrite router names in place wherever resolution is non-empty."""
        paths = self.resolve_paths()
        for procedure in procedures:
            mapped = paths.get(procedure.router)
            if mapped:
                procedure.router = mapped
        for router in self.routers:
            mapped = paths.get(router.name)
            if mapped:
                router.name = mapped
        self._built = False
        return paths

    def to_dict(self) -> Dict:
        return {
            "routers": [r.to_dict() for r in self.routers],
            "mounts": [m.to_dict() for m in self.mounts],
            "cycles": self.find_cycles(),
        }

"""
tRPC router detection helpers.

Decides which call expressions build routers and which object-literal
values reference another router:

    createTRPCRouter({...})          factory by name
    t.router({...})                  factory by trailing property name
    authRouter                       routerish identifier (pattern ``router$``)
    appRouter.merge(...)             routerish receiver
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from tree_sitter import Node

from routescope.core.options import DEFAULT_ROUTER_FACTORIES, DEFAULT_ROUTER_IDENTIFIER_PATTERN
from routescope.core.parser import (
    FUNCTION_TYPES,
    SourceFile,
    iter_descendants,
    line_of,
    node_text,
    property_key,
    unwrap_expression,
)

logger = logging.getLogger(__name__)


@dataclass
class RouterDetectionConfig:
    """Router factory names and the routerish identifier pattern."""
    factory_names: Set[str] = field(default_factory=lambda: set(DEFAULT_ROUTER_FACTORIES))
    identifier_pattern: "re.Pattern" = field(
        default_factory=lambda: re.compile(DEFAULT_ROUTER_IDENTIFIER_PATTERN, re.IGNORECASE)
    )


def normalize_factory_names(names: Optional[List[str]]) -> List[str]:
    """Flatten comma-separated entries; fall back to the defaults when empty."""
    if not names:
        return list(DEFAULT_ROUTER_FACTORIES)
    flattened = [part.strip() for item in names for part in item.split(",")]
    deduped = list(dict.fromkeys(name for name in flattened if name))
    return deduped or list(DEFAULT_ROUTER_FACTORIES)


def build_router_detection_config(factories: Optional[List[str]] = None,
                                  pattern: Optional[str] = None) -> RouterDetectionConfig:
    factory_names = set(normalize_factory_names(factories))
    identifier_pattern = re.compile(DEFAULT_ROUTER_IDENTIFIER_PATTERN, re.IGNORECASE)
    if pattern:
        try:
            identifier_pattern = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            logger.debug(f"Invalid router identifier pattern '{pattern}' ({e}); using default")

    logger.debug(
        f"Router detection config: factories={', '.join(sorted(factory_names))}; "
        f"identifier pattern={identifier_pattern.pattern}"
    )
    return RouterDetectionConfig(factory_names=factory_names, identifier_pattern=identifier_pattern)


def _matches_factory(expression: Optional[Node], factory_names: Set[str]) -> bool:
    if expression is None:
        return False
    if expression.type == "identifier":
        return node_text(expression) in factory_names
    if expression.type == "member_expression":
        return node_text(expression.child_by_field_name("property")) in factory_names
    return False


def is_routerish_expression(expression: Optional[Node], pattern: "re.Pattern") -> bool:
    expression = unwrap_expression(expression)
    if expression is None:
        return False
    if expression.type == "identifier":
        return bool(pattern.search(node_text(expression)))
    if expression.type == "member_expression":
        if pattern.search(node_text(expression.child_by_field_name("property"))):
            return True
        obj = expression.child_by_field_name("object")
        return obj is not None and obj.type == "identifier" and bool(pattern.search(node_text(obj)))
    if expression.type == "call_expression":
        return is_routerish_expression(expression.child_by_field_name("function"), pattern)
    return False


def is_router_factory_call(node: Node, config: RouterDetectionConfig) -> bool:
    function = unwrap_expression(node.child_by_field_name("function"))
    return _matches_factory(function, config.factory_names) \
        or is_routerish_expression(function, config.identifier_pattern)


def is_router_reference(node: Optional[Node], config: RouterDetectionConfig) -> bool:
    """Whether a router property value points at another router."""
    node = unwrap_expression(node)
    if node is None:
        return False
    if node.type in ("identifier", "shorthand_property_identifier"):
        return bool(config.identifier_pattern.search(node_text(node)))
    if node.type == "member_expression":
        return is_routerish_expression(node, config.identifier_pattern)
    if node.type == "call_expression":
        return is_router_factory_call(node, config)
    return False


def get_router_reference_name(node: Optional[Node]) -> Optional[str]:
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type in ("identifier", "shorthand_property_identifier", "member_expression"):
        return node_text(node)
    if node.type == "call_expression":
        function = unwrap_expression(node.child_by_field_name("function"))
        if function is not None and function.type in ("identifier", "member_expression"):
            return node_text(function)
    return None


def infer_router_name(call: Node) -> Optional[str]:
    """
    Name for a router call site.

    Nearest enclosing variable declarator, then enclosing object property
    key, then enclosing named function (or the variable holding it).
    """
    parent = call.parent
    while parent is not None:
        if parent.type == "variable_declarator":
            name = parent.child_by_field_name("name")
            if name is not None and name.type == "identifier":
                return node_text(name)
            return None
        if parent.type == "pair":
            key = property_key(parent.child_by_field_name("key"))
            if key:
                return key
        if parent.type in FUNCTION_TYPES:
            name = parent.child_by_field_name("name")
            if name is not None:
                return node_text(name)
            holder = parent.parent
            while holder is not None and holder.type not in ("variable_declarator", "program"):
                holder = holder.parent
            if holder is not None and holder.type == "variable_declarator":
                holder_name = holder.child_by_field_name("name")
                return node_text(holder_name) if holder_name is not None else None
            return None
        parent = parent.parent
    return None


def collect_router_call_sites(source_file: SourceFile,
                              config: RouterDetectionConfig) -> List[Tuple[Node, str]]:
    """(call node, router name) for every router-building call in a file."""
    calls = []
    seen = set()
    for node in iter_descendants(source_file.root, {"call_expression"}):
        if node.start_byte in seen or not is_router_factory_call(node, config):
            continue
        seen.add(node.start_byte)
        name = infer_router_name(node)
        logger.debug(
            f"Detected router factory call{f' {name!r}' if name else ''} at line {line_of(node)}"
        )
        calls.append((node, name or f"router@{line_of(node)}"))
    return calls

"""
Builder-chain Schema Interpreter for RouteScope

Reads zod-style validation schema expressions such as

    z.object({ email: z.string().email(), age: z.number().optional() })

into a SchemaTypeInfo tree without executing anything, then renders a
deterministic example value from it.

Rendering precedence:
1. an explicit ``.default(x)`` wins
2. ``nullable`` renders null
3. ``optional`` renders ABSENT (the key is left out of its object)
4. otherwise a kind-specific placeholder
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from tree_sitter import Node

from routescope.core.parser import (
    NOT_LITERAL,
    SourceFile,
    call_arguments,
    literal_value,
    node_text,
    object_properties,
    unwrap_expression,
)
from routescope.core.symbols import SymbolResolver

logger = logging.getLogger(__name__)


STRING = "string"
NUMBER = "number"
BOOLEAN = "boolean"
DATE = "date"
ARRAY = "array"
OBJECT = "object"
ENUM = "enum"
LITERAL = "literal"
UNKNOWN = "unknown"

SCHEMA_KINDS = (STRING, NUMBER, BOOLEAN, DATE, ARRAY, OBJECT, ENUM, LITERAL, UNKNOWN)

# Base constructors that map straight onto a kind
PRIMITIVE_CONSTRUCTORS = {
    "string": STRING,
    "number": NUMBER,
    "bigint": NUMBER,
    "boolean": BOOLEAN,
    "date": DATE,
}

MODIFIERS = {"optional", "nullable", "nullish", "default"}

MAX_RESOLVE_DEPTH = 16


class _Absent:
    """Marker for 'leave this key out'."""

    def __repr__(self):
        return "ABSENT"

    def __bool__(self):
        return False


ABSENT = _Absent()
_NO_DEFAULT = object()


@dataclass
class SchemaTypeInfo:
    """Intermediate representation of one schema expression."""
    kind: str
    optional: bool = False
    nullable: bool = False
    default_value: Any = _NO_DEFAULT
    literal_value: Any = None
    options: List[Any] = field(default_factory=list)
    children: Optional[Dict[str, "SchemaTypeInfo"]] = None
    items: Optional["SchemaTypeInfo"] = None
    reason: Optional[str] = None

    @property
    def has_default(self) -> bool:
        return self.default_value is not _NO_DEFAULT

    def copy(self) -> "SchemaTypeInfo":
        return SchemaTypeInfo(
            kind=self.kind,
            optional=self.optional,
            nullable=self.nullable,
            default_value=self.default_value,
            literal_value=self.literal_value,
            options=list(self.options),
            children=dict(self.children) if self.children is not None else None,
            items=self.items,
            reason=self.reason,
        )

    def to_dict(self) -> Dict:
        data = {"kind": self.kind, "optional": self.optional, "nullable": self.nullable}
        if self.has_default:
            data["default"] = self.default_value
        if self.kind == LITERAL:
            data["value"] = self.literal_value
        if self.options:
            data["options"] = self.options
        if self.children is not None:
            data["children"] = {k: v.to_dict() for k, v in self.children.items()}
        if self.items is not None:
            data["items"] = self.items.to_dict()
        if self.reason:
            data["reason"] = self.reason
        return data


def unknown(reason: str) -> SchemaTypeInfo:
    return SchemaTypeInfo(kind=UNKNOWN, reason=reason)


def render_example(info: SchemaTypeInfo) -> Any:
    """Render a SchemaTypeInfo to an example value (or ABSENT)."""
    if info.has_default:
        return info.default_value
    if info.nullable:
        return None
    if info.optional:
        return ABSENT

    if info.kind == STRING:
        return ""
    if info.kind == NUMBER:
        return 0
    if info.kind == BOOLEAN:
        return False
    if info.kind == ARRAY:
        if info.items is None:
            return []
        item = render_example(info.items)
        return [] if item is ABSENT else [item]
    if info.kind == OBJECT:
        rendered = {}
        for key, child in (info.children or {}).items():
            value = render_example(child)
            if value is not ABSENT:
                rendered[key] = value
        return rendered
    if info.kind == ENUM:
        return info.options[0] if info.options else None
    if info.kind == LITERAL:
        return info.literal_value
    # date and unknown have no deterministic placeholder
    return None


def static_value(node: Optional[Node]) -> Any:
    """Literal value including array/object literals; NOT_LITERAL otherwise."""
    node = unwrap_expression(node)
    if node is None:
        return NOT_LITERAL
    if node.type == "array":
        values = []
        for child in node.named_children:
            value = static_value(child)
            if value is NOT_LITERAL:
                return NOT_LITERAL
            values.append(value)
        return values
    if node.type == "object":
        values = {}
        for key, value_node, _ in object_properties(node):
            value = static_value(value_node)
            if value is NOT_LITERAL:
                return NOT_LITERAL
            values[key] = value
        return values
    return literal_value(node)


class ZodSchemaInterpreter:
    """
    Interpret zod builder chains.

    Usage:
        interpreter = ZodSchemaInterpreter(SymbolResolver(project))
        body = interpreter.extract_body(schema_node, source_file)
    """

    def __init__(self, resolver: Optional[SymbolResolver] = None):
        self.resolver = resolver or SymbolResolver()

    # -- parsing ----------------------------------------------------------

    def parse(self, node: Optional[Node], source_file: SourceFile) -> SchemaTypeInfo:
        return self._parse(node, source_file, set(), 0)

    def _parse(self, node: Optional[Node], source_file: SourceFile,
               resolving: Set[str], depth: int) -> SchemaTypeInfo:
        node = unwrap_expression(node)
        if node is None:
            return unknown("empty expression")
        if depth > MAX_RESOLVE_DEPTH:
            return unknown("schema nesting too deep")

        if node.type in ("identifier", "shorthand_property_identifier"):
            return self._parse_identifier(node, source_file, resolving, depth)
        if node.type == "call_expression":
            return self._parse_call(node, source_file, resolving, depth)
        if node.type == "member_expression":
            return unknown(f"unsupported schema reference {node_text(node)}")
        return unknown(f"unsupported schema expression {node.type}")

    def _parse_identifier(self, node: Node, source_file: SourceFile,
                          resolving: Set[str], depth: int) -> SchemaTypeInfo:
        name = node_text(node)
        key = f"{source_file.path}:{name}"
        if key in resolving:
            return unknown(f"recursive schema reference {name}")

        resolution = self.resolver.resolve_value(name, source_file)
        if not resolution:
            logger.debug(f"Unresolved schema identifier {name}: {resolution.reason}")
            return unknown(f"unresolved identifier {name}")

        resolving.add(key)
        try:
            return self._parse(resolution.node, resolution.source_file, resolving, depth + 1)
        finally:
            resolving.discard(key)

    def _zod_namespaces(self, source_file: SourceFile) -> Set[str]:
        names = {"z"}
        for decl in source_file.imports():
            if decl.module == "zod" or decl.module.startswith("zod/"):
                names.update(local for local, imported in decl.named.items() if imported == "z")
                if decl.namespace_name:
                    names.add(decl.namespace_name)
                if decl.default_name:
                    names.add(decl.default_name)
        return names

    def _parse_call(self, node: Node, source_file: SourceFile,
                    resolving: Set[str], depth: int) -> SchemaTypeInfo:
        function = unwrap_expression(node.child_by_field_name("function"))
        args = call_arguments(node)

        if function is None or function.type != "member_expression":
            return unknown(f"unsupported call {node_text(function)}")

        method = node_text(function.child_by_field_name("property"))
        base = unwrap_expression(function.child_by_field_name("object"))

        if self._is_namespace(base, source_file):
            return self._parse_constructor(method, args, source_file, resolving, depth)

        # Chained call on an existing schema
        info = self._parse(base, source_file, resolving, depth + 1)
        return self._apply_method(info, method, args, source_file, resolving, depth)

    def _is_namespace(self, base: Optional[Node], source_file: SourceFile) -> bool:
        if base is None:
            return False
        namespaces = self._zod_namespaces(source_file)
        if base.type == "identifier":
            return node_text(base) in namespaces
        # z.coerce.number()
        if base.type == "member_expression":
            obj = base.child_by_field_name("object")
            prop = base.child_by_field_name("property")
            return obj is not None and obj.type == "identifier" and node_text(obj) in namespaces \
                and node_text(prop) == "coerce"
        return False

    def _parse_constructor(self, name: str, args: List[Node], source_file: SourceFile,
                           resolving: Set[str], depth: int) -> SchemaTypeInfo:
        if name in PRIMITIVE_CONSTRUCTORS:
            return SchemaTypeInfo(kind=PRIMITIVE_CONSTRUCTORS[name])

        if name == "array":
            items = self._parse(args[0], source_file, resolving, depth + 1) if args else None
            return SchemaTypeInfo(kind=ARRAY, items=items)

        if name in ("object", "strictObject", "looseObject"):
            return SchemaTypeInfo(kind=OBJECT, children=self._parse_shape(
                args[0] if args else None, source_file, resolving, depth))

        if name == "enum":
            options = static_value(args[0]) if args else NOT_LITERAL
            info = SchemaTypeInfo(kind=ENUM)
            if isinstance(options, list):
                info.options = [o for o in options if isinstance(o, (str, int, float))]
            return info

        if name == "nativeEnum":
            return SchemaTypeInfo(kind=ENUM, options=self._native_enum_values(args, source_file))

        if name == "literal":
            value = literal_value(args[0]) if args else NOT_LITERAL
            return SchemaTypeInfo(kind=LITERAL, literal_value=None if value is NOT_LITERAL else value)

        if name in ("union", "discriminatedUnion"):
            options_node = args[-1] if args else None
            options_node = unwrap_expression(options_node)
            if options_node is not None and options_node.type == "array" and options_node.named_children:
                return self._parse(options_node.named_children[0], source_file, resolving, depth + 1)
            return unknown("union without static options")

        if name == "record":
            return SchemaTypeInfo(kind=OBJECT, children={})

        if name in ("optional", "nullable") and args:
            info = self._parse(args[0], source_file, resolving, depth + 1).copy()
            setattr(info, name, True)
            return info

        if name == "lazy":
            return unknown("lazy schemas are not expanded")

        return unknown(f"unsupported base type {name}")

    def _parse_shape(self, node: Optional[Node], source_file: SourceFile,
                     resolving: Set[str], depth: int) -> Dict[str, SchemaTypeInfo]:
        children = {}
        for key, value, _ in object_properties(node):
            children[key] = self._parse(value, source_file, resolving, depth + 1)
        return children

    def _native_enum_values(self, args: List[Node], source_file: SourceFile) -> List[Any]:
        if not args:
            return []
        target = unwrap_expression(args[0])
        if target is None or target.type != "identifier":
            return []
        resolution = self.resolver.resolve_type(node_text(target), source_file)
        if not resolution or resolution.node.type != "enum_declaration":
            return []
        body = resolution.node.child_by_field_name("body")
        values = []
        index = 0
        for member in body.named_children if body is not None else []:
            if member.type == "enum_assignment":
                value = literal_value(member.child_by_field_name("value"))
                if value is NOT_LITERAL:
                    continue
                values.append(value)
                if isinstance(value, int):
                    index = value + 1
            elif member.type in ("property_identifier", "string"):
                values.append(index)
                index += 1
        return values

    def _apply_method(self, info: SchemaTypeInfo, method: str, args: List[Node],
                      source_file: SourceFile, resolving: Set[str], depth: int) -> SchemaTypeInfo:
        if method in MODIFIERS:
            info = info.copy()
            if method == "optional":
                info.optional = True
            elif method == "nullable":
                info.nullable = True
            elif method == "nullish":
                info.optional = True
                info.nullable = True
            elif method == "default" and args:
                value = static_value(args[0])
                if value is not NOT_LITERAL:
                    info.default_value = value
            return info

        if method == "array":
            return SchemaTypeInfo(kind=ARRAY, items=info)

        if info.kind == OBJECT:
            return self._apply_object_method(info, method, args, source_file, resolving, depth)

        # Refinements and transforms (min, email, trim, ...) keep the base shape
        return info

    def _apply_object_method(self, info: SchemaTypeInfo, method: str, args: List[Node],
                             source_file: SourceFile, resolving: Set[str], depth: int) -> SchemaTypeInfo:
        children = dict(info.children or {})

        if method == "partial":
            children = {k: self._with(v, optional=True) for k, v in children.items()}
        elif method == "required":
            children = {k: self._with(v, optional=False) for k, v in children.items()}
        elif method == "extend" and args:
            children.update(self._parse_shape(args[0], source_file, resolving, depth))
        elif method == "merge" and args:
            other = self._parse(args[0], source_file, resolving, depth + 1)
            children.update(other.children or {})
        elif method in ("pick", "omit") and args:
            keys = {key for key, _, _ in object_properties(args[0])}
            if method == "pick":
                children = {k: v for k, v in children.items() if k in keys}
            else:
                children = {k: v for k, v in children.items() if k not in keys}
        else:
            return info

        result = info.copy()
        result.children = children
        return result

    @staticmethod
    def _with(info: SchemaTypeInfo, optional: bool) -> SchemaTypeInfo:
        copy = info.copy()
        copy.optional = optional
        return copy

    # -- rendering --------------------------------------------------------

    def example(self, node: Optional[Node], source_file: SourceFile) -> Any:
        return render_example(self.parse(node, source_file))

    def extract_body(self, node: Optional[Node], source_file: SourceFile) -> str:
        """
        JSON example for a schema expression.

        Returns "{}" when nothing useful could be synthesized, including
        unresolved identifiers.
        """
        value = self.example(node, source_file)
        if isinstance(value, (dict, list)) and len(value) > 0:
            return json.dumps(value, indent=2, ensure_ascii=False)
        return "{}"

    def extract_query_params(self, node: Optional[Node], source_file: SourceFile) -> Dict[str, str]:
        """Flat query placeholders for an object schema's primitive fields."""
        value = self.example(node, source_file)
        query = {}
        if not isinstance(value, dict):
            return query
        for key, item in value.items():
            if isinstance(item, (dict, list)):
                continue
            if item is None:
                query[key] = ""
            elif isinstance(item, bool):
                query[key] = "true" if item else "false"
            else:
                query[key] = str(item)
        return query

"""
Structural Type Model for RouteScope

A deliberately small stand-in for a type checker. It turns type annotations
into TsType values by reading declarations from the syntax tree:
- primitives, literal types, arrays, tuples, unions, intersections
- interfaces (with ``extends``), type aliases (with generic parameters),
  classes (public fields), enums (member values from initializers)
- Array<T>, Partial/Required/Readonly/NonNullable<T>, Pick/Omit<T, K>,
  Record<K, V>
- names imported one hop from another project file

Object properties are loaded lazily, so self-referential types are cheap to
build; cycle protection happens where they are expanded.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from tree_sitter import Node

from routescope.core.parser import (
    NOT_LITERAL,
    SourceFile,
    literal_value,
    node_text,
    property_key,
)
from routescope.core.symbols import SymbolResolver

logger = logging.getLogger(__name__)


STRING = "string"
NUMBER = "number"
BOOLEAN = "boolean"
BIGINT = "bigint"
NULL = "null"
UNDEFINED = "undefined"
VOID = "void"
NEVER = "never"
ANY = "any"
UNKNOWN = "unknown"
LITERAL = "literal"
BOOLEAN_LITERAL = "boolean_literal"
ARRAY = "array"
TUPLE = "tuple"
UNION = "union"
ENUM = "enum"
ENUM_LITERAL = "enum_literal"
OBJECT = "object"
BUILTIN = "builtin"
FUNCTION = "function"
UNRESOLVED = "unresolved"

PREDEFINED_KINDS = {
    "string": STRING,
    "number": NUMBER,
    "boolean": BOOLEAN,
    "bigint": BIGINT,
    "any": ANY,
    "unknown": UNKNOWN,
    "void": VOID,
    "never": NEVER,
    "undefined": UNDEFINED,
    "null": NULL,
    "symbol": UNKNOWN,
    "object": OBJECT,
}

# Well-known non-plain types; never expanded structurally
BUILTIN_TYPE_NAMES = {
    "Date", "Blob", "File", "Buffer", "ArrayBuffer", "Uint8Array",
    "ReadableStream", "WritableStream", "Readable", "Writable", "Stream",
    "RegExp", "Map", "WeakMap", "Set", "WeakSet", "FormData",
    "URLSearchParams", "Promise",
    "Request", "Response", "NextRequest", "NextResponse",
    "NextApiRequest", "NextApiResponse", "IncomingMessage", "ServerResponse",
    "FastifyRequest", "FastifyReply",
}

MAX_ALIAS_DEPTH = 24


@dataclass
class TsProperty:
    """A property of an object-like type."""
    name: str
    optional: bool = False
    is_method: bool = False
    loader: Optional[Callable[[], "TsType"]] = None
    _type: Optional["TsType"] = field(default=None, repr=False)

    @property
    def type(self) -> "TsType":
        if self._type is None:
            self._type = self.loader() if self.loader else TsType(kind=ANY, text="any")
        return self._type


@dataclass
class TsType:
    """A resolved type."""
    kind: str
    text: str
    value: Any = None
    name: Optional[str] = None
    element: Optional["TsType"] = None
    members: List["TsType"] = field(default_factory=list)
    enum_members: List[Tuple[str, Any]] = field(default_factory=list)
    properties_loader: Optional[Callable[[], List[TsProperty]]] = field(default=None, repr=False)
    _properties: Optional[List[TsProperty]] = field(default=None, repr=False)

    def properties(self) -> List[TsProperty]:
        if self._properties is None:
            self._properties = self.properties_loader() if self.properties_loader else []
        return self._properties

    @property
    def is_nullish(self) -> bool:
        return self.kind in (NULL, UNDEFINED, VOID)


def normalize_type_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def any_type() -> TsType:
    return TsType(kind=ANY, text="any")


class TypeResolver:
    """
    Turn type annotation nodes into TsType values.

    Usage:
        types = TypeResolver(SymbolResolver(project))
        user_type = types.type_of_parameter(param_node, source_file)
    """

    def __init__(self, resolver: Optional[SymbolResolver] = None):
        self.resolver = resolver or SymbolResolver()
        self._resolving: Set[Tuple[str, str]] = set()
        self._handlers = {
            "type_annotation": self._from_annotation,
            "opting_type_annotation": self._from_annotation,
            "predefined_type": self._from_predefined,
            "literal_type": self._from_literal,
            "type_identifier": self._from_identifier,
            "identifier": self._from_identifier,
            "nested_type_identifier": self._from_nested_identifier,
            "generic_type": self._from_generic,
            "array_type": self._from_array,
            "tuple_type": self._from_tuple,
            "readonly_type": self._from_inner,
            "parenthesized_type": self._from_inner,
            "union_type": self._from_union,
            "intersection_type": self._from_intersection,
            "object_type": self._from_object_type,
            "template_literal_type": self._from_template_literal,
            "function_type": self._from_function,
            "constructor_type": self._from_function,
        }

    # -- entry points -----------------------------------------------------

    def type_of_parameter(self, param: Node, source_file: SourceFile) -> TsType:
        annotation = param.child_by_field_name("type")
        if annotation is None:
            return any_type()
        return self.type_of_node(annotation, source_file)

    def type_of_node(self, node: Optional[Node], source_file: SourceFile,
                     params: Optional[Dict[str, TsType]] = None) -> TsType:
        if node is None:
            return any_type()
        handler = self._handlers.get(node.type)
        if handler is None:
            logger.debug(f"Unsupported type syntax {node.type}: {node_text(node)}")
            return TsType(kind=UNRESOLVED, text=normalize_type_text(node_text(node)))
        return handler(node, source_file, params or {})

    # -- syntax handlers --------------------------------------------------

    def _from_annotation(self, node, source_file, params):
        inner = next((c for c in node.named_children if c.type != "comment"), None)
        return self.type_of_node(inner, source_file, params)

    def _from_inner(self, node, source_file, params):
        return self._from_annotation(node, source_file, params)

    def _from_predefined(self, node, source_file, params):
        text = node_text(node)
        return TsType(kind=PREDEFINED_KINDS.get(text, UNKNOWN), text=text)

    def _from_literal(self, node, source_file, params):
        text = node_text(node)
        inner = node.named_children[0] if node.named_children else None
        if inner is not None and inner.type in ("true", "false"):
            return TsType(kind=BOOLEAN_LITERAL, text=text, value=inner.type == "true")
        if inner is not None and inner.type in ("null", "undefined"):
            return TsType(kind=NULL if inner.type == "null" else UNDEFINED, text=text)
        value = literal_value(inner) if inner is not None else NOT_LITERAL
        if value is NOT_LITERAL:
            return TsType(kind=UNRESOLVED, text=text)
        return TsType(kind=LITERAL, text=text, value=value)

    def _from_identifier(self, node, source_file, params):
        name = node_text(node)
        if name in PREDEFINED_KINDS and name not in params:
            return TsType(kind=PREDEFINED_KINDS[name], text=name)
        return self.resolve_named(name, [], source_file, params)

    def _from_nested_identifier(self, node, source_file, params):
        text = normalize_type_text(node_text(node))
        module = node.child_by_field_name("module")
        name = node.child_by_field_name("name")
        if module is not None and name is not None and module.type == "identifier":
            resolution = self.resolver.resolve_type(node_text(module), source_file)
            if resolution and resolution.node.type == "enum_declaration":
                members = dict(enum_members(resolution.node))
                member = node_text(name)
                return TsType(kind=ENUM_LITERAL, text=text, name=member, value=members.get(member))
        last = text.split(".")[-1]
        if last in BUILTIN_TYPE_NAMES:
            return TsType(kind=BUILTIN, text=text, name=last)
        return TsType(kind=UNRESOLVED, text=text)

    def _from_generic(self, node, source_file, params):
        name_node = node.child_by_field_name("name")
        args_node = node.child_by_field_name("type_arguments")
        args = [c for c in args_node.named_children if c.type != "comment"] if args_node else []
        if name_node is not None and name_node.type == "nested_type_identifier":
            return self._from_nested_identifier(name_node, source_file, params)
        return self.resolve_named(node_text(name_node), args, source_file, params,
                                  text=normalize_type_text(node_text(node)))

    def _from_array(self, node, source_file, params):
        inner = next((c for c in node.named_children if c.type != "comment"), None)
        element = self.type_of_node(inner, source_file, params)
        return TsType(kind=ARRAY, text=normalize_type_text(node_text(node)), element=element)

    def _from_tuple(self, node, source_file, params):
        members = []
        for child in node.named_children:
            if child.type in ("comment", "rest_type"):
                continue
            if child.type in ("optional_type", "required_parameter", "optional_parameter"):
                annotation = child.child_by_field_name("type")
                child = annotation if annotation is not None else (child.named_children or [child])[-1]
            members.append(self.type_of_node(child, source_file, params))
        return TsType(kind=TUPLE, text=normalize_type_text(node_text(node)), members=members)

    def _flatten(self, node: Node, node_type: str) -> List[Node]:
        flat = []
        for child in node.named_children:
            if child.type == node_type:
                flat.extend(self._flatten(child, node_type))
            elif child.type != "comment":
                flat.append(child)
        return flat

    def _from_union(self, node, source_file, params):
        members = [self.type_of_node(c, source_file, params) for c in self._flatten(node, "union_type")]
        if len(members) == 1:
            return members[0]
        # boolean is the union true | false
        return TsType(kind=UNION, text=normalize_type_text(node_text(node)), members=members)

    def _from_intersection(self, node, source_file, params):
        members = [self.type_of_node(c, source_file, params) for c in self._flatten(node, "intersection_type")]

        def load():
            merged = {}
            for member in members:
                for prop in member.properties():
                    merged[prop.name] = prop
            return list(merged.values())

        return TsType(kind=OBJECT, text=normalize_type_text(node_text(node)), properties_loader=load)

    def _from_object_type(self, node, source_file, params):
        return TsType(
            kind=OBJECT,
            text=normalize_type_text(node_text(node)),
            properties_loader=lambda: self._member_properties(node, source_file, params),
        )

    def _from_template_literal(self, node, source_file, params):
        return TsType(kind=STRING, text=normalize_type_text(node_text(node)))

    def _from_function(self, node, source_file, params):
        return TsType(kind=FUNCTION, text=normalize_type_text(node_text(node)))

    # -- named types ------------------------------------------------------

    def resolve_named(self, name: str, args: List[Node], source_file: SourceFile,
                      params: Dict[str, TsType], text: Optional[str] = None) -> TsType:
        text = text or name
        if name in params:
            return params[name]

        arg_types = [self.type_of_node(a, source_file, params) for a in args]

        if name in ("Array", "ReadonlyArray"):
            element = arg_types[0] if arg_types else any_type()
            return TsType(kind=ARRAY, text=text, element=element)
        if name in ("Partial", "Required", "Readonly", "NonNullable") and arg_types:
            return self._apply_utility(name, arg_types[0], text)
        if name in ("Pick", "Omit") and len(arg_types) == 2:
            return self._pick_omit(name, arg_types[0], arg_types[1], text)
        if name == "Record":
            return TsType(kind=OBJECT, text=text, name="Record")

        key = (str(source_file.path), name)
        if key in self._resolving or len(self._resolving) > MAX_ALIAS_DEPTH:
            return TsType(kind=UNRESOLVED, text=text)

        resolution = self.resolver.resolve_type(name, source_file)
        if not resolution:
            if name in BUILTIN_TYPE_NAMES:
                return TsType(kind=BUILTIN, text=text, name=name)
            logger.debug(f"Unresolved type {name}: {resolution.reason}")
            return TsType(kind=UNRESOLVED, text=text)

        self._resolving.add(key)
        try:
            return self._from_declaration(resolution.node, resolution.source_file, arg_types, text)
        finally:
            self._resolving.discard(key)

    def _bind_params(self, decl: Node, arg_types: List[TsType]) -> Dict[str, TsType]:
        type_params = decl.child_by_field_name("type_parameters")
        bound = {}
        if type_params is None:
            return bound
        for i, param in enumerate(c for c in type_params.named_children if c.type == "type_parameter"):
            name_node = param.child_by_field_name("name")
            if name_node is None:
                continue
            if i < len(arg_types):
                bound[node_text(name_node)] = arg_types[i]
            else:
                default = param.child_by_field_name("value")
                bound[node_text(name_node)] = self._default_param(default)
        return bound

    def _default_param(self, default: Optional[Node]) -> TsType:
        return any_type() if default is None else TsType(kind=UNRESOLVED, text=node_text(default))

    def _from_declaration(self, decl: Node, source_file: SourceFile,
                          arg_types: List[TsType], text: str) -> TsType:
        params = self._bind_params(decl, arg_types)

        if decl.type == "type_alias_declaration":
            resolved = self.type_of_node(decl.child_by_field_name("value"), source_file, params)
            if resolved.kind == OBJECT:
                # the alias name is the identity used for cycle detection
                resolved = replace(resolved, text=text)
            return resolved

        if decl.type == "interface_declaration":
            return TsType(
                kind=OBJECT,
                text=text,
                properties_loader=lambda: self._interface_properties(decl, source_file, params),
            )

        if decl.type in ("class_declaration", "abstract_class_declaration"):
            return TsType(
                kind=OBJECT,
                text=text,
                properties_loader=lambda: self._class_properties(decl, source_file),
            )

        if decl.type == "enum_declaration":
            return TsType(kind=ENUM, text=text, name=text, enum_members=enum_members(decl))

        return TsType(kind=UNRESOLVED, text=text)

    # -- properties -------------------------------------------------------

    def _member_properties(self, body: Optional[Node], source_file: SourceFile,
                           params: Dict[str, TsType]) -> List[TsProperty]:
        properties = []
        if body is None:
            return properties
        for member in body.named_children:
            if member.type == "property_signature":
                name = property_key(member.child_by_field_name("name"))
                if name is None:
                    continue
                annotation = member.child_by_field_name("type")
                optional = any(c.type == "?" for c in member.children)
                properties.append(TsProperty(
                    name=name,
                    optional=optional,
                    loader=self._loader(annotation, source_file, params),
                ))
            elif member.type == "method_signature":
                name = property_key(member.child_by_field_name("name"))
                if name is not None:
                    properties.append(TsProperty(name=name, is_method=True))
        return properties

    def _loader(self, annotation: Optional[Node], source_file: SourceFile,
                params: Dict[str, TsType]) -> Callable[[], TsType]:
        return lambda: self.type_of_node(annotation, source_file, params)

    def _interface_properties(self, decl: Node, source_file: SourceFile,
                              params: Dict[str, TsType]) -> List[TsProperty]:
        merged: Dict[str, TsProperty] = {}
        for child in decl.named_children:
            if child.type != "extends_type_clause":
                continue
            for base in child.named_children:
                if base.type == "comment":
                    continue
                for prop in self.type_of_node(base, source_file, params).properties():
                    merged[prop.name] = prop
        for prop in self._member_properties(decl.child_by_field_name("body"), source_file, params):
            merged[prop.name] = prop
        return list(merged.values())

    def _class_properties(self, decl: Node, source_file: SourceFile) -> List[TsProperty]:
        properties = []
        body = decl.child_by_field_name("body")
        if body is None:
            return properties
        for member in body.named_children:
            if member.type == "public_field_definition":
                modifiers = {node_text(c) for c in member.children if c.type == "accessibility_modifier"}
                if modifiers & {"private", "protected"} or any(c.type == "static" for c in member.children):
                    continue
                name_node = member.child_by_field_name("name")
                if name_node is None or name_node.type == "private_property_identifier":
                    continue
                annotation = member.child_by_field_name("type")
                optional = any(c.type == "?" for c in member.children)
                properties.append(TsProperty(
                    name=property_key(name_node),
                    optional=optional,
                    loader=self._loader(annotation, source_file, {}),
                ))
            elif member.type == "method_definition":
                name = property_key(member.child_by_field_name("name"))
                if name and name != "constructor":
                    properties.append(TsProperty(name=name, is_method=True))
        return properties

    # -- utility types ----------------------------------------------------

    def _apply_utility(self, name: str, target: TsType, text: str) -> TsType:
        if name == "NonNullable":
            if target.kind != UNION:
                return target
            members = [m for m in target.members if not m.is_nullish]
            if len(members) == 1:
                return members[0]
            return TsType(kind=UNION, text=text, members=members)

        if target.kind != OBJECT:
            return target

        def load():
            props = []
            for prop in target.properties():
                optional = prop.optional
                if name == "Partial":
                    optional = True
                elif name == "Required":
                    optional = False
                props.append(TsProperty(name=prop.name, optional=optional,
                                        is_method=prop.is_method, loader=lambda p=prop: p.type))
            return props

        return TsType(kind=OBJECT, text=text, properties_loader=load)

    def _pick_omit(self, name: str, target: TsType, keys: TsType, text: str) -> TsType:
        members = keys.members if keys.kind == UNION else [keys]
        selected = {m.value for m in members if m.kind == LITERAL}

        def load():
            if name == "Pick":
                return [p for p in target.properties() if p.name in selected]
            return [p for p in target.properties() if p.name not in selected]

        return TsType(kind=OBJECT, text=text, properties_loader=load)


def enum_members(decl: Node) -> List[Tuple[str, Any]]:
    """(name, value) pairs of an enum; implicit members count up from 0."""
    members = []
    body = decl.child_by_field_name("body")
    if body is None:
        return members
    next_value: Any = 0
    for member in body.named_children:
        if member.type == "enum_assignment":
            name = property_key(member.child_by_field_name("name"))
            value = literal_value(member.child_by_field_name("value"))
            if value is NOT_LITERAL:
                value = None
            members.append((name, value))
            next_value = value + 1 if isinstance(value, int) and not isinstance(value, bool) else None
        elif member.type in ("property_identifier", "string", "identifier"):
            members.append((property_key(member), next_value))
            if isinstance(next_value, int):
                next_value += 1
    return members

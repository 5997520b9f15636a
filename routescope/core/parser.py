"""
TypeScript/JavaScript Parser for RouteScope

Wraps tree-sitter (typescript + tsx grammars) and exposes the structural
queries the route extractors need:
- Top-level variable, function, class and type declarations
- Imports (default, namespace, named) and exports (declarations,
  export clauses, re-exports, default export)
- Decorators on classes, methods and parameters
- Literal evaluation of string/number/boolean/null expressions

Nothing is evaluated or type-checked; everything is read off the syntax tree.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Union

import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Node, Parser, Tree

logger = logging.getLogger(__name__)


TS_LANGUAGE = Language(tstypescript.language_typescript())
TSX_LANGUAGE = Language(tstypescript.language_tsx())

SOURCE_EXTENSIONS = {".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs"}
TSX_EXTENSIONS = {".tsx", ".jsx"}

FUNCTION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "arrow_function",
    "generator_function",
    "method_definition",
}

# Wrappers that don't change the value of the expression they hold
TRANSPARENT_WRAPPERS = {
    "parenthesized_expression",
    "as_expression",
    "satisfies_expression",
    "non_null_expression",
    "type_assertion",
}

TYPE_DECLARATION_TYPES = {
    "interface_declaration",
    "type_alias_declaration",
    "class_declaration",
    "abstract_class_declaration",
    "enum_declaration",
}

SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


class _NotLiteral:
    """Marker for expressions that have no static literal value."""

    def __repr__(self):
        return "NOT_LITERAL"


NOT_LITERAL = _NotLiteral()


# ---------------------------------------------------------------------------
# Node helpers
# ---------------------------------------------------------------------------

def node_text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def line_of(node: Node) -> int:
    """1-based start line."""
    return node.start_point[0] + 1


def end_line_of(node: Node) -> int:
    return node.end_point[0] + 1


def span_lines(node: Node) -> int:
    return end_line_of(node) - line_of(node) + 1


def iter_descendants(node: Node, types: Optional[Set[str]] = None) -> Iterator[Node]:
    """Pre-order walk below ``node`` (node itself excluded)."""
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        if types is None or current.type in types:
            yield current
        stack.extend(reversed(current.children))


def find_ancestor(node: Node, types: Set[str]) -> Optional[Node]:
    parent = node.parent
    while parent is not None:
        if parent.type in types:
            return parent
        parent = parent.parent
    return None


def unwrap_expression(node: Optional[Node]) -> Optional[Node]:
    """Strip parentheses, ``as``/``satisfies`` casts, ``<T>`` assertions and ``!``."""
    while node is not None and node.type in TRANSPARENT_WRAPPERS:
        named = [c for c in node.named_children if c.type != "comment"]
        if not named:
            return node
        if node.type == "type_assertion":
            node = named[-1]
        else:
            node = named[0]
    return node


def _decode_string_parts(node: Node) -> str:
    parts = []
    for child in node.named_children:
        if child.type == "string_fragment":
            parts.append(node_text(child))
        elif child.type == "escape_sequence":
            raw = node_text(child)[1:]
            parts.append(SIMPLE_ESCAPES.get(raw, raw))
    return "".join(parts)


def string_value(node: Optional[Node]) -> Optional[str]:
    """Value of a string literal or a template literal without substitutions."""
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type == "string":
        return _decode_string_parts(node)
    if node.type == "template_string":
        if any(c.type == "template_substitution" for c in node.named_children):
            return None
        return _decode_string_parts(node)
    return None


def number_value(text: str) -> Union[int, float, None]:
    cleaned = text.replace("_", "")
    try:
        if re.fullmatch(r"0[xX][0-9a-fA-F]+", cleaned):
            return int(cleaned, 16)
        if re.fullmatch(r"[0-9]+", cleaned):
            return int(cleaned)
        return float(cleaned)
    except ValueError:
        return None


def literal_value(node: Optional[Node]) -> Any:
    """
    Static value of a primitive literal expression.

    Returns NOT_LITERAL for anything that isn't a string, number, boolean,
    null or undefined literal.
    """
    node = unwrap_expression(node)
    if node is None:
        return NOT_LITERAL

    text = string_value(node)
    if text is not None:
        return text
    if node.type == "number":
        value = number_value(node_text(node))
        return NOT_LITERAL if value is None else value
    if node.type == "true":
        return True
    if node.type == "false":
        return False
    if node.type in ("null", "undefined"):
        return None
    if node.type == "unary_expression":
        operator = node.child_by_field_name("operator")
        argument = node.child_by_field_name("argument")
        if operator is not None and node_text(operator) == "-" and argument is not None \
                and argument.type == "number":
            value = number_value(node_text(argument))
            return NOT_LITERAL if value is None else -value
    return NOT_LITERAL


def property_key(node: Optional[Node]) -> Optional[str]:
    """Name of an object/interface/enum property key node."""
    if node is None:
        return None
    if node.type in ("property_identifier", "identifier", "private_property_identifier",
                     "shorthand_property_identifier", "type_identifier"):
        return node_text(node)
    if node.type in ("string", "template_string"):
        return string_value(node)
    if node.type == "number":
        return node_text(node)
    if node.type == "computed_property_name":
        inner = node.named_children[0] if node.named_children else None
        value = string_value(inner)
        return value if value is not None else node_text(inner)
    return node_text(node)


def object_properties(node: Optional[Node]) -> List[Tuple[str, Node, Node]]:
    """
    (name, value node, property node) for each entry of an object literal.

    Shorthand entries report the identifier as their value. Spreads and
    methods are skipped.
    """
    node = unwrap_expression(node)
    entries = []
    if node is None or node.type != "object":
        return entries
    for child in node.named_children:
        if child.type == "pair":
            name = property_key(child.child_by_field_name("key"))
            value = child.child_by_field_name("value")
            if name is not None and value is not None:
                entries.append((name, value, child))
        elif child.type == "shorthand_property_identifier":
            entries.append((node_text(child), child, child))
    return entries


def get_object_property(node: Optional[Node], name: str) -> Optional[Node]:
    for key, value, _ in object_properties(node):
        if key == name:
            return value
    return None


def call_arguments(call: Node) -> List[Node]:
    args = call.child_by_field_name("arguments")
    if args is None or args.type != "arguments":
        return []
    return [c for c in args.named_children if c.type != "comment"]


def callee_name(call: Node) -> Optional[str]:
    """Identifier or trailing property name of a call's callee."""
    function = unwrap_expression(call.child_by_field_name("function"))
    if function is None:
        return None
    if function.type == "identifier":
        return node_text(function)
    if function.type == "member_expression":
        prop = function.child_by_field_name("property")
        return node_text(prop) if prop is not None else None
    return None


def is_function_node(node: Optional[Node]) -> bool:
    return node is not None and node.type in FUNCTION_TYPES


def function_parameters(fn: Node) -> List[Node]:
    single = fn.child_by_field_name("parameter")
    if single is not None:
        return [single]
    params = fn.child_by_field_name("parameters")
    if params is None:
        return []
    return [c for c in params.named_children if c.type != "comment"]


def parameter_name(param: Node) -> Optional[str]:
    if param.type == "identifier":
        return node_text(param)
    pattern = param.child_by_field_name("pattern")
    if pattern is not None and pattern.type == "identifier":
        return node_text(pattern)
    return None


def pattern_names(pattern: Node) -> List[str]:
    """Identifiers bound by a (possibly destructuring) binding pattern."""
    if pattern.type in ("identifier", "shorthand_property_identifier_pattern"):
        return [node_text(pattern)]
    names = []
    for child in pattern.named_children:
        if child.type in ("identifier", "shorthand_property_identifier_pattern"):
            names.append(node_text(child))
        elif child.type == "pair_pattern":
            value = child.child_by_field_name("value")
            if value is not None:
                names.extend(pattern_names(value))
        elif child.type == "object_assignment_pattern":
            left = child.child_by_field_name("left")
            if left is not None:
                names.extend(pattern_names(left))
        elif child.type in ("object_pattern", "array_pattern", "assignment_pattern"):
            names.extend(pattern_names(child))
    return names


def decorators_of(node: Node) -> List[Node]:
    """
    Decorators attached to a class, method, field or parameter.

    Class decorators may sit on the enclosing export statement, and method
    decorators precede the method inside the class body.
    """
    found = [c for c in node.children if c.type == "decorator"]

    parent = node.parent
    if node.type in ("class_declaration", "abstract_class_declaration") \
            and parent is not None and parent.type == "export_statement":
        found = [c for c in parent.children if c.type == "decorator"] + found

    if node.type == "method_definition":
        preceding = []
        sibling = node.prev_sibling
        while sibling is not None and sibling.type in ("decorator", "comment"):
            if sibling.type == "decorator":
                preceding.insert(0, sibling)
            sibling = sibling.prev_sibling
        found = preceding + found
    return found


def decorator_name(decorator: Node) -> Optional[str]:
    expr = next((c for c in decorator.named_children if c.type != "comment"), None)
    if expr is None:
        return None
    if expr.type == "call_expression":
        return callee_name(expr)
    if expr.type == "identifier":
        return node_text(expr)
    if expr.type == "member_expression":
        prop = expr.child_by_field_name("property")
        return node_text(prop) if prop is not None else None
    return None


def decorator_arguments(decorator: Node) -> List[Node]:
    expr = next((c for c in decorator.named_children if c.type != "comment"), None)
    if expr is None or expr.type != "call_expression":
        return []
    return call_arguments(expr)


def find_decorator(node: Node, names: Set[str]) -> Optional[Node]:
    for decorator in decorators_of(node):
        if decorator_name(decorator) in names:
            return decorator
    return None


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

@dataclass
class VariableDeclaration:
    """A top-level variable binding."""
    name: str
    node: Node  # variable_declarator
    value: Optional[Node] = None
    type_node: Optional[Node] = None
    exported: bool = False
    destructured: bool = False

    @property
    def line_number(self) -> int:
        return line_of(self.node)


@dataclass
class FunctionDeclaration:
    """A top-level function declaration."""
    name: str
    node: Node
    exported: bool = False
    is_default: bool = False

    @property
    def line_number(self) -> int:
        return line_of(self.node)


@dataclass
class ClassDeclaration:
    """A top-level class declaration."""
    name: str
    node: Node
    exported: bool = False

    @property
    def body(self) -> Optional[Node]:
        return self.node.child_by_field_name("body")

    def methods(self) -> List[Node]:
        body = self.body
        if body is None:
            return []
        return [c for c in body.named_children if c.type == "method_definition"]


@dataclass
class ImportDeclaration:
    """One import statement."""
    module: str
    line_number: int
    default_name: Optional[str] = None
    namespace_name: Optional[str] = None
    named: Dict[str, str] = field(default_factory=dict)  # local -> imported

    def local_names(self) -> List[str]:
        names = list(self.named)
        if self.default_name:
            names.append(self.default_name)
        if self.namespace_name:
            names.append(self.namespace_name)
        return names


@dataclass
class ExportedSymbol:
    """A named export of a module."""
    name: str
    node: Optional[Node] = None
    local_name: Optional[str] = None
    module: Optional[str] = None  # set for re-exports


class SourceFile:
    """
    A parsed source file with cached structural queries.

    Usage:
        source_file = TypeScriptParser().parse_file(Path("app/api/route.ts"))
        for decl in source_file.variable_declarations():
            print(decl.name, decl.line_number)
    """

    def __init__(self, path: Path, source: bytes, tree: Tree):
        self.path = Path(path)
        self.source = source
        self.tree = tree
        self._text: Optional[str] = None
        self._variables: Optional[List[VariableDeclaration]] = None
        self._functions: Optional[List[FunctionDeclaration]] = None
        self._classes: Optional[List[ClassDeclaration]] = None
        self._imports: Optional[List[ImportDeclaration]] = None
        self._exports: Optional[List[ExportedSymbol]] = None
        self._types: Optional[Dict[str, Node]] = None

    def __repr__(self):
        return f"SourceFile({self.path})"

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def text(self) -> str:
        if self._text is None:
            self._text = self.source.decode("utf-8", errors="replace")
        return self._text

    @property
    def line_count(self) -> int:
        return self.text.count("\n") + 1

    def statements(self) -> List[Node]:
        return [c for c in self.root.named_children if c.type != "comment"]

    def _unwrapped_statements(self) -> Iterator[Tuple[Node, bool, bool]]:
        """(declaration, exported, is_default) for every top-level statement."""
        for statement in self.statements():
            if statement.type == "export_statement":
                declaration = statement.child_by_field_name("declaration")
                is_default = any(c.type == "default" for c in statement.children)
                if declaration is not None:
                    yield declaration, True, is_default
            elif statement.type == "ambient_declaration":
                for child in statement.named_children:
                    yield child, False, False
            else:
                yield statement, False, False

    def variable_declarations(self) -> List[VariableDeclaration]:
        if self._variables is None:
            variables = []
            for statement, exported, _ in self._unwrapped_statements():
                if statement.type not in ("lexical_declaration", "variable_declaration"):
                    continue
                for declarator in statement.named_children:
                    if declarator.type != "variable_declarator":
                        continue
                    name_node = declarator.child_by_field_name("name")
                    if name_node is None:
                        continue
                    value = declarator.child_by_field_name("value")
                    type_node = declarator.child_by_field_name("type")
                    if name_node.type == "identifier":
                        variables.append(VariableDeclaration(
                            name=node_text(name_node),
                            node=declarator,
                            value=value,
                            type_node=type_node,
                            exported=exported,
                        ))
                    else:
                        for name in pattern_names(name_node):
                            variables.append(VariableDeclaration(
                                name=name,
                                node=declarator,
                                value=value,
                                exported=exported,
                                destructured=True,
                            ))
            self._variables = variables
        return self._variables

    def get_variable(self, name: str) -> Optional[VariableDeclaration]:
        for decl in self.variable_declarations():
            if decl.name == name:
                return decl
        return None

    def function_declarations(self) -> List[FunctionDeclaration]:
        if self._functions is None:
            functions = []
            for statement, exported, is_default in self._unwrapped_statements():
                if statement.type not in ("function_declaration", "generator_function_declaration"):
                    continue
                name_node = statement.child_by_field_name("name")
                functions.append(FunctionDeclaration(
                    name=node_text(name_node) if name_node is not None else "default",
                    node=statement,
                    exported=exported,
                    is_default=is_default,
                ))
            self._functions = functions
        return self._functions

    def get_function(self, name: str) -> Optional[FunctionDeclaration]:
        for decl in self.function_declarations():
            if decl.name == name:
                return decl
        return None

    def class_declarations(self) -> List[ClassDeclaration]:
        if self._classes is None:
            classes = []
            for statement, exported, _ in self._unwrapped_statements():
                if statement.type not in ("class_declaration", "abstract_class_declaration"):
                    continue
                name_node = statement.child_by_field_name("name")
                classes.append(ClassDeclaration(
                    name=node_text(name_node) if name_node is not None else "default",
                    node=statement,
                    exported=exported,
                ))
            self._classes = classes
        return self._classes

    def type_declarations(self) -> Dict[str, Node]:
        """Interfaces, type aliases, classes and enums by name."""
        if self._types is None:
            types = {}
            for statement, _, _ in self._unwrapped_statements():
                if statement.type in TYPE_DECLARATION_TYPES:
                    name_node = statement.child_by_field_name("name")
                    if name_node is not None:
                        types.setdefault(node_text(name_node), statement)
            self._types = types
        return self._types

    def get_type_declaration(self, name: str) -> Optional[Node]:
        return self.type_declarations().get(name)

    def imports(self) -> List[ImportDeclaration]:
        if self._imports is None:
            imports = []
            for statement in self.statements():
                if statement.type != "import_statement":
                    continue
                source = statement.child_by_field_name("source")
                module = string_value(source)
                if module is None:
                    continue
                decl = ImportDeclaration(module=module, line_number=line_of(statement))
                clause = next((c for c in statement.named_children if c.type == "import_clause"), None)
                if clause is not None:
                    self._read_import_clause(clause, decl)
                imports.append(decl)
            self._imports = imports
        return self._imports

    def _read_import_clause(self, clause: Node, decl: ImportDeclaration):
        for child in clause.named_children:
            if child.type == "identifier":
                decl.default_name = node_text(child)
            elif child.type == "namespace_import":
                ident = next((c for c in child.named_children if c.type == "identifier"), None)
                if ident is not None:
                    decl.namespace_name = node_text(ident)
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name_node = spec.child_by_field_name("name")
                    alias_node = spec.child_by_field_name("alias")
                    imported = property_key(name_node)
                    if imported is None:
                        continue
                    local = node_text(alias_node) if alias_node is not None else imported
                    decl.named[local] = imported

    def find_import(self, local_name: str) -> Optional[Tuple[ImportDeclaration, str]]:
        """Import binding ``local_name`` and the name it imports."""
        for decl in self.imports():
            if local_name in decl.named:
                return decl, decl.named[local_name]
            if decl.default_name == local_name:
                return decl, "default"
        return None

    def exports(self) -> List[ExportedSymbol]:
        if self._exports is None:
            self._exports = self._collect_exports()
        return self._exports

    def _collect_exports(self) -> List[ExportedSymbol]:
        exports = []
        for statement in self.statements():
            if statement.type != "export_statement":
                continue
            declaration = statement.child_by_field_name("declaration")
            is_default = any(c.type == "default" for c in statement.children)

            if declaration is not None:
                if is_default:
                    exports.append(ExportedSymbol(name="default", node=declaration))
                    continue
                if declaration.type in ("lexical_declaration", "variable_declaration"):
                    for decl in self.variable_declarations():
                        if decl.exported and declaration.start_byte <= decl.node.start_byte \
                                and decl.node.end_byte <= declaration.end_byte:
                            exports.append(ExportedSymbol(name=decl.name, node=decl.node, local_name=decl.name))
                else:
                    name_node = declaration.child_by_field_name("name")
                    if name_node is not None:
                        name = node_text(name_node)
                        exports.append(ExportedSymbol(name=name, node=declaration, local_name=name))
                continue

            value = statement.child_by_field_name("value")
            if is_default and value is not None:
                exports.append(ExportedSymbol(name="default", node=value))
                continue

            clause = next((c for c in statement.named_children if c.type == "export_clause"), None)
            if clause is None:
                continue
            module = string_value(statement.child_by_field_name("source"))
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                local = property_key(spec.child_by_field_name("name"))
                alias_node = spec.child_by_field_name("alias")
                exported = property_key(alias_node) if alias_node is not None else local
                if local is None or exported is None:
                    continue
                node = None if module else self.find_local_declaration(local)
                exports.append(ExportedSymbol(name=exported, node=node, local_name=local, module=module))
        return exports

    def get_export(self, name: str) -> Optional[ExportedSymbol]:
        for export in self.exports():
            if export.name == name:
                return export
        return None

    def default_export(self) -> Optional[Node]:
        export = self.get_export("default")
        return export.node if export is not None else None

    def find_local_declaration(self, name: str) -> Optional[Node]:
        """Function declaration, variable declarator or class bound to ``name``."""
        function = self.get_function(name)
        if function is not None:
            return function.node
        variable = self.get_variable(name)
        if variable is not None:
            return variable.node
        for cls in self.class_declarations():
            if cls.name == name:
                return cls.node
        return None


class TypeScriptParser:
    """
    Parses TypeScript and JavaScript files into SourceFile objects.

    ``.tsx``/``.jsx`` use the TSX grammar, everything else the TypeScript
    grammar (which also accepts plain JavaScript).
    """

    def __init__(self):
        self._parsers: Dict[str, Parser] = {}

    def _parser_for(self, path: Path) -> Parser:
        key = "tsx" if Path(path).suffix.lower() in TSX_EXTENSIONS else "typescript"
        if key not in self._parsers:
            language = TSX_LANGUAGE if key == "tsx" else TS_LANGUAGE
            self._parsers[key] = Parser(language)
        return self._parsers[key]

    def parse_source(self, source: Union[str, bytes], path: Path) -> SourceFile:
        if isinstance(source, str):
            source = source.encode("utf-8")
        tree = self._parser_for(path).parse(source)
        if tree.root_node.has_error:
            logger.debug(f"Syntax errors in {path}, continuing with partial tree")
        return SourceFile(Path(path), source, tree)

    def parse_file(self, file_path: Path) -> Optional[SourceFile]:
        """
        Parse a file from disk.

        Returns:
            SourceFile, or None if the file couldn't be read
        """
        file_path = Path(file_path)
        try:
            source = file_path.read_bytes()
        except OSError as e:
            logger.warning(f"Error reading {file_path}: {e}")
            return None
        return self.parse_source(source, file_path)

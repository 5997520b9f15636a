"""Tests for the RouteScope TypeScript parser wrapper."""

from pathlib import Path

import pytest

from routescope.core.parser import (
    NOT_LITERAL,
    TypeScriptParser,
    decorator_arguments,
    decorator_name,
    decorators_of,
    literal_value,
    object_properties,
    string_value,
    unwrap_expression,
)


@pytest.fixture
def parse():
    parser = TypeScriptParser()

    def _parse(source: str, name: str = "file.ts"):
        return parser.parse_source(source, Path(name))

    return _parse


def first_value(source_file, name):
    return source_file.get_variable(name).value


class TestDeclarations:
    """Top-level declarations, imports and exports."""

    def test_variables_and_functions(self, parse):
        """Variables and functions are collected with their export flags."""
        sf = parse(
            "const a = 1;\n"
            "export const b = 'x';\n"
            "export function GET() {}\n"
            "function helper() {}\n"
        )
        assert [(v.name, v.exported) for v in sf.variable_declarations()] == [("a", False), ("b", True)]
        assert [(f.name, f.exported) for f in sf.function_declarations()] == [("GET", True), ("helper", False)]

    def test_destructured_variables(self, parse):
        """Destructured bindings are flagged."""
        sf = parse("export const { GET, POST: post } = handlers;")
        names = [(v.name, v.destructured) for v in sf.variable_declarations()]
        assert names == [("GET", True), ("post", True)]

    def test_imports(self, parse):
        """Default, namespace and named (aliased) imports."""
        sf = parse(
            "import React from 'react';\n"
            "import * as path from 'path';\n"
            "import { z, ZodType as T } from 'zod';\n"
        )
        imports = sf.imports()
        assert imports[0].default_name == "React"
        assert imports[1].namespace_name == "path"
        assert imports[2].named == {"z": "z", "T": "ZodType"}
        decl, imported = sf.find_import("T")
        assert decl.module == "zod"
        assert imported == "ZodType"

    def test_export_clause_and_reexport(self, parse):
        """Export clauses bind local declarations; re-exports keep the module."""
        sf = parse(
            "function handler() {}\n"
            "export { handler as GET };\n"
            "export { POST } from './shared';\n"
        )
        get = sf.get_export("GET")
        assert get.local_name == "handler"
        assert get.node.type == "function_declaration"
        post = sf.get_export("POST")
        assert post.module == "./shared"
        assert post.node is None

    def test_default_export_identifier(self, parse):
        """``export default handler`` exposes the identifier."""
        sf = parse("function handler() {}\nexport default handler;\n")
        node = sf.default_export()
        assert node.type == "identifier"

    def test_type_declarations(self, parse):
        """Interfaces, aliases, classes and enums are indexed by name."""
        sf = parse(
            "interface A { x: string }\n"
            "export type B = { y: number };\n"
            "enum C { One }\n"
            "class D {}\n"
        )
        assert set(sf.type_declarations()) == {"A", "B", "C", "D"}


class TestLiterals:
    """Static literal evaluation."""

    def test_literal_values(self, parse):
        """Strings, numbers, booleans and null evaluate; expressions don't."""
        sf = parse(
            "const s = 'a\\nb';\n"
            "const n = -42;\n"
            "const f = 1.5;\n"
            "const t = true;\n"
            "const z = null;\n"
            "const e = foo();\n"
        )
        assert literal_value(first_value(sf, "s")) == "a\nb"
        assert literal_value(first_value(sf, "n")) == -42
        assert literal_value(first_value(sf, "f")) == 1.5
        assert literal_value(first_value(sf, "t")) is True
        assert literal_value(first_value(sf, "z")) is None
        assert literal_value(first_value(sf, "e")) is NOT_LITERAL

    def test_template_strings(self, parse):
        """Plain template literals are strings; substitutions are not."""
        sf = parse("const a = `plain`;\nconst b = `x${y}`;\n")
        assert string_value(first_value(sf, "a")) == "plain"
        assert string_value(first_value(sf, "b")) is None

    def test_unwrap_casts(self, parse):
        """as/satisfies casts and parentheses are transparent."""
        sf = parse("const m = (['GET'] as const) satisfies string[];\n")
        assert unwrap_expression(first_value(sf, "m")).type == "array"

    def test_object_properties(self, parse):
        """Pairs and shorthand entries are listed; spreads are skipped."""
        sf = parse("const o = { a: 1, 'b-c': 2, d, ...rest };\n")
        assert [name for name, _, _ in object_properties(first_value(sf, "o"))] == ["a", "b-c", "d"]


class TestDecorators:
    """Decorator discovery."""

    def test_class_and_method_decorators(self, parse):
        """Class decorators on exports and method decorators in class bodies."""
        sf = parse(
            "@Controller('users')\n"
            "export class UsersController {\n"
            "  @Get(':id')\n"
            "  @Header('Cache-Control', 'none')\n"
            "  find(@Param('id') id: string) {}\n"
            "}\n"
        )
        cls = sf.class_declarations()[0]
        class_decorators = decorators_of(cls.node)
        assert [decorator_name(d) for d in class_decorators] == ["Controller"]
        assert string_value(decorator_arguments(class_decorators[0])[0]) == "users"

        method = cls.methods()[0]
        assert [decorator_name(d) for d in decorators_of(method)] == ["Get", "Header"]

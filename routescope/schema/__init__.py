"""
RouteScope Schema - example values from zod schemas and TypeScript types
"""

from routescope.schema.zod import ZodSchemaInterpreter, SchemaTypeInfo, render_example
from routescope.schema.types import TypeResolver, TsType, TsProperty
from routescope.schema.examples import TypeExampleSynthesizer, serialize_query_value

__all__ = [
    "ZodSchemaInterpreter",
    "SchemaTypeInfo",
    "render_example",
    "TypeResolver",
    "TsType",
    "TsProperty",
    "TypeExampleSynthesizer",
    "serialize_query_value",
]

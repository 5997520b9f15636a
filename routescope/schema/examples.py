"""
Type-to-Example Synthesis for RouteScope

Renders a TsType into a deterministic example value. Checks run in a fixed
order so narrower shapes win over broader ones:

    literal -> boolean literal -> primitives -> any/unknown -> array/tuple
    -> union -> enum -> built-in table -> object expansion

Object expansion is guarded twice: a visited set keyed on the type's text
(self-referential shapes render ``{}`` on repeat) and a hard depth cap.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from routescope.schema.types import (
    ANY,
    ARRAY,
    BIGINT,
    BOOLEAN,
    BOOLEAN_LITERAL,
    BUILTIN,
    ENUM,
    ENUM_LITERAL,
    LITERAL,
    NEVER,
    NULL,
    NUMBER,
    OBJECT,
    STRING,
    TUPLE,
    UNDEFINED,
    UNION,
    UNKNOWN,
    UNRESOLVED,
    VOID,
    TsType,
)
from routescope.schema.zod import ABSENT

logger = logging.getLogger(__name__)


PRIMITIVE = "primitive"
ARRAY_CLASS = "array"
OBJECT_CLASS = "object"
UNKNOWN_CLASS = "unknown"

DEFAULT_MAX_DEPTH = 3

# name -> (example, classification); ABSENT means "no example"
BUILTIN_EXAMPLES = {
    "Date": ("", PRIMITIVE),
    "Blob": ("", PRIMITIVE),
    "File": ("", PRIMITIVE),
    "Buffer": ("", PRIMITIVE),
    "ArrayBuffer": ("", PRIMITIVE),
    "Uint8Array": ("", PRIMITIVE),
    "ReadableStream": ("", PRIMITIVE),
    "WritableStream": ("", PRIMITIVE),
    "Readable": ("", PRIMITIVE),
    "Writable": ("", PRIMITIVE),
    "Stream": ("", PRIMITIVE),
    "RegExp": ("", PRIMITIVE),
    "Map": ({}, OBJECT_CLASS),
    "WeakMap": ({}, OBJECT_CLASS),
    "Set": ([], ARRAY_CLASS),
    "WeakSet": ([], ARRAY_CLASS),
    "FormData": ({}, OBJECT_CLASS),
    "URLSearchParams": ({}, OBJECT_CLASS),
    "Promise": ({}, OBJECT_CLASS),
    "Request": (ABSENT, UNKNOWN_CLASS),
    "Response": (ABSENT, UNKNOWN_CLASS),
    "NextRequest": (ABSENT, UNKNOWN_CLASS),
    "NextResponse": (ABSENT, UNKNOWN_CLASS),
    "NextApiRequest": (ABSENT, UNKNOWN_CLASS),
    "NextApiResponse": (ABSENT, UNKNOWN_CLASS),
    "IncomingMessage": (ABSENT, UNKNOWN_CLASS),
    "ServerResponse": (ABSENT, UNKNOWN_CLASS),
    "FastifyRequest": (ABSENT, UNKNOWN_CLASS),
    "FastifyReply": (ABSENT, UNKNOWN_CLASS),
}

PRIMITIVE_KINDS = {STRING, NUMBER, BOOLEAN, BIGINT, LITERAL, BOOLEAN_LITERAL, ENUM, ENUM_LITERAL}


def _copy(value: Any) -> Any:
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        return list(value)
    return value


class TypeExampleSynthesizer:
    """
    Render example values from structural types.

    Usage:
        synthesizer = TypeExampleSynthesizer(max_depth=3)
        example = synthesizer.example(user_type)
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth

    def example(self, ts_type: TsType, depth: int = 0, visited: Optional[Set[str]] = None) -> Any:
        if visited is None:
            visited = set()
        if depth > self.max_depth:
            return {}

        kind = ts_type.kind
        if kind == LITERAL:
            return ts_type.value
        if kind == BOOLEAN_LITERAL or ts_type.text in ("true", "false"):
            return bool(ts_type.value) if kind == BOOLEAN_LITERAL else ts_type.text == "true"
        if kind == STRING:
            return ""
        if kind in (NUMBER, BIGINT):
            return 0
        if kind == BOOLEAN:
            return False
        if kind in (UNDEFINED, VOID, NEVER):
            return ABSENT
        if kind == NULL:
            return None
        if kind in (ANY, UNKNOWN):
            return {}

        if kind == ARRAY:
            if ts_type.element is None:
                return []
            item = self.example(ts_type.element, depth + 1, visited)
            return [] if item is ABSENT else [item]
        if kind == TUPLE:
            items = [self.example(m, depth + 1, visited) for m in ts_type.members]
            return [i for i in items if i is not ABSENT]

        if kind == UNION:
            candidates = [m for m in ts_type.members if not m.is_nullish]
            if not candidates:
                return ABSENT
            return self.example(candidates[0], depth + 1, visited)

        if kind == ENUM:
            if ts_type.enum_members:
                return ts_type.enum_members[0][0]
            return ts_type.text.split(".")[-1]
        if kind == ENUM_LITERAL:
            return ts_type.text.split(".")[-1]

        if kind == BUILTIN:
            example, _ = BUILTIN_EXAMPLES.get(ts_type.name, ({}, OBJECT_CLASS))
            return _copy(example)

        if kind == OBJECT:
            return self._expand_object(ts_type, depth, visited)

        if kind == UNRESOLVED:
            logger.debug(f"No structural information for type {ts_type.text}")
        return {}

    def _expand_object(self, ts_type: TsType, depth: int, visited: Set[str]) -> Dict:
        key = ts_type.text
        if key in visited:
            return {}
        visited.add(key)
        try:
            value = {}
            for prop in ts_type.properties():
                if prop.name.startswith("__") or prop.is_method:
                    continue
                example = self.example(prop.type, depth + 1, visited)
                if example is not ABSENT:
                    value[prop.name] = example
            return value
        finally:
            visited.discard(key)

    def classify(self, ts_type: TsType) -> str:
        """
        primitive | array | object | unknown for a declared type.

        Unions classify by unanimous agreement of their non-null members.
        """
        kind = ts_type.kind
        if kind in PRIMITIVE_KINDS:
            return PRIMITIVE
        if kind in (ARRAY, TUPLE):
            return ARRAY_CLASS
        if kind == OBJECT:
            return OBJECT_CLASS
        if kind == BUILTIN:
            return BUILTIN_EXAMPLES.get(ts_type.name, (None, OBJECT_CLASS))[1]
        if kind == UNION:
            classes = {self.classify(m) for m in ts_type.members if not m.is_nullish}
            if len(classes) == 1:
                return classes.pop()
        return UNKNOWN_CLASS


def serialize_query_value(value: Any) -> Optional[str]:
    """
    Query-string placeholder for an example value.

    Objects (and empty/ABSENT values with no sensible text) yield None.
    """
    if value is ABSENT:
        return None
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    if isinstance(value, list):
        parts: List[str] = []
        for item in value:
            serialized = serialize_query_value(item)
            if serialized:
                parts.append(serialized)
        return ",".join(parts)
    return None

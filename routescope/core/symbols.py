"""
Symbol Resolution for RouteScope

Bounded identifier lookup used by the schema interpreters and extractors:
1. top-level declarations of the same file
2. one hop through a named (or default) import whose module resolves to a
   project file

Anything else is reported as an explicit Unresolved value carrying the
reason, so callers decide their own fallback.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from tree_sitter import Node

from routescope.core.parser import SourceFile
from routescope.core.scanner import SourceProject

logger = logging.getLogger(__name__)


@dataclass
class Resolved:
    """A symbol found in the project."""
    name: str
    node: Node  # initializer expression or declaration node
    source_file: SourceFile
    via_import: bool = False


@dataclass
class Unresolved:
    """A symbol that couldn't be found within the lookup bounds."""
    name: str
    reason: str

    def __bool__(self):
        return False


Resolution = Union[Resolved, Unresolved]


class SymbolResolver:
    """
    Resolve identifiers to their defining syntax.

    Usage:
        resolver = SymbolResolver(project)
        result = resolver.resolve_value("createUserSchema", source_file)
        if result:
            print(result.node.type)
    """

    def __init__(self, project: Optional[SourceProject] = None):
        self.project = project

    def resolve_value(self, name: str, source_file: SourceFile) -> Resolution:
        """Find the initializer of a variable, following one import hop."""
        local = self._local_value(name, source_file)
        if local is not None:
            return Resolved(name=name, node=local, source_file=source_file)

        imported = self._imported_file(name, source_file)
        if isinstance(imported, Unresolved):
            return imported
        target_file, imported_name = imported

        if imported_name == "default":
            node = target_file.default_export()
            if node is not None and node.type == "identifier":
                node = self._local_value(node.text.decode("utf-8"), target_file)
        else:
            node = self._local_value(imported_name, target_file)
        if node is None:
            return Unresolved(name, f"'{imported_name}' has no initializer in {target_file.path.name}")
        return Resolved(name=name, node=node, source_file=target_file, via_import=True)

    def resolve_declaration(self, name: str, source_file: SourceFile) -> Resolution:
        """Find a function/variable/class declaration node, following one import hop."""
        local = source_file.find_local_declaration(name)
        if local is not None:
            return Resolved(name=name, node=local, source_file=source_file)

        imported = self._imported_file(name, source_file)
        if isinstance(imported, Unresolved):
            return imported
        target_file, imported_name = imported

        if imported_name == "default":
            node = target_file.default_export()
        else:
            node = target_file.find_local_declaration(imported_name)
        if node is None:
            return Unresolved(name, f"'{imported_name}' not declared in {target_file.path.name}")
        return Resolved(name=name, node=node, source_file=target_file, via_import=True)

    def resolve_type(self, name: str, source_file: SourceFile) -> Resolution:
        """Find an interface/type alias/class/enum declaration, following one import hop."""
        local = source_file.get_type_declaration(name)
        if local is not None:
            return Resolved(name=name, node=local, source_file=source_file)

        imported = self._imported_file(name, source_file)
        if isinstance(imported, Unresolved):
            return imported
        target_file, imported_name = imported

        node = target_file.get_type_declaration(imported_name)
        if node is None:
            return Unresolved(name, f"type '{imported_name}' not declared in {target_file.path.name}")
        return Resolved(name=name, node=node, source_file=target_file, via_import=True)

    def _local_value(self, name: str, source_file: SourceFile) -> Optional[Node]:
        decl = source_file.get_variable(name)
        if decl is None or decl.destructured:
            return None
        return decl.value

    def _imported_file(self, name: str, source_file: SourceFile):
        found = source_file.find_import(name)
        if found is None:
            return Unresolved(name, "not declared in this file and not imported")
        import_decl, imported_name = found
        if self.project is None:
            return Unresolved(name, "no project available for import resolution")

        target = self.project.resolve_module(import_decl.module, source_file)
        if target is None:
            return Unresolved(name, f"module '{import_decl.module}' is not a project file")
        return target, imported_name

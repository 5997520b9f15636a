"""
RouteScope Route Lint Rules

Checks extracted routes for common API hygiene problems:
- tRPC procedures without an input schema
- Query/mutation names that read like the other kind
- Missing output schemas
- Database access without error handling
- Heavy resolvers and handlers
- Public sensitive mutations (login, password reset) without rate limiting
- Side effects inside queries
- Router naming and router size
- Body-carrying Next.js handlers without request validation
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from routescope.core.graph import MUTATION, QUERY, ProcedureNode, RouterMeta
from routescope.core.options import ParserOptions
from routescope.core.routes import BODY_METHODS, RouteHandler, RouteType
from routescope.extractors.base import ConfigurationMissingError
from routescope.extractors.next_app import NextAppExtractor
from routescope.extractors.next_pages import NextPagesExtractor
from routescope.extractors.trpc import TrpcExtractor, TrpcParseResult

logger = logging.getLogger(__name__)


INFO = "info"
WARN = "warn"
ERROR = "error"
SEVERITIES = (INFO, WARN, ERROR)


@dataclass
class RouteFinding:
    """A lint finding for one procedure, router or route handler."""
    rule: str
    severity: str  # "info", "warn", "error"
    message: str
    file_path: str
    line_number: int = 0
    target: str = ""

    def to_dict(self) -> Dict:
        return {
            "rule": self.rule,
            "severity": self.severity,
            "message": self.message,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "target": self.target,
        }


class RouteLintAnalyzer:
    """
    Runs lint rules over tRPC procedures, routers and Next.js handlers.

    Usage:
        analyzer = RouteLintAnalyzer()
        analyzer.add_trpc_result(TrpcExtractor(root).analyze())
        analyzer.add_handlers(NextAppExtractor(root).extract_handlers())
        findings = analyzer.analyze()
    """

    QUERY_LIKE = re.compile(r"^(get|list|fetch)", re.IGNORECASE)
    MUTATION_LIKE = re.compile(r"^(create|update|delete|set)", re.IGNORECASE)
    SENSITIVE_MUTATION = re.compile(r"login|password|reset|verify|email", re.IGNORECASE)

    HEAVY_WARN_LINES = 60
    HEAVY_ERROR_LINES = 100
    MAX_ROUTER_LINES = 500

    def __init__(self):
        self.procedures: List[ProcedureNode] = []
        self.routers: List[RouterMeta] = []
        self.handlers: List[RouteHandler] = []

    def add_trpc_result(self, result: TrpcParseResult):
        self.procedures.extend(result.procedures)
        self.routers.extend(result.routers)

    def add_handlers(self, handlers: List[RouteHandler]):
        self.handlers.extend(h for h in handlers if h.route_type != RouteType.TRPC)

    def _heavy(self, lines: int, rule: str, what: str, file_path: str,
               line: int, target: str) -> Optional[RouteFinding]:
        if lines > self.HEAVY_ERROR_LINES:
            severity = ERROR
        elif lines > self.HEAVY_WARN_LINES:
            severity = WARN
        else:
            return None
        return RouteFinding(
            rule=rule,
            severity=severity,
            message=f"{what} is {lines} lines long; move logic into a service",
            file_path=file_path,
            line_number=line,
            target=target,
        )

    def check_procedure(self, procedure: ProcedureNode) -> List[RouteFinding]:
        findings = []
        target = procedure.qualified_name

        def add(rule: str, severity: str, message: str):
            findings.append(RouteFinding(rule, severity, message, procedure.file_path,
                                         procedure.line_number, target))

        if not procedure.has_input:
            add("missing-input", WARN, f"Procedure '{target}' has no input schema")

        if procedure.kind == MUTATION and self.QUERY_LIKE.search(procedure.name):
            add("naming", WARN, f"Mutation '{procedure.name}' is named like a query")
        elif procedure.kind == QUERY and self.MUTATION_LIKE.search(procedure.name):
            add("naming", WARN, f"Query '{procedure.name}' is named like a mutation")

        if not procedure.has_output:
            add("output-schema", INFO, f"Procedure '{target}' has no output schema")

        if procedure.uses_db and not procedure.has_error_handling:
            add("error-handling", WARN, f"Procedure '{target}' accesses the database without error handling")

        heavy = self._heavy(procedure.resolver_lines, "heavy-logic", f"Resolver of '{target}'",
                            procedure.file_path, procedure.line_number, target)
        if heavy:
            findings.append(heavy)

        if (procedure.kind == MUTATION and procedure.visibility == "public"
                and self.SENSITIVE_MUTATION.search(procedure.name)):
            add("rate-limiting", ERROR, f"Public mutation '{target}' should be rate limited")

        if procedure.kind == QUERY and procedure.has_side_effects:
            add("side-effects", WARN, f"Query '{target}' has side effects; make it a mutation")

        return findings

    def check_router(self, router: RouterMeta) -> List[RouteFinding]:
        findings = []
        leaf = router.name.rsplit(".", 1)[-1]
        if leaf and not leaf.endswith("s"):
            findings.append(RouteFinding(
                "router-naming", INFO, f"Router '{router.name}' should use a plural name",
                router.file_path, router.line_number, router.name,
            ))
        if router.lines_of_code > self.MAX_ROUTER_LINES:
            findings.append(RouteFinding(
                "router-size", WARN,
                f"Router '{router.name}' spans {router.lines_of_code} lines; split it",
                router.file_path, router.line_number, router.name,
            ))
        return findings

    def check_handler(self, handler: RouteHandler) -> List[RouteFinding]:
        findings = []
        target = f"{handler.method} {handler.path}"

        if handler.method in BODY_METHODS and not handler.has_validation:
            findings.append(RouteFinding(
                "missing-validation", WARN, f"{target} accepts a body without validation",
                handler.file_path, handler.line_number, target,
            ))
        if handler.uses_db and not handler.has_error_handling:
            findings.append(RouteFinding(
                "error-handling", WARN, f"{target} accesses the database without error handling",
                handler.file_path, handler.line_number, target,
            ))
        heavy = self._heavy(handler.handler_lines, "heavy-logic", f"Handler for {target}",
                            handler.file_path, handler.line_number, target)
        if heavy:
            findings.append(heavy)
        return findings

    def analyze(self) -> List[RouteFinding]:
        """Run every rule and return findings, most severe first."""
        findings: List[RouteFinding] = []
        for procedure in self.procedures:
            findings.extend(self.check_procedure(procedure))
        for router in self.routers:
            findings.extend(self.check_router(router))
        for handler in self.handlers:
            findings.extend(self.check_handler(handler))

        findings.sort(key=lambda f: (-SEVERITIES.index(f.severity), f.file_path, f.line_number))
        logger.debug(f"Lint rules produced {len(findings)} findings")
        return findings


def summarize_findings(findings: List[RouteFinding]) -> Dict[str, int]:
    """Count findings per severity."""
    summary = {severity: 0 for severity in SEVERITIES}
    for finding in findings:
        summary[finding.severity] = summary.get(finding.severity, 0) + 1
    summary["total"] = len(findings)
    return summary


def analyze_routes(
    root_dir: Path,
    options: Optional[ParserOptions] = None,
    detection: Optional[Dict[str, bool]] = None,
) -> List[RouteFinding]:
    """
    Lint the routes of a project.

    Args:
        root_dir: Project root
        options: Parser options
        detection: Framework detection map; every framework is linted if omitted

    Returns:
        List of RouteFinding
    """
    options = options or ParserOptions()
    root_dir = Path(root_dir)
    detection = detection or {"nextApp": True, "nextPages": True, "trpc": True}
    analyzer = RouteLintAnalyzer()

    if detection.get("trpc"):
        try:
            analyzer.add_trpc_result(TrpcExtractor(root_dir, options=options).analyze())
        except ConfigurationMissingError as e:
            logger.warning(f"{e}; skipping tRPC rules")
        except Exception as e:
            logger.error(f"tRPC analysis failed: {e}", exc_info=True)

    for key, extractor_class in (("nextApp", NextAppExtractor), ("nextPages", NextPagesExtractor)):
        if not detection.get(key):
            continue
        try:
            analyzer.add_handlers(extractor_class(root_dir, options=options).extract_handlers())
        except Exception as e:
            logger.error(f"{extractor_class.__name__} failed: {e}", exc_info=True)

    return analyzer.analyze()

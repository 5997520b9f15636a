"""Tests for route lint rules."""

from routescope.analyzers.rules import (
    ERROR,
    INFO,
    WARN,
    RouteFinding,
    RouteLintAnalyzer,
    analyze_routes,
    summarize_findings,
)
from routescope.core.graph import ProcedureNode, RouterMeta
from routescope.core.routes import RouteHandler, RouteType


def procedure(**kwargs):
    defaults = dict(
        router="posts", name="byId", kind="query", file_path="src/server/api/routers/posts.ts",
        line_number=10, visibility="public", has_input=True, has_output=True,
    )
    defaults.update(kwargs)
    return ProcedureNode(**defaults)


def rules_for(findings):
    return {(f.rule, f.severity) for f in findings}


class TestProcedureRules:
    """tRPC procedure checks."""

    def test_clean_procedure(self):
        """A well-formed query produces nothing."""
        assert RouteLintAnalyzer().check_procedure(procedure()) == []

    def test_missing_input_and_output(self):
        """Missing input warns; missing output is informational."""
        findings = RouteLintAnalyzer().check_procedure(procedure(has_input=False, has_output=False))
        assert rules_for(findings) == {("missing-input", WARN), ("output-schema", INFO)}

    def test_naming(self):
        """Verbs that contradict the procedure kind are flagged."""
        analyzer = RouteLintAnalyzer()
        assert ("naming", WARN) in rules_for(analyzer.check_procedure(procedure(name="getAll", kind="mutation")))
        assert ("naming", WARN) in rules_for(analyzer.check_procedure(procedure(name="createPost")))

    def test_db_without_error_handling(self):
        """Database access needs a try/catch or TRPCError."""
        analyzer = RouteLintAnalyzer()
        assert ("error-handling", WARN) in rules_for(analyzer.check_procedure(procedure(uses_db=True)))
        assert analyzer.check_procedure(procedure(uses_db=True, has_error_handling=True)) == []

    def test_heavy_resolver(self):
        """Long resolvers warn, very long ones error."""
        analyzer = RouteLintAnalyzer()
        assert analyzer.check_procedure(procedure(resolver_lines=60)) == []
        assert rules_for(analyzer.check_procedure(procedure(resolver_lines=61))) == {("heavy-logic", WARN)}
        assert rules_for(analyzer.check_procedure(procedure(resolver_lines=101))) == {("heavy-logic", ERROR)}

    def test_public_sensitive_mutation(self):
        """Public login-style mutations need rate limiting."""
        analyzer = RouteLintAnalyzer()
        login = procedure(router="auth", name="login", kind="mutation")
        assert ("rate-limiting", ERROR) in rules_for(analyzer.check_procedure(login))
        protected = procedure(router="auth", name="resetPassword", kind="mutation", visibility="protected")
        assert ("rate-limiting", ERROR) not in rules_for(analyzer.check_procedure(protected))

    def test_query_side_effects(self):
        """Queries shouldn't send mail or write."""
        findings = RouteLintAnalyzer().check_procedure(procedure(has_side_effects=True))
        assert rules_for(findings) == {("side-effects", WARN)}


class TestRouterRules:
    """Router-level checks."""

    def test_plural_names(self):
        """Singular router names are informational findings."""
        analyzer = RouteLintAnalyzer()
        assert rules_for(analyzer.check_router(RouterMeta("user", "u.ts", 1, 20))) == {("router-naming", INFO)}
        assert analyzer.check_router(RouterMeta("admin.users", "u.ts", 1, 20)) == []

    def test_router_size(self):
        """Huge routers should be split."""
        findings = RouteLintAnalyzer().check_router(RouterMeta("posts", "p.ts", 1, 600))
        assert rules_for(findings) == {("router-size", WARN)}


class TestHandlerRules:
    """Next.js handler checks."""

    def handler(self, **kwargs):
        defaults = dict(route_type=RouteType.NEXTJS_APP, path="/api/items", method="POST",
                        file_path="app/api/items/route.ts", has_validation=True)
        defaults.update(kwargs)
        return RouteHandler(**defaults)

    def test_body_without_validation(self):
        """POST handlers that never validate warn; GETs don't."""
        analyzer = RouteLintAnalyzer()
        assert rules_for(analyzer.check_handler(self.handler(has_validation=False))) == {
            ("missing-validation", WARN)
        }
        assert analyzer.check_handler(self.handler(method="GET", has_validation=False)) == []

    def test_trpc_handlers_ignored(self):
        """tRPC handlers are linted through their procedures instead."""
        analyzer = RouteLintAnalyzer()
        analyzer.add_handlers([self.handler(route_type=RouteType.TRPC, has_validation=False)])
        assert analyzer.analyze() == []


class TestAnalyze:
    """Ordering, summaries and project analysis."""

    def test_severity_order(self):
        """Errors first, then warnings, then info."""
        analyzer = RouteLintAnalyzer()
        analyzer.procedures = [
            procedure(has_output=False),
            procedure(name="login", kind="mutation", has_input=False),
        ]
        severities = [f.severity for f in analyzer.analyze()]
        assert severities == sorted(severities, key=[ERROR, WARN, INFO].index)

    def test_summary(self):
        """Counts per severity plus a total."""
        findings = [
            RouteFinding("a", WARN, "m", "f"),
            RouteFinding("b", WARN, "m", "f"),
            RouteFinding("c", ERROR, "m", "f"),
        ]
        assert summarize_findings(findings) == {"info": 0, "warn": 2, "error": 1, "total": 3}

    def test_analyze_project(self, make_project):
        """Procedures and handlers of a real project are linted together."""
        root = make_project({
            "src/server/api/routers/auth.ts": (
                "export const authRouter = createTRPCRouter({\n"
                "  login: publicProcedure\n"
                "    .input(z.object({ email: z.string() }))\n"
                "    .mutation(({ ctx, input }) => ctx.db.user.findFirst()),\n"
                "});\n"
            ),
            "app/api/upload/route.ts": "export async function POST(req: Request) { return new Response(); }\n",
        }, dependencies={"next": "14.0.0", "@trpc/server": "10.0.0"})

        findings = analyze_routes(root)
        found = {(f.rule, f.target) for f in findings}
        assert ("rate-limiting", "auth.login") in found
        assert ("error-handling", "auth.login") in found
        assert ("router-naming", "auth") in found
        assert ("missing-validation", "POST /api/upload") in found
        assert findings[0].severity == ERROR

    def test_analyze_without_tsconfig(self, make_project):
        """tRPC rules are skipped without a tsconfig; Next.js handlers still run."""
        root = make_project({
            "app/api/upload/route.ts": "export async function POST(req) { return new Response(); }\n",
        }, dependencies={"next": "14.0.0"}, tsconfig=False)
        findings = analyze_routes(root, detection={"nextApp": True})
        assert [f.rule for f in findings] == ["missing-validation"]

"""
RouteScope CLI - Command Line Interface

Usage:
    routescope detect <project_path>     # Which frameworks the project uses
    routescope scan <project_path>       # List HTTP routes
    routescope analyze <project_path>    # Lint routes and tRPC procedures
    routescope info
"""

import click
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from routescope import __version__

console = Console()

FRAMEWORK_CHOICES = ["nextjs-app", "nextjs-page", "trpc", "nestjs"]
SEVERITY_STYLES = {"error": "bold red", "warn": "yellow", "info": "dim"}


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.WARNING
    package_logger = logging.getLogger("routescope")
    package_logger.handlers.clear()
    package_logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    package_logger.setLevel(level)
    package_logger.propagate = False


def build_options(project_path: Path, config: Optional[str], tsconfig: Optional[str]):
    """Options from --config, else a config file at the project root, else defaults."""
    from routescope.core.options import ParserOptions, find_config_file, load_config

    config_path = Path(config) if config else find_config_file(project_path)
    options = load_config(config_path) if config_path else ParserOptions()
    if tsconfig:
        options.tsconfig_path = Path(tsconfig).resolve()
    return options


@click.group()
@click.version_option(version=__version__, prog_name="routescope")
def main():
    """RouteScope - HTTP route discovery for TypeScript projects

    Finds Next.js, tRPC and NestJS endpoints by static analysis.
    """
    pass


@main.command()
@click.argument("project_path", type=click.Path(exists=True, file_okay=False, dir_okay=True))
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def detect(project_path: str, verbose: bool):
    """Detect which supported frameworks a project declares.

    PROJECT_PATH: Path to the project root (containing package.json)
    """
    from routescope.engine import detect_frameworks

    setup_logging(verbose)
    project_path = Path(project_path).resolve()

    try:
        detection = detect_frameworks(project_path)

        table = Table(title="Framework Detection")
        table.add_column("Framework", style="cyan")
        table.add_column("Detected")
        for key, found in detection.items():
            table.add_row(key, "[green]yes[/green]" if found else "[dim]no[/dim]")
        console.print(table)

    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@main.command()
@click.argument("project_path", type=click.Path(exists=True, file_okay=False, dir_okay=True))
@click.option("--format", "-f", "output_format", type=click.Choice(["table", "json", "yaml"]),
              default="table", help="Output format")
@click.option("--output", "-o", type=click.Path(), help="Write the export to this file")
@click.option("--tsconfig", type=click.Path(exists=True, dir_okay=False), help="tsconfig.json to use")
@click.option("--framework", "frameworks", multiple=True, type=click.Choice(FRAMEWORK_CHOICES),
              help="Only scan these frameworks (repeatable)")
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="RouteScope config file")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def scan(project_path: str, output_format: str, output: Optional[str], tsconfig: Optional[str],
         frameworks: tuple, config: Optional[str], verbose: bool):
    """Discover the HTTP routes of a project.

    PROJECT_PATH: Path to the project root
    """
    from routescope.core.routes import RouteType, sort_routes
    from routescope.engine import scan_project
    from routescope.exporters.json_exporter import JSONExporter
    from routescope.exporters.yaml_exporter import YAMLExporter

    setup_logging(verbose)
    project_path = Path(project_path).resolve()

    try:
        options = build_options(project_path, config, tsconfig)
        selected = [RouteType(value) for value in frameworks] or None

        if output_format == "table":
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"Scanning {project_path.name}...", total=None)
                result = scan_project(project_path, options, selected)
        else:
            result = scan_project(project_path, options, selected)

        if output_format in ("json", "yaml"):
            exporter = JSONExporter() if output_format == "json" else YAMLExporter()
            exporter.set_scan_result(result)
            if output:
                export = exporter.export(Path(output))
                if not export.success:
                    console.print(f"[bold red]Error:[/bold red] {export.error}")
                    sys.exit(1)
                console.print(f"[green]Output saved to: {export.output_path}[/green]")
            else:
                click.echo(exporter.export_string())
            return

        table = Table(title=f"Routes ({len(result.routes)})")
        table.add_column("Method", style="bold")
        table.add_column("Path", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("File", style="dim")
        for route in sort_routes(result.routes):
            try:
                rel = str(Path(route.file_path).relative_to(project_path))
            except ValueError:
                rel = route.file_path
            table.add_row(route.method, route.path, route.type, rel)
        console.print(table)

        if not any(result.detection.values()):
            console.print("[yellow]No supported frameworks detected[/yellow]")

        if output:
            exporter = JSONExporter()
            exporter.set_scan_result(result)
            saved = exporter.export(Path(output))
            if saved.success:
                console.print(f"\n[green]Output saved to: {saved.output_path}[/green]")

    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@main.command()
@click.argument("project_path", type=click.Path(exists=True, file_okay=False, dir_okay=True))
@click.option("--tsconfig", type=click.Path(exists=True, dir_okay=False), help="tsconfig.json to use")
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="RouteScope config file")
@click.option("--output", "-o", type=click.Path(), help="Write findings as JSON to this file")
@click.option("--strict", is_flag=True, help="Exit non-zero when any error-level finding exists")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def analyze(project_path: str, tsconfig: Optional[str], config: Optional[str],
            output: Optional[str], strict: bool, verbose: bool):
    """Lint the routes and tRPC procedures of a project.

    PROJECT_PATH: Path to the project root
    """
    from routescope.analyzers.rules import analyze_routes, summarize_findings
    from routescope.engine import detect_frameworks
    from routescope.exporters.json_exporter import JSONExporter

    setup_logging(verbose)
    project_path = Path(project_path).resolve()

    try:
        options = build_options(project_path, config, tsconfig)
        detection = detect_frameworks(project_path, options)
        findings = analyze_routes(project_path, options, detection)
        summary = summarize_findings(findings)

        table = Table(title=f"Findings ({summary['total']})")
        table.add_column("Severity")
        table.add_column("Rule", style="cyan")
        table.add_column("Target")
        table.add_column("Message")
        table.add_column("Location", style="dim")
        for finding in findings:
            style = SEVERITY_STYLES.get(finding.severity, "")
            table.add_row(
                f"[{style}]{finding.severity}[/{style}]" if style else finding.severity,
                finding.rule,
                finding.target,
                finding.message,
                f"{finding.file_path}:{finding.line_number}",
            )
        console.print(table)
        console.print(
            f"\n[bold]Errors:[/bold] {summary['error']}  "
            f"[bold]Warnings:[/bold] {summary['warn']}  [bold]Info:[/bold] {summary['info']}"
        )

        if output:
            exporter = JSONExporter()
            exporter.set_metadata(name=project_path.name, path=str(project_path))
            exporter.set_findings(findings)
            saved = exporter.export(Path(output))
            if saved.success:
                console.print(f"[green]Output saved to: {saved.output_path}[/green]")

    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    if strict and summary["error"]:
        sys.exit(1)


@main.command()
def info():
    """Show information about RouteScope."""
    console.print(f"\n[bold blue]RouteScope v{__version__}[/bold blue]")
    console.print("HTTP route discovery for TypeScript projects\n")

    console.print("[bold]Capabilities:[/bold]")
    console.print("  [green]✓[/green] Detect Next.js, tRPC and NestJS from package.json")
    console.print("  [green]✓[/green] Next.js App Router route handlers")
    console.print("  [green]✓[/green] Next.js Pages Router API routes (method inference)")
    console.print("  [green]✓[/green] tRPC procedures with nested router composition")
    console.print("  [green]✓[/green] NestJS controllers, global prefix and versioning")
    console.print("  [green]✓[/green] Example bodies from zod schemas and TypeScript types")
    console.print("  [green]✓[/green] Route lint rules")
    console.print("  [green]✓[/green] Export JSON and YAML")

    console.print("\n[bold]Quick Start:[/bold]")
    console.print("  routescope detect ~/my_app")
    console.print("  routescope scan ~/my_app")
    console.print("  routescope scan ~/my_app -f json -o routes.json")
    console.print("  routescope analyze ~/my_app --strict")
    console.print()


if __name__ == "__main__":
    main()

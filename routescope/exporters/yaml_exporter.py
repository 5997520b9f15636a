"""
RouteScope YAML Exporter - Export scan results as human-readable YAML.

The document mirrors the JSON export (detection map, summary, routes),
with routes grouped per framework for quick reading:

    summary:
      total_routes: 3
    routes:
      nextjs-app:
      - method: GET
        path: /api/users/:id
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from routescope.analyzers.rules import RouteFinding, summarize_findings
from routescope.core.routes import sort_routes
from routescope.engine import ScanResult
from routescope.exporters.json_exporter import ExportResult

logger = logging.getLogger(__name__)


class YAMLExporter:
    """
    Export RouteScope scan results to YAML format.

    Usage:
        exporter = YAMLExporter()
        exporter.set_scan_result(scan_project("/path/to/project"))
        exporter.export(Path("routes.yaml"))
    """

    def __init__(self):
        self.scan_result: Optional[ScanResult] = None
        self.findings: Optional[List[RouteFinding]] = None

    def set_scan_result(self, scan_result: ScanResult):
        self.scan_result = scan_result

    def set_findings(self, findings: List[RouteFinding]):
        self.findings = findings

    def build(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.scan_result is not None:
            data["summary"] = self.scan_result.summary()
            data["detection"] = dict(self.scan_result.detection)

            grouped: Dict[str, List[Dict]] = {}
            for route in sort_routes(self.scan_result.routes):
                entry = route.to_dict()
                entry.pop("type", None)
                grouped.setdefault(route.type, []).append(entry)
            data["routes"] = grouped

        if self.findings is not None:
            data["findings"] = {
                "summary": summarize_findings(self.findings),
                "items": [f.to_dict() for f in self.findings],
            }
        return data

    def export_string(self) -> str:
        return yaml.safe_dump(self.build(), default_flow_style=False, sort_keys=False, allow_unicode=True)

    def export(self, output_path: Path) -> ExportResult:
        """Export to a YAML file."""
        try:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)

            header = "# Routes - Auto-generated by RouteScope\n\n"
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(header)
                f.write(self.export_string())

            stats = {
                "file_size": output_path.stat().st_size,
                "routes": len(self.scan_result.routes) if self.scan_result else 0,
            }
            logger.info(f"Exported YAML to {output_path} ({stats['file_size']} bytes)")
            return ExportResult(success=True, output_path=output_path, stats=stats)

        except Exception as e:
            logger.error(f"Failed to export YAML: {e}")
            return ExportResult(success=False, error=str(e))


def export_scan_yaml(
    output_path: Path,
    scan_result: ScanResult,
    findings: Optional[List[RouteFinding]] = None,
) -> ExportResult:
    """Convenience function to export a scan to YAML."""
    exporter = YAMLExporter()
    exporter.set_scan_result(scan_result)
    if findings is not None:
        exporter.set_findings(findings)
    return exporter.export(Path(output_path))

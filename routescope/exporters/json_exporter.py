"""
RouteScope JSON Exporter - Export scan results to structured JSON.

Generates JSON output including:
- Project metadata
- Framework detection map
- Route summary (totals per framework and per method)
- Routes sorted by path, then method
- Lint findings (optional)

Output is designed for machine consumption and further processing.
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from routescope.analyzers.rules import RouteFinding, summarize_findings
from routescope.engine import ScanResult

logger = logging.getLogger(__name__)


@dataclass
class ProjectMetadata:
    """Metadata about the scanned project."""
    name: str
    path: str
    analyzed_at: str
    routescope_version: str = "1.0.0"

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ExportResult:
    """Result of an export operation."""
    success: bool
    output_path: Optional[Path] = None
    error: Optional[str] = None
    stats: Dict[str, Any] = field(default_factory=dict)


class JSONExporter:
    """
    Export RouteScope scan results to JSON format.

    Usage:
        exporter = JSONExporter()
        exporter.set_scan_result(scan_project("/path/to/project"))
        result = exporter.export(Path("routes.json"))
    """

    def __init__(self):
        self.metadata: Optional[ProjectMetadata] = None
        self.scan_result: Optional[ScanResult] = None
        self.findings: Optional[List[RouteFinding]] = None

    def set_metadata(self, name: str, path: str):
        """Set project metadata."""
        from routescope import __version__

        self.metadata = ProjectMetadata(
            name=name,
            path=path,
            analyzed_at=datetime.now().isoformat(),
            routescope_version=__version__,
        )

    def set_scan_result(self, scan_result: ScanResult):
        self.scan_result = scan_result
        if self.metadata is None:
            root = Path(scan_result.root_dir)
            self.set_metadata(name=root.name, path=str(root))

    def set_findings(self, findings: List[RouteFinding]):
        self.findings = findings

    def build(self) -> Dict[str, Any]:
        """Build the export document."""
        data: Dict[str, Any] = {}
        if self.metadata:
            data["metadata"] = self.metadata.to_dict()
        if self.scan_result is not None:
            data.update(self.scan_result.to_dict())
        if self.findings is not None:
            data["findings"] = {
                "summary": summarize_findings(self.findings),
                "items": [f.to_dict() for f in self.findings],
            }
        return data

    def export(self, output_path: Path, indent: int = 2) -> ExportResult:
        """
        Export to JSON file.

        Args:
            output_path: Path to output file
            indent: JSON indentation level

        Returns:
            ExportResult with success status
        """
        try:
            output_path = Path(output_path)
            data = self.build()

            output_path.parent.mkdir(parents=True, exist_ok=True)

            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=indent, ensure_ascii=False, default=str)

            stats = {
                "file_size": output_path.stat().st_size,
                "routes": len(self.scan_result.routes) if self.scan_result else 0,
                "findings": len(self.findings) if self.findings is not None else 0,
            }

            logger.info(f"Exported JSON to {output_path} ({stats['file_size']} bytes)")

            return ExportResult(
                success=True,
                output_path=output_path,
                stats=stats,
            )

        except Exception as e:
            logger.error(f"Failed to export JSON: {e}")
            return ExportResult(
                success=False,
                error=str(e),
            )

    def export_string(self, indent: int = 2) -> str:
        """Export to JSON string."""
        return json.dumps(self.build(), indent=indent, ensure_ascii=False, default=str)


def export_scan_json(
    output_path: Path,
    scan_result: ScanResult,
    findings: Optional[List[RouteFinding]] = None,
) -> ExportResult:
    """
    Convenience function to export a scan to JSON.

    Args:
        output_path: Path to output file
        scan_result: Result of scan_project
        findings: Optional lint findings

    Returns:
        ExportResult
    """
    exporter = JSONExporter()
    exporter.set_scan_result(scan_result)
    if findings is not None:
        exporter.set_findings(findings)
    return exporter.export(Path(output_path))

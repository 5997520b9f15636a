"""
RouteScope Exporters - Output generation modules

- json_exporter.py - Export scan results as JSON
- yaml_exporter.py - Export scan results as YAML
"""

from routescope.exporters.json_exporter import (
    JSONExporter,
    export_scan_json,
    ExportResult,
)
from routescope.exporters.yaml_exporter import (
    YAMLExporter,
    export_scan_yaml,
)

__all__ = [
    "JSONExporter",
    "export_scan_json",
    "ExportResult",
    "YAMLExporter",
    "export_scan_yaml",
]

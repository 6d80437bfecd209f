"""Report collection and the consolidated dashboard."""

from previewflow.reports.collector import collect, default_report_paths
from previewflow.reports.consolidator import ConsolidatedDashboard, consolidate
from previewflow.reports.models import (
    AvailableReport,
    Report,
    ReportKind,
    ReportSet,
    UnavailableReport,
)
from previewflow.reports.render import write_dashboard

__all__ = [
    "AvailableReport",
    "ConsolidatedDashboard",
    "Report",
    "ReportKind",
    "ReportSet",
    "UnavailableReport",
    "collect",
    "consolidate",
    "default_report_paths",
    "write_dashboard",
]

"""Report variants and their summary accessors.

Every report kind is either available (a parsed JSON object of untrusted
shape) or unavailable (with a reason). Accessors pattern-match on the
variant and the payload structure and fall back to zero, so callers never
have to guard against missing or malformed fields.
"""

import math
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any


class ReportKind(StrEnum):
    """Known report kinds, valued by their artifact keys."""

    BUNDLE = "bundle"
    VULNERABILITY = "vulnerability"
    DEAD_CODE = "deadCode"
    DOC_QUALITY = "docQuality"
    PERFORMANCE = "performance"


DEFAULT_FILENAMES: dict[ReportKind, str] = {
    ReportKind.BUNDLE: "bundle-report.json",
    ReportKind.VULNERABILITY: "vulnerability-report.json",
    ReportKind.DEAD_CODE: "dead-code-report.json",
    ReportKind.DOC_QUALITY: "doc-quality-report.json",
    ReportKind.PERFORMANCE: "performance-metrics.json",
}

SEVERITIES = ("critical", "high", "medium", "low")


@dataclass(frozen=True)
class AvailableReport:
    kind: ReportKind
    payload: dict[str, Any]
    source: Path | None = None


@dataclass(frozen=True)
class UnavailableReport:
    kind: ReportKind
    reason: str = "not found"


Report = AvailableReport | UnavailableReport


@dataclass
class ReportSet:
    """One report per kind; kinds that were never loaded are unavailable."""

    reports: dict[ReportKind, Report] = field(default_factory=dict)

    def get(self, kind: ReportKind) -> Report:
        return self.reports.get(kind) or UnavailableReport(kind)

    def __iter__(self):
        return (self.get(kind) for kind in ReportKind)

    @property
    def available(self) -> list[AvailableReport]:
        return [r for r in self if isinstance(r, AvailableReport)]


def is_available(report: Report) -> bool:
    return isinstance(report, AvailableReport)


def _finite(value: float) -> bool:
    # json.loads accepts Infinity, NaN and ints too large for a float
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _number(value: Any) -> float:
    match value:
        case bool():
            return 0
        case int() | float() if _finite(value):
            return value
        case _:
            return 0


def _whole(value: float, rounding=round) -> int:
    return rounding(value) if _finite(value) else 0


def _items(report: Report, kind: ReportKind, key: str) -> list[Any]:
    match report:
        case AvailableReport(kind=k, payload={**payload}) if k == kind:
            value = payload.get(key)
            return value if isinstance(value, list) else []
        case _:
            return []


# Bundle


def bundle_total_size(report: Report) -> int:
    """Sum of asset sizes in bytes."""
    assets = _items(report, ReportKind.BUNDLE, "assets")
    return _whole(sum(_number(a.get("size")) for a in assets if isinstance(a, dict)), int)


def bundle_asset_count(report: Report) -> int:
    return len(_items(report, ReportKind.BUNDLE, "assets"))


def bundle_issue_count(report: Report) -> int:
    """Warnings plus errors reported by the bundle analyzer."""
    return len(_items(report, ReportKind.BUNDLE, "warnings")) + len(
        _items(report, ReportKind.BUNDLE, "errors")
    )


# Vulnerabilities


def vulnerability_count(report: Report, severity: str | None = None) -> int:
    """Number of vulnerabilities, optionally only those at one severity."""
    vulnerabilities = _items(report, ReportKind.VULNERABILITY, "vulnerabilities")
    if severity is None:
        return len(vulnerabilities)
    return sum(
        1
        for v in vulnerabilities
        if isinstance(v, dict) and str(v.get("severity", "")).lower() == severity
    )


def vulnerability_counts(report: Report) -> dict[str, int]:
    return {severity: vulnerability_count(report, severity) for severity in SEVERITIES}


# Dead code


def unused_export_count(report: Report) -> int:
    return len(_items(report, ReportKind.DEAD_CODE, "unusedExports"))


def unused_dependency_count(report: Report) -> int:
    return len(_items(report, ReportKind.DEAD_CODE, "unusedDependencies"))


# Documentation quality


def doc_coverage(report: Report) -> int:
    """Documented files as a rounded percentage of all files."""
    match report:
        case AvailableReport(
            kind=ReportKind.DOC_QUALITY,
            payload={"totalFiles": int() | float() as total, **rest},
        ) if _number(total) > 0:
            return _whole(_number(rest.get("documentedFiles")) / total * 100)
        case _:
            return 0


def doc_issue_count(report: Report) -> int:
    return len(_items(report, ReportKind.DOC_QUALITY, "issues"))


# Performance


def performance_duration(report: Report) -> float:
    """Total duration in seconds."""
    match report:
        case AvailableReport(kind=ReportKind.PERFORMANCE, payload={"totalDuration": duration}):
            return float(_number(duration))
        case _:
            return 0.0


def performance_steps(report: Report) -> list[dict[str, Any]]:
    """Steps with a name, as ``{"name", "duration", "status"}`` records."""
    steps = []
    for step in _items(report, ReportKind.PERFORMANCE, "steps"):
        match step:
            case {"name": str(name), **rest}:
                steps.append(
                    {
                        "name": name,
                        "duration": float(_number(rest.get("duration"))),
                        "status": str(rest.get("status", "unknown")),
                    }
                )
    return steps

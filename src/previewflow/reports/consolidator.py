"""Merge run state, channels, reports and URLs into one dashboard model."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from types import MappingProxyType
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer

from previewflow.hosting.channels import PreviewChannel
from previewflow.hosting.registry import SiteChannels
from previewflow.hosting.urls import UrlExtraction
from previewflow.reports import models
from previewflow.reports.models import Report, ReportKind, ReportSet, UnavailableReport
from previewflow.workflows.state import PhaseStatus, RunStatus, WorkflowRun

SECTION_TITLES: dict[ReportKind, str] = {
    ReportKind.BUNDLE: "Bundle size",
    ReportKind.VULNERABILITY: "Vulnerabilities",
    ReportKind.DEAD_CODE: "Dead code",
    ReportKind.DOC_QUALITY: "Documentation quality",
    ReportKind.PERFORMANCE: "Performance",
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


def _read_only(value: Mapping) -> Mapping:
    return MappingProxyType(dict(value))


# Stored as read-only proxies, dumped as plain dicts
Metrics = Annotated[
    Mapping[str, float],
    AfterValidator(_read_only),
    PlainSerializer(dict, return_type=dict[str, float]),
]
Row = Annotated[
    Mapping[str, str | float],
    AfterValidator(_read_only),
    PlainSerializer(dict, return_type=dict[str, str | float]),
]
Urls = Annotated[
    Mapping[str, str],
    AfterValidator(_read_only),
    PlainSerializer(dict, return_type=dict[str, str]),
]


class PhaseView(_Frozen):
    name: str
    status: PhaseStatus
    duration: float
    fatal: bool
    error: str | None = None


class ErrorCategoryView(_Frozen):
    category: str
    count: int
    messages: tuple[str, ...]
    suggestion: str


class ErrorGroupView(_Frozen):
    phase: str
    count: int
    categories: tuple[ErrorCategoryView, ...]


class ChannelView(_Frozen):
    id: str
    created_at: datetime
    url: str | None = None


class ChannelSection(_Frozen):
    site: str
    current: tuple[ChannelView, ...] = ()
    evicted: tuple[ChannelView, ...] = ()


class ReportSection(_Frozen):
    kind: ReportKind
    title: str
    available: bool
    reason: str | None = None
    metrics: Metrics = Field(default_factory=dict, validate_default=True)
    rows: tuple[Row, ...] = ()


class ConsolidatedDashboard(_Frozen):
    """Read-only dashboard derived once per run.

    Timestamps come from the run, so equal inputs give equal dashboards.
    """

    generated_at: datetime
    status: RunStatus
    exit_code: int
    duration: float
    phases: tuple[PhaseView, ...]
    errors: tuple[ErrorGroupView, ...]
    channels: tuple[ChannelSection, ...]
    urls: Urls = Field(default_factory=dict, validate_default=True)
    overflow_urls: tuple[str, ...] = ()
    sections: tuple[ReportSection, ...]
    next_steps: tuple[str, ...] = ()

    def section(self, kind: ReportKind) -> ReportSection:
        return next(s for s in self.sections if s.kind == kind)


def _report_section(report: Report) -> ReportSection:
    kind = report.kind
    title = SECTION_TITLES[kind]
    if isinstance(report, UnavailableReport):
        return ReportSection(kind=kind, title=title, available=False, reason=report.reason)

    rows: tuple[dict[str, str | float], ...] = ()
    match kind:
        case ReportKind.BUNDLE:
            metrics = {
                "total_size": models.bundle_total_size(report),
                "asset_count": models.bundle_asset_count(report),
                "issue_count": models.bundle_issue_count(report),
            }
        case ReportKind.VULNERABILITY:
            metrics = {"total": models.vulnerability_count(report)}
            metrics.update(models.vulnerability_counts(report))
        case ReportKind.DEAD_CODE:
            metrics = {
                "unused_exports": models.unused_export_count(report),
                "unused_dependencies": models.unused_dependency_count(report),
            }
        case ReportKind.DOC_QUALITY:
            metrics = {
                "coverage": models.doc_coverage(report),
                "issue_count": models.doc_issue_count(report),
            }
        case ReportKind.PERFORMANCE:
            metrics = {"total_duration": models.performance_duration(report)}
            rows = tuple(models.performance_steps(report))

    return ReportSection(kind=kind, title=title, available=True, metrics=metrics, rows=rows)


def _channel_view(channel: PreviewChannel) -> ChannelView:
    url = channel.urls.get(channel.site) or next(iter(channel.urls.values()), None)
    return ChannelView(id=channel.id, created_at=channel.created_at, url=url)


def _next_steps(run: WorkflowRun, sections: Sequence[ReportSection], urls: Mapping) -> list[str]:
    steps = []
    if run.tracker.has_errors:
        steps.append("Review the errors above and follow their suggestions")
    if any(s.available and s.metrics.get("critical", 0) + s.metrics.get("high", 0) for s in sections):
        steps.append("Fix high and critical vulnerabilities before merging")
    if urls:
        steps.append("Review the preview deployment using the URLs above")
        steps.append("Share the preview URLs with your team for review")
    if run.status is RunStatus.SUCCEEDED:
        steps.append("Merge once the preview has been approved")
    return steps


def consolidate(
    reports: ReportSet,
    channels: Sequence[SiteChannels],
    run: WorkflowRun,
    urls: UrlExtraction | None = None,
) -> ConsolidatedDashboard:
    """Build the dashboard from everything accumulated during a run.

    Every report kind gets a section; kinds without data are flagged
    unavailable. Run status and channel sections are always present.
    """
    sections = tuple(_report_section(report) for report in reports)
    url_map = dict(urls.urls) if urls else {}

    errors = tuple(
        ErrorGroupView(
            phase=group.phase,
            count=group.count,
            categories=tuple(
                ErrorCategoryView(
                    category=str(c.category),
                    count=c.count,
                    messages=tuple(c.messages),
                    suggestion=c.suggestion,
                )
                for c in group.categories
            ),
        )
        for group in run.tracker.summarize()
    )

    return ConsolidatedDashboard(
        generated_at=run.finished_at or run.started_at,
        status=run.status,
        exit_code=run.exit_code,
        duration=run.duration,
        phases=tuple(
            PhaseView(
                name=p.name,
                status=p.status,
                duration=p.duration,
                fatal=p.fatal,
                error=p.error.message if p.error else None,
            )
            for p in run.phases
        ),
        errors=errors,
        channels=tuple(
            ChannelSection(
                site=site.site,
                current=tuple(_channel_view(c) for c in site.current),
                evicted=tuple(_channel_view(c) for c in site.evicted),
            )
            for site in channels
        ),
        urls=url_map,
        overflow_urls=tuple(urls.overflow) if urls else (),
        sections=sections,
        next_steps=tuple(_next_steps(run, sections, url_map)),
    )


def refresh_sections(dashboard: ConsolidatedDashboard, reports: ReportSet) -> ConsolidatedDashboard:
    """Copy of a dashboard with report sections rebuilt from ``reports``."""
    return dashboard.model_copy(
        update={"sections": tuple(_report_section(report) for report in reports)}
    )

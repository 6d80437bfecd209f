"""Tests for dashboard consolidation and rendering."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from previewflow.exceptions import DeploymentError
from previewflow.hosting.registry import SiteChannels
from previewflow.hosting.urls import UrlExtraction
from previewflow.reports.consolidator import ConsolidatedDashboard, consolidate, refresh_sections
from previewflow.reports.models import AvailableReport, ReportKind, ReportSet
from previewflow.reports.render import render_html, render_json, write_dashboard
from previewflow.workflows.state import PhaseResult, PhaseStatus, RunStatus, WorkflowRun

STARTED = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def finished_run() -> WorkflowRun:
    """A run that failed in deploy with one recorded error."""
    run = WorkflowRun(started_at=STARTED)
    run.phases = [PhaseResult(name="build"), PhaseResult(name="deploy")]
    run.phases[0].finish(PhaseStatus.SUCCESS, duration=4.0)
    error = DeploymentError("quota exceeded", phase="deploy")
    error.fatal = True
    run.tracker.record(error)
    run.phases[1].finish(PhaseStatus.FAILED, duration=1.5, error=error)
    run.finished_at = STARTED + timedelta(seconds=6)
    run.status = RunStatus.FAILED
    return run


@pytest.fixture
def reports() -> ReportSet:
    return ReportSet(
        {
            ReportKind.VULNERABILITY: AvailableReport(
                ReportKind.VULNERABILITY,
                {"vulnerabilities": [{"severity": "high"}, {"severity": "low"}]},
            ),
            ReportKind.PERFORMANCE: AvailableReport(
                ReportKind.PERFORMANCE,
                {"totalDuration": 5.5, "steps": [{"name": "build", "duration": 4, "status": "success"}]},
            ),
        }
    )


class TestConsolidate:
    """Test consolidate()."""

    def test_empty_inputs_still_produce_dashboard(self):
        """No reports, channels or URLs: every section flagged unavailable."""
        run = WorkflowRun(started_at=STARTED)
        dashboard = consolidate(ReportSet(), [], run)

        assert len(dashboard.sections) == len(ReportKind)
        assert all(not s.available for s in dashboard.sections)
        assert dashboard.status == RunStatus.RUNNING
        assert dashboard.channels == ()
        assert dashboard.urls == {}
        assert "Unavailable" in render_html(dashboard)

    def test_sections_and_metrics(self, finished_run, reports):
        """Available kinds carry their summary numbers."""
        dashboard = consolidate(reports, [], finished_run)

        vulns = dashboard.section(ReportKind.VULNERABILITY)
        assert vulns.available
        assert vulns.metrics["total"] == 2
        assert vulns.metrics["high"] == 1
        perf = dashboard.section(ReportKind.PERFORMANCE)
        assert perf.metrics["total_duration"] == 5.5
        assert perf.rows[0]["name"] == "build"
        assert not dashboard.section(ReportKind.BUNDLE).available

    def test_run_state(self, finished_run, reports):
        """Status, phases and grouped errors come from the run."""
        dashboard = consolidate(reports, [], finished_run)

        assert dashboard.status == RunStatus.FAILED
        assert dashboard.exit_code == 1
        assert dashboard.generated_at == finished_run.finished_at
        assert dashboard.duration == 6.0
        assert [(p.name, p.status) for p in dashboard.phases] == [
            ("build", PhaseStatus.SUCCESS),
            ("deploy", PhaseStatus.FAILED),
        ]
        assert dashboard.phases[1].error == "quota exceeded"
        assert len(dashboard.errors) == 1
        assert dashboard.errors[0].phase == "deploy"
        assert dashboard.errors[0].categories[0].category == "deployment"

    def test_channels_and_urls(self, finished_run, channel_factory):
        """Channel sections list current and evicted channels; URLs are carried."""
        snapshot = [
            SiteChannels(
                site="admin",
                current=[channel_factory("admin", "new")],
                evicted=[channel_factory("admin", "old", days_ago=9)],
            )
        ]
        urls = UrlExtraction(urls={"admin": "https://admin-1.web.app"}, overflow=["https://x.web.app"])

        dashboard = consolidate(ReportSet(), snapshot, finished_run, urls)

        section = dashboard.channels[0]
        assert [c.id for c in section.current] == ["new"]
        assert [c.id for c in section.evicted] == ["old"]
        assert section.current[0].url == "https://admin--new-abcd1234.web.app"
        assert dashboard.urls == {"admin": "https://admin-1.web.app"}
        assert dashboard.overflow_urls == ("https://x.web.app",)
        assert any("preview" in step for step in dashboard.next_steps)

    def test_idempotent(self, finished_run, reports):
        """Two consolidations of equal inputs are structurally identical."""
        first = consolidate(reports, [], finished_run)
        second = consolidate(reports, [], finished_run)
        assert first == second
        assert render_json(first) == render_json(second)
        assert render_html(first) == render_html(second)

    def test_frozen(self, finished_run, reports):
        """The dashboard cannot be mutated."""
        dashboard = consolidate(reports, [], finished_run)
        with pytest.raises(ValidationError):
            dashboard.status = RunStatus.SUCCEEDED

    def test_mappings_are_read_only(self, finished_run, reports):
        """Metrics, rows and URLs cannot be changed in place but still dump as objects."""
        urls = UrlExtraction(urls={"admin": "https://admin-1.web.app"})
        dashboard = consolidate(reports, [], finished_run, urls)

        with pytest.raises(TypeError):
            dashboard.urls["admin"] = "https://other.web.app"
        with pytest.raises(TypeError):
            dashboard.section(ReportKind.VULNERABILITY).metrics["total"] = 0
        with pytest.raises(TypeError):
            dashboard.section(ReportKind.PERFORMANCE).rows[0]["name"] = "deploy"

        data = json.loads(render_json(dashboard))
        assert data["urls"] == {"admin": "https://admin-1.web.app"}
        assert ConsolidatedDashboard.model_validate(data) == dashboard

    def test_non_finite_report_numbers(self, finished_run):
        """Infinity and NaN in a report count as zero and the dashboard still renders."""
        payload = json.loads(
            '{"assets": [{"size": Infinity}, {"size": NaN}, {"size": 5}]}'
        )
        reports = ReportSet({ReportKind.BUNDLE: AvailableReport(ReportKind.BUNDLE, payload)})

        dashboard = consolidate(reports, [], finished_run)

        assert dashboard.section(ReportKind.BUNDLE).metrics["total_size"] == 5
        assert json.loads(render_json(dashboard))["status"] == "failed"


def test_refresh_sections(finished_run, reports):
    """refresh_sections only replaces the report sections."""
    dashboard = consolidate(ReportSet(), [], finished_run)
    refreshed = refresh_sections(dashboard, reports)
    assert refreshed.section(ReportKind.VULNERABILITY).available
    assert refreshed.phases == dashboard.phases


class TestRender:
    """Test HTML and JSON rendering."""

    def test_html_escapes(self, finished_run):
        """User-controlled text is escaped."""
        finished_run.tracker.record(DeploymentError("<script>alert(1)</script>", phase="channels"))
        html = render_html(consolidate(ReportSet(), [], finished_run))
        assert "<script>alert" not in html
        assert "&lt;script&gt;" in html

    @pytest.mark.asyncio
    async def test_write_dashboard(self, tmp_path: Path, finished_run, reports):
        """HTML and JSON twins are written side by side."""
        dashboard = consolidate(reports, [], finished_run)
        html_path, json_path = await write_dashboard(dashboard, tmp_path / "out" / "dash.html")

        assert html_path.read_text().startswith("<!DOCTYPE html>")
        assert json_path == tmp_path / "out" / "dash.json"
        data = json.loads(json_path.read_text())
        assert data["status"] == "failed"
        assert ConsolidatedDashboard.model_validate_json(json_path.read_text()) == dashboard

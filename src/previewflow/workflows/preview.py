"""The preview deployment workflow: phases, their policy and the dashboard."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from previewflow.activities import auth, build, deploy, github, quality, setup
from previewflow.activities.logs import deploy_log_path
from previewflow.exceptions import ConfigurationError, ErrorCategory
from previewflow.hosting.channels import ChannelApi, FirebaseCliChannelApi, generate_channel_id
from previewflow.hosting.registry import ChannelRegistry, EvictionResult
from previewflow.hosting.rest import HostingRestChannelApi
from previewflow.hosting.urls import (
    URLS_FILENAME,
    UrlExtraction,
    UrlExtractor,
    assign_urls,
    format_pr_comment,
)
from previewflow.reports.collector import (
    collect,
    default_report_paths,
    remove_reports,
    save_report,
)
from previewflow.reports.consolidator import ConsolidatedDashboard, consolidate
from previewflow.reports.models import ReportKind
from previewflow.reports.render import write_dashboard
from previewflow.settings import Settings
from previewflow.workflows.engine import PhaseDefinition, StepEngine
from previewflow.workflows.state import (
    PhaseOutcome,
    PhaseStatus,
    ProgressCallback,
    WorkflowRun,
)

logger = logging.getLogger(__name__)


class Phase:
    """Phase names, in execution order."""

    SETUP = "setup"
    AUTH = "auth"
    QUALITY = "quality"
    BUILD = "build"
    DEPLOY = "deploy"
    CHANNELS = "channels"
    REPORT = "report"
    COMMENT = "comment"


@dataclass
class WorkflowOptions:
    """Per-run flags from the command line."""

    skip_checks: bool = False
    skip_auth: bool = False
    skip_build: bool = False
    skip_deploy: bool = False
    skip_cleanup: bool = False
    skip_reports: bool = False
    skip_comment: bool = False
    # Quality failures halt the run
    strict: bool = False
    keep_reports: bool = False
    branch: str | None = None
    pr_number: int | None = None
    keep: int | None = None
    dry_run: bool = False

    def skipped_phases(self) -> set[str]:
        flags = {
            Phase.QUALITY: self.skip_checks,
            Phase.AUTH: self.skip_auth,
            Phase.BUILD: self.skip_build,
            Phase.DEPLOY: self.skip_deploy,
            Phase.CHANNELS: self.skip_cleanup,
            Phase.REPORT: self.skip_reports,
            Phase.COMMENT: self.skip_comment,
        }
        return {name for name, skipped in flags.items() if skipped}


def create_channel_api(settings: Settings) -> ChannelApi:
    """Build the channel API selected by ``hosting_backend``.

    Raises:
        ConfigurationError: If the selected backend is missing credentials.
    """
    if settings.hosting_backend == "rest":
        if not settings.hosting_access_token:
            raise ConfigurationError(
                "The rest hosting backend needs PREVIEWFLOW_HOSTING_ACCESS_TOKEN."
            )
        return HostingRestChannelApi(settings.hosting_access_token, settings.sites)
    return FirebaseCliChannelApi(settings.require_project(), settings.sites, settings.firebase_bin)


def _now() -> datetime:
    return datetime.now(UTC)


class PreviewWorkflow:
    """Runs setup -> auth -> quality -> build -> deploy -> channels -> report -> comment.

    Configuration problems (missing project, missing retention count) are
    raised from the constructor, before anything runs.
    """

    def __init__(
        self,
        settings: Settings,
        root: Path,
        options: WorkflowOptions | None = None,
        *,
        api: ChannelApi | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.settings = settings
        self.root = root
        self.options = options or WorkflowOptions()
        self.clock = clock

        skipped = self.options.skipped_phases()
        self.keep = (
            settings.resolve_keep(self.options.keep) if Phase.CHANNELS not in skipped else None
        )
        needs_hosting = not {Phase.DEPLOY, Phase.CHANNELS} <= skipped
        if Phase.DEPLOY not in skipped:
            settings.require_project()
        if api is None and needs_hosting:
            api = create_channel_api(settings)
        self.api = api

        self.temp_dir = settings.temp_path(root)
        self.logs_dir = settings.logs_path(root)
        self.report_paths = default_report_paths(self.temp_dir, settings.report_paths)
        self.extractor = UrlExtractor(
            list(settings.sites), cache_path=self.temp_dir / URLS_FILENAME
        )

        self.registry: ChannelRegistry | None = None
        self.channel_id: str | None = None
        self.branch: str | None = self.options.branch
        self.pr_number: int | None = self.options.pr_number
        self.dashboard: ConsolidatedDashboard | None = None

    def phases(self) -> list[PhaseDefinition]:
        timeout = self.settings.phase_timeout
        return [
            PhaseDefinition(
                Phase.SETUP,
                self._setup,
                fatal=True,
                skippable=False,
                category=ErrorCategory.DEPENDENCY,
                timeout=timeout,
            ),
            PhaseDefinition(
                Phase.AUTH,
                self._auth,
                fatal=True,
                category=ErrorCategory.AUTHENTICATION,
                timeout=timeout,
            ),
            PhaseDefinition(
                Phase.QUALITY,
                self._quality,
                fatal=self.options.strict,
                category=ErrorCategory.QUALITY_CHECK,
                timeout=timeout,
            ),
            PhaseDefinition(
                Phase.BUILD,
                self._build,
                fatal=True,
                category=ErrorCategory.BUILD,
                timeout=timeout,
            ),
            PhaseDefinition(
                Phase.DEPLOY,
                self._deploy,
                fatal=True,
                category=ErrorCategory.DEPLOYMENT,
                timeout=timeout,
            ),
            PhaseDefinition(
                Phase.CHANNELS,
                self._channels,
                fatal=False,
                category=ErrorCategory.DEPLOYMENT,
                timeout=timeout,
            ),
            PhaseDefinition(
                Phase.REPORT,
                self._report,
                fatal=False,
                category=ErrorCategory.UNKNOWN,
                timeout=timeout,
            ),
            PhaseDefinition(
                Phase.COMMENT,
                self._comment,
                fatal=False,
                category=ErrorCategory.DEPLOYMENT,
                timeout=timeout,
            ),
        ]

    def engine(self) -> StepEngine:
        return StepEngine(
            self.phases(),
            skip=self.options.skipped_phases(),
            finalizer=self.finalize,
            clock=self.clock,
        )

    async def run(self, on_progress: ProgressCallback | None = None) -> WorkflowRun:
        run = WorkflowRun(started_at=self.clock())
        if on_progress is not None:
            run.on_progress = on_progress
        if self.api is not None:
            self.registry = ChannelRegistry(self.api, run.tracker)
        return await self.engine().run(run)

    # Phases

    async def _setup(self, run: WorkflowRun) -> PhaseOutcome:
        versions = await setup.verify_tools(self.settings.required_tools, cwd=self.root)
        if self.branch is None:
            self.branch = await setup.current_branch(self.root)
        if self.pr_number is None:
            self.pr_number = github.detect_pr_number(
                self.branch, self.settings.github_event_path
            )
        setup.clean_stale_artifacts(self.report_paths.values())
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        return PhaseOutcome(
            data={"tools": versions, "branch": self.branch, "pr_number": self.pr_number}
        )

    async def _auth(self, run: WorkflowRun) -> PhaseOutcome:
        status = await auth.check_auth(
            self.settings.firebase_bin, token=self.settings.firebase_token, cwd=self.root
        )
        return PhaseOutcome(data=status, message=status.hosting_account)

    async def _quality(self, run: WorkflowRun) -> PhaseOutcome:
        results, errors = await quality.run_quality_checks(
            self.settings.quality_commands, cwd=self.root, logs_dir=self.logs_dir
        )
        data = {r.name: r.passed for r in results}
        if errors:
            return PhaseOutcome.failed(
                f"{len(errors)} of {len(self.settings.quality_commands)} check(s) failed",
                data=data,
                errors=list(errors),
            )
        return PhaseOutcome(data=data, message=f"{len(results)} check(s) passed")

    async def _build(self, run: WorkflowRun) -> PhaseOutcome:
        await build.build(self.settings.build_command, cwd=self.root, logs_dir=self.logs_dir)
        warnings = []
        if self.settings.bundle_command:
            warning = await build.analyze_bundle(
                self.settings.bundle_command, cwd=self.root, logs_dir=self.logs_dir
            )
            if warning is not None:
                warnings.append(warning)
        return PhaseOutcome(errors=warnings)

    async def _deploy(self, run: WorkflowRun) -> PhaseOutcome:
        self.channel_id = generate_channel_id(
            self.branch or "local",
            prefix=self.settings.channel_prefix,
            pr_number=self.pr_number,
            now=self.clock(),
        )
        results, errors = await deploy.deploy_sites(
            self.settings.sites,
            self.channel_id,
            project_id=self.settings.require_project(),
            temp_dir=self.temp_dir,
            firebase_bin=self.settings.firebase_bin,
            expires=self.settings.channel_expires,
            token=self.settings.firebase_token,
            cwd=self.root,
        )
        data = {"channel_id": self.channel_id, "sites": results}
        if errors:
            return PhaseOutcome.failed(
                f"{len(errors)} site(s) failed to deploy", data=data, errors=list(errors)
            )
        return PhaseOutcome(data=data, message=self.channel_id)

    async def _channels(self, run: WorkflowRun) -> PhaseOutcome:
        assert self.registry is not None and self.keep is not None
        results: list[EvictionResult] = await self.registry.cleanup(
            self.settings.sites, self.keep, dry_run=self.options.dry_run
        )
        deleted = sum(r.deleted_count for r in results)
        return PhaseOutcome(data=results, message=f"{deleted} channel(s) evicted")

    async def _report(self, run: WorkflowRun) -> PhaseOutcome:
        deploy_logs = [deploy_log_path(self.temp_dir, site) for site in self.settings.sites]
        urls = await self.extractor.extract_from_joined(deploy_logs)
        if urls is None and self.logs_dir.is_dir():
            urls = await self.extractor.extract_from_files(self.logs_dir.glob("preview-*.log"))

        await save_report(self.report_paths[ReportKind.PERFORMANCE], self._performance(run))
        if urls is None:
            return PhaseOutcome(message="no preview URLs found")
        return PhaseOutcome(data=urls, message=f"{len(urls.urls)} preview URL(s)")

    def _performance(self, run: WorkflowRun) -> dict:
        steps = [
            {"name": p.name, "duration": round(p.duration, 3), "status": str(p.status)}
            for p in run.phases
            if p.status in (PhaseStatus.SUCCESS, PhaseStatus.FAILED)
        ]
        return {
            "totalDuration": round(sum(step["duration"] for step in steps), 3),
            "stepsCompleted": len(steps),
            "steps": steps,
        }

    async def _comment(self, run: WorkflowRun) -> PhaseOutcome:
        if self.pr_number is None:
            return PhaseOutcome(message="no pull request")
        urls = self._urls(run)
        if urls is None:
            return PhaseOutcome(message="no preview URLs to post")

        body = format_pr_comment(urls.urls, channel_id=self.channel_id, branch=self.branch)
        await github.post_pr_comment(
            self.pr_number, body, gh_bin=self.settings.gh_bin, cwd=self.root
        )
        return PhaseOutcome(data=self.pr_number, message=f"commented on #{self.pr_number}")

    # Finalizer

    def _urls(self, run: WorkflowRun) -> UrlExtraction | None:
        if self.extractor.result is not None:
            return self.extractor.result
        deployed = run.data(Phase.DEPLOY) or {}
        found = [r.url for r in deployed.get("sites", []) if r.url]
        return assign_urls(found, list(self.settings.sites))

    async def finalize(self, run: WorkflowRun) -> ConsolidatedDashboard:
        """Collect reports and write the dashboard; runs once per run."""
        reports = await collect(self.report_paths)
        channels = self.registry.snapshot() if self.registry else []
        dashboard = consolidate(reports, channels, run, self._urls(run))
        await write_dashboard(dashboard, self.root / self.settings.dashboard_path)
        self.dashboard = dashboard

        if not self.options.keep_reports:
            remove_reports(self.report_paths.values())
        return dashboard

"""Sequential phase engine with skip, fail, retry and timeout policy."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from previewflow.exceptions import ErrorCategory, WorkflowError, wrap
from previewflow.workflows.state import (
    PhaseOutcome,
    PhaseResult,
    PhaseStatus,
    RunStatus,
    Severity,
    WorkflowRun,
)

logger = logging.getLogger(__name__)

PhaseRunner = Callable[[WorkflowRun], Awaitable[PhaseOutcome]]
Finalizer = Callable[[WorkflowRun], Awaitable[Any]]

FINALIZE_PHASE = "finalize"


@dataclass(frozen=True)
class PhaseDefinition:
    """A named phase and the policy the engine applies to it."""

    name: str
    runner: PhaseRunner
    fatal: bool = True
    skippable: bool = True
    category: ErrorCategory = ErrorCategory.UNKNOWN
    retries: int = 0
    timeout: float | None = None


def _now() -> datetime:
    return datetime.now(UTC)


class StepEngine:
    """Runs phases strictly in order on the calling task.

    A failed phase is recorded and the run continues, unless the phase is
    fatal, in which case every later phase is skipped. The finalizer runs
    exactly once at the end, whatever happened before it.
    """

    def __init__(
        self,
        phases: Sequence[PhaseDefinition],
        *,
        skip: Iterable[str] = (),
        finalizer: Finalizer | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        names = [p.name for p in phases]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate phase names: {names}")

        skip = set(skip)
        unknown = skip - set(names)
        if unknown:
            raise ValueError(f"Unknown phase(s) to skip: {', '.join(sorted(unknown))}")
        for phase in phases:
            if phase.name in skip and not phase.skippable:
                raise ValueError(f"Phase {phase.name} cannot be skipped")
            if phase.retries < 0:
                raise ValueError(f"Phase {phase.name} has negative retries")

        self.phases = list(phases)
        self.skip = skip
        self.finalizer = finalizer
        self.clock = clock

    @property
    def total(self) -> int:
        """Number of phases that will be scheduled after skip-filtering."""
        return sum(1 for p in self.phases if p.name not in self.skip)

    async def run(self, run: WorkflowRun | None = None) -> WorkflowRun:
        """Execute every phase and the finalizer.

        Cancellation of the calling task stops scheduling: the current phase
        is marked cancelled and the rest skipped, then the finalizer still
        runs and the run is returned with status cancelled.
        """
        run = run or WorkflowRun(started_at=self.clock())
        run.phases = [PhaseResult(name=p.name, fatal=p.fatal) for p in self.phases]
        for phase in self.phases:
            if phase.name in self.skip:
                run.phase(phase.name).finish(PhaseStatus.SKIPPED)

        cancelled = False
        current: PhaseResult | None = None
        try:
            halted = False
            index = 0
            for definition in self.phases:
                current = run.phase(definition.name)
                if current.terminal:
                    continue
                if halted:
                    current.finish(PhaseStatus.SKIPPED)
                    continue

                index += 1
                run.on_progress(Severity.INFO, f"[{index}/{self.total}] {definition.name}")
                await self._run_phase(definition, current, run)
                if current.status is PhaseStatus.FAILED and definition.fatal:
                    halted = True
            current = None
        except asyncio.CancelledError:
            cancelled = True
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            logger.warning("Workflow cancelled")
            for result in run.phases:
                if result.terminal:
                    continue
                if result is current:
                    result.finish(PhaseStatus.CANCELLED)
                else:
                    result.finish(PhaseStatus.SKIPPED)
            run.on_progress(Severity.WARNING, "Workflow cancelled")

        run.finished_at = self.clock()
        if cancelled:
            run.status = RunStatus.CANCELLED
        elif run.fatal_failure:
            run.status = RunStatus.FAILED
        else:
            run.status = RunStatus.SUCCEEDED

        await self._finalize(run)
        return run

    def _stamp(self, error: WorkflowError, definition: PhaseDefinition, fatal: bool) -> None:
        if error.phase is None:
            error.phase = definition.name
        error.fatal = fatal

    async def _run_phase(
        self, definition: PhaseDefinition, result: PhaseResult, run: WorkflowRun
    ) -> None:
        result.start()
        started = time.monotonic()
        outcome, errors = await self._attempt(definition, result, run)
        duration = time.monotonic() - started
        data = outcome.data if outcome else None

        if not errors:
            assert outcome is not None
            for warning in outcome.errors:
                self._stamp(warning, definition, fatal=False)
                run.tracker.record(warning)
            status = (
                PhaseStatus.SKIPPED if outcome.status is PhaseStatus.SKIPPED else PhaseStatus.SUCCESS
            )
            result.finish(status, duration=duration, data=data)
            suffix = f" ({outcome.message})" if outcome.message else ""
            run.on_progress(
                Severity.SUCCESS, f"{definition.name} {status} in {duration:.1f}s{suffix}"
            )
            return

        for error in errors:
            self._stamp(error, definition, fatal=definition.fatal)
            run.tracker.record(error)
        result.finish(PhaseStatus.FAILED, duration=duration, data=data, error=errors[0])
        run.on_progress(
            Severity.ERROR if definition.fatal else Severity.WARNING,
            f"{definition.name} failed: {errors[0].message}"
            + (f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""),
        )

    async def _attempt(
        self, definition: PhaseDefinition, result: PhaseResult, run: WorkflowRun
    ) -> tuple[PhaseOutcome | None, list[WorkflowError]]:
        """Call the runner, retrying on failure. Only the last attempt's errors are returned."""
        attempts = definition.retries + 1
        outcome: PhaseOutcome | None = None
        errors: list[WorkflowError] = []

        for attempt in range(1, attempts + 1):
            result.attempts = attempt
            outcome, errors = None, []
            try:
                outcome = await self._call(definition, run)
            except WorkflowError as e:
                errors = [e]
            except TimeoutError as e:
                errors = [
                    WorkflowError(
                        f"Phase {definition.name} timed out after {definition.timeout}s",
                        category=definition.category,
                        cause=e,
                    )
                ]
            except Exception as e:
                logger.debug("Unexpected error in %s", definition.name, exc_info=True)
                errors = [wrap(e, phase=definition.name)]
            else:
                if outcome.status is PhaseStatus.FAILED:
                    errors = list(outcome.errors) or [
                        WorkflowError(
                            outcome.message or f"Phase {definition.name} failed",
                            category=definition.category,
                        )
                    ]

            if not errors:
                return outcome, []
            if attempt < attempts:
                logger.info(
                    "Retrying %s (%d/%d) after: %s",
                    definition.name,
                    attempt,
                    definition.retries,
                    errors[0].message,
                )
                run.on_progress(Severity.WARNING, f"Retrying {definition.name}...")

        return outcome, errors

    async def _call(self, definition: PhaseDefinition, run: WorkflowRun) -> PhaseOutcome:
        if definition.timeout is None:
            outcome = await definition.runner(run)
        else:
            outcome = await asyncio.wait_for(definition.runner(run), definition.timeout)
        return outcome if outcome is not None else PhaseOutcome()

    async def _finalize(self, run: WorkflowRun) -> None:
        if self.finalizer is None:
            return
        try:
            await self.finalizer(run)
        except Exception as e:
            logger.debug("Finalizer failed", exc_info=True)
            run.tracker.record(
                WorkflowError(
                    f"Failed to produce dashboard: {e}",
                    phase=FINALIZE_PHASE,
                    cause=e,
                    category=ErrorCategory.UNKNOWN,
                )
            )

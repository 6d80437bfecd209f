"""State for a preview workflow run."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from previewflow.exceptions import WorkflowError
from previewflow.tracker import ErrorTracker


class Severity(StrEnum):
    """Severity levels for progress messages."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class PhaseStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SKIPPED = "skipped"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {PhaseStatus.SKIPPED, PhaseStatus.SUCCESS, PhaseStatus.FAILED, PhaseStatus.CANCELLED}
)


class RunStatus(StrEnum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

# Callback signatures
ProgressCallback = Callable[[Severity, str], None]


def _noop_progress(severity: Severity, message: str) -> None:
    """Default no-op progress callback."""


@dataclass
class PhaseOutcome:
    """What a phase runner hands back to the engine.

    ``errors`` lets fan-out phases report each sub-task failure on its own.
    On a failed outcome they are the phase's errors; on a successful one they
    are recorded as non-fatal warnings.
    """

    status: PhaseStatus = PhaseStatus.SUCCESS
    data: Any = None
    message: str | None = None
    errors: list[WorkflowError] = field(default_factory=list)

    @classmethod
    def failed(
        cls, message: str, data: Any = None, errors: list[WorkflowError] | None = None
    ) -> "PhaseOutcome":
        return cls(status=PhaseStatus.FAILED, data=data, message=message, errors=errors or [])

    @classmethod
    def skipped(cls, message: str | None = None) -> "PhaseOutcome":
        return cls(status=PhaseStatus.SKIPPED, message=message)


@dataclass
class PhaseResult:
    """One scheduled phase. Only the engine changes it; terminal means final."""

    name: str
    fatal: bool = True
    status: PhaseStatus = PhaseStatus.PENDING
    duration: float = 0.0
    data: Any = None
    error: WorkflowError | None = None
    attempts: int = 0

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def start(self) -> None:
        self._check_open()
        self.status = PhaseStatus.RUNNING

    def finish(
        self,
        status: PhaseStatus,
        *,
        duration: float = 0.0,
        data: Any = None,
        error: WorkflowError | None = None,
    ) -> None:
        self._check_open()
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"{status} is not a terminal phase status")
        self.status = status
        self.duration = duration
        self.data = data
        self.error = error

    def _check_open(self) -> None:
        if self.terminal:
            raise RuntimeError(f"Phase {self.name} is already {self.status}")


@dataclass
class WorkflowRun:
    """One pipeline execution, passed explicitly to every phase."""

    phases: list[PhaseResult] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    tracker: ErrorTracker = field(default_factory=ErrorTracker)

    # Callbacks for UI interaction (CLI provides Rich-based implementations)
    on_progress: ProgressCallback = _noop_progress

    def phase(self, name: str) -> PhaseResult:
        for result in self.phases:
            if result.name == name:
                return result
        raise KeyError(name)

    def data(self, name: str) -> Any:
        """Output payload of a phase, or None if it produced nothing."""
        try:
            return self.phase(name).data
        except KeyError:
            return None

    @property
    def duration(self) -> float:
        """Wall-clock duration of the run in seconds (0 while running)."""
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def fatal_failure(self) -> bool:
        return self.tracker.has_fatal or any(
            p.fatal and p.status is PhaseStatus.FAILED for p in self.phases
        )

    @property
    def exit_code(self) -> int:
        if self.status is RunStatus.CANCELLED:
            return EXIT_CANCELLED
        if self.status is RunStatus.FAILED or self.fatal_failure:
            return EXIT_FAILED
        return EXIT_OK

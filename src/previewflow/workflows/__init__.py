"""Workflow orchestration."""

from previewflow.workflows.engine import PhaseDefinition, StepEngine
from previewflow.workflows.state import (
    PhaseOutcome,
    PhaseResult,
    PhaseStatus,
    RunStatus,
    Severity,
    WorkflowRun,
)

__all__ = [
    # Engine
    "PhaseDefinition",
    "StepEngine",
    # State
    "PhaseOutcome",
    "PhaseResult",
    "PhaseStatus",
    "RunStatus",
    "Severity",
    "WorkflowRun",
]

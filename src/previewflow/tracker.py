"""Append-only error tracking for a single workflow run."""

import logging
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field

from previewflow.exceptions import ErrorCategory, WorkflowError

logger = logging.getLogger(__name__)

UNASSIGNED_PHASE = "workflow"


@dataclass
class CategoryGroup:
    """Errors of one category within a phase."""

    category: ErrorCategory
    count: int
    messages: list[str]
    suggestion: str


@dataclass
class PhaseGroup:
    """All errors recorded for one phase."""

    phase: str
    categories: list[CategoryGroup] = field(default_factory=list)

    @property
    def count(self) -> int:
        return sum(group.count for group in self.categories)


class ErrorTracker:
    """Thread-safe, append-only multiset of WorkflowError.

    Fan-out sub-tasks of a phase may record concurrently; nothing is ever
    removed or reordered.
    """

    def __init__(self) -> None:
        self._errors: list[WorkflowError] = []
        self._lock = threading.Lock()

    def record(self, error: WorkflowError) -> WorkflowError:
        """Append an error and return it."""
        with self._lock:
            self._errors.append(error)
        log = logger.error if error.fatal else logger.warning
        log("%s", error.format())
        return error

    def __len__(self) -> int:
        with self._lock:
            return len(self._errors)

    def __iter__(self) -> Iterator[WorkflowError]:
        return iter(self.errors)

    @property
    def errors(self) -> list[WorkflowError]:
        with self._lock:
            return list(self._errors)

    @property
    def has_errors(self) -> bool:
        return len(self) > 0

    @property
    def has_fatal(self) -> bool:
        return any(error.fatal for error in self.errors)

    @property
    def warnings(self) -> list[WorkflowError]:
        """Errors that did not halt the run."""
        return [error for error in self.errors if not error.fatal]

    def by_phase(self) -> dict[str, list[WorkflowError]]:
        grouped: dict[str, list[WorkflowError]] = {}
        for error in self.errors:
            grouped.setdefault(error.phase or UNASSIGNED_PHASE, []).append(error)
        return grouped

    def by_category(self) -> dict[ErrorCategory, list[WorkflowError]]:
        grouped: dict[ErrorCategory, list[WorkflowError]] = {}
        for error in self.errors:
            grouped.setdefault(error.category, []).append(error)
        return grouped

    def summarize(self) -> list[PhaseGroup]:
        """Group errors by phase, then category, in first-observed order.

        Each category group carries its count, every message and the
        suggestion of the first error seen in that group.
        """
        summary: list[PhaseGroup] = []
        for phase, errors in self.by_phase().items():
            group = PhaseGroup(phase=phase)
            index: dict[ErrorCategory, CategoryGroup] = {}
            for error in errors:
                category_group = index.get(error.category)
                if category_group is None:
                    category_group = CategoryGroup(
                        category=error.category,
                        count=0,
                        messages=[],
                        suggestion=error.suggestion,
                    )
                    index[error.category] = category_group
                    group.categories.append(category_group)
                category_group.count += 1
                category_group.messages.append(error.message)
            summary.append(group)
        return summary

    def render_summary(self) -> str:
        """Plain-text summary for logs and the terminal."""
        if not self.has_errors:
            return "No errors"

        lines = [f"Found {len(self)} error(s):", ""]
        for group in self.summarize():
            lines.append(f"== Errors in {group.phase} ==")
            for category in group.categories:
                lines.append(f"[{category.category}] x{category.count}")
                lines.extend(f"- {message}" for message in category.messages)
                lines.append(f"  Suggestion: {category.suggestion}")
            lines.append("")
        return "\n".join(lines).rstrip()

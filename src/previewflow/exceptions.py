"""Exception hierarchy for previewflow."""

from enum import StrEnum


class PreviewflowError(Exception):
    """Base exception for all previewflow errors."""


class ConfigurationError(PreviewflowError):
    """Invalid or incomplete configuration."""


class ErrorCategory(StrEnum):
    """Closed set of workflow failure categories."""

    DEPENDENCY = "dependency"
    AUTHENTICATION = "authentication"
    QUALITY_CHECK = "quality_check"
    BUILD = "build"
    DEPLOYMENT = "deployment"
    UNKNOWN = "unknown"


SUGGESTIONS: dict[ErrorCategory, str] = {
    ErrorCategory.DEPENDENCY: (
        "Install missing packages (pnpm install) and make sure the required CLIs are on PATH."
    ),
    ErrorCategory.AUTHENTICATION: (
        "Re-authenticate with the hosting CLI (firebase login) and check your git identity."
    ),
    ErrorCategory.QUALITY_CHECK: "Review the failing check output and fix the reported issues.",
    ErrorCategory.BUILD: (
        "Check the build logs for errors and ensure all dependencies are installed."
    ),
    ErrorCategory.DEPLOYMENT: (
        "Verify the hosting configuration, project permissions and preview channel quota."
    ),
    ErrorCategory.UNKNOWN: "Re-run with --verbose and inspect the command logs.",
}


class WorkflowError(PreviewflowError):
    """A categorized failure raised by a workflow phase.

    The engine stamps ``phase`` and ``fatal`` when the error crosses the phase
    boundary; after it is recorded in an ErrorTracker it is never changed.
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        phase: str | None = None,
        cause: BaseException | None = None,
        suggestion: str | None = None,
        category: ErrorCategory | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if category is not None:
            self.category = category
        self.phase = phase
        self.cause = cause
        self.suggestion = suggestion or SUGGESTIONS[self.category]
        self.fatal = False

    def format(self) -> str:
        """Render the error with its phase, cause and suggestion."""
        text = f"[{self.category}] {self.message}"
        if self.phase:
            text = f"{text} (in {self.phase})"
        if self.cause is not None:
            text = f"{text}\nCause: {self.cause}"
        return f"{text}\nSuggestion: {self.suggestion}"


class DependencyError(WorkflowError):
    """Required tool or package is missing."""

    category = ErrorCategory.DEPENDENCY


class AuthenticationError(WorkflowError):
    """Hosting CLI or git is not authenticated."""

    category = ErrorCategory.AUTHENTICATION


class QualityCheckError(WorkflowError):
    """A lint, type or test check failed."""

    category = ErrorCategory.QUALITY_CHECK


class BuildError(WorkflowError):
    """The application build failed."""

    category = ErrorCategory.BUILD


class DeploymentError(WorkflowError):
    """Deploying to or managing preview channels failed."""

    category = ErrorCategory.DEPLOYMENT


def wrap(error: BaseException, phase: str | None = None) -> WorkflowError:
    """Convert any exception into a WorkflowError, keeping WorkflowErrors as-is."""
    if isinstance(error, WorkflowError):
        if error.phase is None:
            error.phase = phase
        return error
    message = str(error) or type(error).__name__
    return WorkflowError(f"{type(error).__name__}: {message}", phase=phase, cause=error)

"""
Error classes for lakeboot provisioning.

The taxonomy drives how the pipeline reacts to a failing step:
- NotReadyTimeout: a resource never became ready within its wait budget.
  Re-running the pipeline is safe because every step is idempotent.
- DependencyMissing: a step needed a runtime value that nobody published.
  This is a pipeline-construction bug and is never retried.
- ResourceConflict: a target resource exists under a different identity
  (other namespace, other owner, other repository URL). Needs an operator.
- ExternalCallFailure: a collaborator CLI call failed (network, auth,
  missing binary). Retried only by re-invoking the whole pipeline.

Whether a failure aborts the run is decided by the step's criticality,
not by the error type.
"""

from typing import Optional, Sequence


class LakebootError(Exception):
    """Base exception for lakeboot."""
    pass


class ConfigError(LakebootError):
    """Configuration validation error."""
    pass


class PipelineError(LakebootError):
    """Invalid pipeline definition."""
    pass


class PipelineOrderError(PipelineError):
    """A step declares a dependency on a step that runs after it (or not at all)."""

    def __init__(self, step_id: str, dependency: str, reason: str = "is declared later"):
        self.step_id = step_id
        self.dependency = dependency
        super().__init__(
            f"Step '{step_id}' depends on '{dependency}', which {reason}"
        )


class DependencyMissing(LakebootError):
    """A runtime value was read before any step published it."""

    def __init__(self, key: str, step_id: Optional[str] = None):
        self.key = key
        self.step_id = step_id
        if step_id:
            message = f"Step '{step_id}' requires '{key}', which has not been published"
        else:
            message = f"Required value '{key}' has not been published"
        super().__init__(message)


class NotReadyTimeout(LakebootError):
    """A resource did not become ready within its wait budget."""

    def __init__(
        self,
        locator: str,
        waited_seconds: float,
        attempts: int,
        last_error: Optional[str] = None,
    ):
        self.locator = locator
        self.waited_seconds = waited_seconds
        self.attempts = attempts
        self.last_error = last_error
        message = (
            f"{locator} not ready after {waited_seconds:.0f}s ({attempts} checks)"
        )
        if last_error:
            message += f"; last error: {last_error}"
        super().__init__(message)


class ResourceConflict(LakebootError):
    """A resource exists but does not belong to this bootstrap."""

    def __init__(self, resource: str, expected: str, actual: str):
        self.resource = resource
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{resource} already exists with {actual} (expected {expected})"
        )


class ExternalCallFailure(LakebootError):
    """An external command failed or could not be started."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: Optional[int] = None,
        stderr: str = "",
        message: Optional[str] = None,
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr or ""
        if message is None:
            message = f"Command failed: {' '.join(self.command)}"
            if returncode is not None:
                message += f" (exit code {returncode})"
            if self.stderr:
                message += f": {self.stderr.strip()[:500]}"
        super().__init__(message)

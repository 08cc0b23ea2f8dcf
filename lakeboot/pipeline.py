"""
Pipeline sequencer for lakeboot.

Runs provisioning steps strictly in declaration order. The step list is
checked when the pipeline is built: a step may only depend on steps declared
before it, and every runtime value it reads must be provided by an earlier
step. Each step is check-then-act: a satisfied idempotency check skips the
action, and the step's read-only discovery hook publishes its outputs in
both cases so re-runs keep downstream steps supplied.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from lakeboot.context import RuntimeContext, ensure_registered
from lakeboot.errors import DependencyMissing, PipelineError, PipelineOrderError
from lakeboot.utils import get_logger


class StepStatus(str, Enum):
    """Final state of a step."""

    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


class Criticality(str, Enum):
    """Whether a failing step aborts the pipeline."""

    CRITICAL = "critical"
    ADVISORY = "advisory"


Action = Callable[[RuntimeContext], Optional[Mapping[str, Any]]]
Check = Callable[[RuntimeContext], bool]
Discover = Callable[[RuntimeContext], Mapping[str, Any]]


@dataclass(frozen=True)
class Step:
    """
    A named unit of provisioning work.

    Attributes:
        id: Stable identifier
        action: Performs the provisioning call; may return report metadata
        check: Idempotency predicate; True means "already done"
        discover: Read-only collector for the values in `provides`
        depends_on: Ids of steps that must run earlier
        requires: Context keys read by this step
        provides: Context keys published by this step
        criticality: CRITICAL aborts the run on failure, ADVISORY only warns
        description: Short human-readable summary
    """

    id: str
    action: Action
    check: Optional[Check] = None
    discover: Optional[Discover] = None
    depends_on: Tuple[str, ...] = ()
    requires: Tuple[str, ...] = ()
    provides: Tuple[str, ...] = ()
    criticality: Criticality = Criticality.CRITICAL
    description: str = ""

    @property
    def critical(self) -> bool:
        return self.criticality == Criticality.CRITICAL


@dataclass
class StepResult:
    """Result of running one step."""

    step_id: str
    status: StepStatus
    criticality: Criticality
    duration_seconds: float = 0.0
    published: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    @property
    def error_type(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "criticality": self.criticality.value,
            "duration_seconds": self.duration_seconds,
            "published": list(self.published),
            "metadata": self.metadata,
            "error_type": self.error_type,
            "error_message": self.error_message,
        }


@dataclass
class PipelineResult:
    """Result of a complete pipeline run."""

    success: bool
    started_at: datetime
    ended_at: datetime
    duration_seconds: float
    context: RuntimeContext
    steps: List[StepResult] = field(default_factory=list)
    aborted_at: Optional[str] = None
    error_message: Optional[str] = None

    def result_for(self, step_id: str) -> Optional[StepResult]:
        for result in self.steps:
            if result.step_id == step_id:
                return result
        return None

    def statuses(self) -> Dict[str, StepStatus]:
        return {result.step_id: result.status for result in self.steps}

    @property
    def warnings(self) -> List[StepResult]:
        """Advisory steps that failed."""
        return [
            r for r in self.steps
            if r.status == StepStatus.FAILED and r.criticality == Criticality.ADVISORY
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (secrets masked)."""
        return {
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "aborted_at": self.aborted_at,
            "error_message": self.error_message,
            "steps": [result.to_dict() for result in self.steps],
            "context": self.context.redacted(),
        }


def validate_steps(steps: Sequence[Step], preset_keys: Iterable[str] = ()) -> None:
    """
    Validate a step list before anything runs.

    Raises:
        PipelineError: Duplicate ids, unknown keys or a missing discover hook
        PipelineOrderError: A dependency is declared later or not at all
        DependencyMissing: A required key is not provided by an earlier step
    """
    positions: Dict[str, int] = {}
    for index, step in enumerate(steps):
        if step.id in positions:
            raise PipelineError(f"Duplicate step id: '{step.id}'")
        positions[step.id] = index

    available = set(preset_keys)
    ensure_registered(available)

    for index, step in enumerate(steps):
        for dependency in step.depends_on:
            if dependency not in positions:
                raise PipelineOrderError(step.id, dependency, reason="is not part of the pipeline")
            if positions[dependency] >= index:
                raise PipelineOrderError(step.id, dependency)

        ensure_registered(step.requires)
        ensure_registered(step.provides)

        for key in step.requires:
            if key not in available:
                raise DependencyMissing(key, step.id)

        if step.provides and step.discover is None:
            raise PipelineError(
                f"Step '{step.id}' provides {list(step.provides)} but has no discover hook"
            )
        available.update(step.provides)


class Pipeline:
    """
    Fixed, linear provisioning pipeline.

    Validates the step order at construction and runs every step at most
    once per call to run().
    """

    def __init__(
        self,
        steps: Sequence[Step],
        preset_keys: Iterable[str] = (),
        logger: Optional[logging.Logger] = None,
        on_step: Optional[Callable[[Step, StepResult], None]] = None,
    ):
        """
        Initialize pipeline.

        Args:
            steps: Steps in execution order
            preset_keys: Context keys supplied before the run starts
            logger: Logger instance (defaults to the lakeboot logger)
            on_step: Callback invoked after each step (console reporting)
        """
        self.steps: List[Step] = list(steps)
        self.preset_keys = tuple(preset_keys)
        self.logger = logger or get_logger("pipeline")
        self.on_step = on_step
        validate_steps(self.steps, self.preset_keys)

    def plan(self) -> List[Dict[str, Any]]:
        """Describe the steps without running them."""
        return [
            {
                "id": step.id,
                "description": step.description,
                "criticality": step.criticality.value,
                "depends_on": list(step.depends_on),
                "requires": list(step.requires),
                "provides": list(step.provides),
            }
            for step in self.steps
        ]

    def run(self, context: Optional[RuntimeContext] = None) -> PipelineResult:
        """
        Run all steps in order.

        Args:
            context: Runtime context (a fresh one is created when omitted)

        Returns:
            PipelineResult with one StepResult per executed step
        """
        ctx = context if context is not None else RuntimeContext()
        missing_presets = ctx.missing(self.preset_keys)
        if missing_presets:
            raise DependencyMissing(missing_presets[0])

        started_at = datetime.now(timezone.utc)
        start_time = time.time()
        results: List[StepResult] = []
        aborted_at: Optional[str] = None
        error_message: Optional[str] = None

        self.logger.info(
            f"Starting pipeline ({len(self.steps)} steps)",
            extra={"event": "pipeline_started", "metadata": {"steps": len(self.steps)}},
        )

        for step in self.steps:
            result = self._run_step(step, ctx)
            results.append(result)

            if self.on_step is not None:
                self.on_step(step, result)

            if result.status != StepStatus.FAILED:
                continue

            if step.critical:
                aborted_at = step.id
                error_message = f"Step {step.id} failed: {result.error_message}"
                self.logger.error(
                    f"Pipeline aborted at critical step {step.id}",
                    extra={
                        "step": step.id,
                        "event": "pipeline_aborted",
                        "metadata": {
                            "error_type": result.error_type,
                            "error": result.error_message,
                        },
                    },
                )
                break

            self.logger.warning(
                f"Advisory step {step.id} failed, continuing: {result.error_message}",
                extra={
                    "step": step.id,
                    "event": "advisory_step_failed",
                    "metadata": {"error": result.error_message},
                },
            )

        duration = time.time() - start_time
        success = aborted_at is None

        self.logger.info(
            "Pipeline completed" if success else "Pipeline failed",
            extra={
                "event": "pipeline_completed" if success else "pipeline_failed",
                "metadata": {
                    "duration_seconds": duration,
                    "statuses": {r.step_id: r.status.value for r in results},
                },
            },
        )

        return PipelineResult(
            success=success,
            started_at=started_at,
            ended_at=datetime.now(timezone.utc),
            duration_seconds=duration,
            context=ctx,
            steps=results,
            aborted_at=aborted_at,
            error_message=error_message,
        )

    def _run_step(self, step: Step, ctx: RuntimeContext) -> StepResult:
        """Run the check-then-act lifecycle of one step."""
        start_time = time.time()
        self.logger.debug(
            f"Starting step: {step.id}",
            extra={"step": step.id, "event": "step_started"},
        )

        status = StepStatus.DONE
        metadata: Dict[str, Any] = {}
        published: List[str] = []

        try:
            for key in step.requires:
                ctx.require(key, step.id)

            if step.check is not None and step.check(ctx):
                status = StepStatus.SKIPPED
            else:
                report = step.action(ctx)
                if report:
                    metadata.update(report)

            if step.discover is not None:
                published = self._publish(step, ctx, step.discover(ctx))

        except Exception as e:
            self.logger.error(
                f"Step {step.id} failed: {e}",
                extra={
                    "step": step.id,
                    "event": "step_failed",
                    "metadata": {"error_type": type(e).__name__, "error": str(e)},
                },
                exc_info=self.logger.isEnabledFor(logging.DEBUG),
            )
            return StepResult(
                step_id=step.id,
                status=StepStatus.FAILED,
                criticality=step.criticality,
                duration_seconds=time.time() - start_time,
                metadata=metadata,
                error=e,
            )

        self.logger.info(
            f"Step {step.id} {status.value}",
            extra={
                "step": step.id,
                "event": f"step_{status.value}",
                "metadata": {"published": published, **metadata},
            },
        )
        return StepResult(
            step_id=step.id,
            status=status,
            criticality=step.criticality,
            duration_seconds=time.time() - start_time,
            published=published,
            metadata=metadata,
        )

    @staticmethod
    def _publish(step: Step, ctx: RuntimeContext, outputs: Mapping[str, Any]) -> List[str]:
        """Publish declared outputs; undeclared or absent outputs are errors."""
        outputs = dict(outputs or {})
        undeclared = sorted(set(outputs) - set(step.provides))
        if undeclared:
            raise PipelineError(f"Step '{step.id}' produced undeclared outputs: {undeclared}")

        for key in step.provides:
            if key not in outputs:
                raise PipelineError(f"Step '{step.id}' did not produce declared output '{key}'")
            ctx.publish(key, outputs[key], step_id=step.id)
        return list(step.provides)

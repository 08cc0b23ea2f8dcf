"""
Readiness polling for deployed resources.

Polls a read-only predicate at a fixed interval until it returns a truthy
value or the wait budget runs out. A predicate that raises (resource not
found yet, transient CLI failure) counts as "not ready"; only exhausting the
budget is reported, as a TIMED_OUT result rather than an exception.
Clock and sleep are injectable so tests never wait on the wall clock.
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from lakeboot.errors import LakebootError, NotReadyTimeout


# Errors a predicate may raise while the target is still coming up
NOT_READY_ERRORS = (LakebootError, OSError, subprocess.SubprocessError, LookupError, ValueError)


class Readiness(str, Enum):
    """Outcome of a readiness wait."""

    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ReadinessCheck:
    """What "ready" means for a resource."""

    predicate: Callable[[], Any]
    poll_interval: float = 10.0
    max_wait: float = 600.0
    max_attempts: Optional[int] = None
    description: str = ""


@dataclass
class WaitResult:
    """Result of waiting for a resource."""

    locator: str
    outcome: Readiness
    attempts: int
    elapsed_seconds: float
    value: Any = None
    last_error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.outcome == Readiness.READY


def wait_ready(
    locator: str,
    predicate: Callable[[], Any],
    poll_interval: float,
    max_wait: float,
    max_attempts: Optional[int] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    logger: Optional[logging.Logger] = None,
) -> WaitResult:
    """
    Wait until `predicate` returns a truthy value.

    Args:
        locator: Human-readable name of the resource (for logs and errors)
        predicate: Read-only check; its truthy return value is kept
        poll_interval: Seconds between evaluations
        max_wait: Total seconds to wait before giving up
        max_attempts: Optional cap on the number of evaluations
        clock: Monotonic clock
        sleep: Sleep function
        logger: Logger for progress messages

    Returns:
        WaitResult with outcome READY or TIMED_OUT
    """
    if poll_interval <= 0:
        raise ValueError("poll_interval must be positive")
    if max_wait < 0:
        raise ValueError("max_wait must not be negative")

    started = clock()
    attempts = 0
    last_error: Optional[str] = None

    while True:
        elapsed = clock() - started
        if elapsed >= max_wait or (max_attempts is not None and attempts >= max_attempts):
            if logger:
                logger.warning(
                    f"Timed out waiting for {locator}",
                    extra={
                        "event": "wait_timed_out",
                        "metadata": {
                            "locator": locator,
                            "attempts": attempts,
                            "elapsed_seconds": elapsed,
                            "last_error": last_error,
                        },
                    },
                )
            return WaitResult(
                locator=locator,
                outcome=Readiness.TIMED_OUT,
                attempts=attempts,
                elapsed_seconds=elapsed,
                last_error=last_error,
            )

        attempts += 1
        try:
            value = predicate()
        except NOT_READY_ERRORS as e:
            value = None
            last_error = str(e)

        if value:
            elapsed = clock() - started
            if logger:
                logger.info(
                    f"{locator} is ready",
                    extra={
                        "event": "wait_ready",
                        "metadata": {"locator": locator, "attempts": attempts},
                    },
                )
            return WaitResult(
                locator=locator,
                outcome=Readiness.READY,
                attempts=attempts,
                elapsed_seconds=elapsed,
                value=value,
            )

        if logger:
            logger.info(f"Waiting for {locator} to be ready...")
        sleep(poll_interval)


class ReadinessPoller:
    """
    Readiness waits with shared defaults.

    Binds the configured interval and budget, the clock and a logger so
    provisioning steps only describe what to wait for.
    """

    def __init__(
        self,
        poll_interval: float = 10.0,
        max_wait: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.clock = clock
        self.sleep = sleep
        self.logger = logger

    def check(self, predicate: Callable[[], Any], description: str = "", **overrides) -> ReadinessCheck:
        """Build a ReadinessCheck using this poller's defaults."""
        return ReadinessCheck(
            predicate=predicate,
            poll_interval=overrides.get("poll_interval", self.poll_interval),
            max_wait=overrides.get("max_wait", self.max_wait),
            max_attempts=overrides.get("max_attempts"),
            description=description,
        )

    def wait(self, locator: str, check: ReadinessCheck) -> WaitResult:
        return wait_ready(
            locator,
            check.predicate,
            poll_interval=check.poll_interval,
            max_wait=check.max_wait,
            max_attempts=check.max_attempts,
            clock=self.clock,
            sleep=self.sleep,
            logger=self.logger,
        )

    def require(self, locator: str, predicate: Callable[[], Any], **overrides) -> Any:
        """
        Wait for a resource and return the predicate's value.

        Raises:
            NotReadyTimeout: If the resource never became ready
        """
        result = self.wait(locator, self.check(predicate, **overrides))
        if not result.ready:
            raise NotReadyTimeout(
                locator,
                waited_seconds=result.elapsed_seconds,
                attempts=result.attempts,
                last_error=result.last_error,
            )
        return result.value

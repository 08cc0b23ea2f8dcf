"""Base classes for collaborator adapters."""

import logging
import shutil
import subprocess
from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from lakeboot.errors import ExternalCallFailure
from lakeboot.utils import get_logger


class Presence(str, Enum):
    """
    Result of an existence check.

    UNKNOWN means the check itself failed (unreachable service, auth error)
    and must never be read as EXISTS. CONFLICT means the resource exists
    but belongs to someone else.
    """

    EXISTS = "exists"
    ABSENT = "absent"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"


@dataclass
class CommandResult:
    """Captured output of an external command."""

    command: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def raise_for_status(self) -> "CommandResult":
        if not self.ok:
            raise ExternalCallFailure(self.command, self.returncode, self.stderr)
        return self


class CommandRunner:
    """
    Runs external commands with captured output.

    A command that cannot be started (missing binary, timeout) raises
    ExternalCallFailure; non-zero exits are returned for the caller to
    classify.
    """

    def __init__(self, timeout: Optional[float] = 600, logger: Optional[logging.Logger] = None):
        self.timeout = timeout
        self.logger = logger or get_logger("commands")

    def run(
        self,
        command: Sequence[str],
        input_text: Optional[str] = None,
        check: bool = False,
        redact: Sequence[str] = (),
    ) -> CommandResult:
        """
        Run a command.

        Args:
            command: Command and arguments
            input_text: Text passed on stdin
            check: Raise ExternalCallFailure on non-zero exit
            redact: Values to hide in log messages

        Returns:
            CommandResult
        """
        command = [str(part) for part in command]
        shown = " ".join(command)
        for secret in redact:
            if secret:
                shown = shown.replace(str(secret), "****")
        self.logger.debug(f"Executing: {shown}", extra={"event": "command_started"})

        try:
            completed = subprocess.run(
                command,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,  # Don't raise, we'll handle errors
            )
        except FileNotFoundError:
            raise ExternalCallFailure(command, message=f"Command not found: {command[0]}")
        except subprocess.TimeoutExpired:
            raise ExternalCallFailure(
                command, message=f"Command timed out after {self.timeout}s: {shown}"
            )

        result = CommandResult(
            command=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

        if not result.ok:
            self.logger.debug(
                f"Command exited with {result.returncode}: {shown}",
                extra={
                    "event": "command_failed",
                    "metadata": {
                        "exit_code": result.returncode,
                        "stderr": result.stderr[:1000],
                    },
                },
            )

        if check:
            result.raise_for_status()
        return result


class ToolAdapter(ABC):
    """
    Base class for collaborator adapters.

    Adapters give the orchestrator a narrow, typed interface to one external
    CLI (kubectl, helm, aws, ...). Each adapter owns its command prefix and
    translates exit codes and error output into return values or
    ExternalCallFailure.
    """

    def __init__(self, command: Sequence[str], runner: Optional[CommandRunner] = None, sudo: bool = False):
        """
        Initialize the tool adapter.

        Args:
            command: Command prefix (e.g., ["microk8s", "kubectl"])
            runner: Command runner (a default one is created when omitted)
            sudo: Prefix every call with sudo
        """
        self.command = list(command)
        self.runner = runner or CommandRunner()
        self.sudo = sudo

    def validate(self) -> Dict[str, Any]:
        """
        Validate that the tool is available.

        Returns:
            Dictionary with keys:
                - 'valid': bool indicating if validation passed
                - 'errors': list of error messages (empty if valid)
        """
        errors = []
        if shutil.which(self.command[0]) is None:
            errors.append(f"Executable not found on PATH: {self.command[0]}")
        return {"valid": not errors, "errors": errors}

    def execute(self, *args: str, check: bool = True, **kwargs) -> CommandResult:
        """
        Execute a tool command.

        Args:
            *args: Command arguments appended to the prefix
            check: Raise ExternalCallFailure on non-zero exit
            **kwargs: Passed to CommandRunner.run

        Returns:
            CommandResult
        """
        prefix = (["sudo"] if self.sudo else []) + self.command
        return self.runner.run(prefix + list(args), check=check, **kwargs)


def is_not_found(stderr: str) -> bool:
    """True if a CLI error message reports a missing resource."""
    lowered = (stderr or "").lower()
    return "notfound" in lowered or "not found" in lowered

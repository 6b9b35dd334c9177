# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Core types for kitwe test runs.

A run flows through three shapes:

    RunSpec  ->  ResolvedCommand | ResolvedError  ->  RunResult

RunSpec is the caller's intent, the resolver turns it into exactly one of
ResolvedCommand or ResolvedError, and the executor always finishes with a
RunResult.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypeGuard


class RunnerType(str, Enum):
    """Package-manager invocation styles for running a project script."""

    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"
    NPX = "npx"


class ResolutionMode(str, Enum):
    """Which priority tier produced a resolved command.

    Script modes go through a package manager (``<runner> run <script>``),
    config modes invoke Playwright directly (``npx playwright test``).
    """

    CLI_SCRIPT = "cli_script"
    CLI_CONFIG = "cli_config"
    YAML_SCRIPT = "yaml_script"
    YAML_CONFIG = "yaml_config"

    @property
    def is_script_mode(self) -> bool:
        """Check if the command runs through a package-manager script."""
        return self in (ResolutionMode.CLI_SCRIPT, ResolutionMode.YAML_SCRIPT)


class ErrorType(str, Enum):
    """Error categories for resolution and execution failures.

    Resolution time (returned as ResolvedError):
        PROJECT_NOT_FOUND, CONFIG_NOT_FOUND, NO_ENTRYPOINT

    Execution time (reported through RunResult.error):
        PRE_COMMAND_FAILED, EXECUTION_ERROR, TIMEOUT
    """

    PROJECT_NOT_FOUND = "project_not_found"
    CONFIG_NOT_FOUND = "config_not_found"
    NO_ENTRYPOINT = "no_entrypoint"
    PRE_COMMAND_FAILED = "pre_command_failed"
    EXECUTION_ERROR = "execution_error"
    TIMEOUT = "timeout"


class RunStatus(str, Enum):
    """Terminal status of a test run."""

    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"
    TIMEOUT = "timeout"


class ArtifactType(str, Enum):
    """Artifact categories, assigned from the file name only."""

    SCREENSHOT = "screenshot"
    TRACE = "trace"
    VIDEO = "video"
    REPORT = "report"
    OTHER = "other"


class ProgressPhase(str, Enum):
    """Phase tags passed to progress observers."""

    RESOLVE = "resolve"
    SETUP = "setup"
    PRE_COMMAND = "pre_command"
    EXECUTE = "execute"
    COLLECT = "collect"
    COMPLETE = "complete"


ProgressCallback = Callable[[ProgressPhase, str], None]


@dataclass(frozen=True)
class PreCommand:
    """One setup step executed before the main test command.

    Attributes:
        argv: Program and arguments (never empty)
        cwd: Working directory override; relative paths resolve against the project root
        env: Extra environment variables for this step only
    """

    argv: list[str]
    cwd: str | None = None
    env: dict[str, str] | None = None

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("PreCommand argv must not be empty")

    @property
    def command(self) -> str:
        """Command line as displayed to users."""
        return " ".join(self.argv)


@dataclass
class RunSpec:
    """Caller-supplied intent for one test run.

    Attributes:
        project_root: Absolute path to the project under test
        artifacts_dir: Where logs and reports go; relative paths resolve against project_root
        timeout_seconds: Deadline for the main test command
        script: Package.json script to run (highest priority entrypoint)
        config_path: Playwright config to run directly
        args: Extra CLI arguments forwarded to the test tool
        runner: Package manager override; auto-detected from lock files when None
        env: Environment overrides for the test processes
        skip_setup: Skip every pre-command regardless of configuration
        test_name: Optional name hint for the run
        output_dir: Test tool output directory scanned for artifacts
    """

    project_root: Path
    artifacts_dir: Path
    timeout_seconds: int
    script: str | None = None
    config_path: str | None = None
    args: list[str] = field(default_factory=list)
    runner: RunnerType | None = None
    env: dict[str, str] = field(default_factory=dict)
    skip_setup: bool = False
    test_name: str | None = None
    output_dir: str | None = None

    def __post_init__(self) -> None:
        self.project_root = Path(self.project_root)
        self.artifacts_dir = Path(self.artifacts_dir)
        self.args = list(self.args or [])
        self.env = dict(self.env or {})
        if isinstance(self.timeout_seconds, bool) or self.timeout_seconds <= 0:
            raise ValueError(
                f"timeout_seconds must be a positive integer, got {self.timeout_seconds!r}"
            )
        if self.runner is not None:
            self.runner = RunnerType(self.runner)

    @property
    def resolved_artifacts_dir(self) -> Path:
        """Artifacts directory as an absolute path."""
        return self.project_root / self.artifacts_dir


@dataclass(frozen=True)
class ResolvedCommand:
    """Successful resolution: exactly one command to execute.

    Attributes:
        argv: Program and arguments (never empty)
        cwd: Working directory, existing at resolution time
        mode: Priority tier that produced the command
        env: Environment overlay from persisted configuration
        pre_commands: Setup steps to run first, in order
    """

    argv: list[str]
    cwd: Path
    mode: ResolutionMode
    env: dict[str, str] | None = None
    pre_commands: list[PreCommand] | None = None

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("ResolvedCommand argv must not be empty")


@dataclass(frozen=True)
class ResolvedError:
    """Failed resolution with a category from ErrorType."""

    error_type: ErrorType
    message: str

    def format(self) -> str:
        """Render as ``[category] message``."""
        return f"[{self.error_type.value}] {self.message}"


ResolveResult = ResolvedCommand | ResolvedError


def is_resolved_command(result: ResolveResult) -> TypeGuard[ResolvedCommand]:
    """Check if a resolution produced a command."""
    return isinstance(result, ResolvedCommand)


def is_resolved_error(result: ResolveResult) -> TypeGuard[ResolvedError]:
    """Check if a resolution failed."""
    return isinstance(result, ResolvedError)


@dataclass(frozen=True)
class ArtifactInfo:
    """A file produced by the test run."""

    type: ArtifactType
    path: Path
    name: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "path": str(self.path),
            "name": self.name,
            "size": self.size,
        }


@dataclass
class RunResult:
    """Normalized outcome of one test run.

    ``status`` is PASSED if and only if the process exited with code 0 before
    its deadline. ``exit_code`` is -1 when no exit code was available.

    Attributes:
        status: Terminal status
        exit_code: Process exit code, or -1
        stdout: Captured standard output
        stderr: Captured standard error
        duration_ms: Wall-clock duration of the whole run
        artifacts: Discovered artifact files
        command: Final argv actually executed
        error: Human-readable error summary
    """

    status: RunStatus
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    artifacts: list[ArtifactInfo] = field(default_factory=list)
    command: list[str] | None = None
    error: str | None = None

    @classmethod
    def from_error(
        cls, error_type: ErrorType, message: str, duration_ms: int = 0
    ) -> "RunResult":
        """Create a RunResult for a run that ended before producing test output.

        Args:
            error_type: Category of the failure
            message: Human-readable details

        Returns:
            RunResult with ERROR status, exit code -1 and a ``[category] message`` error
        """
        return cls(
            status=RunStatus.ERROR,
            exit_code=-1,
            duration_ms=duration_ms,
            error=f"[{error_type.value}] {message}",
        )

    @property
    def passed(self) -> bool:
        return self.status == RunStatus.PASSED

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "command": self.command,
            "error": self.error,
        }

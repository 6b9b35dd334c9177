# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Test run execution.

Runs one resolved test command end to end and always returns a RunResult:

1. Create the artifacts directory with ``logs/`` and ``reports/``
2. Resolve the RunSpec to a command
3. Run pre-commands sequentially, failing fast
4. Run the test command under the caller's timeout
5. Collect artifacts
6. Derive the status from the exit code and timeout flag

Nothing is retried and no two processes of a run are ever alive at once.
"""

import asyncio
import logging
import os
import time
from collections.abc import Callable
from pathlib import Path

from kitwe.core.artifacts import (
    ArtifactsDir,
    collect_artifacts,
    get_playwright_output_dirs,
)
from kitwe.core.config import KitweConfig
from kitwe.core.constants import (
    INJECTED_REPORTER_FLAG,
    INJECTED_TRACE_FLAG,
    NON_INTERACTIVE_ENV,
    PRE_COMMAND_LOG_TEMPLATE,
    PRE_COMMAND_TIMEOUT,
    REPORTER_FLAG,
    SCRIPT_ARGS_SEPARATOR,
    STDERR_LOG,
    STDOUT_LOG,
    TRACE_FLAG,
)
from kitwe.core.types import (
    ErrorType,
    PreCommand,
    ProgressCallback,
    ProgressPhase,
    ResolvedCommand,
    ResolvedError,
    RunResult,
    RunSpec,
    RunStatus,
)
from kitwe.runner.formatter import format_duration
from kitwe.runner.resolver import resolve_run_spec
from kitwe.runner.subprocess_runner import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


class PreCommandError(Exception):
    """Raised when a pre-command fails; aborts the run before the tests start.

    Attributes:
        step: 1-indexed position of the failing pre-command
        log_path: Log file holding the step's output
    """

    def __init__(self, step: int, message: str, log_path: Path) -> None:
        self.step = step
        self.log_path = log_path
        super().__init__(message)


def build_run_env(
    spec: RunSpec,
    resolved: ResolvedCommand,
    base_env: dict[str, str] | None = None,
) -> dict[str, str]:
    """Layer the run environment; later layers win.

    inherited environment < non-interactive overlay < spec.env < resolved.env
    """
    env = dict(os.environ if base_env is None else base_env)
    env.update(NON_INTERACTIVE_ENV)
    env.update(spec.env)
    if resolved.env:
        env.update(resolved.env)
    return env


def prepare_command(resolved: ResolvedCommand) -> list[str]:
    """Inject the list reporter and trace-on-failure flags.

    Each flag is skipped if its name already appears anywhere in the joined
    command. Script modes route the flags through the package manager with a
    ``--`` separator; config modes append them directly.
    """
    argv = list(resolved.argv)
    joined = " ".join(argv)

    flags = []
    if REPORTER_FLAG not in joined:
        flags.append(INJECTED_REPORTER_FLAG)
    if TRACE_FLAG not in joined:
        flags.append(INJECTED_TRACE_FLAG)

    if not flags:
        return argv

    if resolved.mode.is_script_mode and SCRIPT_ARGS_SEPARATOR not in argv:
        argv.append(SCRIPT_ARGS_SEPARATOR)
    argv.extend(flags)
    return argv


def derive_status(exit_code: int | None, timed_out: bool) -> RunStatus:
    """Map a process outcome to a RunStatus.

    Timeout beats everything, a missing exit code is an error, 0 passes and
    any other code fails.
    """
    if timed_out:
        return RunStatus.TIMEOUT
    if exit_code is None:
        return RunStatus.ERROR
    if exit_code == 0:
        return RunStatus.PASSED
    return RunStatus.FAILED


class RunExecutor:
    """Executes one RunSpec and reports progress to an optional observer."""

    def __init__(
        self,
        spec: RunSpec,
        config: KitweConfig | None = None,
        on_progress: ProgressCallback | None = None,
        output_handler: Callable[[str], None] | None = None,
    ):
        """Initialize the executor.

        Args:
            spec: What to run
            config: The project's loaded kitwe.yaml, if any
            on_progress: Called with (phase, detail) at each phase transition
            output_handler: Receives test command stdout as it streams
        """
        self.spec = spec
        self.config = config
        self.on_progress = on_progress
        self.output_handler = output_handler
        self.artifacts = ArtifactsDir(spec.resolved_artifacts_dir)

    def _progress(self, phase: ProgressPhase, detail: str) -> None:
        logger.debug(f"[{phase.value}] {detail}")
        if self.on_progress is not None:
            self.on_progress(phase, detail)

    async def run(self) -> RunResult:
        """Execute the run. Never raises; failures become ERROR results."""
        start = time.monotonic()
        try:
            return await self._run(start)
        except PreCommandError as e:
            logger.error(f"Pre-command {e.step} failed, see {e.log_path}")
            return RunResult.from_error(
                ErrorType.PRE_COMMAND_FAILED, str(e), _elapsed_ms(start)
            )
        except Exception as e:
            logger.error(f"Error executing test run: {e}", exc_info=True)
            return RunResult.from_error(
                ErrorType.EXECUTION_ERROR, str(e) or type(e).__name__, _elapsed_ms(start)
            )

    async def _run(self, start: float) -> RunResult:
        # A missing project root must not be created as a side effect; the
        # resolver reports it as project_not_found instead.
        if self.spec.project_root.is_dir():
            self.artifacts.ensure_dirs()

        self._progress(ProgressPhase.RESOLVE, "Resolving test command...")
        resolved = resolve_run_spec(self.spec, self.config)
        if isinstance(resolved, ResolvedError):
            logger.error(f"Resolution failed: {resolved.format()}")
            return RunResult.from_error(
                resolved.error_type, resolved.message, _elapsed_ms(start)
            )

        env = build_run_env(self.spec, resolved)

        if resolved.pre_commands:
            self._progress(
                ProgressPhase.SETUP,
                f"Running {len(resolved.pre_commands)} setup command(s)...",
            )
            await self._run_pre_commands(resolved.pre_commands, env)

        argv = prepare_command(resolved)
        display = " ".join(argv[:3]) + ("..." if len(argv) > 3 else "")
        self._progress(ProgressPhase.EXECUTE, f"Running tests: {display}")

        runner = CommandRunner(env, output_handler=self.output_handler)
        result: CommandResult | None = None
        try:
            result = await runner.run(
                argv, cwd=resolved.cwd, timeout=self.spec.timeout_seconds
            )
        finally:
            # Logs exist even when execution blew up
            self._write_output_logs(result)

        self._progress(ProgressPhase.COLLECT, "Collecting artifacts...")
        artifacts = collect_artifacts(
            get_playwright_output_dirs(self.spec.project_root, self.spec.output_dir)
        )
        logger.info(f"Collected {len(artifacts)} artifact(s)")

        status = derive_status(result.exit_code, result.timed_out)
        duration_ms = _elapsed_ms(start)
        self._progress(
            ProgressPhase.COMPLETE,
            f"Tests {status.value} in {format_duration(duration_ms)}",
        )

        return RunResult(
            status=status,
            exit_code=result.exit_code if result.exit_code is not None else -1,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_ms=duration_ms,
            artifacts=artifacts,
            command=argv,
            error=self._error_summary(result),
        )

    async def _run_pre_commands(
        self, pre_commands: list[PreCommand], base_env: dict[str, str]
    ) -> None:
        """Run pre-commands in order, raising PreCommandError on the first failure."""
        total = len(pre_commands)
        for step, pre_command in enumerate(pre_commands, start=1):
            log_path = self.artifacts.logs / PRE_COMMAND_LOG_TEMPLATE.format(index=step)
            command = pre_command.command
            self._progress(ProgressPhase.PRE_COMMAND, f"[{step}/{total}] {command}")

            env = dict(base_env)
            if pre_command.env:
                env.update(pre_command.env)

            runner = CommandRunner(env)
            result = await runner.run(
                pre_command.argv,
                cwd=pre_command.cwd or self.spec.project_root,
                timeout=PRE_COMMAND_TIMEOUT,
                log_path=log_path,
            )

            if result.error is not None:
                raise PreCommandError(
                    step,
                    f"Pre-command {step} error: {result.error}: {command}\n"
                    f"See log: {log_path}",
                    log_path,
                )
            if result.timed_out:
                raise PreCommandError(
                    step,
                    f"Pre-command {step} timed out after {PRE_COMMAND_TIMEOUT}s: "
                    f"{command}\nSee log: {log_path}",
                    log_path,
                )
            if result.exit_code != 0:
                exit_code = result.exit_code if result.exit_code is not None else -1
                raise PreCommandError(
                    step,
                    f"Pre-command {step} failed with exit code {exit_code}: "
                    f"{command}\nSee log: {log_path}",
                    log_path,
                )
            logger.info(f"Pre-command {step}/{total} succeeded: {command}")

    def _write_output_logs(self, result: CommandResult | None) -> None:
        stdout = result.stdout if result is not None else ""
        stderr = result.stderr if result is not None else ""
        (self.artifacts.logs / STDOUT_LOG).write_text(stdout, encoding="utf-8")
        (self.artifacts.logs / STDERR_LOG).write_text(stderr, encoding="utf-8")

    def _error_summary(self, result: CommandResult) -> str | None:
        if result.timed_out:
            return (
                f"[{ErrorType.TIMEOUT.value}] Execution exceeded "
                f"{self.spec.timeout_seconds}s timeout"
            )
        if result.error is not None:
            return f"[{ErrorType.EXECUTION_ERROR.value}] {result.error}"
        if result.exit_code is None:
            return f"[{ErrorType.EXECUTION_ERROR.value}] Process terminated abnormally"
        return None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


async def run_validate(
    spec: RunSpec,
    config: KitweConfig | None = None,
    on_progress: ProgressCallback | None = None,
    output_handler: Callable[[str], None] | None = None,
) -> RunResult:
    """Run the tests described by spec and return a RunResult. Never raises."""
    executor = RunExecutor(spec, config, on_progress, output_handler)
    return await executor.run()


def execute(
    spec: RunSpec,
    config: KitweConfig | None = None,
    on_progress: ProgressCallback | None = None,
    output_handler: Callable[[str], None] | None = None,
) -> RunResult:
    """Blocking wrapper around run_validate for synchronous callers.

    Uses ``asyncio.run``, so it raises RuntimeError when called from a thread
    whose event loop is already running. Code already inside a coroutine
    should ``await run_validate(...)`` instead.
    """
    return asyncio.run(run_validate(spec, config, on_progress, output_handler))

# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Shell subprocess execution with timeout enforcement."""

import asyncio
import codecs
import logging
import os
import shlex
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from kitwe.core.constants import DEFAULT_SHELL, KILL_GRACE_PERIOD

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536


@dataclass
class CommandResult:
    """Outcome of one subprocess.

    Attributes:
        exit_code: Exit code, or None if the process could not be started or
            was terminated by a signal
        stdout: Captured standard output
        stderr: Captured standard error
        timed_out: True if the deadline expired and the process was killed
        duration_ms: Wall-clock time from spawn to exit
        error: Spawn failure message, if the process never started
    """

    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool
    duration_ms: int
    error: str | None = None


class CommandRunner:
    """Runs commands through the user's login shell.

    Commands go through ``$SHELL -l -c`` so shell-profile tool setup (version
    managers, PATH shims) applies. Each process starts in its own session, so
    timeout signals reach the shell and everything it spawned.
    """

    def __init__(
        self,
        env: dict[str, str],
        output_handler: Callable[[str], None] | None = None,
        kill_grace_period: float = KILL_GRACE_PERIOD,
    ):
        """Initialize the command runner.

        Args:
            env: Complete environment for spawned processes
            output_handler: Called with each decoded chunk of stdout as it arrives
            kill_grace_period: Seconds between SIGTERM and SIGKILL on timeout
        """
        self.env = env
        self.output_handler = output_handler
        self.kill_grace_period = kill_grace_period

    @property
    def shell(self) -> str:
        return self.env.get("SHELL") or DEFAULT_SHELL

    def build_shell_command(self, argv: list[str]) -> list[str]:
        """Wrap argv in a login-shell invocation."""
        return [self.shell, "-l", "-c", shlex.join(argv)]

    async def run(
        self,
        argv: list[str],
        cwd: Path | str,
        timeout: float,
        log_path: Path | None = None,
    ) -> CommandResult:
        """Run argv to completion or until timeout.

        Args:
            argv: Program and arguments
            cwd: Working directory
            timeout: Deadline in seconds
            log_path: If set, write a combined log with a header to this file

        Returns:
            CommandResult; spawn failures are reported in it rather than raised
        """
        command = self.build_shell_command(argv)
        logger.info(f"Executing command: {command[-1]} (cwd={cwd}, timeout={timeout}s)")
        start = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
                cwd=str(cwd),
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to start command {command[-1]}: {e}")
            result = CommandResult(
                exit_code=None,
                stdout="",
                stderr=str(e),
                timed_out=False,
                duration_ms=_elapsed_ms(start),
                error=str(e),
            )
            if log_path is not None:
                write_command_log(log_path, argv, cwd, result)
            return result

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        readers = asyncio.gather(
            self._read_stream(process.stdout, stdout_chunks, self.output_handler),
            self._read_stream(process.stderr, stderr_chunks, None),
        )

        timed_out = False
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"Command exceeded {timeout}s timeout, terminating")
            await self._terminate(process)

        try:
            await asyncio.wait_for(readers, timeout=self.kill_grace_period)
        except asyncio.TimeoutError:
            # A detached descendant still holds the pipes; keep what we have
            logger.warning("Output streams still open after exit, capture truncated")

        return_code = process.returncode
        result = CommandResult(
            # Negative return codes mean the process died from a signal
            exit_code=return_code if return_code is not None and return_code >= 0 else None,
            stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace"),
            timed_out=timed_out,
            duration_ms=_elapsed_ms(start),
        )
        logger.debug(
            f"Command finished: exit_code={result.exit_code} "
            f"timed_out={timed_out} duration={result.duration_ms}ms"
        )

        if log_path is not None:
            write_command_log(log_path, argv, cwd, result)
        return result

    @staticmethod
    async def _read_stream(
        stream: asyncio.StreamReader | None,
        chunks: list[bytes],
        handler: Callable[[str], None] | None,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            chunks.append(chunk)
            if handler is not None:
                handler(decoder.decode(chunk))

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL after the grace period."""
        deadline = time.monotonic() + self.kill_grace_period
        _signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace_period)
        except asyncio.TimeoutError:
            pass

        # Descendants can outlive the shell
        while _group_alive(process) and time.monotonic() < deadline:
            await asyncio.sleep(0.1)

        if _group_alive(process):
            logger.warning(
                f"Process group {process.pid} still running "
                f"{self.kill_grace_period}s after SIGTERM, sending SIGKILL"
            )
            _signal_group(process, signal.SIGKILL)
        await process.wait()


def _group_alive(process: asyncio.subprocess.Process) -> bool:
    try:
        os.killpg(process.pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _signal_group(process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        # Already exited
        logger.debug(f"Process group {process.pid} gone before {sig.name}")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def write_command_log(
    log_path: Path, argv: list[str], cwd: Path | str, result: CommandResult
) -> None:
    """Write one command's output with a descriptive header."""
    header = [
        f"# Command: {' '.join(argv)}",
        f"# CWD: {cwd}",
    ]
    if result.error is not None:
        header.append(f"# Error: {result.error}")
    else:
        header.append(f"# Exit code: {result.exit_code}")
        if result.timed_out:
            header.append("# Timed out: true")
    header.append(f"# Duration: {result.duration_ms}ms")
    header.append("=" * 60)

    content = "\n".join(header) + f"\n\n{result.stdout}\n\n--- STDERR ---\n{result.stderr}"
    Path(log_path).write_text(content, encoding="utf-8")

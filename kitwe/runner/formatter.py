# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Deterministic rendering of RunResult for the terminal.

The formatter reports only what the run produced: it never reruns tests,
never modifies them and never invents details absent from the result or the
test tool's JSON report.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kitwe.core.artifacts import TestSummary, find_json_report, parse_json_report
from kitwe.core.constants import MAX_OUTPUT_LINES
from kitwe.core.types import ArtifactInfo, ArtifactType, RunResult, RunStatus
from kitwe.utils.terminal import TerminalColors

ARTIFACT_DISPLAY_ORDER = (
    ArtifactType.REPORT,
    ArtifactType.SCREENSHOT,
    ArtifactType.TRACE,
    ArtifactType.VIDEO,
)


@dataclass
class ReportOutput:
    """Formatted result.

    Attributes:
        exit_code: 0 for passed, 1 for any other status
        headline: Single-line status headline
        message: Full multi-line text for the terminal
        highlights: Key figures for programmatic access
    """

    exit_code: int
    headline: str
    message: str
    highlights: dict[str, Any] = field(default_factory=dict)


class ReportFormatter:
    """Formats one RunResult into a ReportOutput."""

    def __init__(
        self,
        result: RunResult,
        project_root: Path | None = None,
        verbose: bool = False,
    ):
        self.result = result
        self.project_root = Path(project_root) if project_root is not None else None
        self.verbose = verbose
        self.summary: TestSummary | None = None

        if self.project_root is not None:
            report = find_json_report(self.project_root)
            if report is not None:
                self.summary = parse_json_report(report)

    def format(self) -> ReportOutput:
        headline = self._headline()
        lines = [headline, ""]

        lines.append(f"Duration: {self.result.duration_ms / 1000:.2f}s")
        lines.append(f"Exit code: {self.result.exit_code}")

        if self.summary is not None:
            lines.append("")
            lines.append(self._summary_line(self.summary))

        artifact_lines = self._artifact_lines()
        if artifact_lines:
            lines.append("")
            lines.extend(artifact_lines)

        if self.result.error:
            lines.append("")
            lines.append(TerminalColors.error("Error:"))
            lines.append(TerminalColors.error(f"  {self.result.error}"))

        if self.verbose:
            output_lines = self._output_lines()
            if output_lines:
                lines.append("")
                lines.extend(output_lines)
            if self.result.command:
                lines.append("")
                lines.append(
                    TerminalColors.dim(f"Command: {' '.join(self.result.command)}")
                )

        return ReportOutput(
            exit_code=0 if self.result.status == RunStatus.PASSED else 1,
            headline=headline,
            message="\n".join(lines),
            highlights=self._highlights(),
        )

    def _headline(self) -> str:
        total = self.summary.total if self.summary is not None else 0
        failed = self.summary.failed if self.summary is not None else 0
        plural = "S" if total != 1 else ""

        status = self.result.status
        if status == RunStatus.PASSED:
            if total > 0:
                return TerminalColors.success(f"✓ {total} TEST{plural} PASSED")
            return TerminalColors.success("✓ Tests PASSED")
        if status == RunStatus.FAILED:
            if total > 0:
                return TerminalColors.error(f"✗ {failed}/{total} TEST{plural} FAILED")
            return TerminalColors.error("✗ Tests FAILED")
        if status == RunStatus.TIMEOUT:
            return TerminalColors.warning("⏱ Tests TIMED OUT")
        return TerminalColors.error("⚠ Test run ERROR")

    @staticmethod
    def _summary_line(summary: TestSummary) -> str:
        parts = [
            f"total={summary.total}",
            f"passed={summary.passed}",
            f"failed={summary.failed}",
        ]
        if summary.skipped > 0:
            parts.append(f"skipped={summary.skipped}")
        if summary.flaky > 0:
            parts.append(f"flaky={summary.flaky}")
        return f"Summary: {', '.join(parts)}"

    def _display_path(self, artifact: ArtifactInfo) -> str:
        if self.project_root is None:
            return str(artifact.path)
        try:
            return f"./{artifact.path.relative_to(self.project_root)}"
        except ValueError:
            return str(artifact.path)

    def _artifact_lines(self) -> list[str]:
        if not self.result.artifacts:
            return []

        lines = ["Artifacts:"]
        for artifact_type in ARTIFACT_DISPLAY_ORDER:
            for artifact in self.result.artifacts:
                if artifact.type == artifact_type:
                    line = f"  {artifact_type.value}: {self._display_path(artifact)}"
                    if self.verbose:
                        line += f" ({format_size(artifact.size)})"
                    lines.append(line)
        return lines

    def _output_lines(self) -> list[str]:
        lines = []
        for label, text in (("STDOUT", self.result.stdout), ("STDERR", self.result.stderr)):
            if not text or not text.strip():
                continue
            tail = text.split("\n")[-MAX_OUTPUT_LINES:]
            lines.append(
                TerminalColors.dim(f"--- {label} (last {MAX_OUTPUT_LINES} lines) ---")
            )
            lines.append(TerminalColors.dim("\n".join(tail)))
        return lines

    def _highlights(self) -> dict[str, Any]:
        return {
            "status": self.result.status.value,
            "exit_code": self.result.exit_code,
            "duration_ms": self.result.duration_ms,
            "artifact_count": len(self.result.artifacts),
            "has_error": bool(self.result.error),
            "total_tests": self.summary.total if self.summary else None,
            "passed_tests": self.summary.passed if self.summary else None,
            "failed_tests": self.summary.failed if self.summary else None,
        }


def format_result(
    result: RunResult, project_root: Path | None = None, verbose: bool = False
) -> ReportOutput:
    """Format a RunResult for CLI output."""
    return ReportFormatter(result, project_root, verbose).format()


def format_duration(ms: int) -> str:
    """Human-readable duration: ``850ms``, ``12.3s``, ``2m 5s``."""
    if ms < 1000:
        return f"{ms}ms"
    if round(ms / 1000, 1) < 60:
        return f"{ms / 1000:.1f}s"
    minutes, seconds = divmod(round(ms / 1000), 60)
    return f"{minutes}m {seconds}s"


def format_size(size: int) -> str:
    """Human-readable file size: ``512 B``, ``1.5 KB``, ``2.0 MB``."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"

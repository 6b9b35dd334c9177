# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Artifact discovery and the artifacts directory layout.

Layout of one run's artifacts directory::

    <artifacts_dir>/
    ├── logs/        stdout.log, stderr.log, pre_command_<n>.log
    └── reports/     machine-readable reports

Artifacts produced by the test tool itself (screenshots, traces, videos,
reports) are found by scanning its output directories and classified by
file name alone; file contents are never inspected.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from kitwe.core.constants import (
    ARTIFACT_SCAN_MAX_DEPTH,
    LOGS_DIRNAME,
    PLAYWRIGHT_REPORT_DIRNAME,
    PLAYWRIGHT_RESULTS_DIRNAME,
    REPORTS_DIRNAME,
)
from kitwe.core.types import ArtifactInfo, ArtifactType

logger = logging.getLogger(__name__)

# First match wins
ARTIFACT_PATTERNS: tuple[tuple[re.Pattern[str], ArtifactType], ...] = (
    (re.compile(r"\.(png|jpg|jpeg|webp)$", re.IGNORECASE), ArtifactType.SCREENSHOT),
    (re.compile(r"trace.*\.zip$", re.IGNORECASE), ArtifactType.TRACE),
    (re.compile(r"\.(webm|mp4)$", re.IGNORECASE), ArtifactType.VIDEO),
    (re.compile(r"report.*\.html$", re.IGNORECASE), ArtifactType.REPORT),
    (re.compile(r"report.*\.json$", re.IGNORECASE), ArtifactType.REPORT),
    (re.compile(r"results.*\.json$", re.IGNORECASE), ArtifactType.REPORT),
    (re.compile(r"junit.*\.xml$", re.IGNORECASE), ArtifactType.REPORT),
)


class ArtifactsDir:
    """Paths inside one run's artifacts directory."""

    def __init__(self, base: Path) -> None:
        self.base = Path(base)

    @property
    def logs(self) -> Path:
        return self.base / LOGS_DIRNAME

    @property
    def reports(self) -> Path:
        return self.base / REPORTS_DIRNAME

    def ensure_dirs(self) -> None:
        """Create the base, logs and reports directories (idempotent)."""
        self.logs.mkdir(parents=True, exist_ok=True)
        self.reports.mkdir(parents=True, exist_ok=True)


def get_artifact_type(filename: str) -> ArtifactType | None:
    """Classify a file by name.

    Args:
        filename: Bare file name, e.g. ``trace.zip``

    Returns:
        The artifact type, or None if the name matches no known pattern
    """
    for pattern, artifact_type in ARTIFACT_PATTERNS:
        if pattern.search(filename):
            return artifact_type
    return None


def get_playwright_output_dirs(
    project_root: Path, output_dir: str | None = None
) -> list[Path]:
    """Directories scanned for artifacts after a run.

    The conventional Playwright results and report directories, plus the
    configured output directory (``test-results`` when unset).
    """
    root = Path(project_root)
    return [
        root / PLAYWRIGHT_RESULTS_DIRNAME,
        root / PLAYWRIGHT_REPORT_DIRNAME,
        root / (output_dir or PLAYWRIGHT_RESULTS_DIRNAME),
    ]


def collect_artifacts(
    search_dirs: list[Path], max_depth: int = ARTIFACT_SCAN_MAX_DEPTH
) -> list[ArtifactInfo]:
    """Recursively collect artifact files from search_dirs.

    Each directory is visited at most once. Unreadable files and directories
    are skipped; scanning never raises for filesystem errors.

    Args:
        search_dirs: Directories to scan, in order; missing ones are ignored
        max_depth: Deepest nesting level scanned below each search dir

    Returns:
        Artifacts in discovery order
    """
    artifacts: list[ArtifactInfo] = []
    visited: set[Path] = set()

    def collect_from_dir(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            key = directory.resolve()
        except OSError:
            return
        if key in visited:
            return
        visited.add(key)

        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return

        for entry in entries:
            try:
                if entry.is_dir():
                    collect_from_dir(Path(entry.path), depth + 1)
                elif entry.is_file():
                    artifact_type = get_artifact_type(entry.name)
                    if artifact_type is not None:
                        artifacts.append(
                            ArtifactInfo(
                                type=artifact_type,
                                path=Path(entry.path).absolute(),
                                name=entry.name,
                                size=entry.stat().st_size,
                            )
                        )
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {entry.path}: {e}")

    for directory in search_dirs:
        if Path(directory).is_dir():
            collect_from_dir(Path(directory), 0)

    return artifacts


@dataclass
class TestSummary:
    """Test counts extracted from a Playwright JSON report."""

    __test__ = False  # not a pytest test class

    total: int
    passed: int
    failed: int
    skipped: int
    flaky: int
    duration_ms: int


def find_json_report(project_root: Path) -> Path | None:
    """Return the first Playwright JSON report found in standard locations."""
    root = Path(project_root)
    candidates = [
        root / PLAYWRIGHT_RESULTS_DIRNAME / "results.json",
        root / PLAYWRIGHT_REPORT_DIRNAME / "report.json",
        root / "test-results.json",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _count_specs(suites: list[Any]) -> tuple[int, int]:
    passed = failed = 0
    for suite in suites:
        if not isinstance(suite, dict):
            continue
        specs = suite.get("specs")
        for spec in specs if isinstance(specs, list) else []:
            if not isinstance(spec, dict):
                continue
            if spec.get("ok"):
                passed += 1
            else:
                failed += 1
        nested = suite.get("suites")
        if isinstance(nested, list):
            nested_passed, nested_failed = _count_specs(nested)
            passed += nested_passed
            failed += nested_failed
    return passed, failed


def _stat(stats: dict[str, Any], key: str) -> int:
    value = stats.get(key, 0)
    # bool is an int subclass but never a count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"stats.{key} is not a number: {value!r}")
    return int(value)


def parse_json_report(report_path: Path) -> TestSummary | None:
    """Extract a TestSummary from a Playwright JSON report.

    Understands the ``stats`` block of the JSON reporter and falls back to
    counting ``specs`` in nested ``suites``. Returns None for unreadable or
    unrecognized files, including a ``stats`` block with non-numeric counts.
    """
    try:
        report = json.loads(Path(report_path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug(f"Could not parse JSON report {report_path}: {e}")
        return None

    if not isinstance(report, dict):
        return None

    stats = report.get("stats")
    if isinstance(stats, dict):
        try:
            expected = _stat(stats, "expected")
            unexpected = _stat(stats, "unexpected")
            skipped = _stat(stats, "skipped")
            flaky = _stat(stats, "flaky")
            duration_ms = _stat(stats, "duration")
        except (OverflowError, ValueError) as e:
            logger.debug(f"Ignoring JSON report {report_path}: {e}")
            return None
        return TestSummary(
            total=expected + unexpected + skipped + flaky,
            passed=expected,
            failed=unexpected,
            skipped=skipped,
            flaky=flaky,
            duration_ms=duration_ms,
        )

    suites = report.get("suites")
    if isinstance(suites, list):
        passed, failed = _count_specs(suites)
        return TestSummary(
            total=passed + failed,
            passed=passed,
            failed=failed,
            skipped=0,
            flaky=0,
            duration_ms=0,
        )

    return None

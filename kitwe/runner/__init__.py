# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Resolution and execution of test runs."""

from kitwe.runner.executor import execute, run_validate
from kitwe.runner.formatter import ReportFormatter, ReportOutput, format_result
from kitwe.runner.resolver import resolve_run_spec

__all__ = [
    "ReportFormatter",
    "ReportOutput",
    "execute",
    "format_result",
    "resolve_run_spec",
    "run_validate",
]

# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Core constants shared across the kitwe framework."""

# Persisted configuration
CONFIG_FILENAME = "kitwe.yaml"
CONFIG_SCHEMA_VERSION = 1
DEFAULT_TIMEOUT_SECONDS = 1200
MAX_TIMEOUT_SECONDS = 7200
DEFAULT_ARTIFACTS_DIR = "artifacts/kitwe"

# Timeouts
PRE_COMMAND_TIMEOUT = 300  # seconds (300,000 ms) per pre-command
KILL_GRACE_PERIOD = 5.0  # seconds between SIGTERM and SIGKILL

# Artifact layout
LOGS_DIRNAME = "logs"
REPORTS_DIRNAME = "reports"
STDOUT_LOG = "stdout.log"
STDERR_LOG = "stderr.log"
PRE_COMMAND_LOG_TEMPLATE = "pre_command_{index}.log"

# Artifact scanning
ARTIFACT_SCAN_MAX_DEPTH = 3
PLAYWRIGHT_RESULTS_DIRNAME = "test-results"
PLAYWRIGHT_REPORT_DIRNAME = "playwright-report"

# Command construction
SCRIPT_ARGS_SEPARATOR = "--"
REPORTER_FLAG = "--reporter"
TRACE_FLAG = "--trace"
INJECTED_REPORTER_FLAG = "--reporter=list"
INJECTED_TRACE_FLAG = "--trace=retain-on-failure"
PLAYWRIGHT_TEST_COMMAND = ("npx", "playwright", "test")

# Lock files checked in priority order; first hit wins, npm otherwise
LOCK_FILE_RUNNERS = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
)

# Forced into every test environment so the test tool never blocks on a browser
NON_INTERACTIVE_ENV = {
    "CI": "true",
    "PLAYWRIGHT_HTML_OPEN": "never",
}

DEFAULT_SHELL = "/bin/sh"

# Result formatting
MAX_OUTPUT_LINES = 20

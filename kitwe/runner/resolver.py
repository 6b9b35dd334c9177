# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Deterministic run command resolution.

Turns a RunSpec plus the project's kitwe.yaml into exactly one command to
execute, or a ResolvedError. Explicit input wins and the fallback is minimal:

1. ``spec.script``            -> ``<runner> run <script> [--] [args...]``
2. ``spec.config_path``       -> ``npx playwright test --config=<path> [args...]``
3. ``config.run.script``      -> as 1, persisted args before caller args
4. ``config.run.config_path`` -> as 2, persisted args before caller args
5. otherwise                  -> ``no_entrypoint`` error

Tiers 3 and 4 are not consulted when the caller supplied either field.
Resolution reads only the ``run`` and ``setup`` sections of the config; the
``tests`` section never influences what gets executed. The only filesystem
inspection is existence checks and lock-file detection for the runner.
"""

import logging
from pathlib import Path

from kitwe.core.config import KitweConfig, RunConfig
from kitwe.core.constants import (
    LOCK_FILE_RUNNERS,
    PLAYWRIGHT_TEST_COMMAND,
    SCRIPT_ARGS_SEPARATOR,
)
from kitwe.core.types import (
    ErrorType,
    PreCommand,
    ResolutionMode,
    ResolvedCommand,
    ResolvedError,
    ResolveResult,
    RunnerType,
    RunSpec,
)

logger = logging.getLogger(__name__)

NO_ENTRYPOINT_MESSAGE = """\
Run entrypoint not configured.

An explicit entrypoint is required. Set one of:
  1. run.script in kitwe.yaml (e.g., 'test:e2e')
  2. run.config_path in kitwe.yaml (e.g., 'playwright.config.ts')
  3. CLI flag: --script <name> or --config <path>

Example kitwe.yaml:
  version: 1
  run:
    script: test:e2e

Or:
  version: 1
  run:
    config_path: playwright.config.ts"""


def detect_package_manager(project_root: Path) -> RunnerType:
    """Detect the package manager from lock files.

    This is the only auto-detection performed. It decides how scripts are
    invoked, never which tests are selected.

    Priority: pnpm > yarn > npm
    """
    for lock_file, runner in LOCK_FILE_RUNNERS:
        if (Path(project_root) / lock_file).exists():
            return RunnerType(runner)
    return RunnerType.NPM


def _resolve_cwd(cwd: str | None, project_root: Path) -> str:
    if not cwd:
        return str(project_root)
    if Path(cwd).is_absolute():
        return cwd
    return str(project_root / cwd)


def extract_pre_commands(
    spec: RunSpec, config: KitweConfig | None
) -> list[PreCommand] | None:
    """Collect pre-commands for the run phase.

    Shared ``setup.pre_commands`` come first, then ``run.pre_commands``.
    ``run.skip_setup`` in the config drops only the shared setup commands;
    ``spec.skip_setup`` drops everything.

    Returns:
        Pre-commands with absolute working directories, or None if there are none.
    """
    if spec.skip_setup or config is None:
        return None

    commands: list[PreCommand] = []
    if not config.run.skip_setup:
        commands.extend(config.setup.pre_commands)
    commands.extend(config.run.pre_commands)

    if not commands:
        return None

    return [
        PreCommand(
            argv=list(pc.argv),
            cwd=_resolve_cwd(pc.cwd, spec.project_root),
            env=pc.env,
        )
        for pc in commands
    ]


def _script_argv(runner: RunnerType, script: str, args: list[str]) -> list[str]:
    argv = [runner.value, "run", script]
    if args:
        # npm swallows script args unless they follow "--"
        if runner == RunnerType.NPM:
            argv.append(SCRIPT_ARGS_SEPARATOR)
        argv.extend(args)
    return argv


def _config_argv(config_path: str, args: list[str]) -> list[str]:
    return [*PLAYWRIGHT_TEST_COMMAND, f"--config={config_path}", *args]


def _config_missing(spec: RunSpec, config_path: str) -> Path | None:
    config_abs = spec.project_root / config_path
    if config_abs.exists():
        return None
    return config_abs


def _resolve_from_script(
    spec: RunSpec, config: KitweConfig | None
) -> ResolvedCommand:
    runner = spec.runner or detect_package_manager(spec.project_root)
    return ResolvedCommand(
        argv=_script_argv(runner, spec.script or "", spec.args),
        cwd=spec.project_root,
        mode=ResolutionMode.CLI_SCRIPT,
        pre_commands=extract_pre_commands(spec, config),
    )


def _resolve_from_config(spec: RunSpec, config: KitweConfig | None) -> ResolveResult:
    config_path = spec.config_path or ""
    missing = _config_missing(spec, config_path)
    if missing is not None:
        return ResolvedError(
            ErrorType.CONFIG_NOT_FOUND, f"Playwright config not found: {missing}"
        )

    return ResolvedCommand(
        argv=_config_argv(config_path, spec.args),
        cwd=spec.project_root,
        mode=ResolutionMode.CLI_CONFIG,
        pre_commands=extract_pre_commands(spec, config),
    )


def _resolve_from_run_config(
    run_config: RunConfig, spec: RunSpec, config: KitweConfig
) -> ResolveResult | None:
    """Resolve from the persisted run section, or None if it names no entrypoint."""
    args = [*run_config.args, *spec.args]

    if run_config.script:
        runner = (
            spec.runner
            or run_config.runner
            or detect_package_manager(spec.project_root)
        )
        return ResolvedCommand(
            argv=_script_argv(runner, run_config.script, args),
            cwd=spec.project_root,
            mode=ResolutionMode.YAML_SCRIPT,
            env=run_config.env,
            pre_commands=extract_pre_commands(spec, config),
        )

    if run_config.config_path:
        missing = _config_missing(spec, run_config.config_path)
        if missing is not None:
            return ResolvedError(
                ErrorType.CONFIG_NOT_FOUND,
                f"Playwright config from kitwe.yaml not found: {missing}",
            )
        return ResolvedCommand(
            argv=_config_argv(run_config.config_path, args),
            cwd=spec.project_root,
            mode=ResolutionMode.YAML_CONFIG,
            env=run_config.env,
            pre_commands=extract_pre_commands(spec, config),
        )

    return None


def resolve_run_spec(spec: RunSpec, config: KitweConfig | None = None) -> ResolveResult:
    """Resolve a RunSpec to exactly one executable command.

    Args:
        spec: Caller intent for the run
        config: Already-loaded kitwe.yaml for the project, if any

    Returns:
        ResolvedCommand on success, ResolvedError otherwise. Never raises for
        missing projects, configs or entrypoints.
    """
    if not spec.project_root.is_dir():
        return ResolvedError(
            ErrorType.PROJECT_NOT_FOUND,
            f"Project root does not exist: {spec.project_root}",
        )

    if spec.script:
        result: ResolveResult | None = _resolve_from_script(spec, config)
    elif spec.config_path:
        result = _resolve_from_config(spec, config)
    elif config is not None:
        result = _resolve_from_run_config(config.run, spec, config)
    else:
        result = None

    if result is None:
        return ResolvedError(ErrorType.NO_ENTRYPOINT, NO_ENTRYPOINT_MESSAGE)

    if isinstance(result, ResolvedCommand):
        logger.debug(f"Resolved {result.mode.value}: {' '.join(result.argv)}")
    else:
        logger.debug(f"Resolution failed: {result.format()}")
    return result

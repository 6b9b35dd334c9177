# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, NoReturn, Optional

import errorhandler
import typer
import yaml
from typing_extensions import Annotated

import kitwe
from kitwe.core.config import (
    ConfigLoadError,
    ConfigValidationError,
    KitweConfig,
    create_config_template,
    get_config_path,
    get_project_base_url,
    load_project_config,
    validate_config_file,
)
from kitwe.core.constants import (
    DEFAULT_ARTIFACTS_DIR,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_TIMEOUT_SECONDS,
)
from kitwe.core.paths import ProjectRootError, resolve_project_root
from kitwe.core.registry import (
    InvalidProjectPathError,
    ProjectExistsError,
    ProjectNotFoundError,
    add_project,
    get_registry_path,
    list_projects,
    remove_project,
)
from kitwe.core.types import ProgressCallback, ProgressPhase, RunnerType, RunSpec
from kitwe.runner.executor import execute
from kitwe.runner.formatter import ReportFormatter
from kitwe.utils.logging import VerbosityLevel, configure_logging
from kitwe.utils.terminal import TerminalColors

app = typer.Typer(add_completion=False)
project_app = typer.Typer(add_completion=False, help="Manage registered projects.")
config_app = typer.Typer(add_completion=False, help="Inspect and create kitwe.yaml.")
app.add_typer(project_app, name="project")
app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)

error_handler = errorhandler.ErrorHandler()

# Errors that end a command with a message instead of a traceback
DOMAIN_ERRORS = (
    ProjectRootError,
    ConfigLoadError,
    ConfigValidationError,
    ProjectExistsError,
    ProjectNotFoundError,
    InvalidProjectPathError,
    FileExistsError,
)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kitwe, version {kitwe.__version__}")
        raise typer.Exit()


Verbosity = Annotated[
    VerbosityLevel,
    typer.Option(
        "-v",
        "--verbosity",
        help="Verbosity level.",
        envvar="KITWE_VERBOSITY",
        is_eager=True,
    ),
]


Version = Annotated[
    bool,
    typer.Option(
        "--version",
        callback=version_callback,
        help="Display version number.",
        is_eager=True,
    ),
]


ProjectRoot = Annotated[
    Optional[Path],
    typer.Option(
        "-p",
        "--project-root",
        help="Path to the project root directory.",
    ),
]


ProjectName = Annotated[
    Optional[str],
    typer.Option(
        "--project",
        help="Registered project name.",
    ),
]


SpecFile = Annotated[
    Optional[str],
    typer.Argument(
        help="Spec file name or path, appended to the test arguments.",
        show_default=False,
    ),
]


Script = Annotated[
    Optional[str],
    typer.Option(
        "-s",
        "--script",
        help="Package script to run (e.g. test:e2e).",
    ),
]


PlaywrightConfig = Annotated[
    Optional[str],
    typer.Option(
        "-c",
        "--config",
        help="Path to a Playwright config, relative to the project root.",
    ),
]


Timeout = Annotated[
    Optional[int],
    typer.Option(
        "-t",
        "--timeout",
        help=f"Maximum execution time in seconds (default: run.timeout_seconds or {DEFAULT_TIMEOUT_SECONDS}).",
        min=1,
        max=MAX_TIMEOUT_SECONDS,
    ),
]


ArtifactsDir = Annotated[
    Optional[str],
    typer.Option(
        "-a",
        "--artifacts-dir",
        help="Directory for logs and reports, relative to the project root.",
    ),
]


Runner = Annotated[
    Optional[RunnerType],
    typer.Option(
        "-r",
        "--runner",
        help="Package manager used to run scripts.",
    ),
]


Args = Annotated[
    Optional[list[str]],
    typer.Option(
        "--args",
        help="Additional argument passed to the test tool (repeatable).",
    ),
]


JsonOut = Annotated[
    Optional[Path],
    typer.Option(
        "-j",
        "--json-out",
        dir_okay=False,
        help="Write the result as JSON to this path.",
    ),
]


Verbose = Annotated[
    bool,
    typer.Option(
        "--verbose",
        help="Show run configuration, phase tags and output excerpts.",
    ),
]


Quiet = Annotated[
    bool,
    typer.Option(
        "-q",
        "--quiet",
        help="Suppress progress output.",
    ),
]


SkipSetup = Annotated[
    bool,
    typer.Option(
        "--skip-setup",
        help="Skip all pre-commands.",
    ),
]


Force = Annotated[
    bool,
    typer.Option(
        "--force",
        help="Overwrite an existing entry.",
    ),
]


@app.callback()
def main(
    verbosity: Verbosity = VerbosityLevel.WARNING,
    version: Version = False,
) -> None:
    """Run Playwright end-to-end tests and return structured results."""
    configure_logging(verbosity, error_handler)


def fail(error: Exception) -> NoReturn:
    typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


def exit(success: bool = True) -> NoReturn:
    if error_handler.fired or not success:
        raise typer.Exit(1)
    else:
        raise typer.Exit(0)


def print_progress(verbose: bool) -> ProgressCallback:
    def on_progress(phase: ProgressPhase, detail: str) -> None:
        if verbose:
            typer.echo(TerminalColors.progress_step(phase.value, detail))
        else:
            typer.echo(detail)

    return on_progress


@app.command()
def run(
    spec_file: SpecFile = None,
    project_root: ProjectRoot = None,
    project: ProjectName = None,
    script: Script = None,
    config_path: PlaywrightConfig = None,
    timeout: Timeout = None,
    artifacts_dir: ArtifactsDir = None,
    runner: Runner = None,
    args: Args = None,
    json_out: JsonOut = None,
    verbose: Verbose = False,
    quiet: Quiet = False,
    skip_setup: SkipSetup = False,
) -> None:
    """Run Playwright tests and print a structured result."""
    try:
        root = resolve_project_root(project, project_root)
        config = load_project_config(root)
    except DOMAIN_ERRORS as e:
        fail(e)

    run_config = config.run if config is not None else None
    test_args = list(args or [])
    if spec_file:
        test_args.append(spec_file)

    spec = RunSpec(
        project_root=root,
        artifacts_dir=Path(
            artifacts_dir
            or (run_config.artifacts_dir if run_config else DEFAULT_ARTIFACTS_DIR)
        ),
        timeout_seconds=timeout
        or (run_config.timeout_seconds if run_config else DEFAULT_TIMEOUT_SECONDS),
        script=script,
        config_path=config_path,
        args=test_args,
        runner=runner or (run_config.runner if run_config else None),
        skip_setup=skip_setup,
        output_dir=run_config.output_dir if run_config else None,
    )

    if verbose:
        typer.echo(TerminalColors.info("Run configuration:"))
        typer.echo(f"  Project root: {spec.project_root}")
        if spec.script:
            typer.echo(f"  Script: {spec.script}")
        if spec.config_path:
            typer.echo(f"  Config: {spec.config_path}")
        typer.echo(f"  Timeout: {spec.timeout_seconds}s")
        typer.echo(f"  Artifacts: {spec.artifacts_dir}")
        if spec_file:
            typer.echo(f"  Spec file: {spec_file}")
        typer.echo("")

    if not quiet:
        typer.echo(TerminalColors.bold("kitwe") + " - running tests")
        typer.echo("")

    result = execute(
        spec,
        config,
        on_progress=None if quiet else print_progress(verbose),
    )

    if not quiet:
        typer.echo("")

    report = ReportFormatter(result, project_root=root, verbose=verbose).format()
    typer.echo(report.message)

    if json_out is not None:
        json_out.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        typer.echo("")
        typer.echo(TerminalColors.dim(f"Results written to: {json_out}"))

    exit(report.exit_code == 0)


@project_app.command("add")
def project_add(
    name: Annotated[str, typer.Argument(help="Project name.")],
    path: Annotated[Path, typer.Argument(help="Path to the project root.")],
    force: Force = False,
) -> None:
    """Register a project under a short name."""
    try:
        registered = add_project(name, path, force=force)
    except DOMAIN_ERRORS as e:
        fail(e)
    typer.echo(TerminalColors.success(f"Registered project '{name}' -> {registered}"))
    exit()


@project_app.command("remove")
def project_remove(
    name: Annotated[str, typer.Argument(help="Project name.")],
) -> None:
    """Unregister a project."""
    try:
        removed = remove_project(name)
    except DOMAIN_ERRORS as e:
        fail(e)
    typer.echo(f"Removed project '{name}' ({removed})")
    exit()


@project_app.command("list")
def project_list() -> None:
    """List registered projects."""
    projects = list_projects()
    if not projects:
        typer.echo("No projects registered.")
        typer.echo("Register one with: kitwe project add <name> <path>")
        exit()

    width = max(len(name) for name, _ in projects)
    for name, path in projects:
        missing = "" if Path(path).is_dir() else TerminalColors.warning("  (missing)")
        typer.echo(f"{name.ljust(width)}  {path}{missing}")
    typer.echo(TerminalColors.dim(f"\nRegistry: {get_registry_path()}"))
    exit()


def config_to_dict(config: KitweConfig) -> dict[str, Any]:
    """Plain-data representation with enums rendered as their values."""
    return json.loads(json.dumps(asdict(config), default=str))


@config_app.command("show")
def config_show(
    project_root: ProjectRoot = None,
    project: ProjectName = None,
    as_json: Annotated[
        bool, typer.Option("--json", help="Print the configuration as JSON.")
    ] = False,
) -> None:
    """Show the project's kitwe.yaml after validation."""
    try:
        root = resolve_project_root(project, project_root)
        config = load_project_config(root)
    except DOMAIN_ERRORS as e:
        fail(e)

    if config is None:
        typer.secho(
            f"No config file found at {get_config_path(root)}\n"
            "Create one with: kitwe config init",
            fg=typer.colors.YELLOW,
            err=True,
        )
        raise typer.Exit(1)

    data = config_to_dict(config)
    if as_json:
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(TerminalColors.dim(f"# {get_config_path(root)}"))
        typer.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
        base_url = get_project_base_url(config)
        if base_url:
            typer.echo(f"Resolved base_url: {base_url}")
    exit()


@config_app.command("validate")
def config_validate(
    project_root: ProjectRoot = None,
    project: ProjectName = None,
) -> None:
    """Validate the project's kitwe.yaml."""
    try:
        root = resolve_project_root(project, project_root)
    except DOMAIN_ERRORS as e:
        fail(e)

    result = validate_config_file(root)
    for warning in result.warnings:
        typer.echo(TerminalColors.warning(f"Warning: {warning}"))

    if not result.valid:
        typer.echo(TerminalColors.error(f"Invalid config: {get_config_path(root)}"))
        for error in result.errors:
            typer.echo(TerminalColors.error(f"  - {error}"))
        raise typer.Exit(1)

    typer.echo(TerminalColors.success(f"Config is valid: {get_config_path(root)}"))
    exit()


@config_app.command("init")
def config_init(
    project_root: ProjectRoot = None,
    project: ProjectName = None,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite an existing kitwe.yaml.")
    ] = False,
) -> None:
    """Create a starter kitwe.yaml in the project root."""
    try:
        root = resolve_project_root(project, project_root)
        config_path = create_config_template(root, force=force)
    except DOMAIN_ERRORS as e:
        fail(e)

    typer.echo(TerminalColors.success(f"Created {config_path}"))
    typer.echo("Edit run.script or run.config_path to point at your tests.")
    exit()

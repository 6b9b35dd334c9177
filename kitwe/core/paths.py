# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Project root resolution for CLI commands.

There is no working-directory detection: a command gets its project root
from ``--project-root`` or from a registered ``--project`` name.
"""

from pathlib import Path

from kitwe.core.registry import ProjectNotFoundError, get_project_path


class ProjectRootError(Exception):
    """Raised when no usable project root can be determined."""


def _ensure_directory(resolved: Path, description: str) -> Path:
    if not resolved.exists():
        raise ProjectRootError(f"{description} does not exist: {resolved}")
    if not resolved.is_dir():
        raise ProjectRootError(f"{description} is not a directory: {resolved}")
    return resolved


def resolve_project_root(
    project: str | None = None, project_root: str | Path | None = None
) -> Path:
    """Resolve the project root from CLI options.

    An explicit project root wins over a registered project name.

    Raises:
        ProjectRootError: If neither option is usable
    """
    if project_root is not None:
        return _ensure_directory(Path(project_root).resolve(), "Project root")

    if project is not None:
        try:
            stored = get_project_path(project)
        except ProjectNotFoundError:
            raise ProjectRootError(
                f"Project '{project}' not found in registry.\n"
                f"Register with: kitwe project add {project} /path/to/project"
            ) from None

        resolved = Path(stored).resolve()
        if not resolved.exists():
            raise ProjectRootError(
                f"Registered project '{project}' path no longer exists: {stored}\n"
                f"Update with: kitwe project add {project} /new/path --force"
            )
        return _ensure_directory(resolved, f"Registered project '{project}' path")

    raise ProjectRootError(
        "Project root not specified.\n\n"
        "Provide --project-root or register a project:\n"
        "  kitwe project add <name> <path>\n"
        "  kitwe <command> --project <name>\n\n"
        "Or specify explicitly:\n"
        "  kitwe <command> --project-root /path/to/project"
    )


def resolve_path_relative_to_project(path: str | Path, project_root: Path) -> Path:
    """Resolve path against project_root unless it is already absolute."""
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return Path(project_root) / candidate

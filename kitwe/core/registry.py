# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Named project registry.

Maps short project names to project roots so commands can take
``--project myapp`` instead of a path. Stored as YAML in the kitwe config
directory (``$KITWE_CONFIG_DIR`` or ``~/.config/kitwe``).
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "projects.yaml"


class ProjectExistsError(Exception):
    def __init__(self, name: str, existing_path: str) -> None:
        self.name = name
        self.existing_path = existing_path
        super().__init__(
            f"Project '{name}' already exists at: {existing_path}\n"
            "Use --force to overwrite."
        )


class ProjectNotFoundError(Exception):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Project '{name}' not found in registry.")


class InvalidProjectPathError(Exception):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid project path '{path}': {reason}")


@dataclass
class ProjectEntry:
    path: str
    added_at: str = ""


def get_config_dir() -> Path:
    """Return the kitwe configuration directory."""
    override = os.environ.get("KITWE_CONFIG_DIR")
    if override:
        return Path(override)
    return Path.home() / ".config" / "kitwe"


def get_registry_path() -> Path:
    return get_config_dir() / REGISTRY_FILENAME


def load_registry() -> dict[str, ProjectEntry]:
    """Load all registered projects.

    Unreadable or malformed registry files are treated as empty so that a
    corrupt file never blocks ``project add``.
    """
    registry_path = get_registry_path()
    if not registry_path.exists():
        return {}

    try:
        data = yaml.safe_load(registry_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable registry {registry_path}: {e}")
        return {}

    if not isinstance(data, dict):
        return {}

    projects: dict[str, ProjectEntry] = {}
    for name, entry in data.items():
        if isinstance(entry, str):
            # Older registries stored the bare path
            projects[str(name)] = ProjectEntry(path=entry)
        elif isinstance(entry, dict) and isinstance(entry.get("path"), str):
            projects[str(name)] = ProjectEntry(
                path=entry["path"], added_at=str(entry.get("added_at", ""))
            )
    return projects


def save_registry(projects: dict[str, ProjectEntry]) -> None:
    """Persist the registry, sorted by project name."""
    registry_path = get_registry_path()
    registry_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        name: {"path": projects[name].path, "added_at": projects[name].added_at}
        for name in sorted(projects)
    }
    with open(registry_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def add_project(name: str, path: str | Path, force: bool = False) -> Path:
    """Register a project directory under a name.

    Returns:
        The absolute path that was registered.

    Raises:
        InvalidProjectPathError: If path is missing or not a directory
        ProjectExistsError: If name is taken and force is False
    """
    resolved = Path(path).resolve()
    if not resolved.exists():
        raise InvalidProjectPathError(str(path), "path does not exist")
    if not resolved.is_dir():
        raise InvalidProjectPathError(str(path), "path is not a directory")

    projects = load_registry()
    if name in projects and not force:
        raise ProjectExistsError(name, projects[name].path)

    projects[name] = ProjectEntry(
        path=str(resolved), added_at=datetime.now(timezone.utc).isoformat()
    )
    save_registry(projects)
    logger.info(f"Registered project {name} -> {resolved}")
    return resolved


def remove_project(name: str) -> str:
    """Unregister a project and return the path it pointed to."""
    projects = load_registry()
    if name not in projects:
        raise ProjectNotFoundError(name)

    removed = projects.pop(name)
    save_registry(projects)
    return removed.path


def get_project_path(name: str) -> str:
    projects = load_registry()
    if name not in projects:
        raise ProjectNotFoundError(name)
    return projects[name].path


def list_projects() -> list[tuple[str, str]]:
    """Return (name, path) pairs sorted by name."""
    return sorted((name, entry.path) for name, entry in load_registry().items())

# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Global pytest fixtures shared across all test modules.

- Registry isolation: every test gets its own kitwe config directory
- Project fixtures: a throwaway project root on disk
"""

from pathlib import Path

import pytest
from _pytest.monkeypatch import MonkeyPatch


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path: Path, monkeypatch: MonkeyPatch) -> Path:
    """Point the project registry at a per-test directory.

    Keeps tests from reading or writing the user's ~/.config/kitwe.
    """
    config_dir = tmp_path / "kitwe-config"
    monkeypatch.setenv("KITWE_CONFIG_DIR", str(config_dir))
    return config_dir


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Create an empty project directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def write_config(project_root: Path):
    """Write kitwe.yaml content into the project root."""

    def _write(content: str) -> Path:
        config_path = project_root / "kitwe.yaml"
        config_path.write_text(content, encoding="utf-8")
        return config_path

    return _write

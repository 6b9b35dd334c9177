# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Tests for kitwe.yaml loading, validation and templating."""

from pathlib import Path

import pytest
from _pytest.monkeypatch import MonkeyPatch

from kitwe.core.config import (
    ConfigLoadError,
    ConfigValidationError,
    create_config_template,
    get_project_base_url,
    load_project_config,
    parse_config,
    resolve_env_value,
    validate_config_file,
)
from kitwe.core.constants import DEFAULT_ARTIFACTS_DIR, DEFAULT_TIMEOUT_SECONDS
from kitwe.core.types import PreCommand, RunnerType

FULL_CONFIG = """\
version: 1
project:
  name: shop
  base_url: http://localhost:3000
setup:
  pre_commands:
    - argv: ["docker", "compose", "up", "-d"]
run:
  runner: pnpm
  script: test:e2e
  args: ["--workers=2"]
  timeout_seconds: 600
  artifacts_dir: out/kitwe
  output_dir: pw-out
  env:
    BASE_URL: http://localhost:3000
  skip_setup: false
  pre_commands:
    - argv: ["pnpm", "db:seed"]
      cwd: server
      env:
        SEED: "1"
tests:
  language: javascript
  test_dir: e2e
  selector_policy:
    prefer: ["data-testid"]
"""


class TestLoadProjectConfig:
    """Tests for load_project_config()."""

    def test_missing_file_returns_none(self, project_root: Path) -> None:
        assert load_project_config(project_root) is None

    def test_full_config(self, project_root: Path, write_config) -> None:
        write_config(FULL_CONFIG)

        config = load_project_config(project_root)

        assert config is not None
        assert config.project.name == "shop"
        assert config.setup.pre_commands == [
            PreCommand(argv=["docker", "compose", "up", "-d"])
        ]
        assert config.run.runner == RunnerType.PNPM
        assert config.run.script == "test:e2e"
        assert config.run.args == ["--workers=2"]
        assert config.run.timeout_seconds == 600
        assert config.run.artifacts_dir == "out/kitwe"
        assert config.run.output_dir == "pw-out"
        assert config.run.env == {"BASE_URL": "http://localhost:3000"}
        assert config.run.pre_commands == [
            PreCommand(argv=["pnpm", "db:seed"], cwd="server", env={"SEED": "1"})
        ]
        assert config.tests.language == "javascript"
        assert config.tests.selector_policy.prefer == ["data-testid"]
        assert config.tests.selector_policy.avoid == ["class", "xpath"]

    def test_defaults(self, project_root: Path, write_config) -> None:
        write_config("version: 1\n")

        config = load_project_config(project_root)

        assert config is not None
        assert config.run.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
        assert config.run.artifacts_dir == DEFAULT_ARTIFACTS_DIR
        assert config.run.args == []
        assert not config.run.has_entrypoint
        assert config.setup.pre_commands == []

    @pytest.mark.parametrize(
        ("content", "reason"),
        [
            ("", "File is empty"),
            ("- a\n- b\n", "Root must be a YAML mapping"),
            ("version: [1\n", "YAML parse error"),
        ],
    )
    def test_load_errors(
        self, project_root: Path, write_config, content: str, reason: str
    ) -> None:
        write_config(content)

        with pytest.raises(ConfigLoadError, match=reason):
            load_project_config(project_root)


class TestParseConfig:
    """Tests for field validation in parse_config()."""

    def test_collects_all_errors(self) -> None:
        """Every invalid field is reported, not just the first."""
        data = {
            "version": 2,
            "run": {
                "runner": "bun",
                "timeout_seconds": 0,
                "args": "--headed",
                "skip_setup": "yes",
            },
            "tests": {"language": "python"},
        }

        with pytest.raises(ConfigValidationError) as exc_info:
            parse_config(data)

        errors = exc_info.value.errors
        assert any(e.startswith("version:") for e in errors)
        assert any(e.startswith("run.runner:") for e in errors)
        assert any(e.startswith("run.timeout_seconds:") for e in errors)
        assert any(e.startswith("run.args:") for e in errors)
        assert any(e.startswith("run.skip_setup:") for e in errors)
        assert any(e.startswith("tests.language:") for e in errors)

    def test_pre_command_requires_argv(self) -> None:
        data = {"version": 1, "setup": {"pre_commands": [{"cwd": "server"}]}}

        with pytest.raises(ConfigValidationError) as exc_info:
            parse_config(data)

        assert exc_info.value.errors == ["setup.pre_commands.0.argv: must contain at least one entry"]

    def test_pre_command_rejects_empty_argv(self) -> None:
        data = {"version": 1, "run": {"pre_commands": [{"argv": []}]}}

        with pytest.raises(ConfigValidationError, match="run.pre_commands.0.argv"):
            parse_config(data)

    def test_timeout_upper_bound(self) -> None:
        with pytest.raises(ConfigValidationError, match="run.timeout_seconds"):
            parse_config({"version": 1, "run": {"timeout_seconds": 7201}})


class TestValidateConfigFile:
    """Tests for validate_config_file()."""

    def test_missing_file(self, project_root: Path) -> None:
        result = validate_config_file(project_root)

        assert not result.valid
        assert "not found" in result.errors[0]

    def test_warns_without_entrypoint(self, project_root: Path, write_config) -> None:
        write_config("version: 1\nrun:\n  timeout_seconds: 60\n")

        result = validate_config_file(project_root)

        assert result.valid
        assert len(result.warnings) == 1
        assert "run.script" in result.warnings[0]

    def test_reports_validation_errors(self, project_root: Path, write_config) -> None:
        write_config("version: 1\nrun:\n  runner: bun\n")

        result = validate_config_file(project_root)

        assert not result.valid
        assert result.errors[0].startswith("run.runner:")


class TestEnvValues:
    """Tests for environment substitution in project.base_url."""

    def test_plain_value_unchanged(self) -> None:
        assert resolve_env_value("http://localhost") == "http://localhost"

    def test_substitutes_both_forms(self, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.setenv("HOST", "example.test")
        monkeypatch.setenv("PORT", "8080")

        assert resolve_env_value("https://$HOST:${PORT}") == "https://example.test:8080"

    def test_unset_reference_returns_none(self, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.delenv("KITWE_UNSET_VAR", raising=False)

        assert resolve_env_value("$KITWE_UNSET_VAR/app") is None

    def test_project_base_url(self, monkeypatch: MonkeyPatch) -> None:
        monkeypatch.setenv("BASE_URL", "http://app.test")
        config = parse_config({"version": 1, "project": {"base_url": "$BASE_URL"}})

        assert get_project_base_url(config) == "http://app.test"
        assert get_project_base_url(None) is None


class TestCreateConfigTemplate:
    def test_template_is_valid(self, project_root: Path) -> None:
        """The starter file passes validation and names an entrypoint."""
        create_config_template(project_root)

        config = load_project_config(project_root)

        assert config is not None
        assert config.project.name == project_root.name
        assert config.run.script == "test:e2e"

    def test_refuses_overwrite(self, project_root: Path, write_config) -> None:
        write_config("version: 1\n")

        with pytest.raises(FileExistsError):
            create_config_template(project_root)

    def test_force_overwrites(self, project_root: Path, write_config) -> None:
        config_path = write_config("version: 1\n")

        create_config_template(project_root, force=True)

        assert "test:e2e" in config_path.read_text(encoding="utf-8")

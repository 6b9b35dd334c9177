# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Tests for run command resolution.

Covers the priority tiers, package-manager detection, pre-command extraction
and the guarantee that the ``tests`` config section never changes what runs.
"""

from pathlib import Path

import pytest

from kitwe.core.config import (
    KitweConfig,
    RunConfig,
    SelectorPolicy,
    SetupConfig,
    TestsConfig,
)
from kitwe.core.types import (
    ErrorType,
    PreCommand,
    ResolutionMode,
    ResolvedCommand,
    ResolvedError,
    RunnerType,
    RunSpec,
)
from kitwe.runner.resolver import (
    detect_package_manager,
    extract_pre_commands,
    resolve_run_spec,
)


def make_spec(project_root: Path, **kwargs) -> RunSpec:
    return RunSpec(
        project_root=project_root,
        artifacts_dir=Path("artifacts/kitwe"),
        timeout_seconds=60,
        **kwargs,
    )


def resolve_ok(spec: RunSpec, config: KitweConfig | None = None) -> ResolvedCommand:
    result = resolve_run_spec(spec, config)
    assert isinstance(result, ResolvedCommand), result
    return result


def resolve_err(spec: RunSpec, config: KitweConfig | None = None) -> ResolvedError:
    result = resolve_run_spec(spec, config)
    assert isinstance(result, ResolvedError), result
    return result


class TestPriorityTiers:
    """Tests for the five-tier resolution order."""

    def test_cli_script_with_args(self, project_root: Path) -> None:
        """Explicit script, npm runner, args behind the separator."""
        spec = make_spec(
            project_root,
            script="test:e2e",
            runner=RunnerType.NPM,
            args=["--grep", "login"],
        )

        resolved = resolve_ok(spec)

        assert resolved.argv == ["npm", "run", "test:e2e", "--", "--grep", "login"]
        assert resolved.cwd == project_root
        assert resolved.mode == ResolutionMode.CLI_SCRIPT

    def test_cli_script_without_args_has_no_separator(self, project_root: Path) -> None:
        resolved = resolve_ok(make_spec(project_root, script="e2e"))

        assert resolved.argv == ["npm", "run", "e2e"]

    def test_cli_config(self, project_root: Path) -> None:
        (project_root / "playwright.config.ts").touch()
        spec = make_spec(
            project_root, config_path="playwright.config.ts", args=["--headed"]
        )

        resolved = resolve_ok(spec)

        assert resolved.argv == [
            "npx",
            "playwright",
            "test",
            "--config=playwright.config.ts",
            "--headed",
        ]
        assert resolved.mode == ResolutionMode.CLI_CONFIG

    def test_cli_config_missing(self, project_root: Path) -> None:
        error = resolve_err(make_spec(project_root, config_path="pw.config.ts"))

        assert error.error_type == ErrorType.CONFIG_NOT_FOUND
        assert "pw.config.ts" in error.message

    def test_yaml_script(self, project_root: Path) -> None:
        config = KitweConfig(
            run=RunConfig(script="e2e", args=["--workers=1"], env={"A": "1"})
        )
        spec = make_spec(project_root, args=["--headed"])

        resolved = resolve_ok(spec, config)

        assert resolved.argv == ["npm", "run", "e2e", "--", "--workers=1", "--headed"]
        assert resolved.mode == ResolutionMode.YAML_SCRIPT
        assert resolved.env == {"A": "1"}

    def test_yaml_config(self, project_root: Path) -> None:
        (project_root / "e2e.config.ts").touch()
        config = KitweConfig(run=RunConfig(config_path="e2e.config.ts"))

        resolved = resolve_ok(make_spec(project_root), config)

        assert resolved.argv == ["npx", "playwright", "test", "--config=e2e.config.ts"]
        assert resolved.mode == ResolutionMode.YAML_CONFIG

    def test_yaml_config_missing(self, project_root: Path) -> None:
        config = KitweConfig(run=RunConfig(config_path="gone.config.ts"))

        error = resolve_err(make_spec(project_root), config)

        assert error.error_type == ErrorType.CONFIG_NOT_FOUND

    def test_yaml_script_wins_over_yaml_config(self, project_root: Path) -> None:
        (project_root / "e2e.config.ts").touch()
        config = KitweConfig(run=RunConfig(script="e2e", config_path="e2e.config.ts"))

        resolved = resolve_ok(make_spec(project_root), config)

        assert resolved.mode == ResolutionMode.YAML_SCRIPT

    def test_cli_script_wins_over_everything(self, project_root: Path) -> None:
        (project_root / "cli.config.ts").touch()
        config = KitweConfig(run=RunConfig(script="yaml-script"))
        spec = make_spec(project_root, script="cli-script", config_path="cli.config.ts")

        resolved = resolve_ok(spec, config)

        assert resolved.mode == ResolutionMode.CLI_SCRIPT
        assert resolved.argv == ["npm", "run", "cli-script"]

    def test_cli_config_suppresses_persisted_tiers(self, project_root: Path) -> None:
        """A missing CLI config is an error even when kitwe.yaml names a script."""
        config = KitweConfig(run=RunConfig(script="e2e"))

        error = resolve_err(make_spec(project_root, config_path="missing.ts"), config)

        assert error.error_type == ErrorType.CONFIG_NOT_FOUND

    def test_persisted_env_only_for_persisted_tiers(self, project_root: Path) -> None:
        config = KitweConfig(run=RunConfig(script="e2e", env={"A": "1"}))

        resolved = resolve_ok(make_spec(project_root, script="other"), config)

        assert resolved.env is None


class TestResolutionErrors:
    def test_project_not_found(self, tmp_path: Path) -> None:
        error = resolve_err(make_spec(tmp_path / "missing", script="e2e"))

        assert error.error_type == ErrorType.PROJECT_NOT_FOUND

    @pytest.mark.parametrize(
        "config", [None, KitweConfig(), KitweConfig(run=RunConfig(args=["--headed"]))]
    )
    def test_no_entrypoint(self, project_root: Path, config: KitweConfig | None) -> None:
        """The message lists every way to configure an entrypoint."""
        error = resolve_err(make_spec(project_root), config)

        assert error.error_type == ErrorType.NO_ENTRYPOINT
        assert "run.script" in error.message
        assert "run.config_path" in error.message
        assert "--script" in error.message
        assert "--config" in error.message
        assert "version: 1" in error.message


class TestRunnerDetection:
    """Tests for lock-file based package-manager detection."""

    def test_defaults_to_npm(self, project_root: Path) -> None:
        assert detect_package_manager(project_root) == RunnerType.NPM

    def test_yarn(self, project_root: Path) -> None:
        (project_root / "yarn.lock").touch()

        assert detect_package_manager(project_root) == RunnerType.YARN

    def test_pnpm_beats_yarn(self, project_root: Path) -> None:
        (project_root / "yarn.lock").touch()
        (project_root / "pnpm-lock.yaml").touch()

        assert detect_package_manager(project_root) == RunnerType.PNPM

    def test_detected_runner_gets_no_separator(self, project_root: Path) -> None:
        (project_root / "pnpm-lock.yaml").touch()

        resolved = resolve_ok(make_spec(project_root, script="e2e", args=["--headed"]))

        assert resolved.argv == ["pnpm", "run", "e2e", "--headed"]

    def test_runner_precedence_for_persisted_script(self, project_root: Path) -> None:
        """Caller override beats persisted runner, which beats lock files."""
        (project_root / "yarn.lock").touch()
        config = KitweConfig(run=RunConfig(script="e2e", runner=RunnerType.PNPM))

        persisted = resolve_ok(make_spec(project_root), config)
        overridden = resolve_ok(make_spec(project_root, runner=RunnerType.NPM), config)

        assert persisted.argv[0] == "pnpm"
        assert overridden.argv[0] == "npm"


class TestPreCommands:
    """Tests for pre-command extraction."""

    @pytest.fixture
    def config(self) -> KitweConfig:
        return KitweConfig(
            setup=SetupConfig(
                pre_commands=[
                    PreCommand(argv=["docker", "compose", "up", "-d"]),
                    PreCommand(argv=["make", "certs"], cwd="/opt/certs"),
                ]
            ),
            run=RunConfig(
                script="e2e",
                pre_commands=[
                    PreCommand(argv=["npm", "run", "seed"], cwd="server", env={"S": "1"})
                ],
            ),
        )

    def test_setup_before_run(self, project_root: Path, config: KitweConfig) -> None:
        resolved = resolve_ok(make_spec(project_root), config)

        assert resolved.pre_commands == [
            PreCommand(argv=["docker", "compose", "up", "-d"], cwd=str(project_root)),
            PreCommand(argv=["make", "certs"], cwd="/opt/certs"),
            PreCommand(
                argv=["npm", "run", "seed"],
                cwd=str(project_root / "server"),
                env={"S": "1"},
            ),
        ]

    def test_attached_to_cli_tiers(self, project_root: Path, config: KitweConfig) -> None:
        resolved = resolve_ok(make_spec(project_root, script="other"), config)

        assert resolved.pre_commands is not None
        assert len(resolved.pre_commands) == 3

    def test_spec_skip_setup_drops_all(
        self, project_root: Path, config: KitweConfig
    ) -> None:
        resolved = resolve_ok(make_spec(project_root, skip_setup=True), config)

        assert resolved.pre_commands is None

    def test_persisted_skip_setup_keeps_run_commands(
        self, project_root: Path, config: KitweConfig
    ) -> None:
        config.run.skip_setup = True

        pre_commands = extract_pre_commands(make_spec(project_root), config)

        assert pre_commands is not None
        assert [pc.argv for pc in pre_commands] == [["npm", "run", "seed"]]

    def test_none_without_config(self, project_root: Path) -> None:
        assert extract_pre_commands(make_spec(project_root), None) is None


class TestDeterminism:
    def test_same_inputs_same_output(self, project_root: Path) -> None:
        (project_root / "yarn.lock").touch()
        config = KitweConfig(
            run=RunConfig(script="e2e", args=["--x"]),
            setup=SetupConfig(pre_commands=[PreCommand(argv=["true"])]),
        )
        spec = make_spec(project_root, args=["--y"])

        results = [resolve_run_spec(spec, config) for _ in range(5)]

        assert all(result == results[0] for result in results)

    def test_tests_section_never_changes_command(self, project_root: Path) -> None:
        """Only run and setup decide what executes."""
        base = KitweConfig(run=RunConfig(script="e2e"))
        with_tests = KitweConfig(
            run=RunConfig(script="e2e"),
            tests=TestsConfig(
                language="javascript",
                test_dir="spec/e2e",
                pattern="**/*.e2e.js",
                default_output_path="spec/e2e/generated",
                selector_policy=SelectorPolicy(prefer=["role"], avoid=[]),
            ),
        )

        spec = make_spec(project_root)

        assert resolve_run_spec(spec, base) == resolve_run_spec(spec, with_tests)

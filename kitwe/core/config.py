# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Project configuration (kitwe.yaml) loading and validation.

The file is parsed with PyYAML and validated into plain dataclasses. Keys are
snake_case in YAML and on the dataclasses alike. Only the ``run`` and
``setup`` sections influence which command is executed; ``tests`` is carried
for tooling that organizes test files and is never read by the resolver.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from kitwe.core.constants import (
    CONFIG_FILENAME,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_ARTIFACTS_DIR,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_TIMEOUT_SECONDS,
)
from kitwe.core.types import PreCommand, RunnerType

logger = logging.getLogger(__name__)

# $VAR or ${VAR}
_ENV_VAR_REF_PATTERN = re.compile(r"\$\{?([A-Z_][A-Z0-9_]*)\}?")

VALID_LANGUAGES = ("typescript", "javascript")


class ConfigLoadError(Exception):
    """Raised when kitwe.yaml exists but cannot be read or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load config from {path}: {reason}")


class ConfigValidationError(Exception):
    """Raised when kitwe.yaml parses but does not match the schema.

    Attributes:
        path: Path to the offending file
        errors: One ``field.path: message`` entry per problem
    """

    def __init__(self, path: Path, errors: list[str]) -> None:
        self.path = path
        self.errors = errors
        error_list = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Invalid config at {path}:\n{error_list}")


@dataclass
class ProjectSection:
    name: str | None = None
    env_file: str | None = None
    base_url: str | None = None


@dataclass
class SetupConfig:
    """Setup commands shared by every phase."""

    pre_commands: list[PreCommand] = field(default_factory=list)


@dataclass
class RunConfig:
    """The ``run`` section: how tests are launched."""

    runner: RunnerType | None = None
    script: str | None = None
    config_path: str | None = None
    args: list[str] = field(default_factory=list)
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    artifacts_dir: str = DEFAULT_ARTIFACTS_DIR
    output_dir: str | None = None
    env: dict[str, str] | None = None
    skip_setup: bool = False
    pre_commands: list[PreCommand] = field(default_factory=list)

    @property
    def has_entrypoint(self) -> bool:
        return bool(self.script or self.config_path)


@dataclass
class SelectorPolicy:
    prefer: list[str] = field(
        default_factory=lambda: ["data-testid", "role", "aria-label"]
    )
    avoid: list[str] = field(default_factory=lambda: ["class", "xpath"])


@dataclass
class TestsConfig:
    """The ``tests`` section: how test files are organized."""

    __test__ = False  # not a pytest test class

    language: str = "typescript"
    test_dir: str | None = None
    pattern: str | None = None
    default_output_path: str | None = None
    selector_policy: SelectorPolicy = field(default_factory=SelectorPolicy)


@dataclass
class KitweConfig:
    """A fully validated kitwe.yaml."""

    version: int = CONFIG_SCHEMA_VERSION
    project: ProjectSection = field(default_factory=ProjectSection)
    setup: SetupConfig = field(default_factory=SetupConfig)
    run: RunConfig = field(default_factory=RunConfig)
    tests: TestsConfig = field(default_factory=TestsConfig)


@dataclass
class ConfigValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def get_config_path(project_root: Path) -> Path:
    """Return the expected kitwe.yaml location (it may not exist)."""
    return Path(project_root) / CONFIG_FILENAME


def resolve_env_value(value: str | None) -> str | None:
    """Substitute ``$VAR`` / ``${VAR}`` references from the environment.

    Returns:
        The substituted string, or None if value is None or any referenced
        variable is unset.
    """
    if value is None:
        return None

    names = _ENV_VAR_REF_PATTERN.findall(value)
    if not names:
        return value
    if any(name not in os.environ for name in names):
        return None
    return _ENV_VAR_REF_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)


class _Validator:
    """Collects field errors while converting raw YAML data to dataclasses."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def error(self, path: str, message: str) -> None:
        self.errors.append(f"{path}: {message}")

    def section(self, data: dict[str, Any], key: str) -> dict[str, Any]:
        value = data.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            self.error(key, "expected a mapping")
            return {}
        return value

    def optional_str(self, data: dict[str, Any], key: str, path: str) -> str | None:
        value = data.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            self.error(f"{path}.{key}", "expected a string")
            return None
        return value

    def str_list(self, data: dict[str, Any], key: str, path: str) -> list[str] | None:
        value = data.get(key)
        if value is None:
            return None
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            self.error(f"{path}.{key}", "expected a list of strings")
            return None
        return value

    def str_mapping(
        self, data: dict[str, Any], key: str, path: str
    ) -> dict[str, str] | None:
        value = data.get(key)
        if value is None:
            return None
        if not isinstance(value, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in value.items()
        ):
            self.error(f"{path}.{key}", "expected a mapping of strings to strings")
            return None
        return value

    def pre_commands(self, data: dict[str, Any], path: str) -> list[PreCommand]:
        value = data.get("pre_commands")
        if value is None:
            return []
        if not isinstance(value, list):
            self.error(f"{path}.pre_commands", "expected a list")
            return []

        commands = []
        for index, raw in enumerate(value):
            item_path = f"{path}.pre_commands.{index}"
            if not isinstance(raw, dict):
                self.error(item_path, "expected a mapping")
                continue
            argv = self.str_list(raw, "argv", item_path)
            if not argv:
                if argv is not None or "argv" not in raw:
                    self.error(f"{item_path}.argv", "must contain at least one entry")
                continue
            commands.append(
                PreCommand(
                    argv=argv,
                    cwd=self.optional_str(raw, "cwd", item_path),
                    env=self.str_mapping(raw, "env", item_path),
                )
            )
        return commands

    def build(self, data: dict[str, Any]) -> KitweConfig:
        version = data.get("version")
        if version != CONFIG_SCHEMA_VERSION or isinstance(version, bool):
            self.error("version", f"must be {CONFIG_SCHEMA_VERSION}")

        raw_project = self.section(data, "project")
        project = ProjectSection(
            name=self.optional_str(raw_project, "name", "project"),
            env_file=self.optional_str(raw_project, "env_file", "project"),
            base_url=self.optional_str(raw_project, "base_url", "project"),
        )

        setup = SetupConfig(
            pre_commands=self.pre_commands(self.section(data, "setup"), "setup")
        )

        return KitweConfig(
            version=CONFIG_SCHEMA_VERSION,
            project=project,
            setup=setup,
            run=self._run(self.section(data, "run")),
            tests=self._tests(self.section(data, "tests")),
        )

    def _run(self, raw: dict[str, Any]) -> RunConfig:
        run = RunConfig(
            script=self.optional_str(raw, "script", "run"),
            config_path=self.optional_str(raw, "config_path", "run"),
            output_dir=self.optional_str(raw, "output_dir", "run"),
            env=self.str_mapping(raw, "env", "run"),
            args=self.str_list(raw, "args", "run") or [],
            pre_commands=self.pre_commands(raw, "run"),
        )

        runner = raw.get("runner")
        if runner is not None:
            try:
                run.runner = RunnerType(runner)
            except ValueError:
                allowed = ", ".join(r.value for r in RunnerType)
                self.error("run.runner", f"must be one of: {allowed}")

        timeout = raw.get("timeout_seconds")
        if timeout is not None:
            if (
                not isinstance(timeout, int)
                or isinstance(timeout, bool)
                or not 1 <= timeout <= MAX_TIMEOUT_SECONDS
            ):
                self.error(
                    "run.timeout_seconds",
                    f"must be an integer between 1 and {MAX_TIMEOUT_SECONDS}",
                )
            else:
                run.timeout_seconds = timeout

        artifacts_dir = self.optional_str(raw, "artifacts_dir", "run")
        if artifacts_dir:
            run.artifacts_dir = artifacts_dir

        skip_setup = raw.get("skip_setup")
        if skip_setup is not None:
            if not isinstance(skip_setup, bool):
                self.error("run.skip_setup", "expected a boolean")
            else:
                run.skip_setup = skip_setup

        return run

    def _tests(self, raw: dict[str, Any]) -> TestsConfig:
        tests = TestsConfig(
            test_dir=self.optional_str(raw, "test_dir", "tests"),
            pattern=self.optional_str(raw, "pattern", "tests"),
            default_output_path=self.optional_str(raw, "default_output_path", "tests"),
        )

        language = raw.get("language")
        if language is not None:
            if language not in VALID_LANGUAGES:
                self.error("tests.language", f"must be one of: {', '.join(VALID_LANGUAGES)}")
            else:
                tests.language = language

        raw_policy = self.section(raw, "selector_policy")
        prefer = self.str_list(raw_policy, "prefer", "tests.selector_policy")
        avoid = self.str_list(raw_policy, "avoid", "tests.selector_policy")
        if prefer is not None:
            tests.selector_policy.prefer = prefer
        if avoid is not None:
            tests.selector_policy.avoid = avoid

        return tests


def _read_config_data(config_path: Path) -> dict[str, Any]:
    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigLoadError(config_path, f"Cannot read file: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(config_path, f"YAML parse error: {e}") from e

    if data is None:
        raise ConfigLoadError(config_path, "File is empty")
    if not isinstance(data, dict):
        raise ConfigLoadError(config_path, "Root must be a YAML mapping")
    return data


def parse_config(data: dict[str, Any], source: Path | None = None) -> KitweConfig:
    """Validate raw kitwe.yaml data.

    Args:
        data: Mapping as produced by ``yaml.safe_load``
        source: File the data came from, used in error messages

    Raises:
        ConfigValidationError: If any field is invalid
    """
    validator = _Validator()
    config = validator.build(data)
    if validator.errors:
        raise ConfigValidationError(source or Path(CONFIG_FILENAME), validator.errors)
    return config


def load_project_config(project_root: Path) -> KitweConfig | None:
    """Load kitwe.yaml from a project root.

    Returns:
        The validated configuration, or None if the file does not exist.

    Raises:
        ConfigLoadError: If the file exists but cannot be read or parsed
        ConfigValidationError: If the file fails validation
    """
    config_path = get_config_path(project_root)
    if not config_path.exists():
        logger.debug(f"No config file at {config_path}")
        return None

    config = parse_config(_read_config_data(config_path), config_path)
    logger.debug(f"Loaded config from {config_path}")
    return config


def get_project_base_url(config: KitweConfig | None) -> str | None:
    """Return project.base_url with environment references substituted."""
    if config is None or not config.project.base_url:
        return None
    return resolve_env_value(config.project.base_url)


def validate_config_file(project_root: Path) -> ConfigValidationResult:
    """Validate kitwe.yaml and collect errors and warnings instead of raising."""
    config_path = get_config_path(project_root)
    if not config_path.exists():
        return ConfigValidationResult(
            valid=False, errors=[f"Config file not found: {config_path}"]
        )

    try:
        config = parse_config(_read_config_data(config_path), config_path)
    except ConfigLoadError as e:
        return ConfigValidationResult(valid=False, errors=[e.reason])
    except ConfigValidationError as e:
        return ConfigValidationResult(valid=False, errors=list(e.errors))

    warnings = []
    if not config.run.has_entrypoint:
        warnings.append(
            "No run.script or run.config_path set - run command will require CLI flags"
        )
    return ConfigValidationResult(valid=True, warnings=warnings)


CONFIG_TEMPLATE = """\
version: 1

project:
  name: {name}
  # env_file: .env.test
  # base_url: $BASE_URL

# setup:
#   pre_commands:
#     - argv: ["docker", "compose", "up", "-d"]

run:
  script: test:e2e
  timeout_seconds: 1200
  artifacts_dir: artifacts/kitwe
  # pre_commands:
  #   - argv: ["npm", "run", "db:reset"]
  #     cwd: ./server

tests:
  language: typescript
  # test_dir: e2e
  # pattern: "**/*.spec.ts"
"""


def create_config_template(project_root: Path, force: bool = False) -> Path:
    """Write a starter kitwe.yaml into a project.

    Raises:
        FileExistsError: If the file exists and force is False
    """
    config_path = get_config_path(project_root)
    if config_path.exists() and not force:
        raise FileExistsError(
            f"Config file already exists: {config_path}\nUse --force to overwrite."
        )

    config_path.write_text(
        CONFIG_TEMPLATE.format(name=Path(project_root).resolve().name),
        encoding="utf-8",
    )
    logger.info(f"Created config template: {config_path}")
    return config_path

"""
Configuration loader — reads functions.yml into source descriptors.

This is the primary entry point for loading project configuration.
It reads YAML, validates against Pydantic schemas, and returns
typed domain objects.  It also loads the per-source values handed to
user code: ``.runtimeconfig.json`` and the ``.env`` files.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from src.core.models.source import (
    EnvironmentVariables,
    RuntimeConfigValues,
    SourceDescriptor,
)

logger = logging.getLogger(__name__)

# Default config filename
FUNCTIONS_CONFIG_FILE = "functions.yml"

RUNTIME_CONFIG_FILE = ".runtimeconfig.json"
ENV_FILE = ".env"


class ConfigError(Exception):
    """Raised when project configuration is invalid or missing."""


# ── Schema ──────────────────────────────────────────────────────


class CodebaseConfig(BaseModel):
    """One function source directory in functions.yml."""

    source: str = "functions"
    codebase: str = "default"
    runtime: str | None = None
    ignore: list[str] = Field(default_factory=lambda: ["node_modules", ".git"])


class FunctionsConfig(BaseModel):
    """Top-level functions.yml document."""

    project: str
    functions: list[CodebaseConfig] = Field(default_factory=lambda: [CodebaseConfig()])

    @field_validator("functions", mode="before")
    @classmethod
    def _single_codebase(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [value]
        return value

    @field_validator("functions")
    @classmethod
    def _unique_codebases(cls, value: list[CodebaseConfig]) -> list[CodebaseConfig]:
        seen: set[str] = set()
        for entry in value:
            if entry.codebase in seen:
                raise ValueError(f"codebase '{entry.codebase}' is declared more than once")
            seen.add(entry.codebase)
        return value


# ── Loading ─────────────────────────────────────────────────────


def find_project_file(start_dir: Path | None = None) -> Path | None:
    """Search for functions.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to functions.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / FUNCTIONS_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_functions_config(path: Path | None = None) -> FunctionsConfig:
    """Load and validate functions.yml.

    Args:
        path: Explicit path to functions.yml. If None, searches upward.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_project_file()

    if path is None:
        raise ConfigError(
            f"No {FUNCTIONS_CONFIG_FILE} found. "
            "Create one in your project root, or specify --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading functions config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = FunctionsConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid functions configuration: {e}") from e

    logger.info("Loaded project '%s' with %d codebases", config.project, len(config.functions))
    return config


def project_root(config_path: Path) -> Path:
    """Get the project root directory from a config file path."""
    return config_path.parent.resolve()


def source_descriptors(config: FunctionsConfig, config_path: Path) -> list[SourceDescriptor]:
    """One descriptor per codebase, with source paths resolved."""
    root = project_root(config_path)
    return [
        SourceDescriptor(
            project_id=config.project,
            project_dir=root,
            source_dir=(root / entry.source).resolve(),
            runtime=entry.runtime,
        )
        for entry in config.functions
    ]


# ── Per-source values ───────────────────────────────────────────


def load_runtime_config(source_dir: Path) -> RuntimeConfigValues:
    """Read .runtimeconfig.json, or {} when the source has none.

    Raises:
        ConfigError: if the file exists but is not a JSON object.
    """
    path = Path(source_dir) / RUNTIME_CONFIG_FILE
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Invalid {RUNTIME_CONFIG_FILE} at {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file into a key/value dict.

    Handles:
    - KEY=value
    - KEY="value"
    - KEY='value'
    - export KEY=value
    - Comments (#)
    - Empty lines
    """
    result: dict[str, str] = {}
    if not path.is_file():
        return result

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[7:].strip()

        if "=" not in line:
            logger.warning("Ignoring malformed line in %s: %s", path.name, line)
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()

        # Remove surrounding quotes
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]

        result[key] = value

    return result


def load_env_file(source_dir: Path, project_id: str) -> EnvironmentVariables:
    """Merge ``.env`` and ``.env.<project_id>``; the project file wins."""
    source_dir = Path(source_dir)
    env = parse_env_file(source_dir / ENV_FILE)
    env.update(parse_env_file(source_dir / f"{ENV_FILE}.{project_id}"))
    if env:
        logger.debug("Loaded %d environment variables for %s", len(env), source_dir)
    return env

"""Project configuration loading.

Settings come from a key-value file written in Terraform ``tfvars`` syntax
(``key = "value"  # comment``), environment overrides and, for the project
ID only, an interactive prompt. Each setting is resolved by an ordered list
of resolvers; the first one that yields a non-empty value wins.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import click
from dotenv import dotenv_values
from pydantic import ValidationError

from n8n_cloudrun.config.defaults import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    FIELD_FILE_KEYS,
)
from n8n_cloudrun.lib.errors import ConfigError
from n8n_cloudrun.lib.logging_config import get_logger
from n8n_cloudrun.models.project import ProjectConfig

logger = get_logger(__name__)

Resolver = Callable[[], str | None]
Prompt = Callable[[str], str]


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def read_config_file(path: Path) -> dict[str, str]:
    """Read a key-value configuration file.

    Surrounding quotes and trailing ``#`` comments are stripped; keys with an
    empty value are dropped so that they count as unset.

    Args:
        path: Path to the configuration file

    Returns:
        Mapping of keys to non-empty string values

    Raises:
        ConfigError: If the file does not exist or cannot be read
    """
    if not path.is_file():
        raise ConfigError(
            field="config_file",
            message=(
                f"{path} not found. Create it with at least:\n"
                f'  gcp_project_id = "your-project-id"'
            ),
        )

    try:
        raw = dotenv_values(path, interpolate=False)
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(
            field="config_file", message=f"Failed to read {path}: {exc}"
        ) from exc

    values: dict[str, str] = {}
    for key, value in raw.items():
        cleaned = _clean(value)
        if cleaned is not None:
            values[key] = cleaned
    return values


def from_file(values: Mapping[str, str], key: str) -> Resolver:
    """Resolve a setting from parsed configuration file values."""
    return lambda: _clean(values.get(key))


def from_env(var: str, environ: Mapping[str, str] | None = None) -> Resolver:
    """Resolve a setting from an environment variable."""

    def resolve() -> str | None:
        env = os.environ if environ is None else environ
        return _clean(env.get(var))

    return resolve


def from_prompt(
    label: str, interactive: bool, prompt: Prompt | None = None
) -> Resolver:
    """Resolve a setting by asking the operator.

    Yields nothing without prompting when ``interactive`` is false.
    """

    def resolve() -> str | None:
        if not interactive:
            return None
        ask = prompt or _click_prompt
        return _clean(ask(label))

    return resolve


def from_default(value: str | None) -> Resolver:
    """Resolve a setting to a fixed default."""
    return lambda: value


def _click_prompt(label: str) -> str:
    return str(click.prompt(label, default="", show_default=False))


def resolve_setting(name: str, resolvers: Sequence[Resolver]) -> str | None:
    """Return the first non-empty value produced by ``resolvers``.

    Resolvers run in order and later ones are not called once a value is
    found, so a prompt never appears when an earlier source answered.
    """
    for index, resolver in enumerate(resolvers):
        value = resolver()
        if value is not None:
            logger.debug(f"Resolved '{name}' from source #{index + 1}")
            return value
    return None


def load_project_config(
    config_path: str | Path = DEFAULT_CONFIG_FILE,
    *,
    environ: Mapping[str, str] | None = None,
    interactive: bool = False,
    prompt: Prompt | None = None,
) -> ProjectConfig:
    """Load and validate the project configuration.

    Precedence for every setting is configuration file, then the
    ``TF_VAR_<key>`` environment variable, then a default. The project ID has
    no default: it falls back to an interactive prompt, and the run aborts
    when it is still empty.

    Args:
        config_path: Path to the key-value configuration file
        environ: Environment to read overrides from (defaults to os.environ)
        interactive: Whether the operator may be prompted
        prompt: Callable used to ask for a value (defaults to click.prompt)

    Returns:
        Validated ProjectConfig

    Raises:
        ConfigError: If the file is missing, the project ID is empty or a
            value fails validation
    """
    path = Path(config_path)
    values = read_config_file(path)

    data: dict[str, str] = {}
    for field_name, field_info in ProjectConfig.model_fields.items():
        key = FIELD_FILE_KEYS.get(field_name, field_name)
        resolvers = [from_file(values, key), from_env(f"{ENV_PREFIX}{key}", environ)]
        if field_info.is_required():
            resolvers.append(
                from_prompt("Please enter the GCP Project ID", interactive, prompt)
            )
        else:
            resolvers.append(from_default(str(field_info.default)))
        value = resolve_setting(key, resolvers)
        if value is not None:
            data[field_name] = value

    if "project_id" not in data:
        raise ConfigError(
            field="gcp_project_id",
            message=(
                f"gcp_project_id not found in {path} or "
                f"{ENV_PREFIX}gcp_project_id env var. Project ID cannot be empty."
            ),
        )

    known_keys = {
        FIELD_FILE_KEYS.get(name, name) for name in ProjectConfig.model_fields
    }
    unknown = sorted(set(values) - known_keys)
    if unknown:
        logger.debug(f"Ignoring unrecognised keys in {path}: {', '.join(unknown)}")

    try:
        return ProjectConfig(**data)  # type: ignore[arg-type]
    except ValidationError as exc:
        error = exc.errors()[0]
        field_name = ".".join(str(part) for part in error["loc"]) or "config"
        raise ConfigError(
            field=FIELD_FILE_KEYS.get(field_name, field_name),
            message=error["msg"],
        ) from exc

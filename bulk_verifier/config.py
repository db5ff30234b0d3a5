"""Configuration helpers for the bulk verification runner."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

API_KEY_ENV = "REOON_API_KEY"
ENV_PREFIX = "BULK_VERIFIER_"
DEFAULT_BASE_URL = "https://emailverifier.reoon.com/api/v1"


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid JSON: {exc}") from exc
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping")
    return data


@dataclass(frozen=True)
class VerifierSettings:
    """Runtime settings for a verification run."""

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    output_dir: str = "output"
    batch_size: int = 100
    poll_interval: float = 5.0
    max_wait: float = 3600.0
    probe_timeout: float = 30.0
    request_timeout: float = 30.0
    valid_filename: str = "valid.json"
    invalid_filename: str = "invalid.json"
    checkpoint_filename: str = "task-info.json"

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir)

    @property
    def valid_path(self) -> Path:
        return self.output_path / self.valid_filename

    @property
    def invalid_path(self) -> Path:
        return self.output_path / self.invalid_filename

    @property
    def checkpoint_path(self) -> Path:
        return self.output_path / self.checkpoint_filename

    def with_overrides(self, overrides: Mapping[str, Any]) -> "VerifierSettings":
        """Return a copy with ``overrides`` applied, ignoring ``None`` values."""

        known = {item.name: item for item in fields(self)}
        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in known:
                raise ConfigurationError(f"Unknown setting '{key}'")
            changes[key] = _coerce(key, value, known[key].type)
        return replace(self, **changes).validated()

    def validated(self) -> "VerifierSettings":
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.poll_interval < 0:
            raise ConfigurationError("poll_interval cannot be negative")
        for name in ("max_wait", "probe_timeout", "request_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        return self

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(
                f"No API key configured. Set {API_KEY_ENV} in the environment or a .env file"
            )
        return self.api_key


def _coerce(name: str, value: Any, annotation: Any) -> Any:
    target = str(annotation)
    try:
        if target == "int":
            return int(value)
        if target == "float":
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Setting '{name}' has an invalid value {value!r}") from exc
    return str(value)


def settings_from_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect settings from ``REOON_API_KEY`` and ``BULK_VERIFIER_*`` variables."""

    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    if environ.get(API_KEY_ENV):
        overrides["api_key"] = environ[API_KEY_ENV]
    for item in fields(VerifierSettings):
        value = environ.get(f"{ENV_PREFIX}{item.name.upper()}")
        if value:
            overrides[item.name] = value
    return overrides


def resolve_settings(
    config_path: str | Path | None = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
    env_file: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> VerifierSettings:
    """Merge defaults, config file, environment and explicit overrides, in that order."""

    if environ is None:
        # Values already present in the environment win over the .env file.
        load_dotenv(dotenv_path=env_file, override=False)

    settings = VerifierSettings()
    if config_path is not None:
        data = load_configuration(config_path)
        section = data.get("verifier", data)
        if not isinstance(section, dict):
            raise ConfigurationError("The 'verifier' configuration section must be a mapping")
        settings = settings.with_overrides(section)
        LOGGER.debug("Loaded settings from %s", config_path)

    settings = settings.with_overrides(settings_from_environment(environ))
    if overrides:
        settings = settings.with_overrides(overrides)
    return settings


__all__ = [
    "API_KEY_ENV",
    "ConfigurationError",
    "VerifierSettings",
    "load_configuration",
    "resolve_settings",
    "settings_from_environment",
]

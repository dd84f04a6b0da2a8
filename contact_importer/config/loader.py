from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import ImporterSettings

"""Settings loader.

Responsibilities:
- Load a YAML settings file (e.g. config/importer.yml)
- Validate keys and value ranges against the packaged JSON schema
- Apply defaults for missing keys
- Apply environment overrides (CONTACT_IMPORTER_*)
"""

__all__ = [
    "SCHEMA_PATH",
    "ConfigError",
    "load_settings",
    "apply_env_overrides",
]

SCHEMA_PATH = Path(__file__).parent / "settings_schema.json"

ENV_COUNTRY_CODE = "CONTACT_IMPORTER_COUNTRY_CODE"
ENV_BATCH_SIZE = "CONTACT_IMPORTER_BATCH_SIZE"


class ConfigError(Exception):
    pass


def _validate_settings_schema(data: dict[str, Any]) -> None:
    """Validate settings data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            settings data violates the schema (unknown keys, wrong types,
            out-of-range values).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"settings schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"settings validation failed: {e.message}") from e


def load_settings(path: Path | None = None) -> ImporterSettings:
    """Load settings from YAML. ``path=None`` returns the defaults."""
    if path is None:
        return ImporterSettings()
    if not path.exists():
        raise ConfigError(f"settings file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"settings root must be a mapping, got {type(data).__name__}")

    _validate_settings_schema(data)

    settings = ImporterSettings.from_dict(data)
    if settings.phone_min_digits > settings.phone_max_digits:
        raise ConfigError(
            f"phone_min_digits ({settings.phone_min_digits}) exceeds "
            f"phone_max_digits ({settings.phone_max_digits})"
        )
    return settings


def apply_env_overrides(settings: ImporterSettings) -> ImporterSettings:
    """Overlay CONTACT_IMPORTER_* environment variables (set directly or via .env)."""
    country_code = os.getenv(ENV_COUNTRY_CODE) or None
    batch_raw = os.getenv(ENV_BATCH_SIZE)
    batch_size = None
    if batch_raw:
        try:
            batch_size = int(batch_raw)
        except ValueError as e:
            raise ConfigError(f"{ENV_BATCH_SIZE} must be an integer: {batch_raw!r}") from e
        if batch_size < 1:
            raise ConfigError(f"{ENV_BATCH_SIZE} must be positive: {batch_size}")
    return settings.with_overrides(default_country_code=country_code, batch_size=batch_size)

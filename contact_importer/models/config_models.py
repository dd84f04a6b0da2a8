from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from .contact import DuplicateAction

"""Settings dataclass for the contact importer.

The settings record is owned by the host's storage collaborator; this module
only defines its shape, its defaults and its (de)serialization. Loading from
YAML lives in contact_importer/config/loader.py.
"""

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_COUNTRY_CODE",
    "MAX_FILE_ROWS",
    "HISTORY_LIMIT",
    "ImporterSettings",
]

DEFAULT_BATCH_SIZE = 100
DEFAULT_COUNTRY_CODE = "+91"
MAX_FILE_ROWS = 10_000
HISTORY_LIMIT = 50


@dataclass(frozen=True)
class ImporterSettings:
    """Import / export tuning knobs.

    Unknown keys are ignored on load so that an older core can read a
    settings record written by a newer host.
    """
    batch_size: int = DEFAULT_BATCH_SIZE
    default_duplicate_action: DuplicateAction = DuplicateAction.SKIP
    default_country_code: str = DEFAULT_COUNTRY_CODE
    lookup_key_length: int = 10
    phone_min_digits: int = 10
    phone_max_digits: int = 15
    max_file_rows: int = MAX_FILE_ROWS
    history_limit: int = HISTORY_LIMIT
    backup_dir: str = "./backups"
    logs_dir: str = "./logs"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["default_duplicate_action"] = self.default_duplicate_action.value
        return data

    @staticmethod
    def from_dict(data: dict[str, Any] | None) -> ImporterSettings:
        if not data:
            return ImporterSettings()
        known = {f.name for f in fields(ImporterSettings)}
        values = {k: v for k, v in data.items() if k in known}
        if "default_duplicate_action" in values:
            values["default_duplicate_action"] = DuplicateAction(values["default_duplicate_action"])
        return ImporterSettings(**values)

    def with_overrides(self, **overrides: Any) -> ImporterSettings:
        """Return a copy with non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

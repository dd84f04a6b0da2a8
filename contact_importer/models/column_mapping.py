from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any

"""ColumnMapping model: semantic contact field -> spreadsheet header."""

__all__ = [
    "MAPPING_FIELDS",
    "REQUIRED_FIELDS",
    "ColumnMapping",
]

MAPPING_FIELDS = ("name", "phone", "email", "company", "notes")
REQUIRED_FIELDS = ("name", "phone")


@dataclass
class ColumnMapping:
    """Header chosen for each semantic field (None = not mapped).

    An import may only start once the mapping is complete, i.e. both
    ``name`` and ``phone`` are mapped.
    """
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    company: str | None = None
    notes: str | None = None

    @property
    def is_complete(self) -> bool:
        return all(getattr(self, f) is not None for f in REQUIRED_FIELDS)

    def mapped_headers(self) -> set[str]:
        return {v for v in asdict(self).values() if v is not None}

    def to_dict(self) -> dict[str, str | None]:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict[str, Any] | None) -> ColumnMapping:
        """Rebuild from a persisted dict, ignoring unknown keys."""
        if not data:
            return ColumnMapping()
        known = {f.name for f in fields(ColumnMapping)}
        values = {}
        for key, value in data.items():
            if key in known:
                values[key] = str(value) if value is not None else None
        return ColumnMapping(**values)

"""Domain models for the contact spreadsheet importer.

This package contains the domain model classes shared by the parsing,
validation, duplicate detection, bulk import and export services.
"""

from .column_mapping import MAPPING_FIELDS, REQUIRED_FIELDS, ColumnMapping
from .config_models import ImporterSettings
from .contact import ContactCandidate, DeviceContact, DuplicateAction
from .import_progress import ImportProgress, ImportState, RowError
from .import_record import ImportRecord

__all__ = [
    # Configuration models
    "ImporterSettings",
    "ColumnMapping",
    "MAPPING_FIELDS",
    "REQUIRED_FIELDS",
    # Contact models
    "ContactCandidate",
    "DeviceContact",
    "DuplicateAction",
    # Import run models
    "ImportProgress",
    "ImportState",
    "RowError",
    "ImportRecord",
]

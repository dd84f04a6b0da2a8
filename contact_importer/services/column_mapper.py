from __future__ import annotations

from collections.abc import Sequence

from ..models.column_mapping import MAPPING_FIELDS, ColumnMapping

"""Column auto-detection: spreadsheet headers -> semantic contact fields.

Matching is alias based. Aliases are listed per field in priority order and
include Tamil, Hindi, Telugu and Malayalam headers. A header may be claimed
by only one field; fields are processed in MAPPING_FIELDS order and the first
claim wins, so ``name`` gets first pick, then ``phone`` and so on.
"""

__all__ = [
    "HEADER_ALIASES",
    "auto_detect_columns",
    "is_complete",
]

HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "name": (
        "name", "full name", "fullname", "contact name", "contactname",
        "first name", "firstname", "person", "display name",
        "பெயர்", "नाम", "పేరు", "പേര്",
    ),
    "phone": (
        "phone", "phone number", "phonenumber", "mobile", "mobile number",
        "cell", "cell phone", "telephone", "tel", "number",
        "contact number", "phone no", "mobile no", "ph no",
        "தொலைபேசி", "फोन", "मोबाइल", "ఫోన్", "ഫോൺ",
    ),
    "email": (
        "email", "e-mail", "email address", "emailaddress", "mail",
        "மின்னஞ்சல்", "ईमेल", "ఇమెయిల్", "ഇമെയിൽ",
    ),
    "company": (
        "company", "organization", "organisation", "org", "firm",
        "business", "நிறுவனம்", "कंपनी", "కంపెనీ", "കമ്പനി",
    ),
    "notes": (
        "notes", "note", "comment", "comments", "description", "remarks",
        "குறிப்புகள்", "टिप्पणी", "గమనికలు", "കുറിപ്പുകൾ",
    ),
}


def _matches(header: str, alias: str) -> bool:
    if not header:
        return False
    return header == alias or alias in header or header in alias


def auto_detect_columns(headers: Sequence[str]) -> ColumnMapping:
    """Guess a ColumnMapping from header names.

    For each field, aliases are tried in priority order; for each alias the
    headers are scanned left to right for an exact match or substring
    containment in either direction. The first unclaimed match is taken.
    Fields without a match stay None.
    """
    normalized = [str(h).strip().lower() for h in headers]
    claimed: set[int] = set()
    mapping = ColumnMapping()

    for field_name in MAPPING_FIELDS:
        found: int | None = None
        for alias in HEADER_ALIASES[field_name]:
            for idx, header in enumerate(normalized):
                if idx not in claimed and _matches(header, alias):
                    found = idx
                    break
            if found is not None:
                break
        if found is not None:
            claimed.add(found)
            setattr(mapping, field_name, headers[found])

    return mapping


def is_complete(mapping: ColumnMapping) -> bool:
    """True iff both name and phone are mapped."""
    return mapping.is_complete

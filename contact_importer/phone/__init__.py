"""Phone number utilities."""

from .normalizer import (
    LOOKUP_KEY_LENGTH,
    PHONE_MAX_DIGITS,
    PHONE_MIN_DIGITS,
    CheckResult,
    apply_country_code,
    format_phone_for_display,
    lookup_key,
    normalize_phone,
    validate_phone,
)

__all__ = [
    "LOOKUP_KEY_LENGTH",
    "PHONE_MAX_DIGITS",
    "PHONE_MIN_DIGITS",
    "CheckResult",
    "apply_country_code",
    "format_phone_for_display",
    "lookup_key",
    "normalize_phone",
    "validate_phone",
]

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from numbers import Integral, Real

"""Phone number normalization and validation.

Canonical form: digits only, with the leading ``+`` kept when the original
value had one. Handles spreadsheet cells that arrive as numbers
(``9876543210`` / ``919876543210.0``) without ever going through scientific
notation.

Examples:
    "+91 98765-43210"  -> "+919876543210"
    "(044) 2345-6789"  -> "04423456789"
    9876543210 (int)   -> "9876543210"
"""

__all__ = [
    "PHONE_MIN_DIGITS",
    "PHONE_MAX_DIGITS",
    "LOOKUP_KEY_LENGTH",
    "CheckResult",
    "number_to_digits",
    "normalize_phone",
    "validate_phone",
    "apply_country_code",
    "lookup_key",
    "format_phone_for_display",
]

PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15
# 10 = national subscriber length of the default numbering plan (+91)
LOOKUP_KEY_LENGTH = 10

_NON_DIGIT_RE = re.compile(r"\D")
_LETTER_RE = re.compile(r"[a-zA-Z]")


@dataclass(frozen=True)
class CheckResult:
    valid: bool
    reason: str | None = None


def number_to_digits(value: Real) -> str:
    """Render a numeric cell value as an integer string.

    ``str(9191500000000.0)`` would give ``'9191500000000.0'`` and very large
    floats switch to ``'9.1915e+12'``; Decimal keeps every digit.
    """
    if isinstance(value, Integral):
        return str(int(value))
    try:
        dec = Decimal(str(value))
    except InvalidOperation:
        return str(value)
    if not dec.is_finite():
        return ""
    if dec == dec.to_integral_value():
        return str(int(dec))
    return format(dec.normalize(), "f")


def _to_text(raw: object) -> str:
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, Real):
        return number_to_digits(raw)
    return str(raw).strip()


def normalize_phone(raw: object) -> str:
    """Normalize a phone value to digits with an optional leading ``+``."""
    text = _to_text(raw)
    if not text:
        return ""
    has_plus = text.startswith("+")
    digits = _NON_DIGIT_RE.sub("", text)
    if not digits:
        return ""
    # 00 国際プレフィックス (例: 0091...) は + なしの場合のみ除去
    if not has_plus and digits.startswith("00") and len(digits) > 12:
        digits = digits[2:]
    return f"+{digits}" if has_plus else digits


def validate_phone(
    raw: object,
    *,
    min_digits: int = PHONE_MIN_DIGITS,
    max_digits: int = PHONE_MAX_DIGITS,
) -> CheckResult:
    """Validate a phone value. Bounds count digits only (``+`` excluded)."""
    text = _to_text(raw)
    if not text:
        return CheckResult(False, "Phone number is required")
    if _LETTER_RE.search(text):
        return CheckResult(False, "Phone number contains letters")

    normalized = normalize_phone(text)
    if not normalized:
        return CheckResult(False, "Phone number contains no digits")

    digits = normalized.lstrip("+")
    count = len(digits)
    if count < min_digits:
        return CheckResult(False, f"Phone must have at least {min_digits} digits (has {count})")
    if count > max_digits:
        return CheckResult(False, f"Phone must have at most {max_digits} digits (has {count})")
    if set(digits) == {"0"}:
        return CheckResult(False, "Phone number cannot be all zeros")
    return CheckResult(True)


def apply_country_code(raw: object, country_code: str) -> str:
    """Prefix a country code when the number does not carry one yet.

    - already ``+``-prefixed: returned unchanged
    - exactly 10 digits: ``country_code`` prepended verbatim
    - digits already starting with the code followed by 10 digits: ``+`` added
    - anything else: ``+`` added to the raw digits (best effort)
    """
    normalized = normalize_phone(raw)
    if not normalized:
        return ""
    if normalized.startswith("+"):
        return normalized

    code_digits = _NON_DIGIT_RE.sub("", country_code or "")
    if len(normalized) == 10:
        return f"{country_code}{normalized}"
    if code_digits and normalized.startswith(code_digits):
        if len(normalized) - len(code_digits) == 10:
            return f"+{normalized}"
    return f"+{normalized}"


def lookup_key(raw: object, *, key_length: int = LOOKUP_KEY_LENGTH) -> str:
    """Duplicate-matching key: the trailing ``key_length`` digits.

    Collapses ``+919876543210``, ``919876543210`` and ``9876543210`` onto one
    key. Shorter numbers are used whole.
    """
    digits = normalize_phone(raw).lstrip("+")
    if len(digits) >= key_length:
        return digits[-key_length:]
    return digits


def format_phone_for_display(raw: object) -> str:
    """E.g. ``+919876543210`` -> ``+91 98765 43210``."""
    normalized = normalize_phone(raw)
    if not normalized:
        return _to_text(raw)
    digits = normalized.lstrip("+")
    if len(digits) == 12 and digits.startswith("91"):
        return f"+91 {digits[2:7]} {digits[7:]}"
    if len(digits) == 10:
        return f"{digits[:5]} {digits[5:]}"
    return normalized

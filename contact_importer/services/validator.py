from __future__ import annotations

import itertools
import re
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from numbers import Real
from typing import Any

from ..models.column_mapping import ColumnMapping
from ..models.contact import ContactCandidate
from ..phone.normalizer import (
    PHONE_MAX_DIGITS,
    PHONE_MIN_DIGITS,
    CheckResult,
    normalize_phone,
    number_to_digits,
    validate_phone,
)

"""Row validation: raw spreadsheet row + ColumnMapping -> ContactCandidate.

All failure reasons of a row are collected (not just the first), in the
order name, phone, email. A row with any failure is marked invalid and is
never written to the device.
"""

__all__ = [
    "NAME_MAX_LENGTH",
    "EMAIL_MAX_LENGTH",
    "sanitize_string",
    "sanitize_phone",
    "validate_name",
    "validate_email",
    "RowValidator",
    "ValiditySummary",
    "summarize_validity",
]

NAME_MAX_LENGTH = 200
EMAIL_MAX_LENGTH = 254

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DIGITS_ONLY_RE = re.compile(r"^\d+$")


def sanitize_string(value: Any) -> str:
    """Trim, drop ASCII control characters and collapse whitespace runs."""
    if value is None:
        return ""
    if isinstance(value, Real) and not isinstance(value, bool):
        text = number_to_digits(value)
    else:
        text = str(value)
    # \t \n \r は空白として畳む
    text = _CONTROL_CHARS_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def sanitize_phone(value: Any) -> str:
    """Like sanitize_string, but numeric cells keep every digit."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, Real):
        return number_to_digits(value)
    return sanitize_string(value)


def validate_name(name: str) -> CheckResult:
    sanitized = sanitize_string(name)
    if not sanitized:
        return CheckResult(False, "Name is required")
    if len(sanitized) > NAME_MAX_LENGTH:
        return CheckResult(False, f"Name is too long (max {NAME_MAX_LENGTH} chars)")
    if _DIGITS_ONLY_RE.match(sanitized):
        return CheckResult(False, "Name cannot be numbers only")
    return CheckResult(True)


def validate_email(email: str | None) -> CheckResult:
    """Email is optional: empty is valid."""
    trimmed = (email or "").strip()
    if not trimmed:
        return CheckResult(True)
    if not _EMAIL_RE.match(trimmed):
        return CheckResult(False, "Invalid email format")
    if len(trimmed) > EMAIL_MAX_LENGTH:
        return CheckResult(False, "Email address is too long")
    return CheckResult(True)


class RowValidator:
    """Turns raw rows into ContactCandidates.

    Each instance owns its id sequence, so ids are unique per validator even
    for calls within the same millisecond. Pass ``sequence``/``clock`` for
    deterministic ids in tests.
    """

    def __init__(
        self,
        *,
        min_digits: int = PHONE_MIN_DIGITS,
        max_digits: int = PHONE_MAX_DIGITS,
        sequence: Iterator[int] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.min_digits = min_digits
        self.max_digits = max_digits
        self._sequence = sequence if sequence is not None else itertools.count(1)
        self._clock = clock

    def next_id(self) -> str:
        millis = int(self._clock() * 1000)
        return f"row_{millis}_{next(self._sequence)}"

    def validate_phone(self, phone: str) -> CheckResult:
        return validate_phone(phone, min_digits=self.min_digits, max_digits=self.max_digits)

    def to_candidate(self, raw: dict[str, Any], mapping: ColumnMapping) -> ContactCandidate:
        def cell(header: str | None) -> Any:
            return raw.get(header) if header is not None else None

        name = sanitize_string(cell(mapping.name))
        phone = sanitize_phone(cell(mapping.phone))
        email = sanitize_string(cell(mapping.email))
        company = sanitize_string(cell(mapping.company))
        notes = sanitize_string(cell(mapping.notes))

        errors: list[str] = []
        for check in (validate_name(name), self.validate_phone(phone)):
            if not check.valid:
                errors.append(check.reason or "invalid")
        if email:
            check = validate_email(email)
            if not check.valid:
                errors.append(check.reason or "invalid")

        return ContactCandidate(
            id=self.next_id(),
            name=name,
            phone=normalize_phone(phone),
            email=email or None,
            company=company or None,
            notes=notes or None,
            is_valid=not errors,
            validation_errors=errors,
        )

    def to_candidates(
        self, rows: Iterable[dict[str, Any]], mapping: ColumnMapping
    ) -> list[ContactCandidate]:
        return [self.to_candidate(raw, mapping) for raw in rows]


@dataclass(frozen=True)
class ValiditySummary:
    valid: int
    invalid: int
    total: int


def summarize_validity(candidates: Iterable[ContactCandidate]) -> ValiditySummary:
    valid = invalid = 0
    for c in candidates:
        if c.is_valid:
            valid += 1
        else:
            invalid += 1
    return ValiditySummary(valid=valid, invalid=invalid, total=valid + invalid)

from __future__ import annotations

import re
from functools import cmp_to_key

"""Apartment label helpers.

Labels look like ``"Kwiatowa 5/3"`` (address / unit) but free text is common,
so every helper tolerates missing parts.
"""

__all__ = [
    "MISSING_ADDRESS",
    "MISSING_UNIT",
    "split_apartment",
    "extract_address",
    "compare_apartments",
    "apartment_sort_key",
]

MISSING_ADDRESS = "Brak adresu"
MISSING_UNIT = "Brak lokalu"

_LEADING_NUMBER_RE = re.compile(r"^(\d+)(.*)$")


def split_apartment(label: str) -> tuple[str, str]:
    """Split a label into (address, unit) on the first ``/``."""
    trimmed = (label or "").strip()
    if not trimmed:
        return MISSING_ADDRESS, MISSING_UNIT
    if "/" not in trimmed:
        return trimmed, trimmed
    address, unit = (part.strip() for part in trimmed.split("/", 1))
    return address or trimmed, unit or trimmed


def extract_address(label: str) -> str:
    return split_apartment(label)[0]


def _cmp(a: object, b: object) -> int:
    return (a > b) - (a < b)


def compare_apartments(left: str, right: str) -> int:
    """Numeric-aware comparison: ``"2A" < "10A"``.

    When both labels start with digits the leading integers are compared
    first and the remainders break ties; otherwise plain string order.
    """
    left_match = _LEADING_NUMBER_RE.match(left)
    right_match = _LEADING_NUMBER_RE.match(right)
    if left_match and right_match:
        by_number = _cmp(int(left_match.group(1)), int(right_match.group(1)))
        if by_number:
            return by_number
        return _cmp(left_match.group(2), right_match.group(2))
    return _cmp(left, right)


apartment_sort_key = cmp_to_key(compare_apartments)

from __future__ import annotations

from dataclasses import dataclass

"""DetailedRow model: one (apartment, period, metric) after validation.

Derived from a ParsedRecord by the filter & validation engine; never stored.
All numeric fields are None when the underlying raw text did not parse, and
the validity flags are None when the check could not be performed.
"""

__all__ = [
    "DetailedRow",
]


@dataclass(frozen=True)
class DetailedRow:
    address: str
    apartment: str  # unit part of the label
    apartment_full: str  # raw label as found in the workbook
    date_from: str  # normalized when possible, raw (trimmed) otherwise
    date_to: str
    period_key: str  # "date_from|date_to"
    metric: str
    start_value: float | None
    end_value: float | None
    consumption_reported: float | None
    consumption_computed: float | None
    consumption_difference: float | None
    consumption_is_valid: bool | None
    rate: float | None
    reported_total: float | None
    computed_total: float | None
    total_difference: float | None
    total_is_valid: bool | None

    @property
    def has_validation_issue(self) -> bool:
        return self.consumption_is_valid is False or self.total_is_valid is False

    @property
    def has_value_issue(self) -> bool:
        """Non-positive usage is suspicious even when the arithmetic checks out."""
        return self.consumption_reported is not None and self.consumption_reported <= 0

    @property
    def needs_attention(self) -> bool:
        return self.has_validation_issue or self.has_value_issue

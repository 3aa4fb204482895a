from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

"""Request models shared by summary, pivot export and year-over-year export.

The same shape serves all three operations; fields that an operation does not
use are simply ignored by it (e.g. ``comparison_month`` outside the
year-over-year export).
"""

__all__ = [
    "RequestedBy",
    "SummaryRequest",
]

DEFAULT_COMPARISON_MONTH = 12

# camelCase payload keys -> dataclass field names
_PAYLOAD_KEYS = {
    "sessionId": "session_id",
    "uploadId": "session_id",
    "apartment": "apartment",
    "dateFrom": "date_from",
    "dateTo": "date_to",
    "metrics": "metrics",
    "includeValidation": "include_validation",
    "includeOnlyMismatches": "include_only_mismatches",
    "exportColumns": "export_columns",
    "includeYearlySummary": "include_yearly_summary",
    "comparisonMonth": "comparison_month",
}


@dataclass(frozen=True)
class RequestedBy:
    """Opaque identity handed over by the identity provider."""
    user_id: str
    email: str | None = None


@dataclass(frozen=True)
class SummaryRequest:
    session_id: str
    apartment: str | None = None  # exact match on the full raw label
    date_from: str | None = None  # inclusive
    date_to: str | None = None  # inclusive
    metrics: tuple[str, ...] = ()  # empty = all available metrics
    include_validation: bool = True
    include_only_mismatches: bool = False
    export_columns: tuple[str, ...] = ()  # empty = all export columns
    include_yearly_summary: bool = True
    comparison_month: int = DEFAULT_COMPARISON_MONTH

    def __post_init__(self) -> None:
        if not self.session_id:
            raise ValueError("session_id is required")
        if not 1 <= int(self.comparison_month) <= 12:
            raise ValueError(f"comparison_month must be within 1-12, got {self.comparison_month}")
        # Lists coming from JSON payloads are frozen to tuples
        object.__setattr__(self, "metrics", tuple(self.metrics or ()))
        object.__setattr__(self, "export_columns", tuple(self.export_columns or ()))

    @property
    def label(self) -> str:
        """Short session prefix used in log lines and export file names."""
        return self.session_id[:8]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SummaryRequest:
        """Build a request from a camelCase or snake_case payload dict."""
        kwargs: dict[str, Any] = {}
        field_names = set(_PAYLOAD_KEYS.values())
        for key, value in payload.items():
            name = _PAYLOAD_KEYS.get(key, key)
            if name not in field_names:
                raise ValueError(f"unknown request field: {key}")
            if value is None:
                continue
            kwargs[name] = value
        for name in ("metrics", "export_columns"):
            if name in kwargs:
                value = kwargs[name]
                kwargs[name] = (value,) if isinstance(value, str) else tuple(str(v) for v in value)
        return cls(**kwargs)

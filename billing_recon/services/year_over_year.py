from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ..excel.values import normalize_date, round_to_2, within_tolerance
from ..models.detailed_row import DetailedRow
from ..models.export_payload import StyleTag, YearOverYearRow
from .apartments import apartment_sort_key
from .filtering import VALIDATION_TOLERANCE

"""Year-over-year consumption comparison.

Annual consumption of a (address, apartment, metric) group in year Y is the
last end reading minus the first start reading of the periods ending in Y.
Each year Y that has Y-1 next to it produces one comparison row. Data quality
findings (missing closing month, broken reading continuity, annual figure
not matching the sum of periods) are reported as notes, never as errors.
"""

__all__ = [
    "TREND_UP",
    "TREND_DOWN",
    "TREND_FLAT",
    "YEAR_OVER_YEAR_HEADERS",
    "AnnualConsumption",
    "annual_consumption_by_year",
    "build_year_over_year_rows",
    "resolve_difference_style",
]

logger = logging.getLogger(__name__)

TREND_UP = "Wzrost"
TREND_DOWN = "Spadek"
TREND_FLAT = "Bez zmian"

YEAR_OVER_YEAR_HEADERS = (
    "Adres",
    "Lokal",
    "Metryka",
    "Rok bazowy",
    "Zuzycie bazowe",
    "Rok porownawczy",
    "Zuzycie porownawcze",
    "Roznica",
    "Zmiana %",
    "Trend",
    "Uwagi",
)


@dataclass(frozen=True)
class _PeriodReading:
    start: float
    end: float
    date_from: str  # ISO
    date_to: str  # ISO

    @property
    def end_month(self) -> int:
        return int(self.date_to[5:7])


@dataclass(frozen=True)
class AnnualConsumption:
    year: int
    consumption: float
    note: str | None = None


def _annual_consumption(
    year: int, periods: Sequence[_PeriodReading], comparison_month: int, tolerance: float
) -> AnnualConsumption:
    ordered = sorted(periods, key=lambda p: (p.date_from, p.date_to))
    first, last = ordered[0], ordered[-1]
    annual = round_to_2(last.end - first.start)
    summed = round_to_2(sum(p.end - p.start for p in ordered))

    broken_continuity = any(
        not within_tolerance(prev.end - cur.start, tolerance) for prev, cur in zip(ordered, ordered[1:])
    )

    notes: list[str] = []
    if last.end_month != comparison_month:
        notes.append(f"Rok {year}: brak zamkniecia w miesiacu {comparison_month}.")
    if broken_continuity:
        notes.append(f"Rok {year}: niespojna ciaglosc odczytow.")
    if not within_tolerance(summed - annual, tolerance):
        notes.append(f"Rok {year}: suma okresow rozni sie od rocznej roznicy odczytow.")

    return AnnualConsumption(year=year, consumption=annual, note=" ".join(notes) or None)


def annual_consumption_by_year(
    rows: Sequence[DetailedRow],
    comparison_month: int = 12,
    tolerance: float = VALIDATION_TOLERANCE,
) -> dict[tuple[str, str, str], dict[int, AnnualConsumption]]:
    """Annual consumption per group and year (year of the period end date).

    Rows missing a reading or an interpretable date are skipped.
    """
    grouped: dict[tuple[str, str, str], dict[int, list[_PeriodReading]]] = {}
    for row in rows:
        if row.start_value is None or row.end_value is None:
            continue
        date_from = normalize_date(row.date_from)
        date_to = normalize_date(row.date_to)
        if date_from is None or date_to is None:
            continue
        year = int(date_to[:4])
        by_year = grouped.setdefault((row.address, row.apartment, row.metric), {})
        by_year.setdefault(year, []).append(
            _PeriodReading(start=row.start_value, end=row.end_value, date_from=date_from, date_to=date_to)
        )

    return {
        key: {
            year: _annual_consumption(year, periods, comparison_month, tolerance)
            for year, periods in sorted(by_year.items())
        }
        for key, by_year in grouped.items()
    }


def _trend(difference: float, tolerance: float) -> str:
    if within_tolerance(difference, tolerance):
        return TREND_FLAT
    return TREND_UP if difference > 0 else TREND_DOWN


def _compare(
    key: tuple[str, str, str], base: AnnualConsumption, compare: AnnualConsumption, tolerance: float
) -> YearOverYearRow:
    difference = round_to_2(compare.consumption - base.consumption)
    if within_tolerance(base.consumption, tolerance):
        change_percent = None
    else:
        change_percent = round_to_2(difference / base.consumption * 100)

    notes: list[str] = []
    if base.consumption < 0 or compare.consumption < 0:
        notes.append("Sprawdz odczyty: ujemne zuzycie roczne.")
    if change_percent is None:
        notes.append("Brak procentu: zuzycie bazowe bliskie zera.")
    notes.extend(note for note in (base.note, compare.note) if note)

    address, apartment, metric = key
    return YearOverYearRow(
        address=address,
        apartment=apartment,
        metric=metric,
        base_year=base.year,
        compare_year=compare.year,
        base_consumption=base.consumption,
        compare_consumption=compare.consumption,
        difference=difference,
        change_percent=change_percent,
        trend=_trend(difference, tolerance),
        note=" ".join(notes) or None,
    )


def build_year_over_year_rows(
    rows: Sequence[DetailedRow],
    comparison_month: int = 12,
    tolerance: float = VALIDATION_TOLERANCE,
) -> tuple[YearOverYearRow, ...]:
    result: list[YearOverYearRow] = []
    for key, by_year in annual_consumption_by_year(rows, comparison_month, tolerance).items():
        if len(by_year) < 2:
            continue
        for year, current in by_year.items():
            previous = by_year.get(year - 1)
            if previous is not None:
                result.append(_compare(key, previous, current, tolerance))

    result.sort(key=lambda r: (r.address, apartment_sort_key(r.apartment), r.metric, r.compare_year))
    logger.debug("year over year rows=%d comparison_month=%d", len(result), comparison_month)
    return tuple(result)


def resolve_difference_style(difference: float, tolerance: float = VALIDATION_TOLERANCE) -> StyleTag:
    """Unchanged is ZERO, a drop is OK and a rise is WARNING."""
    if within_tolerance(difference, tolerance):
        return StyleTag.ZERO
    if difference < 0:
        return StyleTag.OK
    return StyleTag.WARNING

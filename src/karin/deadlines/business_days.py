"""Business-day and calendar-day arithmetic for statutory deadlines.

Chilean labor-law deadlines are counted in *administrative* business days
(Monday to Friday) or, for labor/judicial terms, *working* days (Monday to
Saturday). Holidays are never business days. Holidays come from a YAML file
with a national list and a regional list tagged with region codes.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any

import yaml

from karin.core.types import BusinessDayType

logger = logging.getLogger(__name__)

_DEFAULT_HOLIDAYS_PATH = Path(__file__).resolve().parents[3] / "config" / "holidays.yml"

# Last weekday (Monday=0) that counts as a business day for each calendar
_LAST_WORKING_WEEKDAY: dict[BusinessDayType, int] = {
    BusinessDayType.ADMINISTRATIVE: 4,
    BusinessDayType.WORKING: 5,
}


def _parse_date(value: Any) -> date:
    # YAML parses unquoted ISO dates already; quoted ones arrive as strings
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class HolidayCalendar:
    """National holidays plus region-specific holidays."""

    def __init__(
        self,
        national: set[date] | None = None,
        regional: dict[date, set[str]] | None = None,
    ) -> None:
        self._national: set[date] = set(national or ())
        self._regional: dict[date, set[str]] = {
            day: set(regions) for day, regions in (regional or {}).items()
        }

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> HolidayCalendar:
        """Load a calendar from a holidays YAML file."""
        holidays_path = Path(path) if path else _DEFAULT_HOLIDAYS_PATH
        with open(holidays_path) as fh:
            data = yaml.safe_load(fh) or {}

        national: set[date] = set()
        for entry in data.get("national", []):
            try:
                national.add(_parse_date(entry["date"]))
            except (KeyError, ValueError) as exc:
                raise ValueError(
                    f"Invalid national holiday entry in {holidays_path}: {entry!r}"
                ) from exc

        regional: dict[date, set[str]] = {}
        for entry in data.get("regional", []):
            try:
                day = _parse_date(entry["date"])
            except (KeyError, ValueError) as exc:
                raise ValueError(
                    f"Invalid regional holiday entry in {holidays_path}: {entry!r}"
                ) from exc
            regions = entry.get("regions") or []
            if not regions:
                logger.warning("Regional holiday %s has no regions; ignoring", day)
                continue
            regional.setdefault(day, set()).update(str(r) for r in regions)

        logger.debug(
            "Loaded %d national and %d regional holidays from %s",
            len(national),
            len(regional),
            holidays_path,
        )
        return cls(national=national, regional=regional)

    def is_holiday(self, day: date, region: str | None = None) -> bool:
        """Whether ``day`` is a holiday.

        Regional holidays count when no region is given or when ``region``
        is one of the holiday's regions.
        """
        if day in self._national:
            return True
        regions = self._regional.get(day)
        if not regions:
            return False
        return region is None or region in regions

    @property
    def national_holidays(self) -> set[date]:
        return set(self._national)


class BusinessDayCalculator:
    """Deterministic date arithmetic over a holiday calendar."""

    def __init__(
        self,
        holidays: HolidayCalendar | None = None,
        region: str | None = None,
    ) -> None:
        self._holidays = holidays if holidays is not None else HolidayCalendar()
        self._region = region

    @property
    def region(self) -> str | None:
        return self._region

    def is_business_day(
        self,
        day: date,
        calendar_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
    ) -> bool:
        if self._holidays.is_holiday(day, self._region):
            return False
        return day.weekday() <= _LAST_WORKING_WEEKDAY[calendar_type]

    def add_business_days(
        self,
        start: date,
        days: int,
        calendar_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
    ) -> date:
        """Add ``days`` business days to ``start``.

        Zero returns ``start`` unchanged, even on a weekend or holiday.
        Negative values walk backwards.
        """
        step = timedelta(days=1 if days >= 0 else -1)
        current = start
        counted = 0
        while counted < abs(days):
            current += step
            if self.is_business_day(current, calendar_type):
                counted += 1
        return current

    @staticmethod
    def add_calendar_days(start: date, days: int) -> date:
        """Add calendar days (días corridos)."""
        return start + timedelta(days=days)

    def business_days_between(
        self,
        start: date,
        end: date,
        calendar_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
    ) -> int:
        """Count business days in the half-open range ``(start, end]``.

        Returns 0 when ``end`` is not after ``start``.
        """
        count = 0
        current = start
        while current < end:
            current += timedelta(days=1)
            if self.is_business_day(current, calendar_type):
                count += 1
        return count

    def business_days_until(
        self,
        start: date,
        end: date,
        calendar_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
    ) -> int:
        """Count business days in the closed range ``[start, end]``.

        ``start`` itself counts when it is a business day.
        """
        if end < start:
            return 0
        first = 1 if self.is_business_day(start, calendar_type) else 0
        return first + self.business_days_between(start, end, calendar_type)

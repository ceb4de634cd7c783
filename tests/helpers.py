"""Shared test helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone

from karin.core.types import ProcessStage
from karin.deadlines.models import CaseContext

# Tuesday
RECEPTION = date(2024, 1, 2)


def at(year: int, month: int, day: int, hour: int = 12) -> datetime:
    """A UTC instant for evaluating statuses."""
    return datetime(year, month, day, hour, 0, 0, tzinfo=timezone.utc)


def make_context(**overrides) -> CaseContext:
    defaults = {
        "case_id": "case-1",
        "tenant_id": "tenant-a",
        "current_stage": ProcessStage.RECEPTION,
        "reception_date": RECEPTION,
    }
    defaults.update(overrides)
    return CaseContext(**defaults)

"""Shared test fixtures."""

from __future__ import annotations

import pytest

from karin.deadlines.business_days import BusinessDayCalculator, HolidayCalendar
from karin.deadlines.engine import DeadlineEngine


@pytest.fixture
def engine() -> DeadlineEngine:
    """Engine over the shipped catalog and Chilean holiday calendar."""
    return DeadlineEngine()


@pytest.fixture
def plain_calculator() -> BusinessDayCalculator:
    """Calculator with no holidays at all."""
    return BusinessDayCalculator(HolidayCalendar())

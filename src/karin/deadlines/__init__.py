"""Ley Karin legal-deadline engine."""

from karin.deadlines.business_days import BusinessDayCalculator, HolidayCalendar
from karin.deadlines.catalog import DeadlineCatalog, DeadlineTemplate
from karin.deadlines.engine import DeadlineEngine, create_deadline_engine
from karin.deadlines.models import (
    CaseContext,
    DeadlineInstance,
    DeadlineOperationResult,
    ExecutiveSummary,
)
from karin.deadlines.stages import StageFlowGraph

__all__ = [
    "BusinessDayCalculator",
    "CaseContext",
    "DeadlineCatalog",
    "DeadlineEngine",
    "DeadlineInstance",
    "DeadlineOperationResult",
    "DeadlineTemplate",
    "ExecutiveSummary",
    "HolidayCalendar",
    "StageFlowGraph",
    "create_deadline_engine",
]

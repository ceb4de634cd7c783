"""Case-level orchestration of the Ley Karin deadline engine."""

from karin.cases.models import CaseDeadlineRecord
from karin.cases.service import KarinProcessService
from karin.cases.store import CaseDeadlineStore

__all__ = ["CaseDeadlineRecord", "CaseDeadlineStore", "KarinProcessService"]

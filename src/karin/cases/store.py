"""In-memory store for case deadline records."""

from __future__ import annotations

from karin.cases.models import CaseDeadlineRecord


class CaseDeadlineStore:
    """In-memory dict store keyed by case id.

    Suitable for single-instance deployment and tests.
    """

    def __init__(self) -> None:
        self._records: dict[str, CaseDeadlineRecord] = {}

    def get(self, case_id: str) -> CaseDeadlineRecord | None:
        return self._records.get(case_id)

    def save(self, record: CaseDeadlineRecord) -> CaseDeadlineRecord:
        self._records[record.case_id] = record
        return record

    def list_for_tenant(self, tenant_id: str) -> list[CaseDeadlineRecord]:
        return [
            r for r in self._records.values()
            if r.tenant_id == tenant_id
        ]

    @property
    def count(self) -> int:
        return len(self._records)

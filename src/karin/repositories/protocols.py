"""Protocol definitions for repository interfaces.

The deadline engine never writes; callers persist its results through a
store satisfying these protocols. Only get/set by case id is required, so
any document store can back them.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from karin.cases.models import CaseDeadlineRecord
from karin.core.types import AuditEvent
from karin.governance.audit import AuditEntry


@runtime_checkable
class CaseDeadlineRepository(Protocol):
    """Protocol for case context + deadline instance storage."""

    def get(self, case_id: str) -> CaseDeadlineRecord | None: ...

    def save(self, record: CaseDeadlineRecord) -> CaseDeadlineRecord: ...

    def list_for_tenant(self, tenant_id: str) -> list[CaseDeadlineRecord]: ...

    @property
    def count(self) -> int: ...


@runtime_checkable
class AuditRepository(Protocol):
    """Protocol for audit log storage."""

    def log(self, event: AuditEvent) -> AuditEntry: ...

    def verify_chain(self, tenant_id: str | None = None) -> bool: ...

    def query(self, filters: dict | None = None) -> list[AuditEvent]: ...

    def case_history(
        self, case_id: str, tenant_id: str | None = None
    ) -> list[AuditEvent]: ...

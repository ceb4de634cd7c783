"""Persisted per-case deadline state."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from karin.deadlines.models import CaseContext, DeadlineInstance, ExtensionRequest


class CaseDeadlineRecord(BaseModel):
    """The case context and its deadline instances, stored by case id.

    Stored statuses are a snapshot; readers re-evaluate them.
    """

    context: CaseContext
    instances: list[DeadlineInstance] = Field(default_factory=list)
    extension_requests: list[ExtensionRequest] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def case_id(self) -> str:
        return self.context.case_id

    @property
    def tenant_id(self) -> str:
        return self.context.tenant_id

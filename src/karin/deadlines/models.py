"""Value objects produced and consumed by the deadline engine.

Every model is frozen: transitions return new instances via
``model_copy(update=...)`` so a collection handed to the engine is never
changed in place.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from karin.core.types import (
    AlertLevel,
    AlertType,
    ComplianceStatus,
    DeadlinePriority,
    DeadlineStatus,
    ExtensionRequestStatus,
    ProcessStage,
)


class CaseContext(BaseModel):
    """Per-case input to the engine."""

    model_config = {"frozen": True}

    case_id: str
    tenant_id: str
    current_stage: ProcessStage = ProcessStage.RECEPTION
    reception_date: date
    requires_subsanation: bool = False
    is_direct_to_authority: bool = False
    extension_requested: bool = False


class DeadlineInstance(BaseModel):
    """A catalog template materialized for one case.

    ``status``, ``days_remaining`` and ``business_days_remaining`` are
    derived from ``now`` on every evaluation and are never authoritative.
    """

    model_config = {"frozen": True}

    id: str
    case_id: str
    name: str
    description: str = ""
    stage: ProcessStage
    start_date: date
    end_date: date
    business_days: int = 0
    calendar_days: int | None = None
    is_legal_requirement: bool = True
    priority: DeadlinePriority = DeadlinePriority.MEDIUM
    legal_reference: str | None = None
    next_action: str | None = None
    extendable: bool = False
    max_extension_days: int = 0

    status: DeadlineStatus = DeadlineStatus.ACTIVE
    days_remaining: int = 0
    business_days_remaining: int | None = None

    completed_at: datetime | None = None
    completed_by: str | None = None

    is_extended: bool = False
    original_end_date: date | None = None
    extension_reason: str | None = None
    extended_by_days: int = 0
    extended_by: str | None = None
    extended_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None or self.status == DeadlineStatus.COMPLETED


class DeadlineAlert(BaseModel):
    model_config = {"frozen": True}

    type: AlertType
    message: str
    deadline: DeadlineInstance


class DeadlineReminder(BaseModel):
    """A scheduled reminder ahead of a deadline's end date."""

    model_config = {"frozen": True}

    deadline_id: str
    level: AlertLevel
    trigger_date: date
    title: str
    message: str


class AdvanceCheck(BaseModel):
    """Whether a case may leave its current stage."""

    allowed: bool
    reason: str | None = None
    blocking_instances: list[DeadlineInstance] = Field(default_factory=list)


class ExecutiveSummary(BaseModel):
    case_id: str
    tenant_id: str
    current_stage: ProcessStage
    current_stage_name: str
    progress: int
    next_deadline: DeadlineInstance | None = None
    critical_alerts: int = 0
    estimated_completion_date: str
    compliance_status: ComplianceStatus


class ExtensionRequest(BaseModel):
    """A request to push back an extendable deadline, pending review.

    Requests move from pending to approved or rejected exactly once.
    """

    model_config = {"frozen": True}

    id: str
    case_id: str
    deadline_id: str
    stage: ProcessStage
    requested_days: int
    justification: str
    requested_by: str
    requested_at: datetime
    current_end_date: date
    status: ExtensionRequestStatus = ExtensionRequestStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_comment: str = ""
    new_end_date: date | None = None


class DeadlinesReport(BaseModel):
    """Status counts and rates over a case's deadlines.

    ``extended`` overlaps the status counts. Rates are whole percentages.
    """

    total: int
    completed: int
    active: int
    warning: int
    overdue: int
    extended: int
    completion_rate: int
    compliance_rate: int
    next_deadline: DeadlineInstance | None = None


class DeadlineErrorCode(StrEnum):
    VALIDATION = "validation_error"
    STATE = "state_error"
    NOT_FOUND = "not_found"


class DeadlineError(BaseModel):
    """Machine-readable failure reason."""

    code: DeadlineErrorCode
    message: str
    blocking_instances: list[DeadlineInstance] = Field(default_factory=list)


class DeadlineOperationResult(BaseModel):
    """Outcome of an engine or service operation.

    On failure ``instances`` holds the caller's input unchanged.
    """

    ok: bool
    instances: list[DeadlineInstance] = Field(default_factory=list)
    context: CaseContext | None = None
    extension_request: ExtensionRequest | None = None
    error: DeadlineError | None = None

    @classmethod
    def success(
        cls,
        instances: list[DeadlineInstance],
        context: CaseContext | None = None,
        extension_request: ExtensionRequest | None = None,
    ) -> DeadlineOperationResult:
        return cls(
            ok=True,
            instances=instances,
            context=context,
            extension_request=extension_request,
        )

    @classmethod
    def failure(
        cls,
        code: DeadlineErrorCode,
        message: str,
        instances: list[DeadlineInstance] | None = None,
        context: CaseContext | None = None,
        blocking: list[DeadlineInstance] | None = None,
    ) -> DeadlineOperationResult:
        return cls(
            ok=False,
            instances=list(instances or []),
            context=context,
            error=DeadlineError(
                code=code,
                message=message,
                blocking_instances=list(blocking or []),
            ),
        )

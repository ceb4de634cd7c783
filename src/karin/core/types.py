"""Core type definitions shared across all Ley Karin modules."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class DataClassification(StrEnum):
    """Data classification levels for audit records."""

    PUBLIC = "public"
    INTERNAL = "internal"
    SENSITIVE = "sensitive"
    RESTRICTED = "restricted"


class ProcessStage(StrEnum):
    """Stages of the Ley Karin legal process.

    Declaration order is the process order: each stage's unconditional
    successor is the next member, and ``FINAL_CLOSURE`` is terminal.
    """

    RECEPTION = "reception"
    SUBSANATION = "subsanation"
    PRECAUTIONARY_MEASURES = "precautionary_measures"
    DT_NOTIFICATION = "dt_notification"
    INVESTIGATION = "investigation"
    INVESTIGATION_EXTENSION = "investigation_extension"
    REPORT_CREATION = "report_creation"
    REPORT_APPROVAL = "report_approval"
    DT_SUBMISSION = "dt_submission"
    DT_RESOLUTION = "dt_resolution"
    MEASURES_ADOPTION = "measures_adoption"
    SANCTIONS = "sanctions"
    FINAL_CLOSURE = "final_closure"


class BusinessDayType(StrEnum):
    """Calendar used when counting business days."""

    # Monday to Friday, excluding holidays
    ADMINISTRATIVE = "administrative"
    # Monday to Saturday, excluding holidays (labor/judicial)
    WORKING = "working"


class DeadlinePriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DeadlineStatus(StrEnum):
    """Derived status of a deadline instance."""

    ACTIVE = "active"
    WARNING = "warning"
    OVERDUE = "overdue"
    COMPLETED = "completed"


class AlertType(StrEnum):
    OVERDUE = "overdue"
    WARNING = "warning"


class AlertLevel(StrEnum):
    """Graduated urgency used for reminders."""

    NONE = "none"
    INFO = "info"
    WARNING = "warning"
    URGENT = "urgent"
    CRITICAL = "critical"
    OVERDUE = "overdue"


class ComplianceStatus(StrEnum):
    COMPLIANT = "compliant"
    AT_RISK = "at_risk"
    NON_COMPLIANT = "non_compliant"


class ExtensionRequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditEvent(BaseModel):
    """Immutable audit log entry for case-process actions."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tenant_id: str
    actor: str
    action: str
    resource: str
    classification: DataClassification = DataClassification.RESTRICTED
    details: dict[str, Any] = Field(default_factory=dict)

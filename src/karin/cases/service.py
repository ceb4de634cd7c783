"""Case process service: runs the deadline engine against a case store.

The engine is pure; this service loads the persisted case, re-evaluates it
against ``now``, persists successful transitions and records an audit
event for each of them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from karin.cases.models import CaseDeadlineRecord
from karin.core.types import AuditEvent, DataClassification
from karin.deadlines.engine import DeadlineEngine
from karin.deadlines.models import (
    CaseContext,
    DeadlineAlert,
    DeadlineErrorCode,
    DeadlineInstance,
    DeadlineOperationResult,
    DeadlineReminder,
    DeadlinesReport,
    ExecutiveSummary,
    ExtensionRequest,
)
from karin.deadlines.reminders import reminder_schedule
from karin.governance.audit import AuditLogger

if TYPE_CHECKING:
    from karin.repositories.protocols import CaseDeadlineRepository

logger = logging.getLogger(__name__)

_CIRCUMSTANCE_FIELDS = (
    "requires_subsanation",
    "is_direct_to_authority",
    "extension_requested",
)


class KarinProcessService:
    """Orchestrates deadline computation, persistence and auditing."""

    def __init__(
        self,
        repository: CaseDeadlineRepository,
        engine: DeadlineEngine,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._repository = repository
        self._engine = engine
        self._audit = audit_logger

    # -- Case lifecycle --

    def open_case(
        self,
        context: CaseContext | dict[str, Any],
        actor: str,
        now: datetime,
    ) -> DeadlineOperationResult:
        """Enter a case into the legal-process flow.

        ``context`` may be a JSON-shaped dict (ISO reception date, stage
        name); malformed input is reported as a validation failure.
        """
        if not isinstance(context, CaseContext):
            try:
                context = CaseContext.model_validate(context)
            except ValidationError as exc:
                return DeadlineOperationResult.failure(
                    DeadlineErrorCode.VALIDATION,
                    f"Invalid case context: {exc.errors()[0]['msg']}",
                )

        if self._repository.get(context.case_id) is not None:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.STATE,
                f"Case {context.case_id!r} is already in the legal process.",
                context=context,
            )

        instances = self._engine.compute_deadlines(context, now)
        self._save(context, instances, now)
        self._log(context, actor, "karin_case_opened", {
            "reception_date": context.reception_date.isoformat(),
            "deadlines": len(instances),
        })
        return DeadlineOperationResult.success(instances, context=context)

    def get_case(self, case_id: str, now: datetime) -> CaseDeadlineRecord | None:
        """Fetch a case with statuses recomputed against ``now``."""
        record = self._repository.get(case_id)
        if record is None:
            return None
        return record.model_copy(update={
            "instances": self._engine.evaluate(record.instances, now),
        })

    def update_circumstances(
        self,
        case_id: str,
        actor: str,
        now: datetime,
        **circumstances: Any,
    ) -> DeadlineOperationResult:
        """Re-derive the case context when a gating flag changes.

        Deadlines are recomputed from scratch; completion and extension
        state carries over to instances that still apply.
        """
        unknown = set(circumstances) - set(_CIRCUMSTANCE_FIELDS)
        if unknown:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                f"Unknown case circumstances: {sorted(unknown)}",
            )

        record = self._repository.get(case_id)
        if record is None:
            return self._not_found(case_id)

        try:
            context = CaseContext.model_validate(
                {**record.context.model_dump(), **circumstances}
            )
        except ValidationError as exc:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                f"Invalid case circumstances: {exc.errors()[0]['msg']}",
                context=record.context,
            )
        recomputed = self._engine.compute_deadlines(context, now)
        instances = self._engine.evaluate(
            _carry_over(record.instances, recomputed, self._engine), now
        )
        self._save(context, instances, now)
        self._log(context, actor, "karin_circumstances_updated", {
            name: getattr(context, name) for name in circumstances
        })
        return DeadlineOperationResult.success(instances, context=context)

    # -- Deadline transitions --

    def complete_deadline(
        self, case_id: str, deadline_id: str, actor: str, now: datetime
    ) -> DeadlineOperationResult:
        record = self._repository.get(case_id)
        if record is None:
            return self._not_found(case_id)

        result = self._engine.complete_deadline(record.instances, deadline_id, actor, now)
        if result.ok:
            self._save(record.context, result.instances, now)
            self._log(record.context, actor, "karin_deadline_completed", {
                "deadline_id": deadline_id,
            })
        return result.model_copy(update={"context": record.context})

    def extend_deadline(
        self,
        case_id: str,
        deadline_id: str,
        extra_days: int,
        reason: str,
        actor: str,
        now: datetime,
    ) -> DeadlineOperationResult:
        record = self._repository.get(case_id)
        if record is None:
            return self._not_found(case_id)

        result = self._engine.extend_deadline(
            record.instances, deadline_id, extra_days, reason, actor, now
        )
        if result.ok:
            self._save(record.context, result.instances, now)
            self._log(record.context, actor, "karin_deadline_extended", {
                "deadline_id": deadline_id,
                "extra_days": extra_days,
                "reason": reason,
            })
        return result.model_copy(update={"context": record.context})

    def advance_stage(
        self, case_id: str, actor: str, now: datetime
    ) -> DeadlineOperationResult:
        record = self._repository.get(case_id)
        if record is None:
            return self._not_found(case_id)

        result = self._engine.advance_stage(record.context, record.instances)
        if not result.ok:
            logger.info(
                "Case %s cannot leave stage %s: %s",
                case_id,
                record.context.current_stage,
                result.error.message if result.error else "",
            )
            return result

        context = result.context or record.context
        self._save(context, result.instances, now)
        self._log(context, actor, "karin_stage_advanced", {
            "from": record.context.current_stage.value,
            "to": context.current_stage.value,
        })
        return result

    # -- Extension requests --

    def request_extension(
        self,
        case_id: str,
        deadline_id: str,
        requested_days: int,
        justification: str,
        actor: str,
        now: datetime,
    ) -> DeadlineOperationResult:
        record = self._repository.get(case_id)
        if record is None:
            return self._not_found(case_id)

        result = self._engine.request_extension(
            record.instances,
            deadline_id,
            requested_days,
            justification,
            actor,
            now,
            request_id=f"{case_id}-extension-{len(record.extension_requests)}",
        )
        if result.ok and result.extension_request is not None:
            request = result.extension_request
            self._save(
                record.context,
                record.instances,
                now,
                extension_requests=[*record.extension_requests, request],
            )
            self._log(record.context, actor, "karin_extension_requested", {
                "request_id": request.id,
                "deadline_id": deadline_id,
                "requested_days": requested_days,
            })
        return result.model_copy(update={"context": record.context})

    def process_extension(
        self,
        case_id: str,
        request_id: str,
        approved: bool,
        actor: str,
        now: datetime,
        comment: str = "",
    ) -> DeadlineOperationResult:
        """Approve or reject a pending request; approval extends the deadline."""
        record = self._repository.get(case_id)
        if record is None:
            return self._not_found(case_id)

        request = next((r for r in record.extension_requests if r.id == request_id), None)
        if request is None:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.NOT_FOUND,
                f"Extension request {request_id!r} not found.",
                instances=record.instances,
                context=record.context,
            )

        result = self._engine.process_extension(
            record.instances, request, approved, actor, now, comment=comment
        )
        if not result.ok or result.extension_request is None:
            return result.model_copy(update={"context": record.context})

        reviewed = result.extension_request
        self._save(
            record.context,
            result.instances,
            now,
            extension_requests=[
                reviewed if r.id == request_id else r for r in record.extension_requests
            ],
        )
        self._log(record.context, actor, f"karin_extension_{reviewed.status.value}", {
            "request_id": request_id,
            "deadline_id": reviewed.deadline_id,
            "comment": comment,
        })
        return result.model_copy(update={"context": record.context})

    # -- Read models --

    def alerts(self, case_id: str, now: datetime) -> list[DeadlineAlert] | None:
        record = self._repository.get(case_id)
        if record is None:
            return None
        return self._engine.critical_alerts(record.instances, now)

    def summary(self, case_id: str, now: datetime) -> ExecutiveSummary | None:
        record = self._repository.get(case_id)
        if record is None:
            return None
        return self._engine.executive_summary(record.context, record.instances, now)

    def reminders(self, case_id: str, now: datetime) -> list[DeadlineReminder] | None:
        record = self._repository.get(case_id)
        if record is None:
            return None
        reminders: list[DeadlineReminder] = []
        for instance in record.instances:
            reminders.extend(
                reminder_schedule(instance, now, self._engine.calculator)
            )
        return sorted(reminders, key=lambda r: r.trigger_date)

    def report(self, case_id: str, now: datetime) -> DeadlinesReport | None:
        record = self._repository.get(case_id)
        if record is None:
            return None
        return self._engine.deadlines_report(record.instances, now)

    def history(self, case_id: str) -> list[AuditEvent] | None:
        """Audited actions on the case, oldest first."""
        record = self._repository.get(case_id)
        if record is None:
            return None
        if self._audit is None:
            return []
        return self._audit.case_history(case_id, tenant_id=record.tenant_id)

    def list_cases(self, tenant_id: str, now: datetime) -> list[CaseDeadlineRecord]:
        return [
            r.model_copy(update={"instances": self._engine.evaluate(r.instances, now)})
            for r in self._repository.list_for_tenant(tenant_id)
        ]

    # -- Internals --

    def _save(
        self,
        context: CaseContext,
        instances: list[DeadlineInstance],
        now: datetime,
        extension_requests: list[ExtensionRequest] | None = None,
    ) -> None:
        if extension_requests is None:
            existing = self._repository.get(context.case_id)
            extension_requests = existing.extension_requests if existing else []
        self._repository.save(CaseDeadlineRecord(
            context=context,
            instances=instances,
            extension_requests=extension_requests,
            updated_at=now,
        ))

    @staticmethod
    def _not_found(case_id: str) -> DeadlineOperationResult:
        return DeadlineOperationResult.failure(
            DeadlineErrorCode.NOT_FOUND,
            f"Case {case_id!r} not found.",
        )

    def _log(
        self,
        context: CaseContext,
        actor: str,
        action: str,
        details: dict[str, Any],
    ) -> None:
        if self._audit is None:
            return
        self._audit.log(AuditEvent(
            tenant_id=context.tenant_id,
            actor=actor,
            action=action,
            resource=f"case:{context.case_id}",
            classification=DataClassification.RESTRICTED,
            details={"stage": context.current_stage.value, **details},
        ))


def _carry_over(
    previous: list[DeadlineInstance],
    recomputed: list[DeadlineInstance],
    engine: DeadlineEngine,
) -> list[DeadlineInstance]:
    """Re-apply completion and extension state onto recomputed instances."""
    by_id = {d.id: d for d in previous}
    merged: list[DeadlineInstance] = []
    for instance in recomputed:
        old = by_id.get(instance.id)
        if old is None:
            merged.append(instance)
            continue

        update: dict[str, Any] = {}
        if old.completed_at is not None:
            update["completed_at"] = old.completed_at
            update["completed_by"] = old.completed_by
        if old.is_extended:
            update.update({
                "end_date": engine.calculator.add_calendar_days(
                    instance.end_date, old.extended_by_days
                ),
                "original_end_date": instance.end_date,
                "is_extended": True,
                "extension_reason": old.extension_reason,
                "extended_by_days": old.extended_by_days,
                "extended_by": old.extended_by,
                "extended_at": old.extended_at,
            })
        merged.append(instance.model_copy(update=update) if update else instance)
    return merged

"""Deterministic Ley Karin deadline engine.

Pure functions over immutable inputs: every operation takes an explicit
``now`` and returns new collections. Persisting results is the caller's job.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Iterable

from karin.core.config import Settings
from karin.core.types import (
    AlertType,
    BusinessDayType,
    ComplianceStatus,
    DeadlinePriority,
    DeadlineStatus,
    ExtensionRequestStatus,
    ProcessStage,
)
from karin.deadlines.business_days import BusinessDayCalculator, HolidayCalendar
from karin.deadlines.catalog import DeadlineCatalog, DeadlineTemplate
from karin.deadlines.models import (
    AdvanceCheck,
    CaseContext,
    DeadlineAlert,
    DeadlineErrorCode,
    DeadlineInstance,
    DeadlineOperationResult,
    DeadlinesReport,
    ExecutiveSummary,
    ExtensionRequest,
)
from karin.deadlines.stages import StageFlowGraph

logger = logging.getLogger(__name__)

# Business-day offsets used to anchor stage start dates
SUBSANATION_WINDOW_DAYS = 5
INVESTIGATION_DAYS = 30
EXTENDED_INVESTIGATION_DAYS = 60
# 2 days to submit to the DT + 30 days for the DT to rule
AUTHORITY_RESPONSE_WINDOW_DAYS = 32

STAGE_PROGRESS_WEIGHT = 70
DEADLINE_PROGRESS_WEIGHT = 30

UNDETERMINED = "undetermined"

_RECEPTION_ANCHORED = frozenset({
    ProcessStage.SUBSANATION,
    ProcessStage.PRECAUTIONARY_MEASURES,
    ProcessStage.DT_NOTIFICATION,
})


def _deadline_moment(end: date, now: datetime) -> datetime:
    """A deadline runs until the end of its end date, in ``now``'s timezone."""
    return datetime.combine(end, time.max, tzinfo=now.tzinfo)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class DeadlineEngine:
    """Computes and evaluates the statutory deadlines of a Ley Karin case."""

    def __init__(
        self,
        catalog: DeadlineCatalog | None = None,
        calculator: BusinessDayCalculator | None = None,
        graph: StageFlowGraph | None = None,
        warning_days: int = 2,
        calendar_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
        max_extension_days: int = 30,
    ) -> None:
        self._catalog = catalog if catalog is not None else DeadlineCatalog.from_yaml()
        self._calculator = (
            calculator
            if calculator is not None
            else BusinessDayCalculator(HolidayCalendar.from_yaml())
        )
        self._graph = graph or StageFlowGraph()
        self._warning_window = timedelta(days=warning_days)
        self._calendar_type = calendar_type
        self._max_extension_days = max_extension_days

    @property
    def catalog(self) -> DeadlineCatalog:
        return self._catalog

    @property
    def calculator(self) -> BusinessDayCalculator:
        return self._calculator

    @property
    def graph(self) -> StageFlowGraph:
        return self._graph

    # -- Instantiation --

    def compute_deadlines(
        self, context: CaseContext, now: datetime
    ) -> list[DeadlineInstance]:
        """Materialize every applicable template for ``context``.

        Templates whose stage is inapplicable for the case circumstances
        produce no instance. The result is sorted by end date.
        """
        instances: list[DeadlineInstance] = []
        for index, template in enumerate(self._catalog):
            if not self._graph.stage_applies(template.stage, context):
                continue
            instances.append(
                self._instantiate(template, context, f"{context.case_id}-deadline-{index}")
            )

        logger.debug(
            "Computed %d of %d deadlines for case %s",
            len(instances),
            len(self._catalog),
            context.case_id,
        )
        return self.evaluate(instances, now)

    def _instantiate(
        self, template: DeadlineTemplate, context: CaseContext, instance_id: str
    ) -> DeadlineInstance:
        start = self._start_date(template.stage, context)
        return DeadlineInstance(
            id=instance_id,
            case_id=context.case_id,
            name=template.name,
            description=template.description,
            stage=template.stage,
            start_date=start,
            end_date=self._end_date(template, start),
            business_days=template.business_days,
            calendar_days=template.calendar_days,
            is_legal_requirement=template.is_legal_requirement,
            priority=template.priority,
            legal_reference=template.legal_reference,
            next_action=template.next_action,
            extendable=template.extendable,
            max_extension_days=template.max_extension_days,
        )

    def _add_admin_days(self, start: date, days: int) -> date:
        return self._calculator.add_business_days(start, days, self._calendar_type)

    def investigation_start(self, context: CaseContext) -> date:
        if context.requires_subsanation:
            return self._add_admin_days(context.reception_date, SUBSANATION_WINDOW_DAYS)
        return context.reception_date

    def _start_date(self, stage: ProcessStage, context: CaseContext) -> date:
        reception = context.reception_date
        if stage in _RECEPTION_ANCHORED:
            return reception
        if stage == ProcessStage.INVESTIGATION:
            return self.investigation_start(context)
        if stage == ProcessStage.INVESTIGATION_EXTENSION:
            return self._add_admin_days(self.investigation_start(context), INVESTIGATION_DAYS)
        if stage == ProcessStage.DT_SUBMISSION:
            days = (
                EXTENDED_INVESTIGATION_DAYS
                if context.extension_requested
                else INVESTIGATION_DAYS
            )
            return self._add_admin_days(self.investigation_start(context), days)
        if stage == ProcessStage.MEASURES_ADOPTION:
            return self._add_admin_days(reception, AUTHORITY_RESPONSE_WINDOW_DAYS)
        return reception

    def _end_date(self, template: DeadlineTemplate, start: date) -> date:
        if template.calendar_days is not None:
            return self._calculator.add_calendar_days(start, template.calendar_days)
        return self._add_admin_days(start, template.business_days)

    # -- Status derivation --

    def derive(self, instance: DeadlineInstance, now: datetime) -> DeadlineInstance:
        """Recompute status and remaining-day counts of one instance."""
        if instance.is_completed:
            return instance.model_copy(update={
                "status": DeadlineStatus.COMPLETED,
                "days_remaining": 0,
                "business_days_remaining": None,
            })

        moment = _deadline_moment(instance.end_date, now)
        if now > moment:
            status = DeadlineStatus.OVERDUE
        elif now > moment - self._warning_window:
            status = DeadlineStatus.WARNING
        else:
            status = DeadlineStatus.ACTIVE

        if status == DeadlineStatus.OVERDUE:
            days_remaining = 0
        else:
            days_remaining = math.ceil((moment - now).total_seconds() / 86400)

        business_remaining: int | None
        if instance.calendar_days is not None:
            business_remaining = None
        elif status == DeadlineStatus.OVERDUE:
            business_remaining = 0
        else:
            business_remaining = self._calculator.business_days_between(
                now.date(), instance.end_date, self._calendar_type
            )

        return instance.model_copy(update={
            "status": status,
            "days_remaining": days_remaining,
            "business_days_remaining": business_remaining,
        })

    def evaluate(
        self, instances: Iterable[DeadlineInstance], now: datetime
    ) -> list[DeadlineInstance]:
        """Re-derive every instance against ``now``, sorted by end date."""
        derived = [self.derive(d, now) for d in instances]
        return sorted(derived, key=lambda d: d.end_date)

    # -- Transitions --

    def complete_deadline(
        self,
        instances: list[DeadlineInstance],
        deadline_id: str,
        completer_id: str,
        now: datetime,
    ) -> DeadlineOperationResult:
        """Mark a deadline completed. Completing twice is a no-op."""
        target = next((d for d in instances if d.id == deadline_id), None)
        if target is None:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.NOT_FOUND,
                f"Deadline {deadline_id!r} not found.",
                instances=instances,
            )
        if target.is_completed:
            return DeadlineOperationResult.success(list(instances))

        completed = target.model_copy(update={
            "completed_at": now,
            "completed_by": completer_id,
            "status": DeadlineStatus.COMPLETED,
            "days_remaining": 0,
            "business_days_remaining": None,
        })
        return DeadlineOperationResult.success(
            [completed if d.id == deadline_id else d for d in instances]
        )

    def extend_deadline(
        self,
        instances: list[DeadlineInstance],
        deadline_id: str,
        extra_days: int,
        reason: str,
        extender_id: str,
        now: datetime,
    ) -> DeadlineOperationResult:
        """Push a deadline's end date back by ``extra_days`` calendar days."""
        if extra_days <= 0:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                f"Extension days must be positive, got {extra_days}.",
                instances=instances,
            )
        if extra_days > self._max_extension_days:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                f"Extension of {extra_days} days exceeds the maximum of "
                f"{self._max_extension_days} days.",
                instances=instances,
            )
        if not reason or not reason.strip():
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                "An extension reason is required.",
                instances=instances,
            )

        target = next((d for d in instances if d.id == deadline_id), None)
        if target is None:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.NOT_FOUND,
                f"Deadline {deadline_id!r} not found.",
                instances=instances,
            )
        if target.is_completed:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.STATE,
                f"Deadline {deadline_id!r} is already completed.",
                instances=instances,
            )

        try:
            new_end = self._calculator.add_calendar_days(target.end_date, extra_days)
        except OverflowError:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                f"Extending {deadline_id!r} by {extra_days} days leaves the calendar range.",
                instances=instances,
            )

        extended = target.model_copy(update={
            "end_date": new_end,
            "original_end_date": target.original_end_date or target.end_date,
            "is_extended": True,
            "extension_reason": reason,
            "extended_by_days": target.extended_by_days + extra_days,
            "extended_by": extender_id,
            "extended_at": now,
        })
        logger.info(
            "Deadline %s extended by %d days by %s", deadline_id, extra_days, extender_id
        )
        return DeadlineOperationResult.success(
            self.evaluate(
                [extended if d.id == deadline_id else d for d in instances], now
            )
        )

    # -- Extension requests --

    def request_extension(
        self,
        instances: list[DeadlineInstance],
        deadline_id: str,
        requested_days: int,
        justification: str,
        requester_id: str,
        now: datetime,
        request_id: str,
    ) -> DeadlineOperationResult:
        """Open a pending extension request for an extendable deadline.

        Instances are not changed; the request rides on the result.
        """
        if requested_days <= 0:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                f"Requested days must be positive, got {requested_days}.",
                instances=instances,
            )
        if not justification or not justification.strip():
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                "A justification is required.",
                instances=instances,
            )

        target = next((d for d in instances if d.id == deadline_id), None)
        if target is None:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.NOT_FOUND,
                f"Deadline {deadline_id!r} not found.",
                instances=instances,
            )
        if not target.extendable:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                f"Stage {target.stage.value!r} does not allow extensions.",
                instances=instances,
            )
        if requested_days > target.max_extension_days:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.VALIDATION,
                f"Requested {requested_days} days exceed the maximum of "
                f"{target.max_extension_days} days.",
                instances=instances,
            )
        if target.is_completed:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.STATE,
                f"Deadline {deadline_id!r} is already completed.",
                instances=instances,
            )

        request = ExtensionRequest(
            id=request_id,
            case_id=target.case_id,
            deadline_id=deadline_id,
            stage=target.stage,
            requested_days=requested_days,
            justification=justification,
            requested_by=requester_id,
            requested_at=now,
            current_end_date=target.end_date,
        )
        return DeadlineOperationResult.success(list(instances), extension_request=request)

    def process_extension(
        self,
        instances: list[DeadlineInstance],
        request: ExtensionRequest,
        approved: bool,
        reviewer_id: str,
        now: datetime,
        comment: str = "",
    ) -> DeadlineOperationResult:
        """Approve or reject a pending request.

        Approval extends the deadline through ``extend_deadline``.
        """
        if request.status != ExtensionRequestStatus.PENDING:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.STATE,
                f"Extension request {request.id!r} was already {request.status.value}.",
                instances=instances,
            )

        review = {
            "reviewed_by": reviewer_id,
            "reviewed_at": now,
            "review_comment": comment,
        }
        if not approved:
            return DeadlineOperationResult.success(
                list(instances),
                extension_request=request.model_copy(update={
                    **review, "status": ExtensionRequestStatus.REJECTED,
                }),
            )

        result = self.extend_deadline(
            instances,
            request.deadline_id,
            request.requested_days,
            request.justification,
            reviewer_id,
            now,
        )
        if not result.ok:
            return result
        extended = next(d for d in result.instances if d.id == request.deadline_id)
        return result.model_copy(update={
            "extension_request": request.model_copy(update={
                **review,
                "status": ExtensionRequestStatus.APPROVED,
                "new_end_date": extended.end_date,
            }),
        })

    # -- Stage flow --

    def next_stage(self, context: CaseContext) -> ProcessStage | None:
        return self._graph.next_stage(context.current_stage, context)

    def can_advance(
        self, context: CaseContext, instances: Iterable[DeadlineInstance]
    ) -> AdvanceCheck:
        return self._graph.can_advance(context.current_stage, instances)

    def advance_stage(
        self, context: CaseContext, instances: list[DeadlineInstance]
    ) -> DeadlineOperationResult:
        """Move the case to its next applicable stage.

        The returned result carries the re-derived context; ``context`` itself
        is left untouched.
        """
        check = self.can_advance(context, instances)
        if not check.allowed:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.STATE,
                check.reason or "Cannot advance stage.",
                instances=instances,
                context=context,
                blocking=check.blocking_instances,
            )

        target = self.next_stage(context)
        if target is None:
            return DeadlineOperationResult.failure(
                DeadlineErrorCode.STATE,
                f"Stage {context.current_stage.value!r} is terminal.",
                instances=instances,
                context=context,
            )
        return DeadlineOperationResult.success(
            list(instances),
            context=context.model_copy(update={"current_stage": target}),
        )

    # -- Aggregates --

    def progress(
        self, current_stage: ProcessStage, instances: Iterable[DeadlineInstance]
    ) -> int:
        """Overall progress 0..100: 70% stage position, 30% deadlines done."""
        items = list(instances)
        stage_progress = (
            self._graph.ordinal(current_stage) / self._graph.stage_count
        ) * STAGE_PROGRESS_WEIGHT
        deadline_progress = 0.0
        if items:
            completed = sum(1 for d in items if d.is_completed)
            deadline_progress = (completed / len(items)) * DEADLINE_PROGRESS_WEIGHT
        return _round_half_up(stage_progress + deadline_progress)

    def critical_alerts(
        self, instances: Iterable[DeadlineInstance], now: datetime
    ) -> list[DeadlineAlert]:
        """Overdue mandatory deadlines first, then high-priority warnings."""
        overdue: list[DeadlineAlert] = []
        warnings: list[DeadlineAlert] = []
        for deadline in self.evaluate(instances, now):
            if deadline.status == DeadlineStatus.OVERDUE and deadline.is_legal_requirement:
                overdue.append(DeadlineAlert(
                    type=AlertType.OVERDUE,
                    message=f"Plazo vencido: {deadline.name}",
                    deadline=deadline,
                ))
            elif (
                deadline.status == DeadlineStatus.WARNING
                and deadline.priority == DeadlinePriority.HIGH
            ):
                warnings.append(DeadlineAlert(
                    type=AlertType.WARNING,
                    message=f"Plazo próximo a vencer: {deadline.name}",
                    deadline=deadline,
                ))
        return overdue + warnings

    def next_critical_deadline(
        self, instances: Iterable[DeadlineInstance], now: datetime
    ) -> DeadlineInstance | None:
        """The open deadline with the fewest days left; overdue ones excluded."""
        open_deadlines = [
            d for d in self.evaluate(instances, now)
            if d.status in (DeadlineStatus.ACTIVE, DeadlineStatus.WARNING)
        ]
        if not open_deadlines:
            return None
        return min(open_deadlines, key=lambda d: d.days_remaining)

    def deadlines_report(
        self, instances: Iterable[DeadlineInstance], now: datetime
    ) -> DeadlinesReport:
        evaluated = self.evaluate(instances, now)
        counts = {status: 0 for status in DeadlineStatus}
        for deadline in evaluated:
            counts[deadline.status] += 1

        total = len(evaluated)
        completed = counts[DeadlineStatus.COMPLETED]
        active = counts[DeadlineStatus.ACTIVE]
        return DeadlinesReport(
            total=total,
            completed=completed,
            active=active,
            warning=counts[DeadlineStatus.WARNING],
            overdue=counts[DeadlineStatus.OVERDUE],
            extended=sum(1 for d in evaluated if d.is_extended),
            completion_rate=_round_half_up(completed / total * 100) if total else 0,
            compliance_rate=(
                _round_half_up((completed + active) / total * 100) if total else 0
            ),
            next_deadline=self.next_critical_deadline(evaluated, now),
        )

    def executive_summary(
        self,
        context: CaseContext,
        instances: Iterable[DeadlineInstance],
        now: datetime,
    ) -> ExecutiveSummary:
        evaluated = self.evaluate(instances, now)
        alerts = self.critical_alerts(evaluated, now)

        if any(a.type == AlertType.OVERDUE for a in alerts):
            compliance = ComplianceStatus.NON_COMPLIANT
        elif any(a.type == AlertType.WARNING for a in alerts):
            compliance = ComplianceStatus.AT_RISK
        else:
            compliance = ComplianceStatus.COMPLIANT

        next_deadline = next(
            (d for d in evaluated if d.status == DeadlineStatus.ACTIVE), None
        )
        return ExecutiveSummary(
            case_id=context.case_id,
            tenant_id=context.tenant_id,
            current_stage=context.current_stage,
            current_stage_name=self._graph.display_name(context.current_stage),
            progress=self.progress(context.current_stage, evaluated),
            next_deadline=next_deadline,
            critical_alerts=len(alerts),
            estimated_completion_date=(
                evaluated[-1].end_date.isoformat() if evaluated else UNDETERMINED
            ),
            compliance_status=compliance,
        )


def create_deadline_engine(settings: Settings | None = None) -> DeadlineEngine:
    """Build a DeadlineEngine from application settings."""
    settings = settings or Settings()
    config = settings.deadlines
    calculator = BusinessDayCalculator(
        HolidayCalendar.from_yaml(config.holidays_path),
        region=config.region,
    )
    return DeadlineEngine(
        catalog=DeadlineCatalog.from_yaml(config.catalog_path),
        calculator=calculator,
        warning_days=config.warning_days,
        calendar_type=config.calendar_type,
        max_extension_days=config.max_extension_days,
    )

"""Tests for KarinProcessService: engine + store + audit."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from karin.cases.service import KarinProcessService
from karin.cases.store import CaseDeadlineStore
from karin.core.config import AuditConfig
from karin.core.types import (
    ComplianceStatus,
    DeadlineStatus,
    ExtensionRequestStatus,
    ProcessStage,
)
from karin.deadlines.models import DeadlineErrorCode
from karin.governance.audit import AuditLogger

from helpers import at, make_context


@pytest.fixture
def store() -> CaseDeadlineStore:
    return CaseDeadlineStore()


@pytest.fixture
def audit(tmp_path: Path) -> AuditLogger:
    return AuditLogger(AuditConfig(log_dir=str(tmp_path / "audit")))


@pytest.fixture
def service(store, engine, audit) -> KarinProcessService:
    return KarinProcessService(store, engine, audit_logger=audit)


@pytest.fixture
def opened(service) -> KarinProcessService:
    result = service.open_case(make_context(), "rrhh-1", at(2024, 1, 2))
    assert result.ok
    return service


class TestOpenCase:
    def test_persists_context_and_deadlines(self, service, store):
        result = service.open_case(make_context(), "rrhh-1", at(2024, 1, 2))
        assert result.ok
        assert len(result.instances) == 8
        record = store.get("case-1")
        assert record.context.reception_date == date(2024, 1, 2)
        assert len(record.instances) == 8

    def test_accepts_json_shaped_input(self, service):
        result = service.open_case(
            {
                "case_id": "case-2",
                "tenant_id": "tenant-a",
                "reception_date": "2024-01-02",
                "current_stage": "reception",
                "requires_subsanation": True,
            },
            "rrhh-1",
            at(2024, 1, 2),
        )
        assert result.ok
        assert result.context.requires_subsanation
        assert len(result.instances) == 9

    def test_invalid_input(self, service, store):
        result = service.open_case(
            {"case_id": "case-3", "tenant_id": "t", "reception_date": "yesterday"},
            "rrhh-1",
            at(2024, 1, 2),
        )
        assert not result.ok
        assert result.error.code == DeadlineErrorCode.VALIDATION
        assert store.count == 0

    def test_duplicate_case(self, opened):
        result = opened.open_case(make_context(), "rrhh-1", at(2024, 1, 3))
        assert result.error.code == DeadlineErrorCode.STATE

    def test_audited(self, opened, audit):
        events = audit.query({"action": "karin_case_opened"})
        assert len(events) == 1
        assert events[0].resource == "case:case-1"
        assert events[0].tenant_id == "tenant-a"
        assert events[0].details["deadlines"] == 8


class TestGetCase:
    def test_statuses_reevaluated(self, opened):
        record = opened.get_case("case-1", at(2024, 1, 6))
        statuses = {d.id: d.status for d in record.instances}
        assert statuses["case-1-deadline-0"] == DeadlineStatus.OVERDUE

    def test_missing(self, service):
        assert service.get_case("missing", at(2024, 1, 2)) is None


class TestTransitions:
    def test_complete_persisted(self, opened, store, audit):
        result = opened.complete_deadline("case-1", "case-1-deadline-0", "inv-1", at(2024, 1, 3))
        assert result.ok
        assert result.context.case_id == "case-1"
        stored = {d.id: d for d in store.get("case-1").instances}
        assert stored["case-1-deadline-0"].completed_by == "inv-1"
        assert audit.query({"action": "karin_deadline_completed"})

    def test_complete_unknown_deadline_not_persisted(self, opened, audit):
        result = opened.complete_deadline("case-1", "nope", "inv-1", at(2024, 1, 3))
        assert result.error.code == DeadlineErrorCode.NOT_FOUND
        assert audit.query({"action": "karin_deadline_completed"}) == []

    def test_complete_missing_case(self, service):
        result = service.complete_deadline("missing", "x", "inv-1", at(2024, 1, 3))
        assert result.error.code == DeadlineErrorCode.NOT_FOUND

    def test_extend_persisted(self, opened, store, audit):
        result = opened.extend_deadline(
            "case-1", "case-1-deadline-8", 5, "Espera de informe", "admin", at(2024, 1, 3)
        )
        assert result.ok
        stored = {d.id: d for d in store.get("case-1").instances}
        assert stored["case-1-deadline-8"].end_date == date(2024, 3, 6)
        (event,) = audit.query({"action": "karin_deadline_extended"})
        assert event.details["reason"] == "Espera de informe"

    def test_extend_validation(self, opened):
        result = opened.extend_deadline(
            "case-1", "case-1-deadline-8", 0, "Motivo", "admin", at(2024, 1, 3)
        )
        assert result.error.code == DeadlineErrorCode.VALIDATION


class TestAdvanceStage:
    def test_reception_advances(self, opened, store, audit):
        result = opened.advance_stage("case-1", "rrhh-1", at(2024, 1, 3))
        assert result.ok
        assert store.get("case-1").context.current_stage == ProcessStage.PRECAUTIONARY_MEASURES
        (event,) = audit.query({"action": "karin_stage_advanced"})
        assert event.details["from"] == "reception"
        assert event.details["to"] == "precautionary_measures"

    def test_blocked_stage_not_persisted(self, opened, store):
        opened.advance_stage("case-1", "rrhh-1", at(2024, 1, 3))
        result = opened.advance_stage("case-1", "rrhh-1", at(2024, 1, 3))
        assert not result.ok
        assert [d.id for d in result.error.blocking_instances] == ["case-1-deadline-1"]
        assert store.get("case-1").context.current_stage == ProcessStage.PRECAUTIONARY_MEASURES

    def test_missing_case(self, service):
        result = service.advance_stage("missing", "rrhh-1", at(2024, 1, 3))
        assert result.error.code == DeadlineErrorCode.NOT_FOUND


class TestUpdateCircumstances:
    def test_extension_adds_deadline_and_keeps_completion(self, opened):
        opened.complete_deadline("case-1", "case-1-deadline-0", "inv-1", at(2024, 1, 3))
        result = opened.update_circumstances(
            "case-1", "rrhh-1", at(2024, 1, 4), extension_requested=True
        )
        assert result.ok
        by_id = {d.id: d for d in result.instances}
        assert "case-1-deadline-5" in by_id
        assert by_id["case-1-deadline-0"].status == DeadlineStatus.COMPLETED
        assert by_id["case-1-deadline-6"].start_date == date(2024, 3, 26)

    def test_extension_state_carried_over(self, opened):
        opened.extend_deadline(
            "case-1", "case-1-deadline-4", 3, "Testigos", "admin", at(2024, 1, 3)
        )
        result = opened.update_circumstances(
            "case-1", "rrhh-1", at(2024, 1, 4), requires_subsanation=True
        )
        investigation = {d.id: d for d in result.instances}["case-1-deadline-4"]
        # Recomputed end Feb 20 plus the 3 extension days
        assert investigation.original_end_date == date(2024, 2, 20)
        assert investigation.end_date == date(2024, 2, 23)
        assert investigation.extended_by_days == 3

    def test_string_flag_is_coerced(self, opened, store):
        result = opened.update_circumstances(
            "case-1", "rrhh-1", at(2024, 1, 4), requires_subsanation="false"
        )
        assert result.ok
        assert result.context.requires_subsanation is False
        assert "case-1-deadline-2" not in {d.id for d in result.instances}
        assert store.get("case-1").context.requires_subsanation is False

    def test_invalid_flag_value_rejected(self, opened, store, audit):
        before = store.get("case-1")
        result = opened.update_circumstances(
            "case-1", "rrhh-1", at(2024, 1, 4), requires_subsanation="maybe"
        )
        assert not result.ok
        assert result.error.code == DeadlineErrorCode.VALIDATION
        assert result.context == before.context
        assert store.get("case-1") == before
        assert audit.query({"action": "karin_circumstances_updated"}) == []

    def test_unknown_circumstance(self, opened):
        result = opened.update_circumstances(
            "case-1", "rrhh-1", at(2024, 1, 4), anonymous=True
        )
        assert result.error.code == DeadlineErrorCode.VALIDATION

    def test_missing_case(self, service):
        result = service.update_circumstances(
            "missing", "rrhh-1", at(2024, 1, 4), extension_requested=True
        )
        assert result.error.code == DeadlineErrorCode.NOT_FOUND


class TestExtensionRequests:
    def _request(self, service, days=10):
        return service.request_extension(
            "case-1", "case-1-deadline-4", days, "Testigos adicionales", "inv-1",
            at(2024, 1, 20),
        )

    def test_request_persisted_and_audited(self, opened, store, audit):
        result = self._request(opened)
        assert result.ok
        assert result.context.case_id == "case-1"
        (stored,) = store.get("case-1").extension_requests
        assert stored.id == "case-1-extension-0"
        assert stored.status == ExtensionRequestStatus.PENDING
        (event,) = audit.query({"action": "karin_extension_requested"})
        assert event.details["requested_days"] == 10

    def test_request_ids_increment(self, opened, store):
        self._request(opened)
        second = self._request(opened, days=5)
        assert second.extension_request.id == "case-1-extension-1"
        assert len(store.get("case-1").extension_requests) == 2

    def test_invalid_request_not_persisted(self, opened, store):
        result = self._request(opened, days=45)
        assert result.error.code == DeadlineErrorCode.VALIDATION
        assert store.get("case-1").extension_requests == []

    def test_approval_extends_stored_deadline(self, opened, store, audit):
        self._request(opened)
        result = opened.process_extension(
            "case-1", "case-1-extension-0", True, "fiscal", at(2024, 1, 22), comment="Procede"
        )
        assert result.ok
        record = store.get("case-1")
        (request,) = record.extension_requests
        assert request.status == ExtensionRequestStatus.APPROVED
        assert request.new_end_date == date(2024, 2, 23)
        stored = {d.id: d for d in record.instances}
        assert stored["case-1-deadline-4"].end_date == date(2024, 2, 23)
        (event,) = audit.query({"action": "karin_extension_approved"})
        assert event.details["comment"] == "Procede"

    def test_rejection_keeps_deadline(self, opened, store, audit):
        self._request(opened)
        result = opened.process_extension(
            "case-1", "case-1-extension-0", False, "fiscal", at(2024, 1, 22)
        )
        assert result.ok
        record = store.get("case-1")
        assert record.extension_requests[0].status == ExtensionRequestStatus.REJECTED
        stored = {d.id: d for d in record.instances}
        assert stored["case-1-deadline-4"].end_date == date(2024, 2, 13)
        assert audit.query({"action": "karin_extension_rejected"})

    def test_processed_request_cannot_be_reprocessed(self, opened, store):
        self._request(opened)
        opened.process_extension("case-1", "case-1-extension-0", False, "fiscal", at(2024, 1, 22))
        result = opened.process_extension(
            "case-1", "case-1-extension-0", True, "fiscal", at(2024, 1, 23)
        )
        assert result.error.code == DeadlineErrorCode.STATE
        stored = {d.id: d for d in store.get("case-1").instances}
        assert stored["case-1-deadline-4"].end_date == date(2024, 2, 13)

    def test_unknown_request(self, opened):
        result = opened.process_extension("case-1", "nope", True, "fiscal", at(2024, 1, 22))
        assert result.error.code == DeadlineErrorCode.NOT_FOUND

    def test_missing_case(self, service):
        assert self._request(service).error.code == DeadlineErrorCode.NOT_FOUND
        result = service.process_extension("missing", "x", True, "fiscal", at(2024, 1, 22))
        assert result.error.code == DeadlineErrorCode.NOT_FOUND

    def test_requests_survive_circumstance_update(self, opened, store):
        self._request(opened)
        opened.update_circumstances(
            "case-1", "rrhh-1", at(2024, 1, 21), extension_requested=True
        )
        assert len(store.get("case-1").extension_requests) == 1


class TestReadModels:
    def test_summary(self, opened):
        summary = opened.summary("case-1", at(2024, 1, 4))
        assert summary.compliance_status == ComplianceStatus.AT_RISK

    def test_alerts(self, opened):
        assert len(opened.alerts("case-1", at(2024, 1, 6))) == 2

    def test_reminders_sorted(self, opened):
        reminders = opened.reminders("case-1", at(2024, 1, 2))
        triggers = [r.trigger_date for r in reminders]
        assert triggers == sorted(triggers)
        assert reminders

    def test_report(self, opened):
        opened.complete_deadline("case-1", "case-1-deadline-0", "inv-1", at(2024, 1, 3))
        report = opened.report("case-1", at(2024, 1, 8))
        assert report.total == 8
        assert report.completed == 1
        assert report.overdue == 1
        assert report.next_deadline.id == "case-1-deadline-3"
        assert opened.report("missing", at(2024, 1, 8)) is None

    def test_history(self, opened):
        opened.complete_deadline("case-1", "case-1-deadline-0", "inv-1", at(2024, 1, 3))
        opened.open_case(make_context(case_id="case-9", tenant_id="tenant-b"), "x", at(2024, 1, 2))
        history = opened.history("case-1")
        assert [e.action for e in history] == [
            "karin_case_opened", "karin_deadline_completed",
        ]
        assert opened.history("missing") is None

    def test_history_audit_chain_per_tenant(self, opened, audit):
        opened.open_case(make_context(case_id="case-9", tenant_id="tenant-b"), "x", at(2024, 1, 2))
        assert audit.log_path("tenant-a").exists()
        assert audit.log_path("tenant-b").exists()
        assert audit.verify_chain("tenant-a") is True
        assert audit.verify_chain("tenant-b") is True

    def test_missing_case_read_models(self, service):
        now = at(2024, 1, 2)
        assert service.summary("missing", now) is None
        assert service.alerts("missing", now) is None
        assert service.reminders("missing", now) is None

    def test_list_cases_by_tenant(self, opened):
        opened.open_case(make_context(case_id="case-9", tenant_id="tenant-b"), "x", at(2024, 1, 2))
        cases = opened.list_cases("tenant-a", at(2024, 1, 2))
        assert [c.case_id for c in cases] == ["case-1"]

    def test_without_audit_logger(self, store, engine):
        service = KarinProcessService(store, engine)
        assert service.open_case(make_context(), "rrhh-1", at(2024, 1, 2)).ok
        assert service.history("case-1") == []

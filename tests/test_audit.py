from datetime import date

import pytest

from obras_app.audit import (
    APROVAR,
    CRIAR,
    ENVIAR_APROVACAO,
    REPROVAR,
    AuditEntry,
    AuditLogRecorder,
    month_bounds,
)
from obras_app.errors import NotFoundError, ValidationError, WriteError
from obras_app.extensions import db
from obras_app.gateway import AuditTable
from obras_app.models import RdoAuditLog, RdoReport
from obras_app.services.rdo import RdoWorkflow


def test_append_and_list_newest_first(make_report, make_user):
    report = make_report()
    actor = make_user(role="editor", name="Maria Fiscal")
    recorder = AuditLogRecorder()

    recorder.append(AuditEntry.for_actor(report.obra_id, report.id, CRIAR, actor=actor))
    recorder.append(AuditEntry.for_actor(report.obra_id, report.id, ENVIAR_APROVACAO, actor=actor))
    recorder.append(AuditEntry(obra_id=report.obra_id, report_id=report.id, acao=APROVAR, detalhes={"obs": "ok"}))

    entries = recorder.list_by_report(report.id)

    assert [e.acao for e in entries] == [APROVAR, ENVIAR_APROVACAO, CRIAR]
    assert entries[0].actor_id is None
    assert entries[0].detalhes == {"obs": "ok"}
    assert entries[-1].actor_nome == "Maria Fiscal"


def test_append_rejects_unknown_action(make_report):
    report = make_report()
    with pytest.raises(ValidationError):
        AuditLogRecorder().append(AuditEntry(obra_id=report.obra_id, report_id=report.id, acao="APAGAR"))


def test_append_surfaces_write_failure(make_report, monkeypatch):
    report = make_report()

    def failing(self, **values):
        raise WriteError("Falha ao registrar log de auditoria.")

    monkeypatch.setattr(AuditTable, "insert", failing)

    entry = AuditEntry(obra_id=report.obra_id, report_id=report.id, acao=CRIAR)
    with pytest.raises(WriteError):
        AuditLogRecorder().append(entry)
    assert AuditLogRecorder().record_best_effort(entry) is None


def test_rejected_reports_is_a_historical_query(make_report):
    recorder = AuditLogRecorder()
    rejected_then_approved = make_report(day=date(2026, 3, 5))
    never_rejected = make_report(day=date(2026, 3, 6))
    rejected_outside_range = make_report(day=date(2026, 4, 2))

    for report, actions in (
        (rejected_then_approved, [REPROVAR, APROVAR]),
        (never_rejected, [APROVAR]),
        (rejected_outside_range, [REPROVAR]),
    ):
        for acao in actions:
            recorder.append(AuditEntry(obra_id=report.obra_id, report_id=report.id, acao=acao))

    start, end = month_bounds(2026, 3)
    result = recorder.find_rejected_reports_in_range(rejected_then_approved.obra_id, start, end)

    assert result == {rejected_then_approved.id}


def test_rejected_reports_empty_range(obra):
    assert AuditLogRecorder().find_rejected_reports_in_range(obra.id, date(2026, 1, 1), date(2026, 1, 31)) == set()


def test_month_bounds():
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    with pytest.raises(ValidationError):
        month_bounds(2024, 13)


# ---------------------------------------------------------------------
# RDO workflow: action first, then best-effort log
# ---------------------------------------------------------------------
def test_transition_updates_status_and_logs(make_report, make_user):
    report = make_report(status="rascunho")
    actor = make_user(role="contratada")

    outcome = RdoWorkflow().transition_report(report.id, ENVIAR_APROVACAO, actor=actor)

    assert outcome.audit_logged is True
    assert db.session.get(RdoReport, report.id).status == "aguardando_aprovacao"
    entry = RdoAuditLog.query.one()
    assert entry.acao == ENVIAR_APROVACAO
    assert entry.detalhes["status_anterior"] == "rascunho"


def test_transition_survives_audit_failure(make_report, monkeypatch):
    report = make_report(status="aguardando_aprovacao")

    def failing(self, **values):
        raise WriteError("Falha ao registrar log de auditoria.")

    monkeypatch.setattr(AuditTable, "insert", failing)

    outcome = RdoWorkflow().transition_report(report.id, APROVAR)

    assert outcome.audit_logged is False
    assert db.session.get(RdoReport, report.id).status == "aprovado"
    assert RdoAuditLog.query.count() == 0


def test_transition_rejects_invalid_state(make_report):
    report = make_report(status="rascunho")
    with pytest.raises(ValidationError):
        RdoWorkflow().transition_report(report.id, APROVAR)
    with pytest.raises(ValidationError):
        RdoWorkflow().transition_report(report.id, CRIAR)
    with pytest.raises(NotFoundError):
        RdoWorkflow().transition_report(999, APROVAR)

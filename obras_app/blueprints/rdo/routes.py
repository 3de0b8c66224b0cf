"""
obras_app/blueprints/rdo/routes.py

RDO (daily report) routes.

Includes:
- GET  /rdo/<report_id>/audit                 history, newest first
- POST /rdo/<report_id>/audit                 append an entry (signatures, PDF, share…)
- POST /rdo/<report_id>/transicao/<acao>      status workflow + best-effort audit
- GET  /rdo/<report_id>/acumulado             accumulated execution excluding this report
- GET  /obras/<obra_id>/rdo/reprovados        reports ever rejected in a date range / month

NOTES:
- Audit logging of a transition never reverts the transition; the response
  says whether the entry was recorded (audit_logged).
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ...audit import ENVIAR_APROVACAO, AuditEntry, AuditLogRecorder, month_bounds, serialize_entry
from ...errors import NotFoundError, PermissionDenied, ValidationError
from ...gateway import ReportTable
from ...security import PermissionGuard, RoleCapabilities, capability_required, current_role
from ...services.rdo import RdoWorkflow
from ...services.reconciliation import accumulated_for_report
from ...utils import json_body, parse_date
from ..sessions.routes import get_obra_or_404

rdo_bp = Blueprint("rdo", __name__)


def _get_report_or_404(report_id: int):
    report = ReportTable().get(report_id)
    if report is None:
        raise NotFoundError(f"RDO {report_id} não encontrado.")
    return report


@rdo_bp.route("/rdo/<int:report_id>/audit", methods=["GET"])
@login_required
def audit_history(report_id: int):
    _get_report_or_404(report_id)
    entries = AuditLogRecorder().list_by_report(report_id)
    return jsonify([serialize_entry(e) for e in entries])


@rdo_bp.route("/rdo/<int:report_id>/audit", methods=["POST"])
@login_required
@capability_required("can_edit_rdo")
def append_audit(report_id: int):
    report = _get_report_or_404(report_id)
    data = json_body()
    acao = (data.get("acao") or "").strip().upper()
    if not acao:
        raise ValidationError("'acao' é obrigatória.")

    row = AuditLogRecorder().append(
        AuditEntry.for_actor(report.obra_id, report.id, acao, actor=current_user, detalhes=data.get("detalhes"))
    )
    return jsonify(serialize_entry(row)), 201


@rdo_bp.route("/rdo/<int:report_id>/transicao/<acao>", methods=["POST"])
@login_required
def transition(report_id: int, acao: str):
    acao = acao.upper()
    role = current_role()

    # Contractor submits; inspection (edit) approves, rejects and reopens
    if acao == ENVIAR_APROVACAO:
        if not RoleCapabilities.for_role(role).can_edit_rdo:
            raise PermissionDenied(PermissionGuard(role, requires_edit=True).fallback_message())
    else:
        guard = PermissionGuard(role, requires_edit=True)
        if not guard.allowed:
            raise PermissionDenied(guard.fallback_message())

    detalhes = json_body().get("detalhes")
    if detalhes is not None and not isinstance(detalhes, dict):
        raise ValidationError("detalhes deve ser um objeto JSON.")

    outcome = RdoWorkflow().transition_report(report_id, acao, actor=current_user, detalhes=detalhes)
    return jsonify(outcome.to_dict())


@rdo_bp.route("/rdo/<int:report_id>/acumulado", methods=["GET"])
@login_required
def accumulated(report_id: int):
    result = accumulated_for_report(report_id)
    return jsonify({str(item_id): acc.to_dict() for item_id, acc in result.items()})


@rdo_bp.route("/obras/<int:obra_id>/rdo/reprovados", methods=["GET"])
@login_required
def rejected_in_range(obra_id: int):
    get_obra_or_404(obra_id)

    mes = (request.args.get("mes") or "").strip()
    if mes:
        try:
            year, month = (int(part) for part in mes.split("-", 1))
        except ValueError:
            raise ValidationError("Parâmetro 'mes' inválido (use AAAA-MM).") from None
        start, end = month_bounds(year, month)
    else:
        start = parse_date(request.args.get("inicio"), "inicio")
        end = parse_date(request.args.get("fim"), "fim")
        if end < start:
            raise ValidationError("'fim' deve ser igual ou posterior a 'inicio'.")

    ids = AuditLogRecorder().find_rejected_reports_in_range(obra_id, start, end)
    return jsonify({"inicio": start.isoformat(), "fim": end.isoformat(), "report_ids": sorted(ids)})

"""
obras_app/services/rdo.py

RDO approval workflow.

Each transition is two-phase:
1) update and commit the report status (the business action);
2) best-effort audit entry.

A failed audit write does not revert step 1; the outcome says whether the
entry was recorded so the client can warn the user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..audit import APROVAR, ENVIAR_APROVACAO, REABRIR, REPROVAR, AuditEntry, AuditLogRecorder
from ..errors import NotFoundError, ValidationError
from ..gateway import ReportTable
from ..models import RDO_AGUARDANDO, RDO_APROVADO, RDO_RASCUNHO, RDO_REPROVADO

logger = logging.getLogger(__name__)

# action -> (allowed current statuses, new status)
REPORT_TRANSITIONS = {
    ENVIAR_APROVACAO: ({RDO_RASCUNHO, RDO_REPROVADO}, RDO_AGUARDANDO),
    APROVAR: ({RDO_AGUARDANDO}, RDO_APROVADO),
    REPROVAR: ({RDO_AGUARDANDO}, RDO_REPROVADO),
    REABRIR: ({RDO_APROVADO, RDO_REPROVADO}, RDO_RASCUNHO),
}


@dataclass
class TransitionOutcome:
    report: Any
    previous_status: str
    audit_logged: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report.id,
            "status": self.report.status,
            "previous_status": self.previous_status,
            "audit_logged": self.audit_logged,
        }


class RdoWorkflow:
    def __init__(self, reports: ReportTable | None = None, recorder: AuditLogRecorder | None = None):
        self.reports = reports or ReportTable()
        self.recorder = recorder or AuditLogRecorder()

    def transition_report(
        self,
        report_id: int,
        acao: str,
        actor: Any = None,
        detalhes: Optional[Dict[str, Any]] = None,
    ) -> TransitionOutcome:
        if acao not in REPORT_TRANSITIONS:
            raise ValidationError(f"Ação não permitida para o RDO: {acao}")

        report = self.reports.get(report_id)
        if report is None:
            raise NotFoundError(f"RDO {report_id} não encontrado.")

        allowed_from, new_status = REPORT_TRANSITIONS[acao]
        previous = report.status
        if previous not in allowed_from:
            raise ValidationError(
                f"RDO em '{previous}' não aceita a ação {acao}.",
                details={"status": previous, "acao": acao},
            )

        self.reports.update_status(report, new_status)
        logger.info("RDO %s: %s -> %s (%s)", report.id, previous, new_status, acao)

        details = {"status_anterior": previous, "status_novo": new_status}
        if detalhes:
            details.update(detalhes)

        logged = self.recorder.record_best_effort(
            AuditEntry.for_actor(report.obra_id, report.id, acao, actor=actor, detalhes=details)
        )
        return TransitionOutcome(report=report, previous_status=previous, audit_logged=logged is not None)

"""
obras_app/audit.py

RDO audit log recorder.

Goals:
- Capture WHO did WHAT to WHICH report, with an optional details payload.
- Store a name snapshot to preserve identity even if the user is renamed later.
- Entries are append-only: nothing here updates or deletes them.

IMPORTANT:
- append() writes in its own transaction and raises WriteError on failure.
- Logging is NOT atomic with the business action it accompanies. The
  contract is two-phase: the caller performs and commits its action, then
  calls record_best_effort(), which reports a failed write (returns None)
  but never reverts the action.
- The actor is passed explicitly (None = system action); this module never
  reads the logged-in user itself.
"""

from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Set

from .errors import ValidationError, WriteError
from .gateway import AuditTable, ReportTable

logger = logging.getLogger(__name__)

CRIAR = "CRIAR"
EDITAR = "EDITAR"
ENVIAR_APROVACAO = "ENVIAR_APROVACAO"
APROVAR = "APROVAR"
REPROVAR = "REPROVAR"
ASSINAR_FISCAL = "ASSINAR_FISCAL"
ASSINAR_CONTRATADA = "ASSINAR_CONTRATADA"
GERAR_PDF = "GERAR_PDF"
DOWNLOAD_PDF = "DOWNLOAD_PDF"
SHARE_EMAIL = "SHARE_EMAIL"
REABRIR = "REABRIR"

AUDIT_ACTIONS = (
    CRIAR,
    EDITAR,
    ENVIAR_APROVACAO,
    APROVAR,
    REPROVAR,
    ASSINAR_FISCAL,
    ASSINAR_CONTRATADA,
    GERAR_PDF,
    DOWNLOAD_PDF,
    SHARE_EMAIL,
    REABRIR,
)


@dataclass
class AuditEntry:
    obra_id: int
    report_id: int
    acao: str
    detalhes: Optional[Dict[str, Any]] = None
    actor_id: Optional[int] = None
    actor_nome: Optional[str] = None

    @classmethod
    def for_actor(cls, obra_id: int, report_id: int, acao: str, actor: Any = None, detalhes=None) -> "AuditEntry":
        """Build an entry from a User-like actor (or None for system actions)."""
        return cls(
            obra_id=obra_id,
            report_id=report_id,
            acao=acao,
            detalhes=detalhes,
            actor_id=getattr(actor, "id", None),
            actor_nome=actor.display_name() if actor is not None else None,
        )


def serialize_entry(row: Any) -> Dict[str, Any]:
    return {
        "id": row.id,
        "obra_id": row.obra_id,
        "report_id": row.report_id,
        "acao": row.acao,
        "detalhes": row.detalhes,
        "actor_id": row.actor_id,
        "actor_nome": row.actor_nome,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


class AuditLogRecorder:
    def __init__(self, table: AuditTable | None = None, reports: ReportTable | None = None):
        self.table = table or AuditTable()
        self.reports = reports or ReportTable()

    def append(self, entry: AuditEntry):
        """Insert one entry. Raises WriteError when the write fails."""
        if entry.acao not in AUDIT_ACTIONS:
            raise ValidationError(f"Ação de auditoria desconhecida: {entry.acao}")
        if entry.detalhes is not None and not isinstance(entry.detalhes, dict):
            raise ValidationError("detalhes deve ser um objeto JSON.")

        row = self.table.insert(
            obra_id=entry.obra_id,
            report_id=entry.report_id,
            acao=entry.acao,
            detalhes=entry.detalhes or None,
            actor_id=entry.actor_id,
            actor_nome=entry.actor_nome,
        )
        logger.info("Audit %s on report %s by %s", entry.acao, entry.report_id, entry.actor_id)
        return row

    def record_best_effort(self, entry: AuditEntry):
        """Append after the business action committed; failures are reported, not raised."""
        try:
            return self.append(entry)
        except WriteError as exc:
            logger.error(
                "Audit log write failed for report %s (%s): %s", entry.report_id, entry.acao, exc.message
            )
            return None

    def list_by_report(self, report_id: int) -> List[Any]:
        """Entries of a report, newest first."""
        return self.table.list_by_report(report_id)

    def find_rejected_reports_in_range(self, obra_id: int, start: date, end: date) -> Set[int]:
        """
        Reports of the obra dated within [start, end] that were EVER rejected.

        Historical fact, not current status: a report rejected and later
        approved is still included.
        """
        report_ids = self.reports.ids_in_range(obra_id, start, end)
        if not report_ids:
            return set()
        return self.table.report_ids_with_action(report_ids, REPROVAR)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    if not 1 <= month <= 12:
        raise ValidationError(f"Mês inválido: {month}")
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])

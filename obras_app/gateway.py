"""
obras_app/gateway.py

Table gateway: thin query/mutation wrappers per entity.

Rules:
- One class per table family; no business rules live here.
- Every mutation runs inside write_transaction(): commit on success,
  rollback on any failure, and SQLAlchemy errors are translated into the
  application taxonomy (IntegrityError -> ConflictError, anything else
  -> WriteError).
- No automatic retry. A failure is terminal for the call that produced it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Type

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from .errors import ConflictError, ObrasError, ValidationError, WriteError
from .extensions import db
from .models import (
    AditivoItem,
    AditivoSession,
    MedicaoItem,
    MedicaoSession,
    OrcamentoItem,
    PasswordReset,
    RdoActivity,
    RdoAuditLog,
    RdoReport,
    User,
)

logger = logging.getLogger(__name__)

KIND_MEDICAO = "medicao"
KIND_ADITIVO = "aditivo"

SESSION_KINDS: Dict[str, Tuple[Type[Any], Type[Any]]] = {
    KIND_MEDICAO: (MedicaoSession, MedicaoItem),
    KIND_ADITIVO: (AditivoSession, AditivoItem),
}


@contextmanager
def write_transaction(action: str) -> Iterator[Any]:
    """Run a unit of writes; commit or roll back as a whole."""
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.info("Integrity violation during %s: %s", action, exc.orig)
        raise ConflictError(f"Registro duplicado ao {action}.") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Write failed during %s: %s", action, exc)
        raise WriteError(f"Falha ao {action}.") from exc
    except ObrasError:
        db.session.rollback()
        raise


def models_for(kind: str) -> Tuple[Type[Any], Type[Any]]:
    """Return (session model, item model) for a session kind."""
    try:
        return SESSION_KINDS[kind]
    except KeyError:
        raise ValidationError(f"Tipo de sessão desconhecido: {kind}") from None


# ---------------------------------------------------------------------
# Sessions + items
# ---------------------------------------------------------------------
class SessionTable:
    """medicao_sessions / aditivo_sessions."""

    def __init__(self, kind: str):
        self.kind = kind
        self.model, self.item_model = models_for(kind)

    def get(self, session_id: int):
        return db.session.get(self.model, session_id)

    def insert(self, obra_id: int, sequencia: int, status: str):
        with write_transaction("criar sessão") as session:
            row = self.model(obra_id=obra_id, sequencia=sequencia, status=status)
            session.add(row)
            session.flush()
        return row

    def update_status(self, session_id: int, status: str) -> int:
        """Return the number of rows affected."""
        with write_transaction("atualizar status da sessão"):
            affected = (
                self.model.query.filter(self.model.id == session_id)
                .update({"status": status}, synchronize_session="fetch")
            )
        return affected

    def delete_items(self, session_id: int) -> int:
        """Delete child rows inside the caller's transaction (no commit)."""
        return (
            self.item_model.query.filter(self.item_model.session_id == session_id)
            .delete(synchronize_session=False)
        )

    def delete_row(self, session_id: int) -> int:
        """Delete the session row inside the caller's transaction (no commit)."""
        return (
            self.model.query.filter(self.model.id == session_id)
            .delete(synchronize_session=False)
        )

    def list_with_items(self, obra_id: int) -> List[Any]:
        return (
            self.model.query.options(selectinload(self.model.items))
            .filter(self.model.obra_id == obra_id)
            .order_by(self.model.sequencia.asc())
            .all()
        )

    def max_sequence(self, obra_id: int) -> Optional[int]:
        return (
            db.session.query(func.max(self.model.sequencia))
            .filter(self.model.obra_id == obra_id)
            .scalar()
        )


class ItemTable:
    """medicao_items / aditivo_items (upsert target: session_id + item_code)."""

    def __init__(self, kind: str):
        self.kind = kind
        _, self.model = models_for(kind)

    def upsert(self, session_id: int, rows: Sequence[Dict[str, Any]]) -> List[Any]:
        """
        Write every row in ONE transaction: all rows or none.

        Existing rows for the same (session_id, item_code) are overwritten.
        """
        written = []
        with write_transaction("gravar itens") as session:
            codes = [r["item_code"] for r in rows]
            existing = {
                item.item_code: item
                for item in self.model.query.filter(
                    self.model.session_id == session_id,
                    self.model.item_code.in_(codes),
                ).all()
            } if codes else {}

            for values in rows:
                item = existing.get(values["item_code"])
                if item is None:
                    item = self.model(session_id=session_id, item_code=values["item_code"])
                    session.add(item)
                for key, value in values.items():
                    if key != "item_code":
                        setattr(item, key, value)
                written.append(item)
            session.flush()
        return written


# ---------------------------------------------------------------------
# Budget / RDO
# ---------------------------------------------------------------------
class OrcamentoTable:
    def for_obra(self, obra_id: int) -> List[OrcamentoItem]:
        return (
            OrcamentoItem.query.filter(OrcamentoItem.obra_id == obra_id)
            .order_by(OrcamentoItem.item.asc())
            .all()
        )


class ReportTable:
    def get(self, report_id: int) -> Optional[RdoReport]:
        return db.session.get(RdoReport, report_id)

    def ids_in_range(self, obra_id: int, start: date, end: date) -> List[int]:
        rows = (
            db.session.query(RdoReport.id)
            .filter(
                RdoReport.obra_id == obra_id,
                RdoReport.data >= start,
                RdoReport.data <= end,
            )
            .all()
        )
        return [r.id for r in rows]

    def update_status(self, report: RdoReport, status: str) -> RdoReport:
        with write_transaction("atualizar status do RDO"):
            report.status = status
        return report


class ActivityTable:
    def planilha_records(self, obra_id: int) -> List[Tuple[int, int, Any, Any]]:
        """(report_id, orcamento_item_id, executado_dia, quantidade_total) for budget-driven rows."""
        rows = (
            db.session.query(
                RdoActivity.report_id,
                RdoActivity.orcamento_item_id,
                RdoActivity.executado_dia,
                RdoActivity.quantidade_total,
            )
            .filter(
                RdoActivity.obra_id == obra_id,
                RdoActivity.tipo == "planilha",
                RdoActivity.orcamento_item_id.isnot(None),
            )
            .all()
        )
        return [tuple(r) for r in rows]


class AuditTable:
    """rdo_audit_log: insert and read only."""

    def insert(self, **values: Any) -> RdoAuditLog:
        with write_transaction("registrar log de auditoria") as session:
            entry = RdoAuditLog(**values)
            session.add(entry)
            session.flush()
        return entry

    def list_by_report(self, report_id: int) -> List[RdoAuditLog]:
        return (
            RdoAuditLog.query.filter(RdoAuditLog.report_id == report_id)
            .order_by(RdoAuditLog.created_at.desc(), RdoAuditLog.id.desc())
            .all()
        )

    def report_ids_with_action(self, report_ids: Iterable[int], acao: str) -> Set[int]:
        ids = list(report_ids)
        if not ids:
            return set()
        rows = (
            db.session.query(RdoAuditLog.report_id)
            .filter(RdoAuditLog.report_id.in_(ids), RdoAuditLog.acao == acao)
            .all()
        )
        return {r.report_id for r in rows}


# ---------------------------------------------------------------------
# Users / password reset
# ---------------------------------------------------------------------
class UserTable:
    def get(self, user_id: int) -> Optional[User]:
        return db.session.get(User, user_id)

    def by_email(self, email: str) -> Optional[User]:
        return User.query.filter(func.lower(User.email) == email.strip().lower()).first()

    def set_password(self, user: User, password: str) -> None:
        with write_transaction("atualizar senha"):
            user.set_password(password)


class PasswordResetTable:
    def insert(self, user_id: int, code: str, expires_at) -> PasswordReset:
        with write_transaction("gerar código de redefinição") as session:
            row = PasswordReset(user_id=user_id, code=code, expires_at=expires_at, used=False)
            session.add(row)
            session.flush()
        return row

    def find_valid(self, code: str, now) -> Optional[PasswordReset]:
        """Newest unused, unexpired row for the code."""
        return (
            PasswordReset.query.filter(
                PasswordReset.code == code,
                PasswordReset.used.is_(False),
                PasswordReset.expires_at > now,
            )
            .order_by(PasswordReset.created_at.desc(), PasswordReset.id.desc())
            .first()
        )

    def mark_used(self, reset: PasswordReset) -> None:
        with write_transaction("invalidar código de redefinição"):
            reset.used = True

    def delete_stale(self, now) -> int:
        with write_transaction("limpar códigos expirados"):
            removed = (
                PasswordReset.query.filter(
                    (PasswordReset.used.is_(True)) | (PasswordReset.expires_at <= now)
                )
                .delete(synchronize_session=False)
            )
        return removed

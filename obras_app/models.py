"""
Gestão de Obras – Domain Models

Includes:
- Users (role-based access) and Obras (the project everything is scoped to)
- Orçamento items (planned quantities and contract values per obra)
- Medição / Aditivo sessions and their item entries
- RDO reports, their execution records and the append-only RDO audit log
- Password reset codes

IMPORTANT:
- A session exclusively owns its item entries, but no storage-level cascade
  is declared: deletion order (items, then session) is enforced in the gateway.
- UI is never trusted. Any selection must be validated server-side.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from flask_login import UserMixin
from sqlalchemy.orm import declared_attr
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db


STATUS_ABERTA = "aberta"
STATUS_BLOQUEADA = "bloqueada"
SESSION_STATUSES = (STATUS_ABERTA, STATUS_BLOQUEADA)

RDO_RASCUNHO = "rascunho"
RDO_AGUARDANDO = "aguardando_aprovacao"
RDO_APROVADO = "aprovado"
RDO_REPROVADO = "reprovado"


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite and PostgreSQL friendly)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------
# Users & obras
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user. Role drives every capability check."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default="viewer", index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def display_name(self) -> str:
        return self.full_name or self.email

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"


class Obra(db.Model):
    """Construction project (obra)."""

    __tablename__ = "obras"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    # Used for the financial summary when the obra has no budget sheet
    valor_total = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    valor_aditivado = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<Obra {self.name}>"


class OrcamentoItem(db.Model):
    """
    Budget line of an obra.

    item is hierarchical ("1", "1.2", "1.2.3"); only leaf items carry
    quantities that measurements refer to.
    """

    __tablename__ = "orcamento_items"

    id = db.Column(db.Integer, primary_key=True)

    obra_id = db.Column(db.Integer, db.ForeignKey("obras.id", ondelete="CASCADE"), nullable=False, index=True)

    item = db.Column(db.String(50), nullable=False)
    codigo = db.Column(db.String(50), nullable=True)
    description = db.Column(db.String(500), nullable=True)
    unidade = db.Column(db.String(20), nullable=True)

    quantity = db.Column(db.Numeric(14, 4), nullable=False, default=Decimal("0"))
    total_contrato = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    obra = db.relationship("Obra", backref=db.backref("orcamento_items", lazy=True))

    __table_args__ = (db.UniqueConstraint("obra_id", "item", name="uq_orcamento_obra_item"),)


# ---------------------------------------------------------------------
# Sessions (medição / aditivo)
# ---------------------------------------------------------------------
class SessionMixin:
    """Columns shared by medição and aditivo sessions."""

    id = db.Column(db.Integer, primary_key=True)

    sequencia = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_ABERTA, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    @property
    def is_blocked(self) -> bool:
        return self.status == STATUS_BLOQUEADA


class ItemMixin:
    """Columns shared by medição and aditivo item entries."""

    id = db.Column(db.Integer, primary_key=True)

    item_code = db.Column(db.String(50), nullable=False)
    qtd = db.Column(db.Numeric(14, 4), nullable=False, default=Decimal("0"))
    pct = db.Column(db.Numeric(9, 4), nullable=False, default=Decimal("0"))
    total = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    @declared_attr
    def user_id(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class MedicaoSession(SessionMixin, db.Model):
    __tablename__ = "medicao_sessions"

    obra_id = db.Column(db.Integer, db.ForeignKey("obras.id"), nullable=False, index=True)

    items = db.relationship(
        "MedicaoItem",
        back_populates="session",
        lazy=True,
        order_by="MedicaoItem.item_code",
    )

    __table_args__ = (db.UniqueConstraint("obra_id", "sequencia", name="uq_medicao_obra_sequencia"),)


class MedicaoItem(ItemMixin, db.Model):
    __tablename__ = "medicao_items"

    session_id = db.Column(db.Integer, db.ForeignKey("medicao_sessions.id"), nullable=False, index=True)

    session = db.relationship("MedicaoSession", back_populates="items")

    __table_args__ = (db.UniqueConstraint("session_id", "item_code", name="uq_medicao_item_code"),)


class AditivoSession(SessionMixin, db.Model):
    __tablename__ = "aditivo_sessions"

    obra_id = db.Column(db.Integer, db.ForeignKey("obras.id"), nullable=False, index=True)

    items = db.relationship(
        "AditivoItem",
        back_populates="session",
        lazy=True,
        order_by="AditivoItem.item_code",
    )

    __table_args__ = (db.UniqueConstraint("obra_id", "sequencia", name="uq_aditivo_obra_sequencia"),)


class AditivoItem(ItemMixin, db.Model):
    __tablename__ = "aditivo_items"

    session_id = db.Column(db.Integer, db.ForeignKey("aditivo_sessions.id"), nullable=False, index=True)

    # Unit price agreed in the additive (may differ from the budget's)
    valor_unitario = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    session = db.relationship("AditivoSession", back_populates="items")

    __table_args__ = (db.UniqueConstraint("session_id", "item_code", name="uq_aditivo_item_code"),)


# ---------------------------------------------------------------------
# RDO (daily report)
# ---------------------------------------------------------------------
class RdoReport(db.Model):
    __tablename__ = "rdo_reports"

    id = db.Column(db.Integer, primary_key=True)

    obra_id = db.Column(db.Integer, db.ForeignKey("obras.id"), nullable=False, index=True)
    data = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(30), nullable=False, default=RDO_RASCUNHO, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    obra = db.relationship("Obra", backref=db.backref("rdo_reports", lazy=True))


class RdoActivity(db.Model):
    """Execution record: quantity executed for a budget item in one report."""

    __tablename__ = "rdo_activities"

    id = db.Column(db.Integer, primary_key=True)

    obra_id = db.Column(db.Integer, db.ForeignKey("obras.id"), nullable=False, index=True)
    report_id = db.Column(db.Integer, db.ForeignKey("rdo_reports.id"), nullable=False, index=True)
    orcamento_item_id = db.Column(db.Integer, db.ForeignKey("orcamento_items.id"), nullable=True, index=True)

    # "planilha" (budget-driven) or "manual" (free text)
    tipo = db.Column(db.String(20), nullable=False, default="planilha")
    descricao = db.Column(db.String(500), nullable=True)

    executado_dia = db.Column(db.Numeric(14, 4), nullable=False, default=Decimal("0"))
    quantidade_total = db.Column(db.Numeric(14, 4), nullable=False, default=Decimal("0"))

    report = db.relationship("RdoReport", backref=db.backref("activities", lazy=True))


class RdoAuditLog(db.Model):
    """
    Append-only RDO lifecycle record.

    actor_nome is a snapshot so history survives later name changes.
    """

    __tablename__ = "rdo_audit_log"

    id = db.Column(db.Integer, primary_key=True)

    obra_id = db.Column(db.Integer, db.ForeignKey("obras.id"), nullable=False, index=True)
    report_id = db.Column(db.Integer, db.ForeignKey("rdo_reports.id"), nullable=False, index=True)

    acao = db.Column(db.String(30), nullable=False, index=True)
    detalhes = db.Column(db.JSON, nullable=True)

    actor_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_nome = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)


# ---------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------
class PasswordReset(db.Model):
    __tablename__ = "password_resets"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code = db.Column(db.String(6), nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    user = db.relationship("User", backref=db.backref("password_resets", lazy=True))

"""
obras_app/services/reconciliation.py

Item reconciliation: batched item submission, additive adjustments and
accumulated execution.

compute_adjustment() and compute_accumulated() are pure: no database access,
same inputs -> same result. The loaders at the bottom fetch rows through the
gateway and feed them to the pure functions.

Precision:
- Quantities/percentages are Decimal.
- Accumulated values are quantized to 4 places with ROUND_HALF_UP
  (half away from zero) so binary float drift never leaks into results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence

from ..errors import NotFoundError, ValidationError
from ..gateway import (
    KIND_ADITIVO,
    ActivityTable,
    ItemTable,
    OrcamentoTable,
    ReportTable,
    SessionTable,
)

logger = logging.getLogger(__name__)

FOUR_PLACES = Decimal("0.0001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Convert Numeric/float/str/None to Decimal safely (None -> 0)."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"Valor numérico inválido: {value!r}")
    try:
        result = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Valor numérico inválido: {value!r}") from None
    # NaN / Infinity parse fine but are not quantities
    if not result.is_finite():
        raise ValidationError(f"Valor numérico inválido: {value!r}")
    return result


def round4(value: Decimal) -> Decimal:
    return value.quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------
@dataclass
class ItemInput:
    item_code: str
    qtd: Decimal
    pct: Decimal
    total: Decimal
    valor_unitario: Decimal = ZERO

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ItemInput":
        code = data.get("item_code")
        if code is not None and not isinstance(code, str):
            raise ValidationError("item_code deve ser texto.")
        code = (code or "").strip()
        if not code:
            raise ValidationError("item_code é obrigatório.")
        return cls(
            item_code=code,
            qtd=to_decimal(data.get("qtd")),
            pct=to_decimal(data.get("pct")),
            total=to_decimal(data.get("total")),
            valor_unitario=to_decimal(data.get("valor_unitario")),
        )


@dataclass
class AdditiveItem:
    item_code: str
    qtd: Decimal


@dataclass
class AdditiveSession:
    session_id: Hashable
    sequencia: int
    blocked: bool
    items: List[AdditiveItem] = field(default_factory=list)


@dataclass
class ExecutionRecord:
    report_id: Hashable
    item_id: Hashable
    executed: Decimal
    planned_quantity: Decimal


@dataclass
class Accumulated:
    quantity: Decimal
    percentage: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {"executado_acumulado": str(self.quantity), "percentual_acumulado": str(self.percentage)}


# ---------------------------------------------------------------------
# Batch submission
# ---------------------------------------------------------------------
def aggregate_items(items: Iterable[ItemInput]) -> List[ItemInput]:
    """
    Collapse entries that share a (trimmed) item_code.

    qtd and total are summed, pct keeps the last value, valor_unitario keeps
    the last positive value. First-seen order is preserved.
    """
    aggregated: Dict[str, ItemInput] = {}
    for it in items:
        key = it.item_code.strip()
        existing = aggregated.get(key)
        if existing is None:
            aggregated[key] = ItemInput(
                item_code=key,
                qtd=it.qtd,
                pct=it.pct,
                total=it.total,
                valor_unitario=it.valor_unitario,
            )
            continue
        existing.qtd += it.qtd
        existing.total += it.total
        existing.pct = it.pct
        if it.valor_unitario > ZERO:
            existing.valor_unitario = it.valor_unitario
    return list(aggregated.values())


def upsert_items(
    kind: str,
    session_id: int,
    items: Sequence[ItemInput],
    actor_id: Optional[int] = None,
) -> List[Any]:
    """
    Write item entries of one session as a single all-or-nothing batch.

    Existing entries for the same item_code are overwritten (last write wins).
    A blocked session accepts no submissions.
    """
    session = SessionTable(kind).get(session_id)
    if session is None:
        raise NotFoundError(f"Sessão {session_id} não encontrada.")
    if session.is_blocked:
        raise ValidationError("Sessão bloqueada: reabra-a antes de alterar os itens.")

    rows = []
    for it in aggregate_items(items):
        row = {
            "item_code": it.item_code,
            "qtd": it.qtd,
            "pct": it.pct,
            "total": it.total,
            "user_id": actor_id,
        }
        if kind == KIND_ADITIVO:
            row["valor_unitario"] = it.valor_unitario
        rows.append(row)

    if not rows:
        return []

    written = ItemTable(kind).upsert(session_id, rows)
    logger.info("Upserted %s %s items into session %s", len(written), kind, session_id)
    return written


# ---------------------------------------------------------------------
# Pure computations
# ---------------------------------------------------------------------
def compute_adjustment(
    item_code: str,
    additive_sessions: Iterable[AdditiveSession],
    code_alias_map: Optional[Mapping[str, str]] = None,
) -> Decimal:
    """
    Signed quantity delta for item_code from BLOCKED additive sessions.

    Positive = addition, negative = suppression. An additive item matches when
    its code equals item_code, or when code_alias_map maps its code to
    item_code. Open sessions contribute nothing.
    """
    adjustment = ZERO
    for session in additive_sessions:
        if not session.blocked:
            continue
        for item in session.items:
            if item.item_code == item_code:
                adjustment += item.qtd
            elif code_alias_map and code_alias_map.get(item.item_code) == item_code:
                adjustment += item.qtd
    return adjustment


def compute_accumulated(
    records: Iterable[ExecutionRecord],
    excluding_report_id: Hashable,
) -> Dict[Hashable, Accumulated]:
    """
    Accumulated executed quantity/percentage per item, ignoring one report.

    The excluded report's own records are left out so the report being viewed
    is not counted twice. Planned quantity 0 yields percentage 0.
    """
    totals: Dict[Hashable, Decimal] = {}
    planned: Dict[Hashable, Decimal] = {}

    for record in records:
        if record.report_id == excluding_report_id:
            continue
        totals[record.item_id] = totals.get(record.item_id, ZERO) + to_decimal(record.executed)
        planned.setdefault(record.item_id, to_decimal(record.planned_quantity))

    result: Dict[Hashable, Accumulated] = {}
    for item_id, total in totals.items():
        quantity = planned[item_id]
        percentage = (total / quantity * HUNDRED) if quantity != ZERO else ZERO
        result[item_id] = Accumulated(quantity=round4(total), percentage=round4(percentage))
    return result


# ---------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------
def load_additive_sessions(obra_id: int) -> List[AdditiveSession]:
    """Additive sessions of an obra as plain value objects."""
    sessions = SessionTable(KIND_ADITIVO).list_with_items(obra_id)
    return [
        AdditiveSession(
            session_id=s.id,
            sequencia=s.sequencia or 0,
            blocked=s.is_blocked,
            items=[AdditiveItem(item_code=(i.item_code or "").strip(), qtd=to_decimal(i.qtd)) for i in s.items],
        )
        for s in sessions
    ]


def adjusted_quantities(
    obra_id: int,
    code_alias_map: Optional[Mapping[str, str]] = None,
) -> List[Dict[str, Any]]:
    """Planned quantity of each budget item plus its blocked-additive delta."""
    additives = load_additive_sessions(obra_id)
    result = []
    for item in OrcamentoTable().for_obra(obra_id):
        original = to_decimal(item.quantity)
        delta = compute_adjustment(item.item, additives, code_alias_map)
        result.append(
            {
                "item": item.item,
                "quantidade_original": str(original),
                "ajuste": str(delta),
                "quantidade_ajustada": str(original + delta),
            }
        )
    return result


def accumulated_for_report(report_id: int) -> Dict[Hashable, Accumulated]:
    """Accumulated execution for the obra of report_id, excluding that report."""
    report = ReportTable().get(report_id)
    if report is None:
        raise NotFoundError(f"RDO {report_id} não encontrado.")

    records = [
        ExecutionRecord(report_id=r_id, item_id=item_id, executed=executed, planned_quantity=planned)
        for r_id, item_id, executed, planned in ActivityTable().planilha_records(report.obra_id)
    ]
    return compute_accumulated(records, excluding_report_id=report.id)

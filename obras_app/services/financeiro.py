"""
obras_app/services/financeiro.py

Financial summary of an obra's measurements.

Rules:
- Contract total = sum of LEAF budget items + sum of blocked additive items.
  Without a budget sheet, the obra's own valor_total/valor_aditivado apply.
- Contractual items (leaf with total_contrato > 0) are valued as
  pct x total_contrato; accumulated pct per item is capped at 100%.
- Extra-contractual items use their own total.
- Milestones ("marcos") list each session's increment in sequência order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Sequence

from ..errors import NotFoundError
from ..extensions import db
from ..gateway import KIND_ADITIVO, KIND_MEDICAO, OrcamentoTable, SessionTable
from ..models import Obra
from .reconciliation import HUNDRED, ZERO, to_decimal


def _money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _pct(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


@dataclass
class Marco:
    sequencia: int
    valor_medicao: Decimal
    valor_acumulado: Decimal
    percentual_acumulado: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequencia": self.sequencia,
            "valor_medicao": str(self.valor_medicao),
            "valor_acumulado": str(self.valor_acumulado),
            "percentual_acumulado": str(self.percentual_acumulado),
        }


@dataclass
class FinancialSummary:
    total_contrato_orcamento: Decimal
    total_aditivo: Decimal
    total_contrato: Decimal
    valor_acumulado: Decimal
    percentual_executado: Decimal
    marcos: List[Marco] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_contrato_orcamento": str(self.total_contrato_orcamento),
            "total_aditivo": str(self.total_aditivo),
            "total_contrato": str(self.total_contrato),
            "valor_acumulado": str(self.valor_acumulado),
            "percentual_executado": str(self.percentual_executado),
            "marcos": [m.to_dict() for m in self.marcos],
        }


def is_leaf_item(item_code: str, all_codes: Iterable[str]) -> bool:
    """A budget item is a leaf when no other item lives under it ("1.2" -> "1.2.x")."""
    prefix = item_code + "."
    return not any(code.startswith(prefix) for code in all_codes)


def contract_totals_by_item(budget: Sequence[Mapping[str, Any]]) -> Dict[str, Decimal]:
    """item -> total_contrato, only for leaf items with a positive value."""
    codes = [b["item"] for b in budget]
    totals = {}
    for b in budget:
        value = to_decimal(b.get("total_contrato"))
        if value > ZERO and is_leaf_item(b["item"], codes):
            totals[b["item"]] = value
    return totals


def item_value(item: Mapping[str, Any], totals_by_item: Mapping[str, Decimal]) -> Decimal:
    total_contrato = totals_by_item.get(item["item_code"])
    if total_contrato is not None and total_contrato > ZERO:
        return _money(to_decimal(item["pct"]) / HUNDRED * total_contrato)
    return _money(to_decimal(item.get("total")))


def compute_financial_summary(
    budget: Sequence[Mapping[str, Any]],
    blocked_additive_items: Sequence[Mapping[str, Any]],
    sessions: Sequence[Mapping[str, Any]],
    measurement_items: Sequence[Mapping[str, Any]],
    obra_valor_total: Decimal = ZERO,
    obra_valor_aditivado: Decimal = ZERO,
) -> FinancialSummary:
    """
    Pure summary of contract value, executed value and per-session milestones.

    sessions: [{"id", "sequencia"}]; measurement_items: [{"item_code", "pct",
    "total", "session_id"}]; budget: [{"item", "total_contrato"}].
    """
    codes = [b["item"] for b in budget]
    budget_total = sum(
        (to_decimal(b.get("total_contrato")) for b in budget if is_leaf_item(b["item"], codes)),
        ZERO,
    )
    has_budget = budget_total > ZERO

    additive_total = sum((to_decimal(i.get("total")) for i in blocked_additive_items), ZERO)

    if has_budget:
        contract_total = budget_total + additive_total
    else:
        contract_total = to_decimal(obra_valor_total) + to_decimal(obra_valor_aditivado)

    totals_by_item = contract_totals_by_item(budget)

    pct_by_item: Dict[str, Decimal] = {}
    extra_by_item: Dict[str, Decimal] = {}
    for item in measurement_items:
        code = item["item_code"]
        if code in totals_by_item:
            pct_by_item[code] = pct_by_item.get(code, ZERO) + to_decimal(item["pct"])
        else:
            extra_by_item[code] = extra_by_item.get(code, ZERO) + _money(to_decimal(item.get("total")))

    accumulated = ZERO
    for code, pct_total in pct_by_item.items():
        capped = min(pct_total, HUNDRED)
        accumulated += _money(capped / HUNDRED * totals_by_item[code])
    for total in extra_by_item.values():
        accumulated += total

    # Milestones show each session's real increment (no per-item cap)
    per_session: Dict[Hashable, Decimal] = {}
    for item in measurement_items:
        per_session[item["session_id"]] = per_session.get(item["session_id"], ZERO) + item_value(item, totals_by_item)

    marcos = []
    running = ZERO
    for session in sorted(sessions, key=lambda s: s["sequencia"]):
        increment = per_session.get(session["id"], ZERO)
        running += increment
        marcos.append(
            Marco(
                sequencia=session["sequencia"],
                valor_medicao=_money(increment),
                valor_acumulado=_money(running),
                percentual_acumulado=_pct(min(running / contract_total * HUNDRED, HUNDRED)) if contract_total > ZERO else ZERO,
            )
        )

    executed_pct = _pct(min(accumulated / contract_total * HUNDRED, HUNDRED)) if contract_total > ZERO else ZERO

    return FinancialSummary(
        total_contrato_orcamento=_money(budget_total if has_budget else to_decimal(obra_valor_total)),
        total_aditivo=_money(additive_total if has_budget else to_decimal(obra_valor_aditivado)),
        total_contrato=_money(contract_total),
        valor_acumulado=_money(accumulated),
        percentual_executado=executed_pct,
        marcos=marcos,
    )


def financial_summary(obra_id: int) -> FinancialSummary:
    """Load an obra's budget, sessions and items, then summarise."""
    obra = db.session.get(Obra, obra_id)
    if obra is None:
        raise NotFoundError(f"Obra {obra_id} não encontrada.")

    budget = [{"item": b.item, "total_contrato": b.total_contrato} for b in OrcamentoTable().for_obra(obra_id)]

    additive_items = [
        {"total": i.total}
        for s in SessionTable(KIND_ADITIVO).list_with_items(obra_id)
        if s.is_blocked
        for i in s.items
    ]

    measurement_sessions = SessionTable(KIND_MEDICAO).list_with_items(obra_id)
    sessions = [{"id": s.id, "sequencia": s.sequencia} for s in measurement_sessions]
    items = [
        {"item_code": i.item_code, "pct": i.pct, "total": i.total, "session_id": s.id}
        for s in measurement_sessions
        for i in s.items
    ]

    return compute_financial_summary(
        budget,
        additive_items,
        sessions,
        items,
        obra_valor_total=to_decimal(obra.valor_total),
        obra_valor_aditivado=to_decimal(obra.valor_aditivado),
    )

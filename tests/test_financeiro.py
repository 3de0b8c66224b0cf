from decimal import Decimal

from obras_app.services.financeiro import compute_financial_summary, is_leaf_item

BUDGET = [
    {"item": "1", "total_contrato": Decimal("1000.00")},
    {"item": "1.1", "total_contrato": Decimal("600.00")},
    {"item": "1.2", "total_contrato": Decimal("400.00")},
]
SESSIONS = [{"id": 20, "sequencia": 2}, {"id": 10, "sequencia": 1}]


def _item(code, session_id, pct="0", total="0"):
    return {"item_code": code, "pct": Decimal(pct), "total": Decimal(total), "session_id": session_id}


def test_leaf_detection():
    codes = [b["item"] for b in BUDGET]
    assert not is_leaf_item("1", codes)
    assert is_leaf_item("1.1", codes)
    assert is_leaf_item("1.10", ["1.1", "1.10"])


def test_contract_total_counts_leaves_and_blocked_additives():
    summary = compute_financial_summary(BUDGET, [{"total": Decimal("250.00")}], [], [])

    assert summary.total_contrato_orcamento == Decimal("1000.00")
    assert summary.total_aditivo == Decimal("250.00")
    assert summary.total_contrato == Decimal("1250.00")
    assert summary.valor_acumulado == Decimal("0.00")


def test_accumulated_percentage_is_capped_per_item():
    items = [_item("1.1", 10, pct="70"), _item("1.1", 20, pct="50"), _item("1.2", 20, pct="25")]

    summary = compute_financial_summary(BUDGET, [], SESSIONS, items)

    # 1.1 capped at 100% of 600, plus 25% of 400
    assert summary.valor_acumulado == Decimal("700.00")
    assert summary.percentual_executado == Decimal("70.0000")


def test_milestones_follow_sequence_order():
    items = [_item("1.1", 20, pct="10"), _item("1.1", 10, pct="50"), _item("EXTRA", 10, total="40")]

    summary = compute_financial_summary(BUDGET, [], SESSIONS, items)

    assert [m.sequencia for m in summary.marcos] == [1, 2]
    assert summary.marcos[0].valor_medicao == Decimal("340.00")
    assert summary.marcos[1].valor_medicao == Decimal("60.00")
    assert summary.marcos[1].valor_acumulado == Decimal("400.00")
    assert summary.marcos[1].percentual_acumulado == Decimal("40.0000")


def test_without_budget_uses_obra_values():
    summary = compute_financial_summary(
        [],
        [],
        SESSIONS,
        [_item("X", 10, total="150")],
        obra_valor_total=Decimal("500"),
        obra_valor_aditivado=Decimal("100"),
    )

    assert summary.total_contrato == Decimal("600.00")
    assert summary.total_aditivo == Decimal("100.00")
    assert summary.valor_acumulado == Decimal("150.00")
    assert summary.percentual_executado == Decimal("25.0000")


def test_zero_contract_yields_zero_percentages():
    summary = compute_financial_summary([], [], SESSIONS, [_item("X", 10, total="10")])

    assert summary.percentual_executado == Decimal("0")
    assert summary.to_dict()["marcos"][0]["percentual_acumulado"] == "0"

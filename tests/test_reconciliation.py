from decimal import Decimal

import pytest

from obras_app.errors import ValidationError
from obras_app.services.reconciliation import (
    AdditiveItem,
    AdditiveSession,
    ExecutionRecord,
    ItemInput,
    aggregate_items,
    compute_accumulated,
    compute_adjustment,
    to_decimal,
)


def _session(session_id, blocked, *items):
    return AdditiveSession(
        session_id=session_id,
        sequencia=session_id,
        blocked=blocked,
        items=[AdditiveItem(item_code=code, qtd=Decimal(qtd)) for code, qtd in items],
    )


# ---------------------------------------------------------------------
# compute_adjustment
# ---------------------------------------------------------------------
def test_adjustment_is_zero_when_every_matching_session_is_open():
    sessions = [
        _session(1, False, ("1.1", "10")),
        _session(2, False, ("1.1", "-3")),
    ]
    assert compute_adjustment("1.1", sessions) == Decimal("0")


def test_adjustment_sums_additions_and_suppressions_of_blocked_sessions():
    sessions = [
        _session(1, True, ("1.1", "10"), ("1.2", "4")),
        _session(2, True, ("1.1", "-2.5")),
        _session(3, False, ("1.1", "100")),
    ]
    assert compute_adjustment("1.1", sessions) == Decimal("7.5")
    assert compute_adjustment("1.2", sessions) == Decimal("4")
    assert compute_adjustment("9.9", sessions) == Decimal("0")


def test_adjustment_is_order_independent():
    a = _session(1, True, ("2.1", "1.25"))
    b = _session(2, True, ("2.1", "-0.75"), ("2.1-x", "3"))
    assert compute_adjustment("2.1", [a, b]) == compute_adjustment("2.1", [b, a])


def test_adjustment_uses_alias_map_for_other_code_namespace():
    sessions = [_session(1, True, ("SINAPI-123", "5"), ("1.1", "2"))]
    aliases = {"SINAPI-123": "1.1"}

    assert compute_adjustment("1.1", sessions) == Decimal("2")
    assert compute_adjustment("1.1", sessions, aliases) == Decimal("7")


# ---------------------------------------------------------------------
# compute_accumulated
# ---------------------------------------------------------------------
def test_accumulated_excludes_the_named_report():
    records = [
        ExecutionRecord(report_id="r1", item_id="x", executed=10, planned_quantity=100),
        ExecutionRecord(report_id="r2", item_id="x", executed=5, planned_quantity=100),
    ]
    result = compute_accumulated(records, excluding_report_id="r1")

    assert result["x"].quantity == Decimal("5")
    assert result["x"].percentage == Decimal("5")


def test_accumulated_values_are_rounded_to_four_places():
    records = [ExecutionRecord(report_id="r2", item_id="x", executed=1.00005, planned_quantity=1)]
    acc = compute_accumulated(records, excluding_report_id="r1")["x"]

    assert acc.percentage == Decimal("100.0050")
    assert acc.percentage.as_tuple().exponent == -4
    assert acc.quantity == Decimal("1.0001")


def test_accumulated_float_drift_does_not_leak():
    records = [
        ExecutionRecord(report_id=f"r{i}", item_id="x", executed=0.1, planned_quantity=3)
        for i in range(3)
    ]
    acc = compute_accumulated(records, excluding_report_id="none")["x"]

    assert acc.quantity == Decimal("0.3000")
    assert acc.percentage == Decimal("10.0000")


def test_accumulated_percentage_is_zero_for_zero_planned_quantity():
    records = [ExecutionRecord(report_id="r2", item_id="x", executed=7, planned_quantity=0)]
    acc = compute_accumulated(records, excluding_report_id="r1")["x"]

    assert acc.quantity == Decimal("7")
    assert acc.percentage == Decimal("0")


def test_accumulated_groups_by_item():
    records = [
        ExecutionRecord(report_id="r1", item_id="a", executed=2, planned_quantity=8),
        ExecutionRecord(report_id="r2", item_id="a", executed=2, planned_quantity=8),
        ExecutionRecord(report_id="r2", item_id="b", executed=1, planned_quantity=3),
        ExecutionRecord(report_id="r3", item_id="c", executed=9, planned_quantity=9),
    ]
    result = compute_accumulated(records, excluding_report_id="r3")

    assert set(result) == {"a", "b"}
    assert result["a"].percentage == Decimal("50")
    assert result["b"].percentage == Decimal("33.3333")


# ---------------------------------------------------------------------
# Batch aggregation
# ---------------------------------------------------------------------
def test_aggregate_items_collapses_duplicate_codes():
    items = [
        ItemInput(item_code="1.1", qtd=Decimal("2"), pct=Decimal("10"), total=Decimal("20")),
        ItemInput(item_code=" 1.1 ", qtd=Decimal("3"), pct=Decimal("25"), total=Decimal("30")),
        ItemInput(item_code="1.2", qtd=Decimal("1"), pct=Decimal("5"), total=Decimal("7")),
    ]
    result = aggregate_items(items)

    assert [i.item_code for i in result] == ["1.1", "1.2"]
    assert result[0].qtd == Decimal("5")
    assert result[0].total == Decimal("50")
    assert result[0].pct == Decimal("25")


def test_aggregate_items_keeps_last_positive_unit_price():
    items = [
        ItemInput(item_code="1.1", qtd=Decimal("1"), pct=Decimal("0"), total=Decimal("0"), valor_unitario=Decimal("12")),
        ItemInput(item_code="1.1", qtd=Decimal("1"), pct=Decimal("0"), total=Decimal("0"), valor_unitario=Decimal("0")),
    ]
    assert aggregate_items(items)[0].valor_unitario == Decimal("12")


def test_item_input_requires_code_and_numeric_values():
    with pytest.raises(ValidationError):
        ItemInput.from_mapping({"item_code": "  ", "qtd": 1})
    with pytest.raises(ValidationError):
        ItemInput.from_mapping({"item_code": "1.1", "qtd": "abc"})

    item = ItemInput.from_mapping({"item_code": "1.1", "qtd": "2,5", "pct": 10, "total": "25"})
    assert item.qtd == Decimal("2.5")


def test_item_code_must_be_text():
    with pytest.raises(ValidationError):
        ItemInput.from_mapping({"item_code": 11, "qtd": 1})


@pytest.mark.parametrize("raw", ["NaN", "Infinity", "-Infinity", "sNaN", float("nan"), True])
def test_non_finite_quantities_are_rejected(raw):
    with pytest.raises(ValidationError):
        to_decimal(raw)

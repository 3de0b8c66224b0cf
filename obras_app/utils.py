"""
Utility functions shared across the blueprints. This includes:
- request parsing helpers (JSON body, optional ints, ISO dates)
- serialize_session / serialize_item: JSON shapes for session history
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import request

from .errors import ValidationError


def json_body() -> Dict[str, Any]:
    """Request JSON object (empty dict when absent). Arrays/scalars are rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Corpo da requisição deve ser um objeto JSON.")
    return data


def parse_text(value: Any, field: str) -> str:
    """Optional string field, stripped. None -> ""."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"'{field}' deve ser texto.")
    return value.strip()


def parse_optional_int(value: Any) -> Optional[int]:
    """Parse optional int from query/body."""
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Inteiro inválido: {value!r}") from None


def parse_date(value: Any, field: str) -> date:
    """Parse YYYY-MM-DD."""
    try:
        return date.fromisoformat(str(value or "").strip())
    except ValueError:
        raise ValidationError(f"Data inválida em '{field}' (use AAAA-MM-DD).") from None


def _num(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value if isinstance(value, Decimal) else Decimal(str(value)))


def serialize_item(item: Any) -> Dict[str, Any]:
    data = {
        "item_code": item.item_code,
        "qtd": _num(item.qtd),
        "pct": _num(item.pct),
        "total": _num(item.total),
    }
    if hasattr(item, "valor_unitario"):
        data["valor_unitario"] = _num(item.valor_unitario)
    return data


def serialize_session(session: Any, include_items: bool = True) -> Dict[str, Any]:
    data = {
        "id": session.id,
        "obra_id": session.obra_id,
        "sequencia": session.sequencia,
        "status": session.status,
        "created_at": session.created_at.isoformat() if session.created_at else None,
    }
    if include_items:
        data["items"] = [serialize_item(i) for i in session.items]
    return data

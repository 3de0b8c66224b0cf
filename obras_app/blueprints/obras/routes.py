"""
Obra-level read routes.

- GET /obras/<obra_id>/financeiro   contract value, executed value, milestones
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from ...security import capability_required
from ...services.financeiro import financial_summary

obras_bp = Blueprint("obras", __name__, url_prefix="/obras")


@obras_bp.route("/<int:obra_id>/financeiro")
@login_required
@capability_required("can_view_medicoes")
def financeiro(obra_id: int):
    return jsonify(financial_summary(obra_id).to_dict())

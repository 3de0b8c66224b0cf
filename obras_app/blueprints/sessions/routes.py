"""
obras_app/blueprints/sessions/routes.py

Medição / Aditivo session routes.

Both kinds share one route set built by make_sessions_blueprint():
- GET    /obras/<obra_id>/<plural>             sessions + items, ascending sequência
- POST   /obras/<obra_id>/<plural>             create (sequencia optional -> next)
- POST   /<plural>/<session_id>/bloquear       aberta -> bloqueada
- POST   /<plural>/<session_id>/reabrir        bloqueada -> aberta
- DELETE /<plural>/<session_id>                items first, then session
- PUT    /<plural>/<session_id>/items          batched upsert
Aditivos only:
- GET    /obras/<obra_id>/aditivos/ajustes     budget quantities adjusted by blocked additives

IMPORTANT:
- UI is never trusted. Access control and validations are server-side.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ...errors import NotFoundError, ValidationError
from ...extensions import db
from ...gateway import KIND_ADITIVO, KIND_MEDICAO
from ...models import Obra
from ...security import capability_required, edit_required
from ...services.reconciliation import ItemInput, adjusted_quantities, upsert_items
from ...services.sessions import SessionLifecycleManager
from ...utils import json_body, parse_optional_int, serialize_item, serialize_session


def get_obra_or_404(obra_id: int) -> Obra:
    obra = db.session.get(Obra, obra_id)
    if obra is None:
        raise NotFoundError(f"Obra {obra_id} não encontrada.")
    return obra


def _parse_alias_map() -> dict[str, str]:
    """?alias=CODIGO:ITEM (repeatable) -> {CODIGO: ITEM}."""
    aliases = {}
    for raw in request.args.getlist("alias"):
        source, sep, target = raw.partition(":")
        if not sep or not source.strip() or not target.strip():
            raise ValidationError(f"Alias inválido: {raw!r} (use CODIGO:ITEM).")
        aliases[source.strip()] = target.strip()
    return aliases


def make_sessions_blueprint(kind: str, plural: str) -> Blueprint:
    bp = Blueprint(plural, __name__)

    def manager() -> SessionLifecycleManager:
        return SessionLifecycleManager(kind)

    @bp.route(f"/obras/<int:obra_id>/{plural}", methods=["GET"])
    @login_required
    @capability_required("can_view_medicoes")
    def list_sessions(obra_id: int):
        get_obra_or_404(obra_id)
        sessions = manager().fetch_sessions_with_items(obra_id)
        return jsonify([serialize_session(s) for s in sessions])

    @bp.route(f"/obras/<int:obra_id>/{plural}", methods=["POST"])
    @login_required
    @edit_required
    def create_session(obra_id: int):
        get_obra_or_404(obra_id)
        mgr = manager()
        sequencia = parse_optional_int(json_body().get("sequencia"))
        if sequencia is None:
            sequencia = mgr.next_sequence(obra_id)
        session = mgr.create_session(obra_id, sequencia)
        return jsonify(serialize_session(session, include_items=False)), 201

    @bp.route(f"/{plural}/<int:session_id>/bloquear", methods=["POST"])
    @login_required
    @edit_required
    def block_session(session_id: int):
        session = manager().block_session(session_id)
        return jsonify(serialize_session(session, include_items=False))

    @bp.route(f"/{plural}/<int:session_id>/reabrir", methods=["POST"])
    @login_required
    @edit_required
    def reopen_session(session_id: int):
        session = manager().reopen_session(session_id)
        return jsonify(serialize_session(session, include_items=False))

    @bp.route(f"/{plural}/<int:session_id>", methods=["DELETE"])
    @login_required
    @edit_required
    def delete_session(session_id: int):
        manager().delete_session(session_id)
        return "", 204

    @bp.route(f"/{plural}/<int:session_id>/items", methods=["PUT"])
    @login_required
    @edit_required
    def put_items(session_id: int):
        raw_items = json_body().get("items")
        if not isinstance(raw_items, list):
            raise ValidationError("'items' deve ser uma lista.")
        items = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValidationError("Cada item deve ser um objeto JSON.")
            items.append(ItemInput.from_mapping(raw))

        written = upsert_items(kind, session_id, items, actor_id=current_user.id)
        return jsonify([serialize_item(i) for i in written])

    if kind == KIND_ADITIVO:

        @bp.route(f"/obras/<int:obra_id>/{plural}/ajustes", methods=["GET"])
        @login_required
        @capability_required("can_view_medicoes")
        def adjustments(obra_id: int):
            get_obra_or_404(obra_id)
            return jsonify(adjusted_quantities(obra_id, _parse_alias_map() or None))

    return bp


medicoes_bp = make_sessions_blueprint(KIND_MEDICAO, "medicoes")
aditivos_bp = make_sessions_blueprint(KIND_ADITIVO, "aditivos")

"""
Authentication Routes

Provides:
- POST /auth/login
- POST /auth/logout
- GET  /auth/me  (role + capabilities the client uses to gate its UI)

Rules:
- Only active users may log in
- Credentials validated via password hash
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user

from ...errors import ValidationError
from ...gateway import UserTable
from ...security import RoleCapabilities, role_label
from ...utils import json_body, parse_text

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _user_payload(user):
    caps = RoleCapabilities.for_role(user.role)
    return {
        "id": user.id,
        "email": user.email,
        "nome": user.display_name(),
        "role": caps.role,
        "role_label": role_label(caps.role),
        "is_admin": caps.is_admin,
        "can_edit": caps.can_edit,
        "can_edit_rdo": caps.can_edit_rdo,
        "can_view_medicoes": caps.can_view_medicoes,
    }


@auth_bp.route("/login", methods=["POST"])
def login():
    data = json_body()
    email = parse_text(data.get("email"), "email")
    password = data.get("password") or ""
    if not isinstance(password, str):
        raise ValidationError("'password' deve ser texto.")

    user = UserTable().by_email(email) if email else None

    if not user or not user.check_password(password):
        return jsonify({"error": "E-mail ou senha inválidos."}), 401

    if not user.is_active:
        return jsonify({"error": "O usuário está inativo."}), 403

    login_user(user)
    return jsonify(_user_payload(user))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Sessão encerrada."})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(_user_payload(current_user))

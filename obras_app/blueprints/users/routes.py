"""
User Management (Admin Only).

Provides:
- GET   /users              list users
- POST  /users              create a user (default role: viewer)
- PATCH /users/<user_id>    change role / name / active flag

Rules:
- UI never trusted: role and password strength are validated server-side.
- Duplicate e-mail is rejected by the unique constraint (409).
"""

import logging

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from ...errors import NotFoundError, ValidationError
from ...gateway import UserTable, write_transaction
from ...models import User
from ...security import ROLE_ADMIN, ROLE_VIEWER, ROLES, admin_required, role_label
from ...services.password_reset import PASSWORD_PATTERN
from ...utils import json_body, parse_text

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__, url_prefix="/users")


def _serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "nome": user.full_name,
        "role": user.role,
        "role_label": role_label(user.role),
        "is_active": user.is_active,
    }


def _checked_role(value) -> str:
    """Normalized role name; anything but a known role string is refused."""
    if not isinstance(value, str):
        raise ValidationError("'role' deve ser texto.")
    role = value.strip().lower()
    if role not in ROLES:
        raise ValidationError(f"Perfil inválido: {role}")
    return role


def _checked_flag(value) -> bool:
    if not isinstance(value, bool):
        raise ValidationError("'is_active' deve ser true ou false.")
    return value


@users_bp.route("", methods=["GET"])
@login_required
@admin_required
def list_users():
    users = User.query.order_by(User.email.asc()).all()
    return jsonify([_serialize_user(u) for u in users])


@users_bp.route("", methods=["POST"])
@login_required
@admin_required
def create_user():
    data = json_body()
    email = parse_text(data.get("email"), "email").lower()
    password = data.get("password") or ""

    if not email:
        raise ValidationError("E-mail é obrigatório.")
    if not isinstance(password, str) or not PASSWORD_PATTERN.match(password):
        raise ValidationError("A senha deve ter no mínimo 8 caracteres, incluindo 1 letra maiúscula e 1 número")

    role = _checked_role(data["role"]) if "role" in data else ROLE_VIEWER

    with write_transaction("criar usuário") as session:
        user = User(
            email=email,
            full_name=parse_text(data.get("nome"), "nome") or None,
            role=role,
            is_active=True,
        )
        user.set_password(password)
        session.add(user)

    logger.info("User %s created by %s with role %s", email, current_user.id, user.role)
    return jsonify(_serialize_user(user)), 201


@users_bp.route("/<int:user_id>", methods=["PATCH"])
@login_required
@admin_required
def update_user(user_id: int):
    user = UserTable().get(user_id)
    if user is None:
        raise NotFoundError(f"Usuário {user_id} não encontrado.")

    data = json_body()
    changes = {}
    if "role" in data:
        changes["role"] = _checked_role(data["role"])
    if "nome" in data:
        changes["full_name"] = parse_text(data["nome"], "nome") or None
    if "is_active" in data:
        changes["is_active"] = _checked_flag(data["is_active"])

    # An admin cannot lock themselves out
    if user.id == current_user.id and (
        changes.get("role", ROLE_ADMIN) != ROLE_ADMIN or changes.get("is_active", True) is False
    ):
        raise ValidationError("Não é possível remover o próprio acesso de administrador.")

    with write_transaction("atualizar usuário"):
        for field, value in changes.items():
            setattr(user, field, value)

    return jsonify(_serialize_user(user))

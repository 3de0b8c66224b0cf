"""
obras_app/security.py

Role-based access control for the Gestão de Obras API.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Capabilities are pure functions of an explicitly supplied role.
  Nothing below the Flask seam reads the logged-in user.
- Admin: full access. Editor: may edit. Everyone else: read-only.

Flask seam:
- current_role() resolves the role of the logged-in user once per call.
- edit_required / admin_required feed that role to PermissionGuard and raise
  PermissionDenied with its fallback message (403 through the app error
  handler).
- viewer_readonly_guard() blocks POST/PUT/PATCH/DELETE for roles that
  cannot edit. Wire it via app.before_request in the app factory.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import jsonify, request
from flask_login import current_user

from .errors import PermissionDenied

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

ROLE_ADMIN = "admin"
ROLE_EDITOR = "editor"
ROLE_GM = "gm"
ROLE_VIEWER = "viewer"
ROLE_MANUTENCAO = "manutencao"
ROLE_CONTRATADA = "contratada"
ROLE_PRESTADORA = "prestadora"  # legacy alias of contratada

ROLES = (
    ROLE_ADMIN,
    ROLE_EDITOR,
    ROLE_GM,
    ROLE_VIEWER,
    ROLE_MANUTENCAO,
    ROLE_CONTRATADA,
    ROLE_PRESTADORA,
)

ADMIN_MESSAGE = "Esta ação requer permissão de administrador."
EDIT_MESSAGE = "Esta ação requer permissão de edição. Seu perfil atual é: {label}"

# Endpoints any authenticated user may call with a mutating method
ALLOW_MUTATING_ENDPOINTS = {
    "auth.login",
    "auth.logout",
    "functions.request_password_reset",
    "functions.verify_reset_code",
    "functions.reset_password",
}


@dataclass(frozen=True)
class RoleCapabilities:
    role: str
    is_admin: bool
    can_edit: bool
    can_edit_rdo: bool
    can_view_medicoes: bool

    @classmethod
    def for_role(cls, role: Optional[str]) -> "RoleCapabilities":
        role = role or ROLE_VIEWER
        return cls(
            role=role,
            is_admin=role == ROLE_ADMIN,
            can_edit=role in (ROLE_ADMIN, ROLE_EDITOR),
            can_edit_rdo=role in (ROLE_ADMIN, ROLE_EDITOR, ROLE_GM, ROLE_CONTRATADA, ROLE_PRESTADORA),
            can_view_medicoes=role in (ROLE_ADMIN, ROLE_EDITOR, ROLE_GM, ROLE_CONTRATADA),
        )


def role_label(role: Optional[str]) -> str:
    if role == ROLE_ADMIN:
        return "Administrador"
    if role == ROLE_EDITOR:
        return "Editor"
    return "Visualizador"


class PermissionGuard:
    """
    Gate a piece of content behind a capability.

    render(content) returns the content when allowed; otherwise the
    explanatory message (show_message=True) or None. Recomputed on every
    call from the role it was given.
    """

    def __init__(
        self,
        role: Optional[str],
        *,
        requires_edit: bool = False,
        requires_admin: bool = False,
        show_message: bool = True,
    ):
        self.capabilities = RoleCapabilities.for_role(role)
        self.requires_edit = requires_edit
        self.requires_admin = requires_admin
        self.show_message = show_message

    @property
    def allowed(self) -> bool:
        if self.requires_admin:
            return self.capabilities.is_admin
        if self.requires_edit:
            return self.capabilities.can_edit
        return True

    def fallback_message(self) -> str:
        if self.requires_admin:
            return ADMIN_MESSAGE
        return EDIT_MESSAGE.format(label=role_label(self.capabilities.role))

    def render(self, content: Any) -> Any:
        if self.allowed:
            return content
        if self.show_message:
            return self.fallback_message()
        return None


# ---------------------------------------------------------------------
# Flask seam
# ---------------------------------------------------------------------
def current_role() -> Optional[str]:
    """Role of the logged-in user, or None when anonymous."""
    if not current_user.is_authenticated:
        return None
    return getattr(current_user, "role", None) or ROLE_VIEWER


def _unauthorized() -> Tuple[Any, int]:
    return jsonify({"error": "Autenticação necessária.", "code": "UNAUTHORIZED"}), 401


def viewer_readonly_guard() -> None:
    """
    Global guard: read-only roles cannot mutate data.

    This is a safety net. Each route must still enforce its own permissions.
    """
    if request.method not in MUTATING_METHODS:
        return None

    role = current_role()
    if role is None:
        return None

    endpoint = (request.endpoint or "").strip()
    if endpoint in ALLOW_MUTATING_ENDPOINTS:
        return None

    caps = RoleCapabilities.for_role(role)
    if caps.can_edit or caps.can_edit_rdo:
        return None

    raise PermissionDenied(PermissionGuard(role, requires_edit=True).fallback_message())


def _guarded(requires_edit: bool = False, requires_admin: bool = False) -> Callable[..., Any]:
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            role = current_role()
            if role is None:
                return _unauthorized()
            guard = PermissionGuard(role, requires_edit=requires_edit, requires_admin=requires_admin)
            if not guard.allowed:
                raise PermissionDenied(guard.fallback_message())
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def edit_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin/editor."""
    return _guarded(requires_edit=True)(view_func)


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    return _guarded(requires_admin=True)(view_func)


def capability_required(name: str) -> Callable[..., Any]:
    """
    Decorator factory for the finer capabilities (can_edit_rdo, can_view_medicoes).

    Usage:
        @capability_required("can_view_medicoes")
        def list_sessions(obra_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            role = current_role()
            if role is None:
                return _unauthorized()
            if not getattr(RoleCapabilities.for_role(role), name):
                raise PermissionDenied(PermissionGuard(role, requires_edit=True).fallback_message())
            return view_func(*args, **kwargs)

        return wrapper

    return decorator

"""
obras_app/services/password_reset.py

Password reset codes.

Contract:
- Codes are exactly 6 numeric digits.
- They expire PASSWORD_RESET_TTL_MINUTES after issuance (15 by default).
- They are single-use: a code is valid only while used is False AND
  expires_at is in the future.
- Requesting a code for an unknown email looks exactly like success, so the
  endpoint never reveals which accounts exist.
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from ..errors import NotFoundError, ValidationError, WriteError
from ..gateway import PasswordResetTable, UserTable
from ..mailer import Mailer, reset_code_email
from ..models import utcnow

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"^\d{6}$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Z])(?=.*\d).{8,}$")

INVALID_CODE_MESSAGE = "Código inválido ou expirado"
GENERIC_REQUEST_MESSAGE = "Se o e-mail estiver cadastrado, você receberá um código de verificação"


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def validate_code_shape(code: Any) -> str:
    raw = str(code or "").strip()
    if not raw:
        raise ValidationError("Código é obrigatório")
    if not CODE_PATTERN.match(raw):
        raise ValidationError("O código deve conter exatamente 6 dígitos")
    return raw


class PasswordResetService:
    def __init__(
        self,
        mailer: Mailer,
        ttl_minutes: int = 15,
        users: Optional[UserTable] = None,
        resets: Optional[PasswordResetTable] = None,
    ):
        self.mailer = mailer
        self.ttl_minutes = ttl_minutes
        self.users = users or UserTable()
        self.resets = resets or PasswordResetTable()

    def request_reset(self, email: Optional[str]) -> str:
        """Issue and mail a code. Returns the user-facing message."""
        if email is not None and not isinstance(email, str):
            raise ValidationError("E-mail inválido")
        email = (email or "").strip()
        if not email:
            raise ValidationError("E-mail é obrigatório")

        user = self.users.by_email(email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown/inactive account")
            return GENERIC_REQUEST_MESSAGE

        code = generate_code()
        self.resets.insert(user.id, code, utcnow() + timedelta(minutes=self.ttl_minutes))

        if not self.mailer.send(reset_code_email(user.email, code, self.ttl_minutes)):
            raise WriteError("Erro ao enviar e-mail")

        logger.info("Password reset code issued for user %s", user.id)
        return "Código enviado para seu e-mail"

    def _valid_reset(self, code: Any):
        raw = validate_code_shape(code)
        reset = self.resets.find_valid(raw, utcnow())
        if reset is None:
            raise ValidationError(INVALID_CODE_MESSAGE)
        return reset

    def verify_code(self, code: Any) -> Dict[str, Any]:
        reset = self._valid_reset(code)
        user = self.users.get(reset.user_id)
        if user is None:
            raise NotFoundError("Usuário não encontrado")
        return {"valid": True, "user_id": user.id, "email": user.email}

    def reset_password(self, code: Any, new_password: Optional[str]) -> str:
        if not code or not new_password:
            raise ValidationError("Código e nova senha são obrigatórios")
        if not PASSWORD_PATTERN.match(new_password):
            raise ValidationError(
                "A senha deve ter no mínimo 8 caracteres, incluindo 1 letra maiúscula e 1 número"
            )

        reset = self._valid_reset(code)
        user = self.users.get(reset.user_id)
        if user is None:
            raise NotFoundError("Usuário não encontrado")

        self.users.set_password(user, new_password)
        self.resets.mark_used(reset)
        self.cleanup()

        logger.info("Password reset completed for user %s", user.id)
        return "Senha redefinida com sucesso"

    def cleanup(self) -> int:
        """Drop used and expired codes."""
        return self.resets.delete_stale(utcnow())

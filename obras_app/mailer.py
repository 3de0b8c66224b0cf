"""
obras_app/mailer.py

Transactional email for password reset codes.

Providers (config MAIL_PROVIDER):
- "mock":   log only (development / tests)
- "resend": POST to the Resend HTTP API with httpx
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

import httpx

logger = logging.getLogger(__name__)

PROVIDER_MOCK = "mock"
PROVIDER_RESEND = "resend"


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    body_html: str
    body_text: Optional[str] = None


class Mailer:
    def __init__(self, provider: str, sender: str, api_key: Optional[str] = None, api_url: Optional[str] = None):
        self.provider = provider
        self.sender = sender
        self.api_key = api_key
        self.api_url = api_url
        self.outbox: List[EmailMessage] = []

    @classmethod
    def from_config_values(cls, cfg: Mapping[str, Any]) -> "Mailer":
        return cls(
            provider=cfg.get("MAIL_PROVIDER", PROVIDER_MOCK),
            sender=cfg.get("MAIL_FROM", ""),
            api_key=cfg.get("RESEND_API_KEY"),
            api_url=cfg.get("RESEND_API_URL"),
        )

    def send(self, message: EmailMessage) -> bool:
        """Return True when the provider accepted the message."""
        if self.provider == PROVIDER_RESEND:
            return self._send_via_resend(message)
        return self._send_mock(message)

    def _send_mock(self, message: EmailMessage) -> bool:
        self.outbox.append(message)
        logger.info("[MOCK EMAIL] To: %s | Subject: %s", message.to, message.subject)
        return True

    def _send_via_resend(self, message: EmailMessage) -> bool:
        if not self.api_key:
            logger.error("RESEND_API_KEY not configured")
            return False
        try:
            response = httpx.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": message.to,
                    "subject": message.subject,
                    "html": message.body_html,
                },
                timeout=10.0,
            )
        except httpx.HTTPError as exc:
            logger.error("Resend send failed: %s", exc)
            return False

        if response.is_success:
            logger.info("Email sent via Resend to %s", message.to)
            return True
        logger.error("Resend API error: %s - %s", response.status_code, response.text)
        return False


def reset_code_email(to: str, code: str, ttl_minutes: int) -> EmailMessage:
    html = (
        "<h2>Redefinição de Senha</h2>"
        "<p>Você solicitou a redefinição de senha da sua conta.</p>"
        "<p>Use o código abaixo para redefinir sua senha:</p>"
        f'<p style="font-size:32px;font-weight:bold;letter-spacing:5px">{code}</p>'
        f"<p><strong>Este código expira em {ttl_minutes} minutos.</strong></p>"
        "<p>Se você não solicitou esta redefinição, ignore este e-mail.</p>"
    )
    return EmailMessage(
        to=[to],
        subject="Código de Redefinição de Senha",
        body_html=html,
        body_text=f"Seu código de redefinição: {code} (expira em {ttl_minutes} minutos)",
    )

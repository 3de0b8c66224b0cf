from datetime import timedelta

import pytest

from obras_app.extensions import db
from obras_app.models import PasswordReset, utcnow
from obras_app.services.password_reset import generate_code


@pytest.fixture()
def mailer(app):
    return app.extensions["mailer"]


def _store_code(user, code="123456", expires_in=timedelta(minutes=15), used=False):
    row = PasswordReset(user_id=user.id, code=code, expires_at=utcnow() + expires_in, used=used)
    db.session.add(row)
    db.session.commit()
    return row


def test_generated_codes_have_six_digits():
    for _ in range(50):
        code = generate_code()
        assert len(code) == 6 and code.isdigit()


def test_preflight_returns_cors_headers(client):
    response = client.open("/functions/verify-reset-code", method="OPTIONS")

    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "content-type" in response.headers["Access-Control-Allow-Headers"]


def test_verify_unknown_code_is_invalid_or_expired(client):
    response = client.post("/functions/verify-reset-code", json={"code": "654321"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Código inválido ou expirado"
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_verify_expired_code_is_invalid_or_expired(client, make_user):
    user = make_user(role="editor")
    _store_code(user, code="111111", expires_in=timedelta(minutes=-1))

    response = client.post("/functions/verify-reset-code", json={"code": "111111"})

    assert response.status_code == 400
    assert "inválido ou expirado" in response.get_json()["error"]


def test_verify_used_code_is_rejected(client, make_user):
    user = make_user(role="editor")
    _store_code(user, code="222222", used=True)

    assert client.post("/functions/verify-reset-code", json={"code": "222222"}).status_code == 400


@pytest.mark.parametrize("code", ["", "12345", "1234567", "12a456"])
def test_verify_rejects_malformed_codes(client, code):
    assert client.post("/functions/verify-reset-code", json={"code": code}).status_code == 400


def test_verify_valid_code(client, make_user):
    user = make_user(role="editor", email="fiscal@example.com")
    _store_code(user, code="333333")

    response = client.post("/functions/verify-reset-code", json={"code": "333333"})

    assert response.status_code == 200
    assert response.get_json() == {"valid": True, "user_id": user.id, "email": "fiscal@example.com"}


def test_request_for_unknown_email_does_not_reveal_account(client, mailer):
    response = client.post("/functions/request-password-reset", json={"email": "ninguem@example.com"})

    assert response.status_code == 200
    assert mailer.outbox == []
    assert PasswordReset.query.count() == 0


def test_request_requires_email(client):
    assert client.post("/functions/request-password-reset", json={}).status_code == 400
    assert client.post("/functions/request-password-reset", json={"email": ["a@example.com"]}).status_code == 400


def test_full_reset_flow(client, make_user, mailer):
    user = make_user(role="editor", email="obra@example.com")

    response = client.post("/functions/request-password-reset", json={"email": "obra@example.com"})
    assert response.status_code == 200

    reset = PasswordReset.query.one()
    code = reset.code
    assert reset.user_id == user.id
    assert reset.expires_at > utcnow() + timedelta(minutes=14)
    assert code in mailer.outbox[-1].body_html

    weak = client.post("/functions/reset-password", json={"code": code, "newPassword": "fraca"})
    assert weak.status_code == 400

    done = client.post("/functions/reset-password", json={"code": code, "newPassword": "NovaSenha9"})
    assert done.status_code == 200

    # Single use
    again = client.post("/functions/verify-reset-code", json={"code": code})
    assert again.status_code == 400

    login = client.post("/auth/login", json={"email": "obra@example.com", "password": "NovaSenha9"})
    assert login.status_code == 200

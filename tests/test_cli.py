from datetime import timedelta

from obras_app.extensions import db
from obras_app.models import PasswordReset, User, utcnow


def test_create_user_command(app):
    runner = app.test_cli_runner()

    result = runner.invoke(
        args=["create-user", "--email", "Admin@Example.com", "--password", "Senha123", "--name", "Ana"]
    )

    assert result.exit_code == 0, result.output
    user = User.query.filter_by(email="admin@example.com").one()
    assert user.role == "admin"
    assert user.check_password("Senha123")


def test_create_user_rejects_existing_email(app, make_user):
    make_user(role="editor", email="dup@example.com")

    result = app.test_cli_runner().invoke(
        args=["create-user", "--email", "dup@example.com", "--password", "x", "--role", "viewer"]
    )

    assert result.exit_code != 0
    assert "already exists" in result.output


def test_cleanup_reset_codes_command(app, make_user):
    user = make_user(role="editor")
    now = utcnow()
    db.session.add_all(
        [
            PasswordReset(user_id=user.id, code="111111", expires_at=now + timedelta(minutes=10)),
            PasswordReset(user_id=user.id, code="222222", expires_at=now - timedelta(minutes=1)),
            PasswordReset(user_id=user.id, code="333333", expires_at=now + timedelta(minutes=10), used=True),
        ]
    )
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["cleanup-reset-codes"])

    assert "2 reset code(s) removed." in result.output
    db.session.expire_all()
    assert [r.code for r in PasswordReset.query.all()] == ["111111"]

"""
Pytest fixtures for the Gestão de Obras test suite.

Provides:
- app on an in-memory SQLite database (schema created per test)
- client and login helpers per role
- small factories for obras, budget items, reports and activities
"""

from datetime import date
from decimal import Decimal

import pytest

from config import TestConfig
from obras_app import create_app
from obras_app.extensions import db
from obras_app.models import Obra, OrcamentoItem, RdoActivity, RdoReport, User

PASSWORD = "Senha123"


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(role="editor", email=None, name=None, active=True):
        user = User(
            email=email or f"{role}@example.com",
            full_name=name or role.title(),
            role=role,
            is_active=active,
        )
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture()
def login(client, make_user):
    """Create a user with the given role and log the test client in."""

    def _login(role="editor"):
        user = make_user(role=role)
        response = client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 200, response.get_json()
        return user

    return _login


@pytest.fixture()
def obra(app):
    row = Obra(name="Reforma do Bloco A", valor_total=Decimal("1000.00"))
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture()
def make_budget_item(obra):
    def _make(item, quantity="0", total_contrato="0", obra_id=None):
        row = OrcamentoItem(
            obra_id=obra_id or obra.id,
            item=item,
            quantity=Decimal(quantity),
            total_contrato=Decimal(total_contrato),
        )
        db.session.add(row)
        db.session.commit()
        return row

    return _make


@pytest.fixture()
def make_report(obra):
    def _make(day=date(2026, 3, 10), status="rascunho", obra_id=None):
        row = RdoReport(obra_id=obra_id or obra.id, data=day, status=status)
        db.session.add(row)
        db.session.commit()
        return row

    return _make


@pytest.fixture()
def make_activity(obra):
    def _make(report, budget_item, executado, quantidade_total, tipo="planilha"):
        row = RdoActivity(
            obra_id=report.obra_id,
            report_id=report.id,
            orcamento_item_id=budget_item.id if budget_item is not None else None,
            tipo=tipo,
            executado_dia=Decimal(executado),
            quantidade_total=Decimal(quantidade_total),
        )
        db.session.add(row)
        db.session.commit()
        return row

    return _make

"""
Flask extension singletons for the obras API.

Bound to the app in create_app(); models and services import them from here
so nothing needs the app object at import time.

Constraint names follow a fixed convention so Flask-Migrate autogenerate
produces stable, droppable names (the unique (obra_id, sequencia) and
(session_id, item_code) constraints are relied on for conflict detection).
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from sqlalchemy import MetaData

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

db = SQLAlchemy(metadata=MetaData(naming_convention=NAMING_CONVENTION))
migrate = Migrate(compare_type=True)

# JSON API: no login view; unauthorized_handler answers 401
login_manager = LoginManager()
login_manager.session_protection = "strong"

csrf = CSRFProtect()

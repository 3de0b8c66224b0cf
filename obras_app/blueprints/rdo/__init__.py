from .routes import rdo_bp  # noqa: F401

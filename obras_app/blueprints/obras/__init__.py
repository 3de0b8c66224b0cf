from .routes import obras_bp  # noqa: F401

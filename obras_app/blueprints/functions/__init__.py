"""
Public functions blueprint (password reset).

Exposes functions_bp; exempted from CSRF in the app factory because it is
called cross-origin before any login session exists.
"""

from .routes import functions_bp  # noqa: F401

"""
Sessions blueprint package.

IMPORTANT:
- Must expose medicoes_bp and aditivos_bp for app factory registration.
"""

from __future__ import annotations

from .routes import aditivos_bp, medicoes_bp  # noqa: F401

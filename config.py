"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
mail delivery for password reset codes and logging. It uses environment variables for sensitive information and
defaults for development. In production, make sure to set the appropriate environment variables and secure the
secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'obras.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection (send X-CSRFToken on mutating API calls)
    WTF_CSRF_ENABLED = True

    APP_NAME = "Gestão de Obras"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Password reset codes
    PASSWORD_RESET_TTL_MINUTES = int(os.environ.get("PASSWORD_RESET_TTL_MINUTES", "15"))

    # Mail delivery: "mock" only logs, "resend" calls the Resend HTTP API
    MAIL_PROVIDER = os.environ.get("MAIL_PROVIDER", "mock")
    MAIL_FROM = os.environ.get("MAIL_FROM", "Sistema <onboarding@resend.dev>")
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    RESEND_API_URL = "https://api.resend.com/emails"


class TestConfig(Config):
    """In-memory database, no CSRF, mock mail."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    MAIL_PROVIDER = "mock"
    LOG_LEVEL = "DEBUG"

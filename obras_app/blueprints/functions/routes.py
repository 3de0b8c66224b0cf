"""
obras_app/blueprints/functions/routes.py

Public password reset functions.

Provides:
- POST /functions/request-password-reset   {email}            -> 200 message
- POST /functions/verify-reset-code        {code}             -> 200 {valid, user_id, email}
- POST /functions/reset-password           {code, newPassword} -> 200 message

Contract:
- OPTIONS (pre-flight) answers 200 with permissive CORS headers; every
  other response carries the same headers.
- JSON bodies with explicit statuses: 400 invalid input / invalid or
  expired code, 404 unknown account, 500 unexpected failure.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from ...errors import ObrasError
from ...extensions import db
from ...services.password_reset import PasswordResetService
from ...utils import json_body

logger = logging.getLogger(__name__)

functions_bp = Blueprint("functions", __name__, url_prefix="/functions")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _service() -> PasswordResetService:
    return PasswordResetService(
        mailer=current_app.extensions["mailer"],
        ttl_minutes=current_app.config.get("PASSWORD_RESET_TTL_MINUTES", 15),
    )


def _preflight():
    return "", 200


@functions_bp.after_request
def _add_cors_headers(response):
    response.headers.update(CORS_HEADERS)
    return response


@functions_bp.errorhandler(ObrasError)
def _handle_app_error(exc: ObrasError):
    db.session.rollback()
    return jsonify({"error": exc.message}), exc.http_status


@functions_bp.errorhandler(Exception)
def _handle_unexpected(exc: Exception):
    if isinstance(exc, HTTPException):
        return exc
    db.session.rollback()
    logger.exception("Unexpected error in %s", request.endpoint)
    return jsonify({"error": "Erro interno do servidor"}), 500


@functions_bp.route("/request-password-reset", methods=["POST", "OPTIONS"])
def request_password_reset():
    if request.method == "OPTIONS":
        return _preflight()
    message = _service().request_reset(json_body().get("email"))
    return jsonify({"message": message})


@functions_bp.route("/verify-reset-code", methods=["POST", "OPTIONS"])
def verify_reset_code():
    if request.method == "OPTIONS":
        return _preflight()
    return jsonify(_service().verify_code(json_body().get("code")))


@functions_bp.route("/reset-password", methods=["POST", "OPTIONS"])
def reset_password():
    if request.method == "OPTIONS":
        return _preflight()
    data = json_body()
    message = _service().reset_password(data.get("code"), data.get("newPassword"))
    return jsonify({"message": message})

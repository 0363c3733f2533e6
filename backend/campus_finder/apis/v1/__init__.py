from flask import Blueprint, Flask, g, jsonify, request
from marshmallow import ValidationError

from ...modules.items.routes import bp as items_bp
from ...modules.notifications.routes import bp as notifications_bp
from ...modules.messages.routes import bp as messages_bp


def _header_user_id() -> int | None:
    # Identity is asserted by the upstream auth gateway
    raw = request.headers.get("X-User-Id") or ""
    auth = request.headers.get("Authorization") or ""
    if not raw and auth.lower().startswith("user "):
        raw = auth[5:].strip()
    try:
        uid = int(raw)
    except (TypeError, ValueError):
        return None
    return uid if uid > 0 else None


def register_api(app: Flask) -> None:
    api_v1 = Blueprint("api_v1", __name__, url_prefix="/api/v1")

    @api_v1.before_request  # type: ignore
    def _load_current_user():  # pragma: no cover - simple request context helper
        g.current_user_id = _header_user_id()  # type: ignore[attr-defined]

    @api_v1.errorhandler(ValidationError)
    def _validation_error(err: ValidationError):
        return jsonify({"error": "Invalid request", "details": err.messages}), 400

    # Mount feature blueprints
    api_v1.register_blueprint(items_bp)
    api_v1.register_blueprint(notifications_bp)
    api_v1.register_blueprint(messages_bp)

    app.register_blueprint(api_v1)

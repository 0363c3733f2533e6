from __future__ import annotations

import json
import time

from flask import Blueprint, Response, jsonify, request, stream_with_context

from ...extensions import db
from ...models.notification import Notification
from ...schemas.notification import notification_schema, notifications_schema
from ...utils.identity import current_user_id
from ...utils.time import utcnow
from .bus import get_bus

bp = Blueprint("notifications", __name__, url_prefix="/notifications")

# Keep below gunicorn's timeout so the stream yields periodically
KEEPALIVE_SECONDS = 15


@bp.get("")
def list_notifications():
    uid = current_user_id()
    if not uid:
        return jsonify({"error": "Unauthorized"}), 401
    try:
        limit = int(request.args.get("limit", 20))
    except Exception:
        limit = 20
    q = Notification.query.filter(Notification.user_id == uid)
    if request.args.get("unread") in ("1", "true"):
        q = q.filter(Notification.read_at.is_(None))
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(max(1, min(100, limit))).all()
    return jsonify({"notifications": notifications_schema.dump(rows)})


@bp.patch("/<int:notif_id>/read")
def mark_read(notif_id: int):
    uid = current_user_id()
    if not uid:
        return jsonify({"error": "Unauthorized"}), 401
    n = db.session.get(Notification, notif_id)
    if not n:
        return jsonify({"error": "Not found"}), 404
    if n.user_id != uid:
        return jsonify({"error": "Forbidden"}), 403
    if not n.read_at:
        n.read_at = utcnow()
        db.session.commit()
    return jsonify({"notification": notification_schema.dump(n)})


@bp.get("/stream")
def stream_notifications():
    """Server-Sent Events stream of the current user's notifications."""
    uid = current_user_id()
    if not uid:
        return jsonify({"error": "Unauthorized"}), 401

    sub = get_bus().subscribe(uid)

    def event_stream():
        try:
            yield ": connected\n\n"
            while True:
                evt = sub.get(timeout=KEEPALIVE_SECONDS)
                if evt is None:
                    yield "event: ping\n" + f"data: {json.dumps({'ts': int(time.time())})}\n\n"
                    continue
                yield "event: notification\n" + f"data: {json.dumps(evt)}\n\n"
        finally:
            sub.close()

    headers = {
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return Response(stream_with_context(event_stream()), headers=headers)

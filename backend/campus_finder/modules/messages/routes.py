from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from ...extensions import db
from ...models.conversation import Conversation, Message
from ...models.notification import Notification
from ...pipeline.sink import NotificationSink
from ...schemas.message import message_create_schema, message_schema, messages_schema
from ...utils.identity import current_user_id, ensure_user

logger = logging.getLogger(__name__)

bp = Blueprint("messages", __name__, url_prefix="/messages")


def _find_conversation(a: int, b: int) -> Conversation | None:
    low, high = Conversation.participants_key(a, b)
    return Conversation.query.filter_by(user_low_id=low, user_high_id=high).first()


def _get_or_create_conversation(a: int, b: int) -> Conversation:
    conv = _find_conversation(a, b)
    if conv:
        return conv
    low, high = Conversation.participants_key(a, b)
    conv = Conversation(user_low_id=low, user_high_id=high)
    db.session.add(conv)
    try:
        db.session.commit()
    except IntegrityError:
        # Another request created the pair first
        db.session.rollback()
        conv = _find_conversation(a, b)
        if conv is None:
            raise
    return conv


@bp.post("/send/<int:receiver_id>")
def send_message(receiver_id: int):
    uid = current_user_id()
    if not uid:
        return jsonify({"error": "Unauthorized"}), 401
    if receiver_id == uid:
        return jsonify({"error": "Cannot message yourself"}), 400
    data = message_create_schema.load(request.get_json(silent=True) or {})
    body = data["message"].strip()
    if not body:
        return jsonify({"error": "Message is empty"}), 400

    ensure_user(uid)
    ensure_user(receiver_id)
    conv = _get_or_create_conversation(uid, receiver_id)
    msg = Message(conversation_id=conv.id, sender_id=uid, receiver_id=receiver_id, body=body)
    db.session.add(msg)
    db.session.commit()

    notice = Notification(
        user_id=receiver_id,
        kind="message",
        message=f"You received a new message from user {uid}",
        other_user_id=uid,
    )
    NotificationSink().deliver([notice])
    logger.info("User %s messaged user %s in conversation %s", uid, receiver_id, conv.id)
    return jsonify({"message": message_schema.dump(msg)}), 201


@bp.get("/<int:other_user_id>")
def get_conversation(other_user_id: int):
    uid = current_user_id()
    if not uid:
        return jsonify({"error": "Unauthorized"}), 401
    conv = _find_conversation(uid, other_user_id)
    if conv is None:
        return jsonify({"messages": []})
    rows = (
        Message.query
        .filter(Message.conversation_id == conv.id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    return jsonify({"conversationId": conv.id, "messages": messages_schema.dump(rows)})

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import update

from ...extensions import db
from ...models.item import Item
from ...pipeline.inference import get_inference_client
from ...schemas.item import item_create_schema, item_schema, items_schema
from ...utils.identity import current_user_id, ensure_user
from ...utils.time import utcnow

logger = logging.getLogger(__name__)

bp = Blueprint("items", __name__, url_prefix="/items")


def _embed_on_create(image_url: str | None) -> list[float] | None:
    # Best effort only; the claim scheduler picks up anything left pending
    if not image_url or not current_app.config.get("EMBED_ON_CREATE"):
        return None
    try:
        return get_inference_client().compute_embedding(image_url)
    except Exception:
        logger.exception("Creation-time embedding failed for %s", image_url)
        return None


@bp.post("")
def create_item():
    uid = current_user_id()
    if not uid:
        return jsonify({"error": "Unauthorized"}), 401
    fields = item_create_schema.load(request.get_json(silent=True) or {})

    embedding = _embed_on_create(fields.get("image_url"))
    item = Item(reporter_user_id=uid, **fields)
    if embedding:
        item.image_embedding = list(embedding)
        item.embedding_status = "success"
    else:
        item.embedding_status = "pending"

    ensure_user(uid)
    db.session.add(item)
    db.session.commit()
    logger.info("Item %s reported by user %s (%s %s)", item.id, uid, item.item_type, item.category)
    return jsonify({"item": item_schema.dump(item)}), 201


@bp.get("")
def list_items():
    try:
        limit = int(request.args.get("limit", 50))
    except Exception:
        limit = 50
    q = Item.query.filter(Item.status == "active")
    item_type = request.args.get("type")
    if item_type:
        q = q.filter(Item.item_type == item_type.capitalize())
    category = (request.args.get("category") or "").strip()
    if category:
        q = q.filter(Item.category.ilike(category))
    rows = q.order_by(Item.created_at.desc(), Item.id.desc()).limit(max(1, min(200, limit))).all()
    return jsonify({"items": items_schema.dump(rows)})


@bp.get("/mine")
def my_items():
    uid = current_user_id()
    if not uid:
        return jsonify({"error": "Unauthorized"}), 401
    rows = (
        Item.query
        .filter(Item.reporter_user_id == uid)
        .order_by(Item.created_at.desc(), Item.id.desc())
        .all()
    )
    return jsonify({"items": items_schema.dump(rows)})


@bp.get("/<int:item_id>")
def get_item(item_id: int):
    item = db.session.get(Item, item_id)
    if not item:
        return jsonify({"error": "Not found"}), 404
    return jsonify({"item": item_schema.dump(item)})


@bp.put("/<int:item_id>/status")
def mark_reunited(item_id: int):
    uid = current_user_id()
    if not uid:
        return jsonify({"error": "Unauthorized"}), 401
    item = db.session.get(Item, item_id)
    if not item:
        return jsonify({"error": "Not found"}), 404
    if item.reporter_user_id != uid:
        return jsonify({"error": "Forbidden"}), 403

    # Conditional so two concurrent requests cannot both flip the status
    result = db.session.execute(
        update(Item)
        .where(Item.id == item_id, Item.status == "active")
        .values(status="reunited", updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount != 1:
        return jsonify({"error": "Item already reunited"}), 409
    db.session.refresh(item)
    logger.info("Item %s marked reunited by user %s", item_id, uid)
    return jsonify({"item": item_schema.dump(item)})

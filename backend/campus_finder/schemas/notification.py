from marshmallow import Schema, fields


class NotificationSchema(Schema):
    id = fields.Int(dump_only=True)
    userId = fields.Int(attribute="user_id")
    kind = fields.Str()
    message = fields.Str()
    matchType = fields.Str(attribute="match_type", allow_none=True)
    itemId = fields.Int(attribute="item_id", allow_none=True)
    matchItemId = fields.Int(attribute="match_item_id", allow_none=True)
    otherUserId = fields.Int(attribute="other_user_id", allow_none=True)
    read = fields.Bool(attribute="is_read")
    createdAt = fields.DateTime(attribute="created_at")
    readAt = fields.DateTime(attribute="read_at", allow_none=True)


notification_schema = NotificationSchema()
notifications_schema = NotificationSchema(many=True)


def notification_event(n) -> dict:
    """Payload pushed to live clients; mirrors the inbox representation."""
    return {"type": "notification", "notification": notification_schema.dump(n)}

from marshmallow import Schema, ValidationError, fields, validate, post_load

from ..models.enums import ITEM_TYPES


class GeoPoint(fields.Field):
    """GeoJSON ``{"type": "Point", "coordinates": [lng, lat]}`` <-> ``(lng, lat)``."""

    def _serialize(self, value, attr, obj, **kwargs):
        if value is None or value[0] is None or value[1] is None:
            return None
        return {"type": "Point", "coordinates": [value[0], value[1]]}

    def _deserialize(self, value, attr, data, **kwargs):
        if not isinstance(value, dict):
            raise ValidationError("Location must be a GeoJSON Point.")
        if value.get("type", "Point") != "Point":
            raise ValidationError("Only Point locations are supported.")
        coords = value.get("coordinates")
        if not isinstance(coords, (list, tuple)) or len(coords) != 2:
            raise ValidationError("Coordinates must be [longitude, latitude].")
        try:
            lng, lat = float(coords[0]), float(coords[1])
        except (TypeError, ValueError) as e:
            raise ValidationError("Coordinates must be numbers.") from e
        if not (-180.0 <= lng <= 180.0) or not (-90.0 <= lat <= 90.0):
            raise ValidationError("Coordinates out of range.")
        return (lng, lat)


class ItemCreateSchema(Schema):
    itemType = fields.Str(required=True, validate=validate.OneOf(ITEM_TYPES))
    category = fields.Str(required=True, validate=validate.Length(min=1, max=120))
    color = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=60))
    description = fields.Str(required=True, validate=validate.Length(min=1))
    location = GeoPoint(required=True)
    imageUrl = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=1024))

    @post_load
    def to_columns(self, data, **kwargs):
        lng, lat = data["location"]
        return {
            "item_type": data["itemType"],
            "category": data["category"].strip(),
            "color": (data.get("color") or "").strip() or None,
            "description": data["description"].strip(),
            "longitude": lng,
            "latitude": lat,
            "image_url": (data.get("imageUrl") or "").strip() or None,
        }


class ItemSchema(Schema):
    id = fields.Int(dump_only=True)
    itemType = fields.Str(attribute="item_type")
    category = fields.Str()
    color = fields.Str(allow_none=True)
    description = fields.Str()
    location = fields.Method("_location")
    status = fields.Str()
    imageUrl = fields.Str(attribute="image_url", allow_none=True)
    reporterUserId = fields.Int(attribute="reporter_user_id", allow_none=True)
    embeddingStatus = fields.Str(attribute="embedding_status", allow_none=True)
    hasEmbedding = fields.Bool(attribute="has_embedding")
    createdAt = fields.DateTime(attribute="created_at")

    def _location(self, obj):
        return GeoPoint()._serialize((obj.longitude, obj.latitude), "location", obj)


item_create_schema = ItemCreateSchema()
item_schema = ItemSchema()
items_schema = ItemSchema(many=True)

from sqlalchemy import func, Index
from ..extensions import db
from ..utils.time import utcnow
from .enums import item_type_enum, item_status_enum, embedding_status_enum
from .types import BigIntPK, Vector


class Item(db.Model):
    __tablename__ = "items"

    id = db.Column(BigIntPK, primary_key=True)
    reporter_user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="SET NULL"))
    item_type = db.Column(item_type_enum, nullable=False)
    category = db.Column(db.String(120), nullable=False)
    color = db.Column(db.String(60))
    description = db.Column(db.Text, nullable=False, server_default="")
    # GeoJSON order is (longitude, latitude); both must be present for proximity queries
    longitude = db.Column(db.Float)
    latitude = db.Column(db.Float)
    status = db.Column(item_status_enum, nullable=False, default="active", server_default="active")
    image_url = db.Column(db.String(1024))

    # Embedding pipeline state
    image_embedding = db.Column(Vector)
    embedding_status = db.Column(embedding_status_enum, default="pending", server_default="pending")
    embedding_attempts = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    next_retry_at = db.Column(db.DateTime(timezone=True))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    reporter = db.relationship("User", back_populates="reported_items", foreign_keys=[reporter_user_id])

    __table_args__ = (
        Index("idx_items_type_status", "item_type", "status"),
        Index("idx_items_lat_lng", "latitude", "longitude"),
        Index("idx_items_created_at", "created_at"),
        Index("idx_items_embedding_queue", "embedding_status", "next_retry_at"),
    )

    @property
    def has_embedding(self) -> bool:
        return bool(self.image_embedding)

    @property
    def has_location(self) -> bool:
        return self.longitude is not None and self.latitude is not None

    def __repr__(self) -> str:
        return f"<Item {self.id} {self.item_type} {self.category!r}>"

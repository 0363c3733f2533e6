from sqlalchemy import func
from ..extensions import db
from .types import BigIntPK


class User(db.Model):
    """Account row owned by the external auth service; kept for references and display names."""

    __tablename__ = "users"

    id = db.Column(BigIntPK, primary_key=True)
    email = db.Column(db.String(255), unique=True)
    name = db.Column(db.String(120))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    reported_items = db.relationship(
        "Item",
        back_populates="reporter",
        foreign_keys="Item.reporter_user_id",
        lazy=True,
    )
    notifications = db.relationship(
        "Notification",
        back_populates="user",
        foreign_keys="Notification.user_id",
        lazy=True,
        cascade="all, delete-orphan",
    )

from sqlalchemy import Index, UniqueConstraint, func
from ..extensions import db
from ..utils.time import utcnow
from .enums import notification_kind_enum
from .types import BigIntPK


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(BigIntPK, primary_key=True)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind = db.Column(notification_kind_enum, nullable=False, default="match", server_default="match")
    message = db.Column(db.Text, nullable=False)
    match_type = db.Column(db.String(40))
    item_id = db.Column(db.BigInteger, db.ForeignKey("items.id", ondelete="SET NULL"))
    match_item_id = db.Column(db.BigInteger, db.ForeignKey("items.id", ondelete="SET NULL"))
    other_user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="SET NULL"))
    read_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    user = db.relationship("User", back_populates="notifications", foreign_keys=[user_id])
    other_user = db.relationship("User", foreign_keys=[other_user_id])
    match_item = db.relationship("Item", foreign_keys=[match_item_id])

    __table_args__ = (
        # One notification per (recipient, matched item); NULL match_item_id (messages) is exempt
        UniqueConstraint("user_id", "match_item_id", name="uq_notifications_user_match_item"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

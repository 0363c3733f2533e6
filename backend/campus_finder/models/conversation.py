from sqlalchemy import CheckConstraint, Index, UniqueConstraint, func
from ..extensions import db
from ..utils.time import utcnow
from .types import BigIntPK


class Conversation(db.Model):
    __tablename__ = "conversations"

    id = db.Column(BigIntPK, primary_key=True)
    # Participants are stored in ascending order so each pair maps to one row
    user_low_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_high_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    messages = db.relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_conversations_pair"),
        CheckConstraint("user_low_id <= user_high_id", name="ck_conversations_ordered"),
    )

    @staticmethod
    def participants_key(a: int, b: int) -> tuple[int, int]:
        return (a, b) if a <= b else (b, a)


class Message(db.Model):
    __tablename__ = "messages"

    id = db.Column(BigIntPK, primary_key=True)
    conversation_id = db.Column(db.BigInteger, db.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="SET NULL"))
    receiver_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="SET NULL"))
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    conversation = db.relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )

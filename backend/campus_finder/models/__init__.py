"""SQLAlchemy models. Importing this package registers every mapped class."""

from .user import User  # noqa: F401
from .item import Item  # noqa: F401
from .notification import Notification  # noqa: F401
from .conversation import Conversation, Message  # noqa: F401

__all__ = ["User", "Item", "Notification", "Conversation", "Message"]

from __future__ import annotations

from flask import g

from ..extensions import db
from ..models.user import User


def current_user_id() -> int | None:
    return getattr(g, "current_user_id", None)


def ensure_user(user_id: int) -> User:
    """Return the local row for an externally authenticated user, creating a stub if needed."""
    user = db.session.get(User, user_id)
    if user is None:
        user = User(id=user_id)
        db.session.add(user)
        db.session.flush()
    return user

"""Small shared helpers (time, geo, text)."""

from .time import utcnow  # noqa: F401
from .geo import haversine_meters, bounding_box  # noqa: F401
from .text import keyword_set  # noqa: F401

__all__ = ["utcnow", "haversine_meters", "bounding_box", "keyword_set"]

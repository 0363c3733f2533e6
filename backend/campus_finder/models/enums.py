from sqlalchemy.dialects.postgresql import ENUM

# Postgres ENUM types mapped for SQLAlchemy. These assume the types already exist in the DB.
# Set create_type=False to avoid SQLAlchemy trying to create them automatically.
# Other dialects (SQLite in tests) render them as VARCHAR.

ITEM_TYPES = ("Lost", "Found")
ITEM_STATUSES = ("active", "reunited")
EMBEDDING_STATUSES = ("pending", "processing", "success", "failed")
NOTIFICATION_KINDS = ("match", "message")

item_type_enum = ENUM(*ITEM_TYPES, name="item_type_enum", create_type=False)
item_status_enum = ENUM(*ITEM_STATUSES, name="item_status_enum", create_type=False)
embedding_status_enum = ENUM(*EMBEDDING_STATUSES, name="embedding_status_enum", create_type=False)
notification_kind_enum = ENUM(*NOTIFICATION_KINDS, name="notification_kind_enum", create_type=False)


def opposite_type(item_type: str) -> str:
    return "Found" if item_type == "Lost" else "Lost"

"""Column types shared by the models.

Postgres is the production database; SQLite stands in for it under test, so the
Postgres-specific types carry SQLite variants.
"""

from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.dialects.postgresql import JSONB

# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

# none_as_null keeps "no embedding" as SQL NULL so it can be filtered on
Vector = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

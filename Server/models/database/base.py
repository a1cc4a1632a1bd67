"""
SafawiNet Server - Database Base

Shared declarative base for all SQLAlchemy models.
"""

from datetime import timezone

from sqlalchemy.orm import declarative_base

# Create the shared declarative base
Base = declarative_base()


def AsUtc(value):
    """
    Attach UTC to a naive datetime read back from SQLite

    Args:
        value: datetime or None

    Returns:
        Timezone-aware datetime, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

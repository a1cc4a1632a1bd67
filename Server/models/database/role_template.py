"""
SafawiNet Server - Role Template Database Model

Named, reusable permission sets offered when creating users.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, ForeignKey

from models.database.base import Base

DEFAULT_ICON = "FiSettings"
DEFAULT_COLOR = "bg-gradient-to-r from-blue-500 to-cyan-500"


def _UtcNow():
    return datetime.now(timezone.utc)


class RoleTemplate(Base):
    """
    Role templates table

    Default templates ship with the server: their name, description, icon,
    colour and admin flag are fixed, and they can never be deleted.
    """
    __tablename__ = "role_templates"

    template_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(String(500), nullable=False, default="")
    icon = Column(String, nullable=False, default=DEFAULT_ICON)
    color = Column(String, nullable=False, default=DEFAULT_COLOR)
    is_admin = Column(Boolean, nullable=False, default=False)
    permissions = Column(JSON, nullable=False, default=list)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_UtcNow)
    updated_at = Column(DateTime, nullable=False, default=_UtcNow, onupdate=_UtcNow)

    @property
    def can_be_deleted(self) -> bool:
        return not self.is_default and (self.usage_count or 0) == 0

    def IncrementUsage(self):
        """Record that the template was used to create a user"""
        self.usage_count = (self.usage_count or 0) + 1
        self.last_used = _UtcNow()

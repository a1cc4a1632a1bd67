"""
SafawiNet Server - User Database Model

User model for authentication and authorization.
Permissions are stored on the user as a copy of the list it was created with,
so editing a role template never changes existing users.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, ForeignKey

from models.database.base import Base


def _UtcNow():
    return datetime.now(timezone.utc)


class User(Base):
    """
    Users table - stores credentials, permissions and security state
    """
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(30), unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    phone = Column(String, unique=True, nullable=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    password_hash = Column(String, nullable=False)

    # Display label: "admin", a template name, or "custom"
    role = Column(String, nullable=False, default="custom")
    is_admin = Column(Boolean, nullable=False, default=False)
    permissions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_UtcNow)
    updated_at = Column(DateTime, nullable=False, default=_UtcNow, onupdate=_UtcNow)
    last_login = Column(DateTime, nullable=True)

    # Lockout
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    account_locked = Column(Boolean, nullable=False, default=False)
    locked_until = Column(DateTime, nullable=True)
    password_last_changed = Column(DateTime, nullable=True)

    # Two-factor authentication
    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    two_factor_secret = Column(String, nullable=True)
    two_factor_backup_codes = Column(JSON, nullable=False, default=list)  # [{"code_hash", "used"}]

    # [{"session_id", "device", "ip", "user_agent", "created_at", "last_activity"}]
    active_sessions = Column(JSON, nullable=False, default=list)
    preferences = Column(JSON, nullable=False, default=lambda: {
        "timezone": "UTC",
        "language": "en",
        "theme": "light"
    })

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

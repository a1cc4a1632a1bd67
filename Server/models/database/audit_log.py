"""
SafawiNet Server - Audit Log Database Model

Security event records (logins, permission changes, user mutations, ...).
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON

from models.database.base import Base


class AuditLog(Base):
    """
    Audit logs table - one row per security-relevant event
    """
    __tablename__ = "audit_logs"

    log_id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, index=True, default=lambda: datetime.now(timezone.utc))
    user_id = Column(Integer, nullable=True, index=True)  # NULL for unknown-user login attempts
    username = Column(String, nullable=True)
    action = Column(String, nullable=False, index=True)
    ip = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    device = Column(String, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    details = Column(JSON, nullable=False, default=dict)
    risk_level = Column(String, nullable=False, default="low")  # low, medium, high, critical
    session_id = Column(String, nullable=True)
    target_user_id = Column(Integer, nullable=True)
    target_resource = Column(String, nullable=True)

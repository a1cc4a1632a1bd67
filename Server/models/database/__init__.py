"""
SafawiNet Server - Database Models Package

This package contains all SQLAlchemy database model definitions.
All models share a common declarative base.
"""

# Import Base first
from models.database.base import Base, AsUtc

# Import all models
from models.database.user import User
from models.database.role_template import RoleTemplate
from models.database.audit_log import AuditLog
from models.database.setting import Setting

# Export all models and Base
__all__ = [
    'Base',
    'AsUtc',
    'User',
    'RoleTemplate',
    'AuditLog',
    'Setting',
]

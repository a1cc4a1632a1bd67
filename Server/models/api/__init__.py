"""
SafawiNet Server - API Models Package

This package contains Pydantic models for all API endpoints.
"""

from models.api.base import ApiModel
from models.api.user_management import (
    PermissionEntry,
    CreateUserRequest,
    UpdateUserRequest,
    UpdatePermissionsRequest,
    BulkDeleteRequest
)
from models.api.role_templates import (
    CreateRoleTemplateRequest,
    UpdateRoleTemplateRequest
)

__all__ = [
    'ApiModel',
    'PermissionEntry',
    'CreateUserRequest',
    'UpdateUserRequest',
    'UpdatePermissionsRequest',
    'BulkDeleteRequest',
    'CreateRoleTemplateRequest',
    'UpdateRoleTemplateRequest',
]

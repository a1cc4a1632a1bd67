"""
SafawiNet Server - User Management API Models

Pydantic models for the /api/users endpoints.
"""

from typing import List, Optional
from pydantic import Field

from models.api.base import ApiModel


class PermissionEntry(ApiModel):
    """Actions granted on one page"""
    page: str
    actions: List[str] = []


class CreateUserRequest(ApiModel):
    """Request model for creating a new user"""
    username: str
    email: str
    phone: Optional[str] = None
    first_name: str
    last_name: str
    password: str
    # Either a template (permissions copied from it) or an explicit custom set
    role_template_id: Optional[int] = None
    is_admin: bool = False
    permissions: Optional[List[PermissionEntry]] = None
    is_active: bool = True


class UpdateUserRequest(ApiModel):
    """Request model for updating a user (only provided fields change)"""
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    password: Optional[str] = None
    role_template_id: Optional[int] = None
    is_admin: Optional[bool] = None
    permissions: Optional[List[PermissionEntry]] = None
    is_active: Optional[bool] = None


class UpdatePermissionsRequest(ApiModel):
    """Request model for replacing a user's permission list"""
    permissions: List[PermissionEntry]


class BulkDeleteRequest(ApiModel):
    """Request model for deleting several users at once"""
    user_ids: List[int] = Field(min_length=1)

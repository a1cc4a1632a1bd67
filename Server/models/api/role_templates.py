"""
SafawiNet Server - Role Template API Models

Pydantic models for the /api/role-templates endpoints.
"""

from typing import List, Optional
from pydantic import Field

from models.api.base import ApiModel
from models.api.user_management import PermissionEntry
from models.database.role_template import DEFAULT_ICON, DEFAULT_COLOR


class CreateRoleTemplateRequest(ApiModel):
    """Request model for creating a role template"""
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    icon: str = DEFAULT_ICON
    color: str = DEFAULT_COLOR
    is_admin: bool = False
    permissions: List[PermissionEntry] = []


class UpdateRoleTemplateRequest(ApiModel):
    """Request model for updating a role template (only provided fields change)"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = None
    color: Optional[str] = None
    is_admin: Optional[bool] = None
    permissions: Optional[List[PermissionEntry]] = None
    is_active: Optional[bool] = None

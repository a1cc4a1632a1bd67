"""
SafawiNet Server - Profile Update Request Model
"""

from typing import Optional, Dict
from models.api.base import ApiModel


class ProfileUpdateRequest(ApiModel):
    """Request model for updating the caller's own profile"""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    preferences: Optional[Dict[str, str]] = None

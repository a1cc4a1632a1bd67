"""
SafawiNet Server - Change Password Request Model

Pydantic model for change password endpoint request.
"""

from models.api.base import ApiModel


class ChangePasswordRequest(ApiModel):
    """Request model for change password endpoint"""
    current_password: str
    new_password: str

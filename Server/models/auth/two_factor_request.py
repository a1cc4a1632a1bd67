"""
SafawiNet Server - Two-Factor Request Model

Pydantic model for endpoints that take a TOTP or backup code.
"""

from models.api.base import ApiModel


class TwoFactorCodeRequest(ApiModel):
    """Request model carrying a single code"""
    code: str

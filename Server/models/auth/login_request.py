"""
SafawiNet Server - Login Request Model

Pydantic model for login endpoint request.
"""

from typing import Optional
from pydantic import AliasChoices, Field

from models.api.base import ApiModel


class LoginRequest(ApiModel):
    """Request model for login endpoint"""
    # Username, email or phone number
    identifier: str = Field(validation_alias=AliasChoices("identifier", "username", "email"))
    password: str
    remember_me: bool = Field(default=False, validation_alias=AliasChoices("rememberMe", "remember_me"))
    two_factor_code: Optional[str] = Field(default=None, validation_alias=AliasChoices("twoFactorCode", "two_factor_code"))

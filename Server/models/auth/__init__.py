"""
SafawiNet Server - Auth Models Package

This package contains Pydantic models for authentication endpoints.
"""

from models.auth.login_request import LoginRequest
from models.auth.change_password_request import ChangePasswordRequest
from models.auth.profile_update_request import ProfileUpdateRequest
from models.auth.two_factor_request import TwoFactorCodeRequest
from models.auth.token_data import TokenData

__all__ = [
    'LoginRequest',
    'ChangePasswordRequest',
    'ProfileUpdateRequest',
    'TwoFactorCodeRequest',
    'TokenData',
]

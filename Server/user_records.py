"""
SafawiNet Server - User Record Helpers

Field validation, uniqueness checks and response formatting shared by the
user management and profile endpoints.
"""

import re
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

from models.database import User
from permission_rules import GetUserPermissions
from two_factor import CountUnusedBackupCodes

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{3,30}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")


def NormalizePhone(phone: Optional[str]) -> Optional[str]:
    """Strip spaces, dashes and brackets; empty input becomes None"""
    if phone is None:
        return None
    cleaned = re.sub(r"[\s\-()]", "", phone)
    return cleaned or None


def ValidateUserFields(
    username: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None
) -> List[str]:
    """
    Validate the provided user fields (None means "not provided")

    Returns:
        list: Error messages, empty when valid
    """
    errors = []

    if first_name is not None and not 2 <= len(first_name.strip()) <= 50:
        errors.append("First name must be between 2 and 50 characters")
    if last_name is not None and not 2 <= len(last_name.strip()) <= 50:
        errors.append("Last name must be between 2 and 50 characters")
    if username is not None and not USERNAME_PATTERN.match(username.strip()):
        errors.append("Username must be 3-30 characters and contain only letters, numbers, dots, dashes and underscores")
    if email is not None and not EMAIL_PATTERN.match(email.strip()):
        errors.append("Please enter a valid email address")
    if phone is not None:
        cleaned = NormalizePhone(phone)
        if cleaned is not None and not PHONE_PATTERN.match(cleaned):
            errors.append("Please enter a valid phone number")

    return errors


def RaiseIfInvalid(errors: List[str]):
    """
    Raises:
        HTTPException: 400 with all validation messages
    """
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": errors[0], "errors": errors}
        )


def CheckDuplicateUser(
    db_session,
    username: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    exclude_user_id: Optional[int] = None
):
    """
    Reject a username, email or phone already used by another user

    Raises:
        HTTPException: 400 naming the duplicated field
    """
    checks = [
        (User.username, username, "Username already exists"),
        (User.email, email.lower() if email else None, "Email already exists"),
        (User.phone, phone, "Phone number already exists"),
    ]

    for column, value, message in checks:
        if value is None:
            continue
        query = db_session.query(User).filter(column == value)
        if exclude_user_id is not None:
            query = query.filter(User.user_id != exclude_user_id)
        if query.first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def FormatUser(user: User) -> Dict[str, Any]:
    """Render a user for API responses (never includes secrets)"""
    return {
        "id": user.user_id,
        "username": user.username,
        "email": user.email,
        "phone": user.phone,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "fullName": user.full_name,
        "role": user.role,
        "isAdmin": user.is_admin,
        "permissions": user.permissions or [],
        "effectivePermissions": GetUserPermissions(user),
        "isActive": user.is_active,
        "createdBy": user.created_by,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
        "lastLogin": user.last_login.isoformat() if user.last_login else None,
        "accountLocked": user.account_locked,
        "twoFactorEnabled": user.two_factor_enabled,
        "backupCodesRemaining": CountUnusedBackupCodes(user.two_factor_backup_codes),
        "preferences": user.preferences or {},
    }

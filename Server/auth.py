"""
SafawiNet Server - Authentication Utilities

This module provides authentication functionality including:
- JWT token generation and validation
- Authentication dependency for protected routes (token must belong to an active session)
- Account lockout after repeated failed logins
- Page/action permission dependencies

Security Requirements:
- Never store passwords as plain text (handled in DatabaseManager)
- Tokens are signed with the configured secret and scoped by issuer and audience
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy import or_

from config import GetSettings
from models.database import User, AsUtc
from models.auth import TokenData
from permission_rules import HasPermission
from sessions import IsSessionActive, TouchSession

logger = logging.getLogger(__name__)

# Security scheme for FastAPI (missing header handled below to answer 401)
security = HTTPBearer(auto_error=False)


# ==================== JWT Token Functions ====================

def CreateAccessToken(data: dict, expires_at: datetime) -> str:
    """
    Create a JWT access token

    Args:
        data: Claims (user_id, username, is_admin, session_id, two_factor_enabled)
        expires_at: Absolute expiration time

    Returns:
        str: Encoded JWT token
    """
    settings = GetSettings()

    to_encode = data.copy()
    to_encode.update({
        "exp": expires_at,
        "iat": datetime.now(timezone.utc),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    })
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def DecodeAccessToken(token: str) -> TokenData:
    """
    Decode and validate a JWT access token

    Args:
        token: JWT token string

    Returns:
        TokenData: Token claims

    Raises:
        HTTPException: If token is invalid or expired
    """
    settings = GetSettings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer
        )
    except JWTError:
        raise credentials_exception

    user_id = payload.get("user_id")
    username = payload.get("username")
    if user_id is None or username is None:
        raise credentials_exception

    return TokenData(
        user_id=user_id,
        username=username,
        is_admin=payload.get("is_admin", False),
        session_id=payload.get("session_id"),
        two_factor_enabled=payload.get("two_factor_enabled", False)
    )


def GetTokenExpiration(remember_me: bool, db_manager) -> datetime:
    """
    Work out when a newly issued token expires

    Args:
        remember_me: Use the long-lived remember-me lifetime
        db_manager: DatabaseManager for runtime settings

    Returns:
        datetime: Absolute UTC expiration time
    """
    if remember_me:
        lifetime = timedelta(days=db_manager.GetSettingInt("remember_me_days"))
    else:
        lifetime = timedelta(hours=db_manager.GetSettingInt("jwt_expiration_hours"))
    return datetime.now(timezone.utc) + lifetime


# ==================== Authentication Dependencies ====================

def GetTokenData(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenData:
    """
    FastAPI dependency returning the validated claims of the bearer token

    Raises:
        HTTPException: 401 if the header is missing or the token is invalid
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return DecodeAccessToken(credentials.credentials)


def GetCurrentUser(token_data: TokenData = Depends(GetTokenData)) -> User:
    """
    FastAPI dependency to get the current authenticated user
    Validates the JWT token, the account state and the token's session

    Args:
        token_data: Claims from GetTokenData

    Returns:
        User: The authenticated user object (detached from its session)

    Raises:
        HTTPException: If authentication fails
    """
    from database import db_manager

    session = db_manager.GetSession()
    try:
        user = session.query(User).filter(User.user_id == token_data.user_id).first()

        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User account is disabled",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not IsSessionActive(user, token_data.session_id):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session has expired or been revoked",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if TouchSession(user, token_data.session_id):
            session.commit()

        return user

    finally:
        session.close()


# ==================== Login Helper Functions ====================

def FindUserByIdentifier(db_session, identifier: str) -> Optional[User]:
    """
    Find a user by username, email or phone number

    Args:
        db_session: Open SQLAlchemy session
        identifier: Username, email or phone as typed at login

    Returns:
        User or None
    """
    identifier = (identifier or "").strip()
    if not identifier:
        return None

    return db_session.query(User).filter(
        or_(
            User.username == identifier,
            User.email == identifier.lower(),
            User.phone == identifier
        )
    ).first()


def IsAccountLocked(user: User) -> bool:
    """
    Check the lockout state, clearing a lock whose time has passed
    Caller commits any change

    Returns:
        bool: True while the account is locked
    """
    if not user.account_locked:
        return False

    locked_until = AsUtc(user.locked_until)
    if locked_until and locked_until <= datetime.now(timezone.utc):
        user.account_locked = False
        user.locked_until = None
        user.failed_login_attempts = 0
        logger.info(f"Lock expired for user '{user.username}'")
        return False

    return True


def RegisterFailedLogin(user: User, max_attempts: int, lockout_minutes: int) -> bool:
    """
    Count a failed password or 2FA attempt and lock the account at the limit

    Returns:
        bool: True if this attempt locked the account
    """
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

    if user.failed_login_attempts >= max_attempts:
        user.account_locked = True
        user.locked_until = datetime.now(timezone.utc) + timedelta(minutes=lockout_minutes)
        logger.warning(f"Locked account '{user.username}' for {lockout_minutes} minutes after {user.failed_login_attempts} failed attempts")
        return True

    return False


def RegisterSuccessfulLogin(user: User) -> None:
    """Reset lockout counters and stamp the login time"""
    user.failed_login_attempts = 0
    user.account_locked = False
    user.locked_until = None
    user.last_login = datetime.now(timezone.utc)


# ==================== Permission Checking ====================

def UserHasPermission(user: User, page, action) -> bool:
    """
    Check if a user has a specific page/action permission

    Args:
        user: User object (from GetCurrentUser)
        page: Page name or Page enum
        action: Action name or Action enum

    Returns:
        bool: True if user has the permission or is admin, False otherwise
    """
    return HasPermission(user, page, action)


def RequirePermission(page, *actions):
    """
    Dependency factory to create a permission checking dependency
    The user passes when it holds any one of the listed actions on the page

    Args:
        page: Page the endpoint belongs to
        *actions: Accepted actions

    Returns:
        Dependency function that checks for the permission

    Usage:
        @router.get("/api/users")
        async def list_users(user: User = Depends(RequirePermission(Page.USERS, Action.VIEW, Action.VIEW_OWN))):
            ...
    """
    page_name = getattr(page, "value", page)
    action_names = [getattr(action, "value", action) for action in actions]

    def permission_checker(current_user: User = Depends(GetCurrentUser)) -> User:
        """
        Check if current user has the required permission

        Raises:
            HTTPException: 403 Forbidden if user lacks permission
        """
        if not any(UserHasPermission(current_user, page_name, action) for action in action_names):
            logger.warning(f"User '{current_user.username}' denied {page_name}:{'/'.join(action_names)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required permission: {page_name}:{' or '.join(action_names)}"
            )

        return current_user

    return permission_checker


def RequireAdmin(current_user: User = Depends(GetCurrentUser)) -> User:
    """
    Dependency allowing administrators only

    Raises:
        HTTPException: 403 Forbidden for non-admin users
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required"
        )
    return current_user

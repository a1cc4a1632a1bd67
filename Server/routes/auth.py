"""
SafawiNet Server - Authentication Endpoints

This module contains login/logout, session management, the caller's profile,
password changes and the account security overview.
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status

from audit import AuditAction, HIGH_RISK_LEVELS, LogEvent
from auth import (
    CreateAccessToken, FindUserByIdentifier, GetCurrentUser, GetTokenData,
    GetTokenExpiration, IsAccountLocked, RegisterFailedLogin, RegisterSuccessfulLogin
)
from models.auth import ChangePasswordRequest, LoginRequest, ProfileUpdateRequest, TokenData
from models.database import AuditLog, User, AsUtc
from password_policy import ValidatePassword
from permission_rules import PAGE_ACTIONS, GetUserPermissions, HasPermission
from rate_limit import GetLoginRateLimit, limiter
from sessions import CreateSession, DeleteAllSessions, DeleteSession, FormatSession, GetActiveSessions
from two_factor import (
    LOGIN_WINDOW, ConsumeBackupCode, CountUnusedBackupCodes, FindUnusedBackupCode,
    IsCodeFormatValid, NormalizeBackupCode, VerifyCode
)
from user_records import (
    CheckDuplicateUser, FormatUser, NormalizePhone, RaiseIfInvalid, ValidateUserFields
)

# Create logger
logger = logging.getLogger(__name__)

# Create router instance
router = APIRouter(prefix="/api/auth", tags=["Authentication"])

PREFERENCE_KEYS = ("timezone", "language", "theme")


def LoadCurrentUser(db_session, current_user: User) -> User:
    """
    Re-load the authenticated user into a handler's session for modification

    Raises:
        HTTPException: 404 if the user disappeared meanwhile
    """
    user = db_session.query(User).filter(User.user_id == current_user.user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _Unauthorized(message: str, **extra) -> HTTPException:
    detail = {"message": message, **extra} if extra else message
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _RecordFailedAttempt(user: User, request: Request, db_manager, db_session, reason: str, action=AuditAction.LOGIN_FAILED) -> None:
    """
    Count a wrong password or 2FA code toward the lockout and audit it

    Commits the counter before the caller raises, so it survives the rollback.
    """
    locked = RegisterFailedLogin(
        user,
        db_manager.GetSettingInt("max_failed_login_attempts", db_session),
        db_manager.GetSettingInt("lockout_minutes", db_session)
    )
    attempts = user.failed_login_attempts
    db_session.commit()

    LogEvent(
        action, request, user, success=False,
        details={"reason": reason, "failedAttempts": attempts},
        risk_level="high" if locked or reason != "invalid_password" else "medium"
    )
    if locked:
        LogEvent(
            AuditAction.ACCOUNT_LOCK, request, user, success=True,
            details={"failedAttempts": attempts}, risk_level="high"
        )

    logger.warning(f"Failed login for user '{user.username}' ({reason}, {attempts} failed attempts)")


# ==================== Login / Logout ====================

@router.post("/login")
@limiter.limit(GetLoginRateLimit)
async def login(login_request: LoginRequest, request: Request):
    """
    Authenticate by username, email or phone and return a JWT token

    Args:
        login_request: Identifier, password, optional 2FA code and remember-me flag

    Returns:
        Token, expiry and the user's profile

    Raises:
        HTTPException: 401 on bad credentials, locked or inactive accounts and
                       missing or wrong 2FA codes (requiresTwoFactor is set when
                       a code is needed)
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = FindUserByIdentifier(db_session, login_request.identifier)

        if not user:
            LogEvent(
                AuditAction.LOGIN_FAILED, request, username=login_request.identifier.strip(),
                success=False, details={"reason": "user_not_found"}, risk_level="medium"
            )
            raise _Unauthorized("Invalid credentials")

        if IsAccountLocked(user):
            LogEvent(
                AuditAction.LOGIN_FAILED, request, user, success=False,
                details={"reason": "account_locked"}, risk_level="high"
            )
            raise _Unauthorized("Account is temporarily locked due to multiple failed login attempts")

        # Persists a lock that just expired
        db_session.commit()

        if not user.is_active:
            LogEvent(
                AuditAction.LOGIN_FAILED, request, user, success=False,
                details={"reason": "account_inactive"}, risk_level="medium"
            )
            raise _Unauthorized("Account is deactivated. Please contact administrator.")

        if not db_manager.VerifyPassword(login_request.password, user.password_hash):
            _RecordFailedAttempt(user, request, db_manager, db_session, "invalid_password")
            raise _Unauthorized("Invalid credentials")

        used_backup_code = False
        if user.two_factor_enabled:
            code = (login_request.two_factor_code or "").strip()

            if not code:
                raise _Unauthorized("Two-factor authentication code required", requiresTwoFactor=True)

            if not user.two_factor_secret:
                raise _Unauthorized("Two-factor authentication not properly configured")

            if not (IsCodeFormatValid(code) and VerifyCode(user.two_factor_secret, code, window=LOGIN_WINDOW)):
                backup_index = FindUnusedBackupCode(user.two_factor_backup_codes, code)

                if backup_index is None:
                    is_backup_attempt = len(NormalizeBackupCode(code)) == 8
                    _RecordFailedAttempt(
                        user, request, db_manager, db_session, "invalid_two_factor_code",
                        action=AuditAction.BACKUP_CODE_FAILED if is_backup_attempt else AuditAction.LOGIN_FAILED
                    )
                    if not is_backup_attempt and not IsCodeFormatValid(code):
                        raise _Unauthorized("Two-factor authentication code must be exactly 6 digits", requiresTwoFactor=True)

                    raise _Unauthorized(
                        "Invalid backup code" if is_backup_attempt else "Invalid two-factor authentication code",
                        requiresTwoFactor=True
                    )

                user.two_factor_backup_codes = ConsumeBackupCode(user.two_factor_backup_codes, backup_index)
                used_backup_code = True

        RegisterSuccessfulLogin(user)
        expires_at = GetTokenExpiration(login_request.remember_me, db_manager)
        session = CreateSession(
            user, request, expires_at,
            max_sessions=db_manager.GetSettingInt("max_sessions", db_session)
        )
        db_session.commit()

        token = CreateAccessToken({
            "user_id": user.user_id,
            "username": user.username,
            "is_admin": user.is_admin,
            "session_id": session.session_id,
            "two_factor_enabled": user.two_factor_enabled,
        }, expires_at)

        LogEvent(
            AuditAction.LOGIN, request, user, success=True,
            details={"twoFactorUsed": user.two_factor_enabled, "usedBackupCode": used_backup_code, "rememberMe": login_request.remember_me},
            session_id=session.session_id
        )
        if used_backup_code:
            LogEvent(
                AuditAction.BACKUP_CODE_USED, request, user, success=True,
                details={"remaining": CountUnusedBackupCodes(user.two_factor_backup_codes)},
                risk_level="medium", session_id=session.session_id
            )

        logger.info(f"User '{user.username}' logged in successfully")

        return {
            "success": True,
            "message": "Login successful",
            "data": {
                "token": token,
                "expiresAt": expires_at.isoformat(),
                "expiresIn": int((expires_at - datetime.now(timezone.utc)).total_seconds()),
                "sessionId": session.session_id,
                "usedBackupCode": used_backup_code,
                "user": FormatUser(user)
            }
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error during login: {str(e)}")
        raise HTTPException(status_code=500, detail="Login failed. Please try again.")
    finally:
        db_session.close()


@router.post("/logout")
async def logout(
    request: Request,
    token_data: TokenData = Depends(GetTokenData),
    current_user: User = Depends(GetCurrentUser)
):
    """
    End the session the token belongs to
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)
        DeleteSession(user, token_data.session_id)
        db_session.commit()

        LogEvent(AuditAction.LOGOUT, request, user, session_id=token_data.session_id)
        logger.info(f"User '{user.username}' logged out")

        return {"success": True, "message": "Logout successful"}

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error during logout for '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Logout failed")
    finally:
        db_session.close()


@router.get("/validate")
async def validate_token(current_user: User = Depends(GetCurrentUser)):
    """
    Confirm the token is still valid and return the caller
    """
    return {"success": True, "message": "Token is valid", "data": {"user": FormatUser(current_user)}}


# ==================== Sessions ====================

@router.get("/sessions")
async def list_sessions(
    token_data: TokenData = Depends(GetTokenData),
    current_user: User = Depends(GetCurrentUser)
):
    """
    List the caller's active sessions, most recent first
    """
    from database import db_manager

    return {
        "success": True,
        "data": {
            "sessions": [FormatSession(session, token_data.session_id) for session in GetActiveSessions(current_user)],
            "maxSessions": db_manager.GetSettingInt("max_sessions")
        }
    }


@router.delete("/sessions/{session_id}")
async def revoke_session(
    session_id: str,
    request: Request,
    current_user: User = Depends(GetCurrentUser)
):
    """
    Revoke one of the caller's sessions (its token stops working immediately)
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)
        if not DeleteSession(user, session_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        db_session.commit()

        LogEvent(
            AuditAction.SESSION_DESTROY, request, user,
            details={"sessionId": session_id}, risk_level="low", session_id=session_id
        )

        return {"success": True, "message": "Session revoked successfully"}

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error revoking session for '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to revoke session")
    finally:
        db_session.close()


# ==================== Profile ====================

@router.get("/profile")
async def get_profile(current_user: User = Depends(GetCurrentUser)):
    """
    Get the caller's profile
    """
    return {"success": True, "data": FormatUser(current_user)}


@router.put("/profile")
async def update_profile(
    profile_request: ProfileUpdateRequest,
    request: Request,
    current_user: User = Depends(GetCurrentUser)
):
    """
    Update the caller's own name, username, email, phone and preferences
    """
    phone = NormalizePhone(profile_request.phone)
    RaiseIfInvalid(ValidateUserFields(
        username=profile_request.username,
        email=profile_request.email,
        phone=profile_request.phone,
        first_name=profile_request.first_name,
        last_name=profile_request.last_name
    ))

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)

        username = profile_request.username.strip() if profile_request.username is not None else None
        email = profile_request.email.strip().lower() if profile_request.email is not None else None
        CheckDuplicateUser(db_session, username=username, email=email, phone=phone, exclude_user_id=user.user_id)

        changed_fields = []
        if profile_request.first_name is not None:
            user.first_name = profile_request.first_name.strip()
            changed_fields.append("firstName")
        if profile_request.last_name is not None:
            user.last_name = profile_request.last_name.strip()
            changed_fields.append("lastName")
        if username is not None and username != user.username:
            user.username = username
            changed_fields.append("username")
        if email is not None and email != user.email:
            user.email = email
            changed_fields.append("email")
        if profile_request.phone is not None and phone != user.phone:
            user.phone = phone
            changed_fields.append("phone")
        if profile_request.preferences is not None:
            preferences = dict(user.preferences or {})
            preferences.update({
                key: value for key, value in profile_request.preferences.items() if key in PREFERENCE_KEYS
            })
            user.preferences = preferences
            changed_fields.append("preferences")

        user.updated_at = datetime.now(timezone.utc)
        db_session.commit()

        LogEvent(AuditAction.PROFILE_UPDATE, request, user, details={"fields": changed_fields})
        logger.info(f"User '{user.username}' updated profile ({', '.join(changed_fields) or 'no changes'})")

        return {"success": True, "message": "Profile updated successfully", "data": FormatUser(user)}

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error updating profile for '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update profile")
    finally:
        db_session.close()


@router.put("/change-password")
async def change_password(
    password_request: ChangePasswordRequest,
    request: Request,
    token_data: TokenData = Depends(GetTokenData),
    current_user: User = Depends(GetCurrentUser)
):
    """
    Change the password for the currently authenticated user
    Every other session of the user is signed out

    Raises:
        HTTPException: 400 if the current password is wrong or the new one fails the policy
    """
    policy = ValidatePassword(password_request.new_password)
    if not policy.is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Password does not meet security requirements", "errors": policy.messages}
        )

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)

        if not db_manager.VerifyPassword(password_request.current_password, user.password_hash):
            logger.warning(f"Failed password change attempt for user '{user.username}' - incorrect current password")
            LogEvent(
                AuditAction.PASSWORD_CHANGE, request, user, success=False,
                details={"reason": "incorrect_current_password"}, risk_level="medium"
            )
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

        if db_manager.VerifyPassword(password_request.new_password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="New password must be different from the current password"
            )

        user.password_hash = db_manager.HashPassword(password_request.new_password)
        user.password_last_changed = datetime.now(timezone.utc)
        signed_out = DeleteAllSessions(user, keep_session_id=token_data.session_id)
        db_session.commit()

        LogEvent(
            AuditAction.PASSWORD_CHANGE, request, user,
            details={"otherSessionsEnded": signed_out}, risk_level="medium",
            session_id=token_data.session_id
        )
        logger.info(f"User '{user.username}' changed password successfully")

        return {"success": True, "message": "Password changed successfully"}

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error changing password for user '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to change password")
    finally:
        db_session.close()


# ==================== Security Overview ====================

@router.get("/security-status")
async def get_security_status(current_user: User = Depends(GetCurrentUser)):
    """
    Summarize the caller's account security

    Returns:
        Lock state, 2FA state, recent high-risk events and last login
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
        recent_events = db_session.query(AuditLog).filter(
            AuditLog.user_id == current_user.user_id,
            AuditLog.timestamp >= cutoff,
            AuditLog.risk_level.in_(HIGH_RISK_LEVELS)
        ).count()

        locked = bool(current_user.account_locked) and (
            current_user.locked_until is None or AsUtc(current_user.locked_until) > datetime.now(timezone.utc)
        )
        if locked:
            account_status = "locked"
        elif (current_user.failed_login_attempts or 0) > 0:
            account_status = "warning"
        else:
            account_status = "good"

        return {
            "success": True,
            "data": {
                "accountSecurity": {
                    "status": account_status,
                    "failedAttempts": current_user.failed_login_attempts or 0,
                    "isLocked": locked,
                    "lockedUntil": current_user.locked_until.isoformat() if locked and current_user.locked_until else None
                },
                "twoFactorAuth": {
                    "status": "enabled" if current_user.two_factor_enabled else "disabled",
                    "enabled": current_user.two_factor_enabled,
                    "backupCodesCount": CountUnusedBackupCodes(current_user.two_factor_backup_codes)
                },
                "recentSecurityEvents": recent_events,
                "passwordLastChanged": current_user.password_last_changed.isoformat() if current_user.password_last_changed else None,
                "lastLogin": current_user.last_login.isoformat() if current_user.last_login else None
            }
        }

    finally:
        db_session.close()


@router.get("/debug/permissions")
async def debug_permissions(current_user: User = Depends(GetCurrentUser)):
    """
    Show the caller's effective permissions and every page/action check
    """
    checks = {
        page: {action: HasPermission(current_user, page, action) for action in actions}
        for page, actions in PAGE_ACTIONS.items()
    }

    return {
        "success": True,
        "data": {
            "userId": current_user.user_id,
            "username": current_user.username,
            "isAdmin": current_user.is_admin,
            "role": current_user.role,
            "permissions": current_user.permissions or [],
            "effectivePermissions": GetUserPermissions(current_user),
            "checks": checks
        }
    }

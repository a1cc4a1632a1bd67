"""
SafawiNet Server - Two-Factor Authentication Endpoints

Enrollment, activation and deactivation of TOTP two-factor authentication
and management of backup codes for the calling user.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from audit import AuditAction, LogEvent
from auth import GetCurrentUser
from models.auth import TwoFactorCodeRequest
from models.database import User
from routes.auth import LoadCurrentUser
from two_factor import (
    DISABLE_WINDOW, ENABLE_WINDOW, BuildOtpauthUri, BuildQrCodeDataUri, BuildStoredBackupCodes,
    ConsumeBackupCode, CountUnusedBackupCodes, FindUnusedBackupCode, GenerateBackupCodes,
    GenerateSecret, IsCodeFormatValid, VerifyCode
)

# Create logger
logger = logging.getLogger(__name__)

# Create router instance
router = APIRouter(prefix="/api/auth/2fa", tags=["Two-Factor Authentication"])


def _BadRequest(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _RequireEnabled(user: User):
    if not user.two_factor_enabled:
        raise _BadRequest("Two-factor authentication is not enabled")


def _RequireValidCode(user: User, code: str, window: int):
    if not IsCodeFormatValid(code):
        raise _BadRequest("Verification code must be exactly 6 digits")
    if not VerifyCode(user.two_factor_secret, code, window=window):
        raise _BadRequest("Invalid verification code")


@router.post("/setup")
async def setup_two_factor(current_user: User = Depends(GetCurrentUser)):
    """
    Start enrollment: create a secret and backup codes

    The secret is stored but 2FA stays off until /enable confirms a code.

    Returns:
        Secret, otpauth URI, QR code data URI and the plain backup codes
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)
        if user.two_factor_enabled:
            raise _BadRequest("Two-factor authentication is already enabled")

        secret = GenerateSecret()
        backup_codes = GenerateBackupCodes()
        otpauth_url = BuildOtpauthUri(secret, user.email or user.username)

        user.two_factor_secret = secret
        user.two_factor_backup_codes = BuildStoredBackupCodes(backup_codes)
        db_session.commit()

        logger.info(f"User '{user.username}' started two-factor setup")

        return {
            "success": True,
            "message": "Scan the QR code with your authenticator app, then confirm with a code",
            "data": {
                "secret": secret,
                "otpauthUrl": otpauth_url,
                "qrCode": BuildQrCodeDataUri(otpauth_url),
                "backupCodes": backup_codes
            }
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error setting up two-factor for '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to setup two-factor authentication")
    finally:
        db_session.close()


@router.post("/enable")
async def enable_two_factor(
    code_request: TwoFactorCodeRequest,
    request: Request,
    current_user: User = Depends(GetCurrentUser)
):
    """
    Turn on 2FA after verifying a code from the enrolled secret
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)
        if user.two_factor_enabled:
            raise _BadRequest("Two-factor authentication is already enabled")

        code = code_request.code.strip()
        if not IsCodeFormatValid(code):
            raise _BadRequest("Verification code must be exactly 6 digits")
        if not user.two_factor_secret:
            raise _BadRequest("Two-factor authentication setup not completed. Please complete setup first.")
        if not VerifyCode(user.two_factor_secret, code, window=ENABLE_WINDOW):
            raise _BadRequest("Invalid verification code")

        user.two_factor_enabled = True
        db_session.commit()

        LogEvent(AuditAction.TWO_FACTOR_ENABLE, request, user, risk_level="medium")
        logger.info(f"User '{user.username}' enabled two-factor authentication")

        return {
            "success": True,
            "message": "Two-factor authentication enabled successfully",
            "data": {"backupCodesCount": CountUnusedBackupCodes(user.two_factor_backup_codes)}
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error enabling two-factor for '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to enable two-factor authentication")
    finally:
        db_session.close()


@router.post("/disable")
async def disable_two_factor(
    code_request: TwoFactorCodeRequest,
    request: Request,
    current_user: User = Depends(GetCurrentUser)
):
    """
    Turn off 2FA; the secret and backup codes are discarded
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)
        _RequireEnabled(user)
        _RequireValidCode(user, code_request.code.strip(), DISABLE_WINDOW)

        user.two_factor_enabled = False
        user.two_factor_secret = None
        user.two_factor_backup_codes = []
        db_session.commit()

        LogEvent(AuditAction.TWO_FACTOR_DISABLE, request, user, risk_level="high")
        logger.info(f"User '{user.username}' disabled two-factor authentication")

        return {"success": True, "message": "Two-factor authentication disabled successfully"}

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error disabling two-factor for '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to disable two-factor authentication")
    finally:
        db_session.close()


@router.post("/verify-backup-code")
async def verify_backup_code(
    code_request: TwoFactorCodeRequest,
    request: Request,
    current_user: User = Depends(GetCurrentUser)
):
    """
    Check and consume one backup code
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)
        _RequireEnabled(user)

        index = FindUnusedBackupCode(user.two_factor_backup_codes, code_request.code)
        if index is None:
            LogEvent(AuditAction.BACKUP_CODE_FAILED, request, user, success=False, risk_level="medium")
            raise _BadRequest("Invalid or already used backup code")

        user.two_factor_backup_codes = ConsumeBackupCode(user.two_factor_backup_codes, index)
        db_session.commit()

        remaining = CountUnusedBackupCodes(user.two_factor_backup_codes)
        LogEvent(AuditAction.BACKUP_CODE_USED, request, user, details={"remaining": remaining}, risk_level="medium")

        return {
            "success": True,
            "message": "Backup code verified successfully",
            "data": {"remainingCodes": remaining}
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error verifying backup code for '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to verify backup code")
    finally:
        db_session.close()


@router.post("/regenerate-backup-codes")
async def regenerate_backup_codes(
    code_request: TwoFactorCodeRequest,
    request: Request,
    current_user: User = Depends(GetCurrentUser)
):
    """
    Replace every backup code after verifying a TOTP code

    Returns:
        The new plain backup codes (shown once)
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = LoadCurrentUser(db_session, current_user)
        _RequireEnabled(user)
        _RequireValidCode(user, code_request.code.strip(), DISABLE_WINDOW)

        backup_codes = GenerateBackupCodes()
        user.two_factor_backup_codes = BuildStoredBackupCodes(backup_codes)
        db_session.commit()

        LogEvent(AuditAction.BACKUP_CODES_REGENERATED, request, user, risk_level="medium")
        logger.info(f"User '{user.username}' regenerated backup codes")

        return {
            "success": True,
            "message": "Backup codes regenerated successfully",
            "data": {"backupCodes": backup_codes}
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error regenerating backup codes for '{current_user.username}': {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to regenerate backup codes")
    finally:
        db_session.close()


@router.get("/backup-codes-count")
async def get_backup_codes_count(current_user: User = Depends(GetCurrentUser)):
    """
    Number of unused backup codes left
    """
    _RequireEnabled(current_user)

    return {
        "success": True,
        "data": {"remainingCodes": CountUnusedBackupCodes(current_user.two_factor_backup_codes)}
    }

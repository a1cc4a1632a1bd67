"""
SafawiNet Server - Audit Logging

Records security-relevant events to the audit_logs table.
Audit writes use their own session so an event survives the rollback of the
request that produced it (for example a failed login).
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import Request

from models.database import AuditLog

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Events written to the audit log"""
    LOGIN = "login"
    LOGOUT = "logout"
    LOGIN_FAILED = "login_failed"
    PASSWORD_CHANGE = "password_change"
    TWO_FACTOR_ENABLE = "two_factor_enable"
    TWO_FACTOR_DISABLE = "two_factor_disable"
    BACKUP_CODE_USED = "backup_code_used"
    BACKUP_CODE_FAILED = "backup_code_failed"
    BACKUP_CODES_REGENERATED = "backup_codes_regenerated"
    ACCOUNT_LOCK = "account_lock"
    SESSION_DESTROY = "session_destroy"
    PROFILE_UPDATE = "profile_update"
    PERMISSION_CHANGE = "permission_change"
    USER_CREATE = "user_create"
    USER_UPDATE = "user_update"
    USER_DELETE = "user_delete"
    ROLE_TEMPLATE_CREATE = "role_template_create"
    ROLE_TEMPLATE_UPDATE = "role_template_update"
    ROLE_TEMPLATE_DELETE = "role_template_delete"


RISK_LEVELS = ("low", "medium", "high", "critical")
HIGH_RISK_LEVELS = ("high", "critical")


# ==================== Request Metadata ====================

def GetClientIp(request: Optional[Request]) -> Optional[str]:
    """Client address, honouring X-Forwarded-For from a reverse proxy"""
    if request is None:
        return None

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    return request.client.host if request.client else None


def GetDeviceDescription(user_agent: Optional[str]) -> str:
    """
    Short device description such as "Chrome on Windows"

    Args:
        user_agent: User-Agent header value

    Returns:
        str: Browser and platform, "Unknown device" if not recognised
    """
    if not user_agent:
        return "Unknown device"

    agent = user_agent.lower()

    if "edg/" in agent:
        browser = "Edge"
    elif "chrome/" in agent:
        browser = "Chrome"
    elif "firefox/" in agent:
        browser = "Firefox"
    elif "safari/" in agent:
        browser = "Safari"
    elif "python-requests" in agent:
        browser = "SafawiNet CLI"
    else:
        browser = None

    if "android" in agent:
        platform = "Android"
    elif "iphone" in agent or "ipad" in agent:
        platform = "iOS"
    elif "windows" in agent:
        platform = "Windows"
    elif "mac os" in agent or "macintosh" in agent:
        platform = "macOS"
    elif "linux" in agent:
        platform = "Linux"
    else:
        platform = None

    if browser and platform:
        return f"{browser} on {platform}"
    return browser or platform or "Unknown device"


# ==================== Event Recording ====================

def LogEvent(
    action: AuditAction,
    request: Optional[Request] = None,
    user: Any = None,
    success: bool = True,
    details: Optional[Dict[str, Any]] = None,
    risk_level: str = "low",
    session_id: Optional[str] = None,
    target_user_id: Optional[int] = None,
    target_resource: Optional[str] = None,
    username: Optional[str] = None
) -> None:
    """
    Write one audit log entry

    Failures are logged and never propagate to the request being audited.

    Args:
        action: Event type
        request: Incoming request (for IP and user agent)
        user: Acting user, if known
        success: Whether the audited operation succeeded
        details: Extra JSON-serializable context
        risk_level: low, medium, high or critical
        session_id: Session the event belongs to
        target_user_id: User affected by the event
        target_resource: Resource affected by the event (e.g. "role_template:3")
        username: Username to record when no user object is available
    """
    from database import db_manager

    user_agent = request.headers.get("user-agent") if request is not None else None

    entry = AuditLog(
        user_id=user.user_id if user is not None else None,
        username=user.username if user is not None else username,
        action=action.value if isinstance(action, AuditAction) else action,
        ip=GetClientIp(request),
        user_agent=user_agent,
        device=GetDeviceDescription(user_agent),
        success=success,
        details=details or {},
        risk_level=risk_level if risk_level in RISK_LEVELS else "low",
        session_id=session_id,
        target_user_id=target_user_id,
        target_resource=target_resource
    )

    db_session = db_manager.GetSession()
    try:
        db_session.add(entry)
        db_session.commit()
    except Exception as e:
        db_session.rollback()
        logger.error(f"Failed to write audit log entry '{entry.action}': {str(e)}")
    finally:
        db_session.close()


def FormatAuditLog(log: AuditLog) -> Dict[str, Any]:
    """Render an audit log row for API responses"""
    return {
        "id": log.log_id,
        "timestamp": log.timestamp.isoformat() if log.timestamp else None,
        "userId": log.user_id,
        "username": log.username,
        "action": log.action,
        "ip": log.ip,
        "userAgent": log.user_agent,
        "device": log.device,
        "success": log.success,
        "details": log.details or {},
        "riskLevel": log.risk_level,
        "sessionId": log.session_id,
        "targetUserId": log.target_user_id,
        "targetResource": log.target_resource,
    }

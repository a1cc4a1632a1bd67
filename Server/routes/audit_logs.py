"""
SafawiNet Server - Audit Log Endpoints

Permission-scoped listing and export of audit events. Holders of
"audit-logs:view" (and admins) see every user's events; holders of
"view_own" only ever see their own.
"""

import csv
import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from audit import AuditAction, FormatAuditLog, HIGH_RISK_LEVELS, RISK_LEVELS
from auth import RequirePermission, UserHasPermission
from models.database import AuditLog, User
from pagination import BuildPagination, Paginate, ValidatePageParams
from permission_rules import Action, Page

# Create logger
logger = logging.getLogger(__name__)

# Create router instance
router = APIRouter(prefix="/api/auth/audit-logs", tags=["Audit Logs"])

EXPORT_ROW_LIMIT = 10000


# ==================== Query Building ====================

def _ParseCutoff(cutoff: Optional[str]) -> datetime:
    """Default is 24 hours ago"""
    if not cutoff:
        return datetime.now(timezone.utc) - timedelta(hours=24)

    try:
        parsed = datetime.fromisoformat(cutoff.strip().replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid cutoff date format")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _ParseUserIds(user_ids: Optional[str]) -> list:
    if not user_ids:
        return []

    try:
        return [int(part) for part in user_ids.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userId must be a comma separated list of user IDs")


def BuildScopedQuery(
    db_session,
    current_user: User,
    cutoff: Optional[str] = None,
    action: Optional[str] = None,
    risk_level: Optional[str] = None,
    success: Optional[bool] = None,
    user_ids: Optional[str] = None
):
    """
    Build the audit log query a caller is allowed to run

    Args:
        db_session: Open SQLAlchemy session
        current_user: Caller
        cutoff: ISO datetime; events older than this are excluded
        action: Only this action
        risk_level: Only this risk level
        success: Only successful or failed events
        user_ids: Comma separated user IDs (ignored for view_own callers)

    Returns:
        SQLAlchemy query ordered newest first

    Raises:
        HTTPException: 400 on malformed filters
    """
    if risk_level and risk_level not in RISK_LEVELS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"riskLevel must be one of: {', '.join(RISK_LEVELS)}"
        )

    query = db_session.query(AuditLog).filter(AuditLog.timestamp >= _ParseCutoff(cutoff))

    if UserHasPermission(current_user, Page.AUDIT_LOGS, Action.VIEW):
        requested_ids = _ParseUserIds(user_ids)
        if requested_ids:
            query = query.filter(AuditLog.user_id.in_(requested_ids))
    else:
        query = query.filter(AuditLog.user_id == current_user.user_id)

    if action:
        query = query.filter(AuditLog.action == action)
    if risk_level:
        query = query.filter(AuditLog.risk_level == risk_level)
    if success is not None:
        query = query.filter(AuditLog.success == success)

    return query.order_by(AuditLog.timestamp.desc(), AuditLog.log_id.desc())


# ==================== Endpoints ====================

@router.get("")
async def list_audit_logs(
    page: int = 1,
    limit: int = 25,
    cutoff: Optional[str] = None,
    action: Optional[str] = None,
    riskLevel: Optional[str] = None,
    success: Optional[bool] = None,
    userId: Optional[str] = None,
    current_user: User = Depends(RequirePermission(Page.AUDIT_LOGS, Action.VIEW, Action.VIEW_OWN))
):
    """
    List audit events visible to the caller

    Returns:
        Logs for the requested page, pagination details and a risk summary
    """
    ValidatePageParams(page, limit, max_limit=1000)

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        query = BuildScopedQuery(db_session, current_user, cutoff, action, riskLevel, success, userId)

        logs, total_count = Paginate(query, page, limit)

        summary_query = query.order_by(None)
        high_risk_count = summary_query.filter(AuditLog.risk_level.in_(HIGH_RISK_LEVELS)).count()
        failed_logins_count = summary_query.filter(AuditLog.action == AuditAction.LOGIN_FAILED.value).count()

        return {
            "success": True,
            "data": {
                "logs": [FormatAuditLog(log) for log in logs],
                "pagination": BuildPagination(page, limit, total_count),
                "summary": {
                    "totalCount": total_count,
                    "highRiskCount": high_risk_count,
                    "failedLoginsCount": failed_logins_count
                },
                "scope": "all" if UserHasPermission(current_user, Page.AUDIT_LOGS, Action.VIEW) else "own"
            }
        }

    finally:
        db_session.close()


@router.get("/users")
async def list_audit_log_users(
    current_user: User = Depends(RequirePermission(Page.AUDIT_LOGS, Action.VIEW, Action.VIEW_OWN))
):
    """
    User options for the audit log user filter (full viewers only)

    Returns:
        [{"value": user_id, "label": "First Last (username)"}]
    """
    if not UserHasPermission(current_user, Page.AUDIT_LOGS, Action.VIEW):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. You do not have permission to view all users."
        )

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        users = db_session.query(User).order_by(User.first_name, User.last_name).all()
        return {
            "success": True,
            "data": [
                {"value": user.user_id, "label": f"{user.first_name} {user.last_name} ({user.username})"}
                for user in users
            ]
        }

    finally:
        db_session.close()


@router.get("/export")
async def export_audit_logs(
    cutoff: Optional[str] = None,
    action: Optional[str] = None,
    riskLevel: Optional[str] = None,
    success: Optional[bool] = None,
    userId: Optional[str] = None,
    current_user: User = Depends(RequirePermission(Page.AUDIT_LOGS, Action.EXPORT))
):
    """
    Export the caller's visible audit events as CSV
    """
    can_view = (
        UserHasPermission(current_user, Page.AUDIT_LOGS, Action.VIEW)
        or UserHasPermission(current_user, Page.AUDIT_LOGS, Action.VIEW_OWN)
    )
    if not can_view:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. You do not have permission to view audit logs."
        )

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        query = BuildScopedQuery(db_session, current_user, cutoff, action, riskLevel, success, userId)
        logs = query.limit(EXPORT_ROW_LIMIT).all()

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([
            "Timestamp", "User ID", "Username", "Action", "Success", "Risk Level",
            "IP", "Device", "Session ID", "Target User ID", "Target Resource"
        ])
        for log in logs:
            writer.writerow([
                log.timestamp.isoformat() if log.timestamp else "",
                log.user_id or "", log.username or "", log.action,
                "Yes" if log.success else "No", log.risk_level,
                log.ip or "", log.device or "", log.session_id or "",
                log.target_user_id or "", log.target_resource or ""
            ])

        logger.info(f"User '{current_user.username}' exported {len(logs)} audit log entries")

        filename = f"audit-logs-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.csv"
        return Response(
            content=buffer.getvalue(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )

    finally:
        db_session.close()

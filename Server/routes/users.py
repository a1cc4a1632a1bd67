"""
SafawiNet Server - User Management Endpoints

CRUD for users. Users holding only "view_own" on the users page see and
manage only the users they created.
"""

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response
from sqlalchemy import or_

from audit import AuditAction, LogEvent
from auth import GetCurrentUser, RequirePermission, UserHasPermission
from models.api import (
    CreateUserRequest, UpdateUserRequest, UpdatePermissionsRequest, BulkDeleteRequest
)
from models.database import User, RoleTemplate
from pagination import BuildPagination, Paginate, ValidatePageParams
from password_policy import ValidatePassword
from permission_rules import (
    Action, Page, GetAvailablePermissions, NormalizePermissions, ValidatePermissions
)
from sessions import DeleteAllSessions
from user_records import (
    CheckDuplicateUser, FormatUser, NormalizePhone, RaiseIfInvalid, ValidateUserFields
)

# Create logger
logger = logging.getLogger(__name__)

# Create router instance
router = APIRouter(prefix="/api/users", tags=["Users"])

MAIN_ADMIN_USERNAME = "admin"

SORT_COLUMNS = {
    "createdAt": User.created_at,
    "username": User.username,
    "email": User.email,
    "firstName": User.first_name,
    "lastName": User.last_name,
    "lastLogin": User.last_login,
}


# ==================== Helpers ====================

def _HasFullView(user: User) -> bool:
    return UserHasPermission(user, Page.USERS, Action.VIEW)


def _CanAccessUser(current_user: User, target: User) -> bool:
    """Full viewers reach everyone; view_own holders only users they created"""
    if _HasFullView(current_user):
        return True
    return target.created_by == current_user.user_id


def _GetAccessibleUser(db_session, current_user: User, user_id: int) -> User:
    """
    Load a user the caller may act on

    Raises:
        HTTPException: 404 if missing or outside the caller's scope
    """
    user = db_session.query(User).filter(User.user_id == user_id).first()
    if not user or not _CanAccessUser(current_user, user):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _ValidatePasswordOrRaise(password: str):
    result = ValidatePassword(password)
    if not result.is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": result.messages[0], "errors": result.messages}
        )


def _ValidatePermissionListOrRaise(permissions) -> list:
    errors = ValidatePermissions(permissions)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": errors[0], "errors": errors}
        )
    return NormalizePermissions(permissions)


def _ApplyTemplate(db_session, current_user: User, user: User, template_id: int):
    """Copy a template's permissions onto a user and count the usage"""
    template = db_session.query(RoleTemplate).filter(
        RoleTemplate.template_id == template_id,
        RoleTemplate.is_active == True  # noqa: E712
    ).first()
    if not template:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role template not found or inactive")

    if template.is_admin and not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only administrators can assign admin roles")

    user.is_admin = template.is_admin
    user.permissions = [] if template.is_admin else NormalizePermissions(template.permissions)
    user.role = "admin" if template.is_admin else template.name
    template.IncrementUsage()


def _ScopedUserQuery(db_session, current_user: User):
    query = db_session.query(User)
    if not _HasFullView(current_user):
        query = query.filter(User.created_by == current_user.user_id)
    return query


# ==================== Static Routes ====================

@router.get("/permissions/available")
async def get_available_permissions(current_user: User = Depends(GetCurrentUser)):
    """
    Describe every page and action that can be granted

    Returns:
        Rule table with display names and descriptions
    """
    return {"success": True, "data": GetAvailablePermissions()}


@router.get("/export")
async def export_users(
    search: Optional[str] = None,
    isActive: Optional[bool] = None,
    role: Optional[str] = None,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.EXPORT))
):
    """
    Export the users visible to the caller as CSV

    Returns:
        text/csv attachment
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        query = _ScopedUserQuery(db_session, current_user)
        query = _ApplyListFilters(query, search, isActive, role, None)
        users = query.order_by(User.created_at.desc()).all()

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([
            "ID", "Username", "Email", "Phone", "First Name", "Last Name",
            "Role", "Admin", "Active", "Created At", "Last Login"
        ])
        for user in users:
            writer.writerow([
                user.user_id, user.username, user.email, user.phone or "",
                user.first_name, user.last_name, user.role,
                "Yes" if user.is_admin else "No",
                "Yes" if user.is_active else "No",
                user.created_at.isoformat() if user.created_at else "",
                user.last_login.isoformat() if user.last_login else ""
            ])

        logger.info(f"User '{current_user.username}' exported {len(users)} users")

        filename = f"users-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.csv"
        return Response(
            content=buffer.getvalue(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )

    finally:
        db_session.close()


@router.delete("/bulk")
async def bulk_delete_users(
    request_data: BulkDeleteRequest,
    request: Request,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.DELETE))
):
    """
    Delete several users, skipping protected accounts

    Returns:
        Counts of deleted and skipped users
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        deleted = []
        skipped = []

        for user_id in dict.fromkeys(request_data.user_ids):
            user = db_session.query(User).filter(User.user_id == user_id).first()
            if not user or not _CanAccessUser(current_user, user):
                skipped.append({"id": user_id, "reason": "User not found"})
            elif user.username == MAIN_ADMIN_USERNAME:
                skipped.append({"id": user_id, "reason": "Cannot delete the main admin user"})
            elif user.user_id == current_user.user_id:
                skipped.append({"id": user_id, "reason": "Cannot delete your own account"})
            else:
                deleted.append({"id": user.user_id, "username": user.username})
                db_session.delete(user)

        db_session.commit()

        for entry in deleted:
            LogEvent(
                AuditAction.USER_DELETE, request, current_user,
                details={"username": entry["username"], "bulk": True},
                risk_level="medium", target_user_id=entry["id"]
            )

        logger.info(f"User '{current_user.username}' bulk deleted {len(deleted)} users ({len(skipped)} skipped)")

        return {
            "success": True,
            "message": f"Deleted {len(deleted)} user(s)",
            "data": {
                "deletedCount": len(deleted),
                "skippedCount": len(skipped),
                "skipped": skipped
            }
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error bulk deleting users: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete users")
    finally:
        db_session.close()


# ==================== Collection ====================

def _ApplyListFilters(query, search, is_active, role, created_by):
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            User.username.ilike(pattern),
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern)
        ))
    if is_active is not None:
        query = query.filter(User.is_active == is_active)
    if role:
        query = query.filter(User.role == role)
    if created_by is not None:
        query = query.filter(User.created_by == created_by)
    return query


@router.get("")
async def list_users(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    isActive: Optional[bool] = None,
    role: Optional[str] = None,
    createdBy: Optional[int] = None,
    sortBy: str = "createdAt",
    sortOrder: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: User = Depends(RequirePermission(Page.USERS, Action.VIEW, Action.VIEW_OWN))
):
    """
    List users visible to the caller

    Returns:
        Users for the requested page plus pagination details
    """
    ValidatePageParams(page, limit, max_limit=100)

    sort_column = SORT_COLUMNS.get(sortBy)
    if sort_column is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"sortBy must be one of: {', '.join(SORT_COLUMNS)}"
        )

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        query = _ScopedUserQuery(db_session, current_user)
        query = _ApplyListFilters(query, search, isActive, role, createdBy)
        query = query.order_by(sort_column.asc() if sortOrder == "asc" else sort_column.desc(), User.user_id)

        users, total_count = Paginate(query, page, limit)

        return {
            "success": True,
            "data": {
                "users": [FormatUser(user) for user in users],
                "pagination": BuildPagination(page, limit, total_count)
            }
        }

    finally:
        db_session.close()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    request_data: CreateUserRequest,
    request: Request,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.ADD))
):
    """
    Create a new user from a role template or a custom permission set

    Returns:
        The created user
    """
    from database import db_manager

    phone = NormalizePhone(request_data.phone)
    RaiseIfInvalid(ValidateUserFields(
        username=request_data.username,
        email=request_data.email,
        phone=request_data.phone,
        first_name=request_data.first_name,
        last_name=request_data.last_name
    ))
    _ValidatePasswordOrRaise(request_data.password)

    if request_data.is_admin and not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only administrators can create admin users")

    db_session = db_manager.GetSession()

    try:
        username = request_data.username.strip()
        email = request_data.email.strip().lower()
        CheckDuplicateUser(db_session, username=username, email=email, phone=phone)

        now = datetime.now(timezone.utc)
        new_user = User(
            username=username,
            email=email,
            phone=phone,
            first_name=request_data.first_name.strip(),
            last_name=request_data.last_name.strip(),
            password_hash=db_manager.HashPassword(request_data.password),
            is_active=request_data.is_active,
            created_by=current_user.user_id,
            created_at=now,
            password_last_changed=now
        )

        if request_data.role_template_id is not None:
            _ApplyTemplate(db_session, current_user, new_user, request_data.role_template_id)
        elif request_data.is_admin:
            new_user.is_admin = True
            new_user.permissions = []
            new_user.role = "admin"
        else:
            new_user.is_admin = False
            new_user.permissions = _ValidatePermissionListOrRaise(
                [entry.model_dump() for entry in request_data.permissions or []]
            )
            new_user.role = "custom"

        db_session.add(new_user)
        db_session.commit()

        LogEvent(
            AuditAction.USER_CREATE, request, current_user,
            details={"username": new_user.username, "role": new_user.role, "isAdmin": new_user.is_admin},
            risk_level="high" if new_user.is_admin else "medium",
            target_user_id=new_user.user_id
        )

        logger.info(f"User '{current_user.username}' created user '{new_user.username}' with role '{new_user.role}'")

        return {
            "success": True,
            "message": "User created successfully",
            "data": FormatUser(new_user)
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error creating user: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create user")
    finally:
        db_session.close()


# ==================== Single User ====================

@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.VIEW, Action.VIEW_OWN))
):
    """
    Get one user

    Returns:
        User details
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = _GetAccessibleUser(db_session, current_user, user_id)
        return {"success": True, "data": FormatUser(user)}

    finally:
        db_session.close()


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    request_data: UpdateUserRequest,
    request: Request,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.EDIT))
):
    """
    Update a user; only the provided fields change

    Returns:
        The updated user
    """
    from database import db_manager

    phone = NormalizePhone(request_data.phone)
    RaiseIfInvalid(ValidateUserFields(
        username=request_data.username,
        email=request_data.email,
        phone=request_data.phone,
        first_name=request_data.first_name,
        last_name=request_data.last_name
    ))
    if request_data.password is not None:
        _ValidatePasswordOrRaise(request_data.password)

    db_session = db_manager.GetSession()

    try:
        user = _GetAccessibleUser(db_session, current_user, user_id)

        is_self = user.user_id == current_user.user_id
        is_main_admin = user.username == MAIN_ADMIN_USERNAME

        if request_data.is_active is False and is_self:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot deactivate your own account")
        if is_main_admin and (request_data.is_active is False or request_data.is_admin is False):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot demote or deactivate the main admin user")
        if (request_data.is_admin is not None or user.is_admin) and not current_user.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only administrators can modify admin users")

        username = request_data.username.strip() if request_data.username is not None else None
        email = request_data.email.strip().lower() if request_data.email is not None else None
        CheckDuplicateUser(db_session, username=username, email=email, phone=phone, exclude_user_id=user.user_id)

        previous_permissions = list(user.permissions or [])
        previous_admin = user.is_admin
        changed_fields = []

        if username is not None and username != user.username:
            user.username = username
            changed_fields.append("username")
        if email is not None and email != user.email:
            user.email = email
            changed_fields.append("email")
        if request_data.phone is not None and phone != user.phone:
            user.phone = phone
            changed_fields.append("phone")
        if request_data.first_name is not None:
            user.first_name = request_data.first_name.strip()
            changed_fields.append("firstName")
        if request_data.last_name is not None:
            user.last_name = request_data.last_name.strip()
            changed_fields.append("lastName")
        if request_data.password is not None:
            user.password_hash = db_manager.HashPassword(request_data.password)
            user.password_last_changed = datetime.now(timezone.utc)
            changed_fields.append("password")
        if request_data.is_active is not None and request_data.is_active != user.is_active:
            user.is_active = request_data.is_active
            changed_fields.append("isActive")
            if not user.is_active:
                DeleteAllSessions(user)

        if request_data.role_template_id is not None:
            _ApplyTemplate(db_session, current_user, user, request_data.role_template_id)
        elif request_data.is_admin is True:
            user.is_admin = True
            user.permissions = []
            user.role = "admin"
        elif request_data.permissions is not None or request_data.is_admin is False:
            permissions = request_data.permissions if request_data.permissions is not None else []
            user.is_admin = False
            user.permissions = _ValidatePermissionListOrRaise([entry.model_dump() for entry in permissions])
            user.role = "custom"

        permissions_changed = (user.permissions or []) != previous_permissions or user.is_admin != previous_admin
        if permissions_changed:
            changed_fields.append("permissions")

        user.updated_at = datetime.now(timezone.utc)
        db_session.commit()

        LogEvent(
            AuditAction.USER_UPDATE, request, current_user,
            details={"username": user.username, "fields": changed_fields},
            risk_level="medium", target_user_id=user.user_id
        )
        if permissions_changed:
            LogEvent(
                AuditAction.PERMISSION_CHANGE, request, current_user,
                details={
                    "username": user.username,
                    "before": previous_permissions,
                    "after": user.permissions,
                    "isAdmin": user.is_admin
                },
                risk_level="high", target_user_id=user.user_id
            )

        logger.info(f"User '{current_user.username}' updated user '{user.username}' ({', '.join(changed_fields) or 'no changes'})")

        return {
            "success": True,
            "message": "User updated successfully",
            "data": FormatUser(user)
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error updating user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update user")
    finally:
        db_session.close()


@router.put("/{user_id}/permissions")
async def update_user_permissions(
    user_id: int,
    request_data: UpdatePermissionsRequest,
    request: Request,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.EDIT))
):
    """
    Replace a user's permission list with a validated custom set

    Returns:
        The updated user
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = _GetAccessibleUser(db_session, current_user, user_id)

        if user.is_admin:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Administrators already have every permission")

        previous_permissions = list(user.permissions or [])
        user.permissions = _ValidatePermissionListOrRaise(
            [entry.model_dump() for entry in request_data.permissions]
        )
        user.role = "custom"
        user.updated_at = datetime.now(timezone.utc)
        db_session.commit()

        LogEvent(
            AuditAction.PERMISSION_CHANGE, request, current_user,
            details={"username": user.username, "before": previous_permissions, "after": user.permissions},
            risk_level="high", target_user_id=user.user_id
        )

        logger.info(f"User '{current_user.username}' changed permissions of '{user.username}'")

        return {
            "success": True,
            "message": "Permissions updated successfully",
            "data": FormatUser(user)
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error updating permissions for user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update permissions")
    finally:
        db_session.close()


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.DELETE))
):
    """
    Delete a user

    Returns:
        Success message
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        user = _GetAccessibleUser(db_session, current_user, user_id)

        if user.username == MAIN_ADMIN_USERNAME:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete the main admin user")
        if user.user_id == current_user.user_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account")

        username = user.username
        db_session.delete(user)
        db_session.commit()

        LogEvent(
            AuditAction.USER_DELETE, request, current_user,
            details={"username": username}, risk_level="medium", target_user_id=user_id
        )

        logger.info(f"User '{current_user.username}' deleted user '{username}'")

        return {"success": True, "message": "User deleted successfully"}

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error deleting user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete user")
    finally:
        db_session.close()

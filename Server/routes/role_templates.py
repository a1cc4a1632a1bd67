"""
SafawiNet Server - Role Template Endpoints

Reusable permission sets offered when creating users. Access follows the
users page permissions: templates are read with view, created with add,
changed with edit and removed with delete.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import or_

from audit import AuditAction, LogEvent
from auth import RequirePermission
from models.api import CreateRoleTemplateRequest, UpdateRoleTemplateRequest
from models.database import RoleTemplate, User
from pagination import BuildPagination, Paginate, ValidatePageParams
from permission_rules import (
    Action, Page, ArePermissionsIdentical, GetAvailablePermissions,
    GetPermissionSummary, NormalizePermissions, ValidatePermissions
)

# Create logger
logger = logging.getLogger(__name__)

# Create router instance
router = APIRouter(prefix="/api/role-templates", tags=["Role Templates"])

SORT_COLUMNS = {
    "name": RoleTemplate.name,
    "createdAt": RoleTemplate.created_at,
    "updatedAt": RoleTemplate.updated_at,
    "usageCount": RoleTemplate.usage_count,
}

STATUS_FILTERS = ("all", "active", "inactive", "default")


# ==================== Helpers ====================

def FormatTemplate(template: RoleTemplate, creator: Optional[User] = None) -> dict:
    """Render a role template for API responses"""
    data = {
        "id": template.template_id,
        "name": template.name,
        "description": template.description,
        "icon": template.icon,
        "color": template.color,
        "isAdmin": template.is_admin,
        "permissions": template.permissions or [],
        "permissionSummary": "Full access" if template.is_admin else GetPermissionSummary(template.permissions),
        "isDefault": template.is_default,
        "isActive": template.is_active,
        "usageCount": template.usage_count or 0,
        "lastUsed": template.last_used.isoformat() if template.last_used else None,
        "createdBy": template.created_by,
        "createdAt": template.created_at.isoformat() if template.created_at else None,
        "updatedAt": template.updated_at.isoformat() if template.updated_at else None,
        "canBeDeleted": template.can_be_deleted,
    }
    if creator is not None:
        data["creator"] = {
            "id": creator.user_id,
            "username": creator.username,
            "firstName": creator.first_name,
            "lastName": creator.last_name,
        }
    return data


def _FindIdenticalTemplate(db_session, permissions, exclude_id: Optional[int] = None) -> Optional[RoleTemplate]:
    """First active template whose permission list matches, ignoring order"""
    query = db_session.query(RoleTemplate).filter(RoleTemplate.is_active == True)  # noqa: E712
    if exclude_id is not None:
        query = query.filter(RoleTemplate.template_id != exclude_id)

    for template in query.order_by(RoleTemplate.template_id).all():
        if ArePermissionsIdentical(template.permissions or [], permissions):
            return template
    return None


def _DuplicateResponse(template: RoleTemplate) -> dict:
    return {
        "success": True,
        "isDuplicate": True,
        "message": f'"{template.name}" already has exactly these permissions. Each template needs a unique combination.',
        "existingTemplate": FormatTemplate(template)
    }


def _CheckNameAvailable(db_session, name: str, exclude_id: Optional[int] = None):
    query = db_session.query(RoleTemplate).filter(
        RoleTemplate.name == name,
        RoleTemplate.is_active == True  # noqa: E712
    )
    if exclude_id is not None:
        query = query.filter(RoleTemplate.template_id != exclude_id)

    if query.first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "A role template with this name already exists",
                "errors": {"name": "A role template with this name already exists"}
            }
        )


def _ValidatedPermissions(request_permissions) -> list:
    permissions = [entry.model_dump() for entry in request_permissions]
    errors = ValidatePermissions(permissions)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": errors[0], "errors": errors}
        )
    return NormalizePermissions(permissions)


def _GetTemplate(db_session, template_id: int) -> RoleTemplate:
    template = db_session.query(RoleTemplate).filter(RoleTemplate.template_id == template_id).first()
    if not template:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role template not found")
    return template


# ==================== Static Routes ====================

@router.get("/permissions/available")
async def get_available_permissions(
    current_user: User = Depends(RequirePermission(Page.USERS, Action.VIEW, Action.VIEW_OWN))
):
    """
    Describe every page and action a template can grant
    """
    return {"success": True, "data": GetAvailablePermissions()}


@router.get("/active/for-user-creation")
async def get_templates_for_user_creation(
    page: int = 1,
    limit: int = 9,
    search: Optional[str] = None,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.ADD))
):
    """
    Active templates offered on the create-user form, sorted by name
    Admin templates are only offered to administrators
    """
    ValidatePageParams(page, limit, max_limit=100)

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        query = db_session.query(RoleTemplate).filter(RoleTemplate.is_active == True)  # noqa: E712
        if not current_user.is_admin:
            query = query.filter(RoleTemplate.is_admin == False)  # noqa: E712
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(RoleTemplate.name.ilike(pattern), RoleTemplate.description.ilike(pattern)))

        templates, total_count = Paginate(query.order_by(RoleTemplate.name.asc()), page, limit)

        return {
            "success": True,
            "data": [FormatTemplate(template) for template in templates],
            "pagination": BuildPagination(page, limit, total_count)
        }

    finally:
        db_session.close()


# ==================== Collection ====================

@router.get("")
async def list_role_templates(
    page: int = 1,
    limit: int = 10,
    status_filter: str = Query("all", alias="status"),
    search: Optional[str] = None,
    sortBy: str = "createdAt",
    sortOrder: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: User = Depends(RequirePermission(Page.USERS, Action.VIEW, Action.VIEW_OWN))
):
    """
    List role templates

    Returns:
        Templates for the requested page plus pagination details
    """
    ValidatePageParams(page, limit, max_limit=100)

    if status_filter not in STATUS_FILTERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Status must be all, active, inactive, or default"
        )

    sort_column = SORT_COLUMNS.get(sortBy)
    if sort_column is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Sort field must be name, createdAt, updatedAt, or usageCount"
        )

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        query = db_session.query(RoleTemplate)

        if status_filter == "active":
            query = query.filter(RoleTemplate.is_active == True)  # noqa: E712
        elif status_filter == "inactive":
            query = query.filter(RoleTemplate.is_active == False)  # noqa: E712
        elif status_filter == "default":
            query = query.filter(RoleTemplate.is_default == True, RoleTemplate.is_active == True)  # noqa: E712

        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(RoleTemplate.name.ilike(pattern), RoleTemplate.description.ilike(pattern)))

        query = query.order_by(
            sort_column.asc() if sortOrder == "asc" else sort_column.desc(),
            RoleTemplate.template_id
        )
        templates, total_count = Paginate(query, page, limit)

        creator_ids = {template.created_by for template in templates if template.created_by}
        creators = {}
        if creator_ids:
            creators = {
                user.user_id: user
                for user in db_session.query(User).filter(User.user_id.in_(creator_ids)).all()
            }

        return {
            "success": True,
            "data": [FormatTemplate(template, creators.get(template.created_by)) for template in templates],
            "pagination": BuildPagination(page, limit, total_count)
        }

    finally:
        db_session.close()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_role_template(
    request_data: CreateRoleTemplateRequest,
    request: Request,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.ADD))
):
    """
    Create a role template

    Answers 200 with isDuplicate when an active template already has the
    same permission set, without creating anything.
    """
    name = request_data.name.strip()
    description = request_data.description.strip()
    if not name or not description:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name and description are required")

    if request_data.is_admin and not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only administrators can create admin templates")

    permissions = _ValidatedPermissions(request_data.permissions)

    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        _CheckNameAvailable(db_session, name)

        identical = _FindIdenticalTemplate(db_session, permissions)
        if identical:
            # Not an error: the caller is pointed at the existing template
            return JSONResponse(status_code=status.HTTP_200_OK, content=_DuplicateResponse(identical))

        template = RoleTemplate(
            name=name,
            description=description,
            icon=request_data.icon,
            color=request_data.color,
            is_admin=request_data.is_admin,
            permissions=permissions,
            created_by=current_user.user_id
        )
        db_session.add(template)
        db_session.commit()

        LogEvent(
            AuditAction.ROLE_TEMPLATE_CREATE, request, current_user,
            details={"name": template.name, "permissions": permissions, "isAdmin": template.is_admin},
            risk_level="medium", target_resource=f"role_template:{template.template_id}"
        )

        logger.info(f"User '{current_user.username}' created role template '{template.name}'")

        return {
            "success": True,
            "message": "Role template created successfully",
            "data": FormatTemplate(template, current_user)
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error creating role template: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create role template")
    finally:
        db_session.close()


# ==================== Single Template ====================

@router.get("/{template_id}")
async def get_role_template(
    template_id: int,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.VIEW, Action.VIEW_OWN))
):
    """
    Get one role template
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        template = _GetTemplate(db_session, template_id)
        creator = None
        if template.created_by:
            creator = db_session.query(User).filter(User.user_id == template.created_by).first()
        return {"success": True, "data": FormatTemplate(template, creator)}

    finally:
        db_session.close()


@router.put("/{template_id}")
async def update_role_template(
    template_id: int,
    request_data: UpdateRoleTemplateRequest,
    request: Request,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.EDIT))
):
    """
    Update a role template; only the provided fields change

    Default templates keep their name, description, icon, colour and admin flag.
    Users already created from the template keep their own permission copy.
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        template = _GetTemplate(db_session, template_id)

        identity_fields = (
            request_data.name, request_data.description, request_data.icon,
            request_data.color, request_data.is_admin
        )
        if template.is_default and any(value is not None for value in identity_fields):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot modify default role templates")

        if (template.is_admin or request_data.is_admin) and not current_user.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only administrators can modify admin templates")

        name = request_data.name.strip() if request_data.name is not None else None
        if name is not None and name != template.name:
            _CheckNameAvailable(db_session, name, exclude_id=template.template_id)

        permissions = None
        if request_data.permissions is not None:
            permissions = _ValidatedPermissions(request_data.permissions)
            if permissions:
                identical = _FindIdenticalTemplate(db_session, permissions, exclude_id=template.template_id)
                if identical:
                    return JSONResponse(status_code=status.HTTP_200_OK, content=_DuplicateResponse(identical))

        if name is not None:
            template.name = name
        if request_data.description is not None:
            template.description = request_data.description.strip()
        if request_data.icon is not None:
            template.icon = request_data.icon
        if request_data.color is not None:
            template.color = request_data.color
        if request_data.is_admin is not None:
            template.is_admin = request_data.is_admin
        if permissions is not None:
            template.permissions = permissions
        if request_data.is_active is not None:
            template.is_active = request_data.is_active

        db_session.commit()

        LogEvent(
            AuditAction.ROLE_TEMPLATE_UPDATE, request, current_user,
            details={"name": template.name, "fields": sorted(request_data.model_dump(exclude_none=True))},
            risk_level="medium", target_resource=f"role_template:{template.template_id}"
        )

        logger.info(f"User '{current_user.username}' updated role template '{template.name}'")

        return {
            "success": True,
            "message": "Role template updated successfully",
            "data": FormatTemplate(template)
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error updating role template {template_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update role template")
    finally:
        db_session.close()


@router.delete("/{template_id}")
async def delete_role_template(
    template_id: int,
    request: Request,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.DELETE))
):
    """
    Delete a role template that is neither a default nor already used
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        template = _GetTemplate(db_session, template_id)

        if not template.can_be_deleted:
            message = (
                "Cannot delete default role templates" if template.is_default
                else "Cannot delete templates that have been used to create users"
            )
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)

        name = template.name
        db_session.delete(template)
        db_session.commit()

        LogEvent(
            AuditAction.ROLE_TEMPLATE_DELETE, request, current_user,
            details={"name": name}, risk_level="medium",
            target_resource=f"role_template:{template_id}"
        )

        logger.info(f"User '{current_user.username}' deleted role template '{name}'")

        return {"success": True, "message": "Role template deleted successfully"}

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error deleting role template {template_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete role template")
    finally:
        db_session.close()


@router.post("/{template_id}/increment-usage")
async def increment_template_usage(
    template_id: int,
    current_user: User = Depends(RequirePermission(Page.USERS, Action.ADD))
):
    """
    Count one use of a template (user creation through the API does this itself)
    """
    from database import db_manager
    db_session = db_manager.GetSession()

    try:
        template = _GetTemplate(db_session, template_id)
        template.IncrementUsage()
        db_session.commit()

        return {
            "success": True,
            "data": {
                "usageCount": template.usage_count,
                "lastUsed": template.last_used.isoformat() if template.last_used else None
            }
        }

    except HTTPException:
        db_session.rollback()
        raise
    except Exception as e:
        db_session.rollback()
        logger.error(f"Error incrementing usage of role template {template_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update template usage")
    finally:
        db_session.close()

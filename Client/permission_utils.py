"""
SafawiNet Client - Permission Utilities

Available permissions structure and helpers for checking and editing
permission lists before they are sent to the server.

A permission list is a list of {"page": ..., "actions": [...]} entries.
"view" and "view_own" are mutually exclusive on a page and every other
action needs one of them.

Author: SafawiNet Project
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

# Configure logging
logger = logging.getLogger(__name__)


# Available permissions structure (mirrors GET /api/users/permissions/available)
AVAILABLE_PERMISSIONS = [
    {
        "page": "users",
        "name": "Users Management",
        "description": "Manage system users and their permissions",
        "actions": [
            {"id": "view", "name": "View Users", "description": "View user list and details"},
            {"id": "view_own", "name": "View Own Users", "description": "View only users you created"},
            {"id": "add", "name": "Create Users", "description": "Create new user accounts"},
            {"id": "edit", "name": "Edit Users", "description": "Modify existing user accounts"},
            {"id": "delete", "name": "Delete Users", "description": "Remove user accounts"},
            {"id": "export", "name": "Export Users", "description": "Export user data to CSV"}
        ]
    },
    {
        "page": "audit-logs",
        "name": "Audit Logs",
        "description": "View system audit logs",
        "actions": [
            {"id": "view", "name": "View Audit Logs", "description": "View all audit logs"},
            {"id": "view_own", "name": "View Own Logs", "description": "View only your own audit logs"},
            {"id": "export", "name": "Export Logs", "description": "Export audit log data to CSV"}
        ]
    }
]

PAGE_ACTIONS: Dict[str, List[str]] = {
    permission["page"]: [action["id"] for action in permission["actions"]]
    for permission in AVAILABLE_PERMISSIONS
}

VIEW_ACTIONS = ("view", "view_own")


@dataclass
class PermissionChangeResult:
    """Outcome of apply_change: the new list, or the old one plus a rejection message."""
    permissions: List[Dict[str, Any]]
    rejection: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None


def _field(obj: Any, name: str, camel_name: Optional[str] = None, default=None):
    """Read a field from a dict (snake or camelCase key) or an object."""
    if isinstance(obj, dict):
        if name in obj:
            return obj[name]
        if camel_name and camel_name in obj:
            return obj[camel_name]
        return default
    return getattr(obj, name, default)


def _is_admin(user: Any) -> bool:
    return bool(_field(user, "is_admin", "isAdmin", False))


def get_permissions_for_page(page: str) -> Optional[Dict[str, Any]]:
    for permission in AVAILABLE_PERMISSIONS:
        if permission["page"] == page:
            return permission
    return None


# ==================== Evaluation ====================

def has_permission(user: Any, page: str, action: str) -> bool:
    """
    Check if user has specific permission.

    Args:
        user: User dict as returned by the API (or None)
        page: Page identifier
        action: Action identifier

    Returns:
        True if the user is an admin or holds the action on the page
    """
    if not user:
        return False
    if _is_admin(user):
        return True

    for entry in _field(user, "permissions", default=None) or []:
        if entry.get("page") == page:
            return action in (entry.get("actions") or [])
    return False


def get_page_permissions(user: Any, page: str) -> List[str]:
    """
    Get the actions a user holds on a page.

    Returns:
        Action identifiers (every action of the page for admins)
    """
    if not user:
        return []
    if _is_admin(user):
        return list(PAGE_ACTIONS.get(page, []))

    for entry in _field(user, "permissions", default=None) or []:
        if entry.get("page") == page:
            return list(entry.get("actions") or [])
    return []


def get_user_permissions(user: Any) -> List[Dict[str, Any]]:
    """Get all permissions of a user; admins get the full table."""
    if not user:
        return []
    if _is_admin(user):
        return [{"page": page, "actions": list(actions)} for page, actions in PAGE_ACTIONS.items()]
    return copy.deepcopy(_field(user, "permissions", default=None) or [])


# ==================== Editing ====================

def _ordered(page: str, actions) -> List[str]:
    allowed = PAGE_ACTIONS.get(page, [])
    return [action for action in allowed if action in actions]


def apply_change(permissions: List[Dict[str, Any]], page: str, action: str, checked: bool) -> PermissionChangeResult:
    """
    Apply one checkbox change to a permission list.

    Rules:
    - checking "view" while "view_own" is set (or the reverse) is rejected
    - checking any other action before "view" or "view_own" is rejected
    - unchecking the last view action also removes the page's other actions
    - pages left without actions are dropped

    Args:
        permissions: Current permission list (not modified)
        page: Page identifier
        action: Action identifier
        checked: True to grant, False to revoke

    Returns:
        PermissionChangeResult with the new list, or the unchanged list and a rejection message
    """
    current = copy.deepcopy(permissions or [])

    if page not in PAGE_ACTIONS:
        return PermissionChangeResult(current, f"Unknown page: {page}")
    if action not in PAGE_ACTIONS[page]:
        return PermissionChangeResult(current, f"Invalid action for page {page}: {action}")

    entry = next((item for item in current if item.get("page") == page), None)
    actions = set(entry.get("actions") or []) if entry else set()

    if checked:
        if action == "view" and "view_own" in actions:
            return PermissionChangeResult(current, f"Cannot select both 'view' and 'view_own' for {page}")
        if action == "view_own" and "view" in actions:
            return PermissionChangeResult(current, f"Cannot select both 'view' and 'view_own' for {page}")
        if action not in VIEW_ACTIONS and not actions.intersection(VIEW_ACTIONS):
            return PermissionChangeResult(current, f"You must select view or view_own first for {page}")
        actions.add(action)
    else:
        actions.discard(action)

    # Dependent actions cannot outlive the view action they rely on
    if not actions.intersection(VIEW_ACTIONS):
        actions = set()

    updated = []
    placed = False
    for item in current:
        if item.get("page") == page:
            placed = True
            if actions:
                updated.append({"page": page, "actions": _ordered(page, actions)})
        elif item.get("actions"):
            updated.append(item)
    if not placed and actions:
        updated.append({"page": page, "actions": _ordered(page, actions)})

    logger.debug(f"Permission change {page}:{action} -> {'on' if checked else 'off'}")
    return PermissionChangeResult(updated)


def validate_permission_combination(page: str, actions: List[str]) -> Tuple[bool, str]:
    """
    Check if a permission combination is valid.

    Returns:
        (is_valid, message) - message is empty when valid
    """
    if page not in PAGE_ACTIONS:
        return False, f"Unknown page: {page}"

    invalid = [action for action in actions if action not in PAGE_ACTIONS[page]]
    if invalid:
        return False, f"Invalid actions for page {page}: {', '.join(invalid)}"

    if "view" in actions and "view_own" in actions:
        return False, f"Cannot select both 'view' and 'view_own' for {page}"

    if actions and not any(action in VIEW_ACTIONS for action in actions):
        return False, f"Actions on {page} require 'view' or 'view_own'"

    return True, ""


def validate_permissions(permissions: List[Dict[str, Any]]) -> List[str]:
    """Validate a whole permission list; returns error messages (empty when valid)."""
    errors = []
    for entry in permissions or []:
        is_valid, message = validate_permission_combination(entry.get("page"), list(entry.get("actions") or []))
        if not is_valid:
            errors.append(message)
    return errors


# ==================== Display ====================

def get_permission_display_name(page: str, action: str) -> str:
    permission = get_permissions_for_page(page)
    if permission:
        for item in permission["actions"]:
            if item["id"] == action:
                return item["name"]
    return f"{page}:{action}"


def get_permission_description(page: str, action: str) -> str:
    permission = get_permissions_for_page(page)
    if permission:
        for item in permission["actions"]:
            if item["id"] == action:
                return item["description"]
    return ""


def get_permission_summary(permissions: List[Dict[str, Any]]) -> str:
    """
    Get permission summary text, e.g. "Users Management: View Users, Edit Users".
    """
    if is_empty_permissions(permissions):
        return "No permissions assigned"

    summaries = []
    for entry in permissions:
        if not entry.get("actions"):
            continue
        permission = get_permissions_for_page(entry["page"])
        page_name = permission["name"] if permission else entry["page"]
        action_names = [get_permission_display_name(entry["page"], action) for action in entry["actions"]]
        summaries.append(f"{page_name}: {', '.join(action_names)}")
    return "; ".join(summaries)


def is_empty_permissions(permissions: Optional[List[Dict[str, Any]]]) -> bool:
    if not permissions:
        return True
    return all(not entry.get("actions") for entry in permissions)


"""
SafawiNet Server - Permission Rules

Static page/action rule table and the permission evaluator used to authorize requests.

A permission list is stored as a list of entries of the form
    {"page": "users", "actions": ["view", "edit"]}
Rules enforced on every persisted list:
- the page must be one of the known pages and each action must be allowed for it
- "view" and "view_own" are mutually exclusive on a page
- any other action requires "view" or "view_own" on the same page
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class Page(str, Enum):
    """Pages that permissions can be granted on"""
    USERS = "users"
    AUDIT_LOGS = "audit-logs"


class Action(str, Enum):
    """Actions that can be granted on a page"""
    VIEW = "view"
    VIEW_OWN = "view_own"
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    EXPORT = "export"


# ==================== Rule Table ====================

PAGE_ACTIONS: Dict[str, List[str]] = {
    Page.USERS.value: [
        Action.VIEW.value, Action.VIEW_OWN.value, Action.ADD.value,
        Action.EDIT.value, Action.DELETE.value, Action.EXPORT.value
    ],
    Page.AUDIT_LOGS.value: [
        Action.VIEW.value, Action.VIEW_OWN.value, Action.EXPORT.value
    ],
}

PAGE_NAMES: Dict[str, str] = {
    Page.USERS.value: "Users Management",
    Page.AUDIT_LOGS.value: "Audit Logs",
}

# (display name, description) per page and action
ACTION_DETAILS: Dict[str, Dict[str, tuple]] = {
    Page.USERS.value: {
        "view": ("View Users", "View user list and details"),
        "view_own": ("View Own Users", "View only users you created"),
        "add": ("Create Users", "Create new users"),
        "edit": ("Edit Users", "Modify existing users"),
        "delete": ("Delete Users", "Remove users from the system"),
        "export": ("Export Users", "Export user data"),
    },
    Page.AUDIT_LOGS.value: {
        "view": ("View Audit Logs", "View all audit log entries"),
        "view_own": ("View Own Logs", "View only your own audit log entries"),
        "export": ("Export Logs", "Export audit log data"),
    },
}

VIEW_ACTIONS = (Action.VIEW.value, Action.VIEW_OWN.value)


# ==================== Evaluator ====================

def _GetField(user: Any, name: str, default=None):
    """Read a field from an ORM user, token payload or plain dict"""
    if isinstance(user, dict):
        if name in user:
            return user[name]
        # camelCase payloads from the wire
        parts = name.split("_")
        camel = parts[0] + "".join(part.title() for part in parts[1:])
        return user.get(camel, default)
    return getattr(user, name, default)


def _Value(item) -> str:
    return item.value if isinstance(item, Enum) else item


def HasPermission(user: Any, page, action) -> bool:
    """
    Check if a user may perform an action on a page

    Args:
        user: User object or dict with is_admin and permissions (may be None)
        page: Page name or Page enum
        action: Action name or Action enum

    Returns:
        bool: True if the user is an admin or its entry for the page contains the action
    """
    if user is None:
        return False

    if _GetField(user, "is_admin", False):
        return True

    page = _Value(page)
    action = _Value(action)

    for entry in _GetField(user, "permissions", None) or []:
        if _GetField(entry, "page") == page:
            return action in (_GetField(entry, "actions") or [])

    return False


def GetPagePermissions(user: Any, page) -> List[str]:
    """
    Get the actions a user holds on a page

    Args:
        user: User object or dict
        page: Page name or Page enum

    Returns:
        list: Action names (every allowed action for admins)
    """
    if user is None:
        return []

    page = _Value(page)

    if _GetField(user, "is_admin", False):
        return list(PAGE_ACTIONS.get(page, []))

    for entry in _GetField(user, "permissions", None) or []:
        if _GetField(entry, "page") == page:
            return list(_GetField(entry, "actions") or [])

    return []


def GetUserPermissions(user: Any) -> List[Dict[str, Any]]:
    """
    Get the effective permission list of a user

    Admins receive the full rule table regardless of what is stored on them.
    """
    if user is None:
        return []

    if _GetField(user, "is_admin", False):
        return [{"page": page, "actions": list(actions)} for page, actions in PAGE_ACTIONS.items()]

    return NormalizePermissions(_GetField(user, "permissions", None) or [])


# ==================== Validation ====================

def ValidatePermissions(permissions: List[Any]) -> List[str]:
    """
    Validate a whole permission list against the rule table

    Args:
        permissions: List of permission entries (dicts or objects with page/actions)

    Returns:
        list: Error messages, empty when the list is valid
    """
    errors = []

    if permissions is None:
        return errors

    if not isinstance(permissions, list):
        return ["Permissions must be an array"]

    seen_pages = set()
    for entry in permissions:
        page = _GetField(entry, "page")
        actions = _GetField(entry, "actions")

        if page not in PAGE_ACTIONS:
            errors.append(f"Invalid page: {page}")
            continue

        if page in seen_pages:
            errors.append(f"Duplicate permission entry for page: {page}")
            continue
        seen_pages.add(page)

        if not isinstance(actions, list):
            errors.append(f"Actions for page '{page}' must be an array")
            continue

        invalid = [action for action in actions if action not in PAGE_ACTIONS[page]]
        if invalid:
            errors.append(f"Invalid actions for page '{page}': {', '.join(str(a) for a in invalid)}")
            continue

        if Action.VIEW.value in actions and Action.VIEW_OWN.value in actions:
            errors.append(f"Page '{page}' cannot have both view and view_own")

        if any(action not in VIEW_ACTIONS for action in actions) and not any(action in VIEW_ACTIONS for action in actions):
            errors.append(f"Page '{page}' must include view or view_own before other actions")

    return errors


def NormalizePermissions(permissions: List[Any]) -> List[Dict[str, Any]]:
    """
    Convert a permission list to its canonical stored form

    Entries become plain dicts, actions are de-duplicated and ordered as in
    the rule table, and pages without actions are dropped.
    """
    normalized = []

    for entry in permissions or []:
        page = _GetField(entry, "page")
        actions = _GetField(entry, "actions") or []
        allowed = PAGE_ACTIONS.get(page)
        if allowed is None:
            continue

        ordered = [action for action in allowed if action in actions]
        if ordered:
            normalized.append({"page": page, "actions": ordered})

    normalized.sort(key=lambda item: list(PAGE_ACTIONS).index(item["page"]))
    return normalized


def ArePermissionsIdentical(first: List[Any], second: List[Any]) -> bool:
    """Compare two permission lists ignoring entry and action order"""
    return NormalizePermissions(first) == NormalizePermissions(second)


# ==================== Display Helpers ====================

def GetPermissionDisplayName(page: str, action: str) -> str:
    details = ACTION_DETAILS.get(page, {}).get(action)
    return details[0] if details else f"{page}:{action}"


def GetPermissionDescription(page: str, action: str) -> str:
    details = ACTION_DETAILS.get(page, {}).get(action)
    return details[1] if details else ""


def GetAvailablePermissions() -> List[Dict[str, Any]]:
    """
    Describe the rule table for permission pickers

    Returns:
        list: One dict per page with its display name and allowed actions
    """
    available = []
    for page, actions in PAGE_ACTIONS.items():
        available.append({
            "page": page,
            "name": PAGE_NAMES[page],
            "actions": [
                {
                    "id": action,
                    "name": GetPermissionDisplayName(page, action),
                    "description": GetPermissionDescription(page, action)
                }
                for action in actions
            ]
        })
    return available


def GetPermissionSummary(permissions: Optional[List[Any]]) -> str:
    """
    Build a one-line summary such as "users: view, edit; audit-logs: view_own"
    """
    normalized = NormalizePermissions(permissions or [])
    if not normalized:
        return "No permissions assigned"

    return "; ".join(f"{entry['page']}: {', '.join(entry['actions'])}" for entry in normalized)

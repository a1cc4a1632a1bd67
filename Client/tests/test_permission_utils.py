"""
Tests for permission checking and editing in SafawiNet Client

Covers the evaluator and the rules applied when a single action is
checked or unchecked.
"""

import copy
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from permission_utils import (
    PAGE_ACTIONS, VIEW_ACTIONS, apply_change, get_page_permissions, get_permission_summary,
    has_permission, validate_permission_combination, validate_permissions
)


def test_admin_has_every_permission():
    """An admin with an empty list passes every check"""
    admin = {"isAdmin": True, "permissions": []}

    for page, actions in PAGE_ACTIONS.items():
        for action in actions:
            assert has_permission(admin, page, action)
    assert get_page_permissions(admin, "users") == PAGE_ACTIONS["users"]


def test_missing_actions_are_denied():
    """Actions not listed for a page are denied"""
    user = {"isAdmin": False, "permissions": [{"page": "users", "actions": ["view", "edit"]}]}

    assert has_permission(user, "users", "edit")
    for action in PAGE_ACTIONS["users"]:
        if action not in ("view", "edit"):
            assert not has_permission(user, "users", action)
    assert not has_permission(user, "audit-logs", "view")
    assert not has_permission(None, "users", "view")


def test_view_own_rejected_when_view_present():
    """Checking view_own next to view is rejected and the list is unchanged"""
    permissions = [{"page": "users", "actions": ["view", "edit"]}]

    result = apply_change(permissions, "users", "view_own", True)

    assert not result.accepted
    assert "view_own" in result.rejection
    assert result.permissions == [{"page": "users", "actions": ["view", "edit"]}]


def test_view_rejected_when_view_own_present():
    """The exclusion works in both directions"""
    permissions = [{"page": "audit-logs", "actions": ["view_own"]}]

    result = apply_change(permissions, "audit-logs", "view", True)

    assert not result.accepted
    assert result.permissions == permissions


def test_dependent_action_needs_view_first():
    """Other actions cannot be checked before view or view_own"""
    result = apply_change([], "users", "edit", True)

    assert not result.accepted
    assert "must select view or view_own first" in result.rejection
    assert result.permissions == []


def test_checking_adds_action_and_page():
    """Accepted changes add the page entry and order actions"""
    result = apply_change([], "users", "view", True)
    assert result.accepted
    assert result.permissions == [{"page": "users", "actions": ["view"]}]

    result = apply_change(result.permissions, "users", "export", True)
    result = apply_change(result.permissions, "users", "add", True)
    assert result.permissions == [{"page": "users", "actions": ["view", "add", "export"]}]


def test_unchecking_view_strips_dependent_actions():
    """Removing the last view action removes everything that relied on it"""
    permissions = [
        {"page": "users", "actions": ["view", "add", "edit"]},
        {"page": "audit-logs", "actions": ["view_own"]},
    ]

    result = apply_change(permissions, "users", "view", False)

    assert result.accepted
    assert result.permissions == [{"page": "audit-logs", "actions": ["view_own"]}]


def test_unchecking_last_action_drops_page():
    """Empty page entries are removed"""
    result = apply_change([{"page": "audit-logs", "actions": ["view_own"]}], "audit-logs", "view_own", False)

    assert result.permissions == []


def test_apply_change_is_idempotent():
    """Applying the same change twice gives the same list"""
    start = [{"page": "audit-logs", "actions": ["view_own"]}]

    once = apply_change(start, "users", "view", True).permissions
    twice = apply_change(once, "users", "view", True).permissions

    assert once == twice


def test_apply_change_never_mutates_input():
    """The caller's list is left untouched"""
    permissions = [{"page": "users", "actions": ["view", "edit"]}]
    snapshot = copy.deepcopy(permissions)

    apply_change(permissions, "users", "delete", True)
    apply_change(permissions, "users", "view", False)

    assert permissions == snapshot


def test_no_sequence_produces_invalid_sets():
    """Whatever is checked in whatever order, the result stays valid"""
    permissions = []
    sequence = [
        ("users", "edit", True), ("users", "view_own", True), ("users", "view", True),
        ("users", "delete", True), ("users", "view_own", False), ("users", "view", True),
        ("users", "export", True), ("audit-logs", "export", True), ("audit-logs", "view", True),
        ("audit-logs", "export", True), ("audit-logs", "view_own", True), ("users", "view", False),
    ]

    for page, action, checked in sequence:
        permissions = apply_change(permissions, page, action, checked).permissions
        assert validate_permissions(permissions) == []
        for entry in permissions:
            assert not set(VIEW_ACTIONS).issubset(entry["actions"])


def test_unknown_page_and_action_rejected():
    """Pages and actions outside the table are refused"""
    assert not apply_change([], "reports", "view", True).accepted
    assert not apply_change([], "audit-logs", "delete", True).accepted


def test_validate_permission_combination():
    """Combination check reports the broken rule"""
    assert validate_permission_combination("users", ["view", "edit"]) == (True, "")
    assert not validate_permission_combination("users", ["view", "view_own"])[0]
    assert not validate_permission_combination("users", ["edit"])[0]
    assert not validate_permission_combination("audit-logs", ["add"])[0]


def test_permission_summary():
    """Summary uses display names"""
    assert get_permission_summary([]) == "No permissions assigned"
    assert get_permission_summary([{"page": "users", "actions": ["view", "edit"]}]) == \
        "Users Management: View Users, Edit Users"


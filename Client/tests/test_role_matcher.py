"""
Tests for the role template matcher in SafawiNet Client
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from role_matcher import clean_name, get_role_badge_color, match_template

TEMPLATES = [
    {"name": "Manager", "color": "bg-purple"},
    {"name": "Admin", "color": "bg-red"},
]


def test_cleaned_name_match():
    """Digits are ignored: Manager2 belongs to Manager"""
    assert match_template("Manager2", TEMPLATES)["name"] == "Manager"


def test_exact_match_beats_earlier_substring_match():
    """An exact name wins even when an earlier template matches by substring"""
    templates = [{"name": "Senior Manager"}, {"name": "Manager"}]

    assert match_template("manager", templates)["name"] == "Manager"


def test_substring_either_direction():
    """Role inside template name and template name inside role both match"""
    assert match_template("admin", [{"name": "System Admin"}])["name"] == "System Admin"
    assert match_template("Admin Lead", [{"name": "Admin"}])["name"] == "Admin"


def test_word_overlap():
    """Most significant words shared is enough"""
    templates = [{"name": "Customer Support Agent"}]

    assert match_template("Support Agents Team", templates) is not None
    assert match_template("Sales Team", templates) is None


def test_first_template_wins_within_tier():
    """Ties inside a tier go to the first template in input order"""
    templates = [{"name": "Sales Manager"}, {"name": "Support Manager"}]

    assert match_template("Manager", templates)["name"] == "Sales Manager"


def test_no_match_and_empty_role():
    """Unrelated and empty roles match nothing"""
    assert match_template("Auditor", TEMPLATES) is None
    assert match_template("", TEMPLATES) is None
    assert match_template("Manager", []) is None


def test_objects_with_name_attribute():
    """Templates can be objects as well as dicts"""
    class Template:
        def __init__(self, name, color):
            self.name = name
            self.color = color

    templates = [Template("Viewer", "bg-green")]

    assert match_template("viewer", templates) is templates[0]
    assert get_role_badge_color("viewer", templates) == "bg-green"


def test_badge_color_fallback():
    """Unmatched roles get a role-<name> style"""
    assert get_role_badge_color("Manager", TEMPLATES) == "bg-purple"
    assert get_role_badge_color("Custom", TEMPLATES) == "role-custom"


def test_clean_name():
    """Cleaning lower-cases and strips digits and punctuation"""
    assert clean_name("  Manager-2! ") == "manager"
    assert clean_name("Team Lead #3") == "team lead"

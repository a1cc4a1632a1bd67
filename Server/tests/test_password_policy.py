"""
Tests for the password policy in SafawiNet Server
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from password_policy import ValidatePassword


def test_strong_password_passes():
    """A password meeting every rule is valid"""
    result = ValidatePassword("Str0ng!Pass")

    assert result.is_valid
    assert result.messages == []


def test_each_rule_is_flagged():
    """Every failed rule sets its own flag"""
    assert ValidatePassword("Sh0rt!").too_short
    assert ValidatePassword("A1!" + "a" * 130).too_long
    assert ValidatePassword("lower1!case").missing_uppercase
    assert ValidatePassword("UPPER1!CASE").missing_lowercase
    assert ValidatePassword("NoDigits!here").missing_number
    assert ValidatePassword("NoSpecial1here").missing_special


def test_common_password_rejected():
    """Common passwords are rejected even before other rules"""
    result = ValidatePassword("password")

    assert not result.is_valid
    assert result.too_common


def test_empty_password():
    """None and empty strings fail without raising"""
    assert not ValidatePassword(None).is_valid
    assert not ValidatePassword("").is_valid

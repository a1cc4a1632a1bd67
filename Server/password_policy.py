"""
SafawiNet Server - Password Policy

Validation rules applied whenever a password is set.
"""

import re
from dataclasses import dataclass, field
from typing import List

MIN_LENGTH = 8
MAX_LENGTH = 128
SPECIAL_CHARACTERS = "@$!%*?&"
COMMON_PASSWORDS = {"password", "123456", "qwerty", "admin", "letmein"}


@dataclass
class PasswordPolicyResult:
    """Outcome of a password policy check with one flag per failed rule"""
    too_short: bool = False
    too_long: bool = False
    missing_uppercase: bool = False
    missing_lowercase: bool = False
    missing_number: bool = False
    missing_special: bool = False
    too_common: bool = False
    messages: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.messages


def ValidatePassword(password: str) -> PasswordPolicyResult:
    """
    Check a password against the policy

    Args:
        password: Candidate password

    Returns:
        PasswordPolicyResult: Per-rule flags and human readable messages
    """
    result = PasswordPolicyResult()
    password = password or ""

    if len(password) < MIN_LENGTH:
        result.too_short = True
        result.messages.append(f"Password must be at least {MIN_LENGTH} characters long")
    if len(password) > MAX_LENGTH:
        result.too_long = True
        result.messages.append(f"Password must be no more than {MAX_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        result.missing_uppercase = True
        result.messages.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        result.missing_lowercase = True
        result.messages.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        result.missing_number = True
        result.messages.append("Password must contain at least one number")
    if not any(ch in SPECIAL_CHARACTERS for ch in password):
        result.missing_special = True
        result.messages.append(f"Password must contain at least one special character ({SPECIAL_CHARACTERS})")
    if password.lower() in COMMON_PASSWORDS:
        result.too_common = True
        result.messages.append("Password is too common")

    return result

"""
SafawiNet Client - Two-Factor Required Error Exception

Exception raised when login needs a two-factor code (or the one given was wrong).

Author: SafawiNet Project
"""

from .auth_error import SafawiNetAuthError


class SafawiNetTwoFactorRequiredError(SafawiNetAuthError):
    """Exception raised when the server answers with requiresTwoFactor."""
    pass

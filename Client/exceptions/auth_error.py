"""
SafawiNet Client - Authentication Error Exception

Exception raised for authentication-related errors (HTTP 401).

Author: SafawiNet Project
"""

from .api_error import SafawiNetAPIError


class SafawiNetAuthError(SafawiNetAPIError):
    """Exception for authentication errors."""
    pass

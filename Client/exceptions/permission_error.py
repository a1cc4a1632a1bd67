"""
SafawiNet Client - Permission Error Exception

Exception raised when the user lacks a permission (HTTP 403).

Author: SafawiNet Project
"""

from .api_error import SafawiNetAPIError


class SafawiNetPermissionError(SafawiNetAPIError):
    """Exception for permission denied errors."""
    pass

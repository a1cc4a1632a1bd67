"""
SafawiNet Client - Server Error Exception

Exception raised for server-related errors, rejected requests and
connection problems.

Author: SafawiNet Project
"""

from .api_error import SafawiNetAPIError


class SafawiNetServerError(SafawiNetAPIError):
    """Exception for server errors."""
    pass

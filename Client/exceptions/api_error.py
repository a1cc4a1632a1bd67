"""
SafawiNet Client - API Error Exception

Base exception class for all API-related errors.

Author: SafawiNet Project
"""

from typing import Optional


class SafawiNetAPIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        # Field/rule messages sent by the server alongside the main message
        self.errors = errors

"""
SafawiNet Client - Exceptions Package

Contains all exception classes for the SafawiNet client.

Author: SafawiNet Project
"""

from .api_error import SafawiNetAPIError
from .auth_error import SafawiNetAuthError
from .two_factor_required_error import SafawiNetTwoFactorRequiredError
from .permission_error import SafawiNetPermissionError
from .server_error import SafawiNetServerError

__all__ = [
    'SafawiNetAPIError',
    'SafawiNetAuthError',
    'SafawiNetTwoFactorRequiredError',
    'SafawiNetPermissionError',
    'SafawiNetServerError'
]

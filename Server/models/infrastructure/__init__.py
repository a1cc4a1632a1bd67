"""
SafawiNet Server - Infrastructure Models Package

This package contains dataclass models for infrastructure components like sessions.
"""

from models.infrastructure.active_session import ActiveSession

__all__ = [
    'ActiveSession',
]

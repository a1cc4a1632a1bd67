"""
SafawiNet Client - API Package

This package contains the API communication class.
"""

from .safawinet_api import SafawiNetAPI

__all__ = ['SafawiNetAPI']

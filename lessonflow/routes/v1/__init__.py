"""
API v1 Routes

Versioned endpoints under /api/v1.
"""

from . import lessons, prometheus

__all__ = ["lessons", "prometheus"]

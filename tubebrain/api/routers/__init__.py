"""
API Routers Package
Exposes all route modules for the comment brain service
"""

from . import brain_router

__all__ = [
    "brain_router",
]

"""
In-Memory Repository Implementations.

For testing and local development. NOT FOR PRODUCTION.
Data is lost on process restart.
"""

from .permission import InMemoryPermissionRepository
from .security_event import InMemorySecurityEventRepository
from .session import InMemorySessionRepository
from .user import InMemoryUserRepository

__all__ = [
    "InMemoryUserRepository",
    "InMemorySessionRepository",
    "InMemoryPermissionRepository",
    "InMemorySecurityEventRepository",
]

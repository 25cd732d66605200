"""
In-memory role -> permission mapping seeded from identity.permissions.ROLE_PERMISSIONS.

Mirrors the rows inserted by the 001 migration.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

from ....identity.permissions import ROLE_PERMISSIONS
from ....identity.users import UserRole


class InMemoryPermissionRepository:
    def __init__(
        self, mapping: Optional[Mapping[UserRole, Iterable[str]]] = None
    ) -> None:
        source = mapping if mapping is not None else ROLE_PERMISSIONS
        self._mapping: Dict[UserRole, frozenset[str]] = {
            UserRole(role): frozenset(str(getattr(p, "value", p)) for p in perms)
            for role, perms in source.items()
        }

    def list_role_permissions(self, role: UserRole) -> List[str]:
        return sorted(self._mapping.get(UserRole(role), frozenset()))

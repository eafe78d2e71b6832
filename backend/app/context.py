"""Authenticated caller identity passed explicitly into every use case."""
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class CallerContext:
    user_id: UUID
    role: str
    tenant_id: UUID | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == "super_admin"

    @classmethod
    def from_user(cls, user) -> "CallerContext":
        return cls(user_id=user.id, role=user.role, tenant_id=user.tenant_id)

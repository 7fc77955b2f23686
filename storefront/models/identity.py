"""Authenticated caller as forwarded by the upstream auth tier."""

from __future__ import annotations

from pydantic import BaseModel

STAFF_ROLES = frozenset({"admin", "manager", "support"})


class Identity(BaseModel):
    user_id: str
    role: str = "customer"
    email: str | None = None
    name: str | None = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

"""Actor resolution.

Authentication happens at the API edge; the registry only ever sees an
``ActorContext`` carrying the caller's tenant and role.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from crm_files.models.identity import User, UserRole
from crm_files.services.common import coerce_uuid


@dataclass(frozen=True)
class ActorContext:
    actor_id: uuid.UUID
    tenant_id: uuid.UUID
    role: str = UserRole.member.value

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin.value


class IdentityProvider(Protocol):
    def resolve_actor(self, db: Session, actor_id) -> ActorContext | None: ...


class SqlIdentityProvider:
    """Reads tenant and role from the users table."""

    def resolve_actor(self, db: Session, actor_id) -> ActorContext | None:
        try:
            user_id = coerce_uuid(actor_id)
        except ValueError:
            return None
        user = db.get(User, user_id)
        if not user:
            return None
        return ActorContext(actor_id=user.id, tenant_id=user.org_id, role=user.role.value)


identity = SqlIdentityProvider()

from __future__ import annotations

from dataclasses import dataclass
from typing import Generator

from fastapi import Header

from pharmacy.app.core.errors import ForbiddenError
from pharmacy.app.db.models.core_types import Role
from pharmacy.app.db.session import SessionLocal
from pharmacy.services.activity import DbActivityLog


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_activity_log() -> DbActivityLog:
    return DbActivityLog(SessionLocal)


@dataclass(frozen=True)
class Actor:
    """Identité fournie par la couche d'auth en amont (opaque, considérée fiable)."""

    actor_id: str | None
    role: str | None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin.value

    def require_admin(self, what: str) -> None:
        if not self.is_admin:
            raise ForbiddenError(f"{what} requires the admin role")


def get_actor(
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
    x_actor_role: str | None = Header(default=None, alias="X-Actor-Role"),
) -> Actor:
    return Actor(
        actor_id=(x_actor_id or "").strip() or None,
        role=(x_actor_role or "").strip().lower() or None,
    )

from dataclasses import dataclass
from app.schemas.enums import Role


@dataclass(frozen=True)
class IdentityContext:
    """Verified caller identity, built once per request by the auth dependency."""

    user_id: int
    global_role: Role
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.global_role == Role.ADMIN

    @classmethod
    def from_user(cls, user) -> "IdentityContext":
        return cls(user_id=user.id, global_role=Role(user.role), is_active=user.is_active)

from dataclasses import dataclass

from .errors import AuthorizationError

ROLE_CUSTOMER = "customer"
ROLE_OWNER = "facility_owner"
ROLE_ADMIN = "admin"
ROLE_SYSTEM = "system"

_ALLOWED_ROLES = {ROLE_CUSTOMER, ROLE_OWNER, ROLE_ADMIN, ROLE_SYSTEM}


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_system(self) -> bool:
        return self.role == ROLE_SYSTEM

    @property
    def is_privileged(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_SYSTEM)


SYSTEM_ACTOR = Actor(user_id="system", role=ROLE_SYSTEM)


def normalize_role(role: str | None) -> str:
    rr = (role or "").strip().lower()
    if rr not in _ALLOWED_ROLES:
        raise AuthorizationError(f"Invalid role: {role}. Allowed: {sorted(_ALLOWED_ROLES)}")
    return rr


def require_role(actor: Actor, allowed_roles: list[str]):
    allowed = {r.lower() for r in allowed_roles}
    if actor.role not in allowed:
        raise AuthorizationError("Access forbidden for this role")


def require_facility_manager(actor: Actor, facility) -> None:
    """Owner of the facility, or an administrator."""
    if actor.is_admin:
        return
    if actor.role == ROLE_OWNER and facility.owner_id == actor.user_id:
        return
    raise AuthorizationError("Only the facility owner can manage this facility")

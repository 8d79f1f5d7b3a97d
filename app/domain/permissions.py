from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from app.domain.errors import AuthenticationRequired, AuthorizationDenied

REASON_NOT_AUTHENTICATED = "Not authenticated"
REASON_NOT_AUTHORIZED = "Not authorized"


class Role(StrEnum):
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"


@dataclass(frozen=True)
class Identity:
    id: str
    role: Role
    name: str = ""
    email: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None
    status_code: int = 200


ALLOW = Decision(allowed=True)


def authorize(
    identity: Identity | None,
    required_role: Role | None = None,
    owner_id: str | None = None,
) -> Decision:
    """Evaluate authentication, then role, then ownership.

    ``owner_id`` only matters for non-admin callers; an admin is allowed on any
    owned row once the role tier passes.
    """
    if identity is None:
        return Decision(allowed=False, reason=REASON_NOT_AUTHENTICATED, status_code=401)
    if required_role is not None and identity.role != required_role:
        return Decision(allowed=False, reason=REASON_NOT_AUTHORIZED, status_code=403)
    if owner_id is not None and not identity.is_admin and identity.id != owner_id:
        return Decision(allowed=False, reason=REASON_NOT_AUTHORIZED, status_code=403)
    return ALLOW


def enforce(
    identity: Identity | None,
    required_role: Role | None = None,
    owner_id: str | None = None,
) -> Identity:
    decision = authorize(identity, required_role=required_role, owner_id=owner_id)
    if decision.allowed and identity is not None:
        return identity
    if decision.status_code == 401:
        raise AuthenticationRequired(decision.reason)
    raise AuthorizationDenied(decision.reason)

from __future__ import annotations

from typing import Annotated

import jwt
from fastapi import Depends, Query, Request
from fastapi.security import OAuth2PasswordBearer

from app.domain.permissions import Identity, Role, enforce
from app.infra.auth import SESSION_COOKIE_NAME, decode_session_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def resolve(request: Request, token: str | None) -> Identity | None:
    """Return the caller behind the bearer token or session cookie, or None."""
    credential = token or request.cookies.get(SESSION_COOKIE_NAME)
    if not credential:
        return None
    try:
        claims = decode_session_token(credential)
        role = Role(claims["role"])
    except (jwt.PyJWTError, ValueError, KeyError):
        return None
    return Identity(
        id=claims["sub"],
        role=role,
        name=str(claims.get("name") or ""),
        email=str(claims.get("email") or ""),
    )


def get_identity(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Identity | None:
    identity = resolve(request, token)
    request.state.identity = identity
    return identity


def require_identity(identity: Annotated[Identity | None, Depends(get_identity)]) -> Identity:
    return enforce(identity)


def require_admin(identity: Annotated[Identity | None, Depends(get_identity)]) -> Identity:
    return enforce(identity, required_role=Role.ADMIN)


OptionalIdentity = Annotated[Identity | None, Depends(get_identity)]
CurrentIdentity = Annotated[Identity, Depends(require_identity)]
AdminIdentity = Annotated[Identity, Depends(require_admin)]

PageParam = Annotated[int, Query(ge=1)]
LimitParam = Annotated[int, Query(ge=1, le=100)]
SearchParam = Annotated[str | None, Query(max_length=200)]

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.deps import OptionalIdentity
from app.domain.models import (
    LoginRead,
    LoginRequest,
    RegisterRequest,
    SessionRead,
    SessionUserRead,
    StatusMessageRead,
    UserRead,
)
from app.infra.audit import annotate_audit
from app.infra.auth import SESSION_COOKIE_NAME, SESSION_EXPIRES_MIN, create_session_token
from app.services.user_service import UserService

router = APIRouter()


def get_user_service() -> UserService:
    return UserService()


Service = Annotated[UserService, Depends(get_user_service)]


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, request: Request, service: Service) -> UserRead:
    user = service.register(payload)
    annotate_audit(request, action="auth.register", detail={"target": {"user_id": user.id}})
    return UserRead.model_validate(user)


@router.post("/login", response_model=LoginRead)
def login(payload: LoginRequest, request: Request, response: Response, service: Service) -> LoginRead:
    user = service.authenticate(payload.email, payload.password)
    token = create_session_token(user_id=user.id, role=user.role, name=user.name, email=user.email)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=SESSION_EXPIRES_MIN * 60,
        httponly=True,
        samesite="lax",
    )
    annotate_audit(request, action="auth.login", detail={"actor": {"id": user.id}})
    return LoginRead(token=token, user=UserRead.model_validate(user))


@router.post("/logout", response_model=StatusMessageRead)
def logout(response: Response) -> StatusMessageRead:
    response.delete_cookie(SESSION_COOKIE_NAME)
    return StatusMessageRead(message="Signed out")


@router.get("/session", response_model=SessionRead | None)
def get_session(identity: OptionalIdentity) -> SessionRead | None:
    if identity is None:
        return None
    return SessionRead(
        user=SessionUserRead(id=identity.id, role=identity.role, name=identity.name, email=identity.email)
    )

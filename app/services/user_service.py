from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func
from sqlmodel import Session, col, select

from app.domain.errors import (
    AuthenticationRequired,
    AuthorizationDenied,
    Conflict,
    NotFound,
    ValidationFailed,
)
from app.domain.models import (
    Project,
    ProjectStatus,
    RegisterRequest,
    Testimonial,
    User,
    UserCreate,
    UserUpdate,
    now_utc,
)
from app.domain.permissions import Identity, Role, enforce
from app.infra.auth import hash_password, verify_password
from app.infra.db import commit_or_raise, get_engine
from app.services import cascade
from app.services.query import Page, apply_search, paginate

logger = logging.getLogger(__name__)

NON_NULLABLE_FIELDS = {"name", "email", "password", "role"}


def _normalize_email(value: str) -> str:
    email = value.strip().lower()
    if not email or "@" not in email:
        raise ValidationFailed("Invalid email", details="email must be a valid address")
    return email


def _require_text(value: str, field_name: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValidationFailed("Missing required fields", details=f"Missing required fields: {field_name}")
    return normalized


class UserService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_user(self, session: Session, user_id: str) -> User:
        row = session.get(User, user_id)
        if row is None:
            raise NotFound("User not found")
        return row

    def _ensure_email_free(self, session: Session, email: str, *, exclude_id: str | None = None) -> None:
        statement = select(User).where(User.email == email)
        if exclude_id is not None:
            statement = statement.where(User.id != exclude_id)
        if session.exec(statement).first() is not None:
            raise Conflict("Email already registered")

    def _create(self, session: Session, payload: RegisterRequest | UserCreate, role: Role) -> User:
        email = _normalize_email(payload.email)
        self._ensure_email_free(session, email)
        user = User(
            name=_require_text(payload.name, "name"),
            email=email,
            password_hash=hash_password(_require_text(payload.password, "password")),
            role=role,
            company=payload.company,
            phone=payload.phone,
        )
        session.add(user)
        commit_or_raise(session, conflict_message="Email already registered")
        session.refresh(user)
        return user

    def register(self, payload: RegisterRequest) -> User:
        with self._session() as session:
            user = self._create(session, payload, Role.CUSTOMER)
        logger.info("registered customer %s", user.id)
        return user

    def bootstrap_admin(self, payload: RegisterRequest) -> User:
        """Create the first administrator; refused once any admin exists."""
        with self._session() as session:
            existing = session.exec(select(User).where(User.role == Role.ADMIN)).first()
            if existing is not None:
                raise Conflict("An admin user already exists")
            user = self._create(session, payload, Role.ADMIN)
        logger.info("bootstrapped admin %s", user.id)
        return user

    def authenticate(self, email: str, password: str) -> User:
        with self._session() as session:
            user = session.exec(select(User).where(User.email == email.strip().lower())).first()
            if user is None or not verify_password(password, user.password_hash):
                raise AuthenticationRequired("Invalid credentials")
            return user

    def list_users(
        self,
        identity: Identity | None,
        *,
        page: int,
        limit: int,
        search: str | None = None,
        role: Role | None = None,
    ) -> Page[User]:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            statement = select(User)
            if role is not None:
                statement = statement.where(User.role == role)
            statement = apply_search(statement, search, User.name, User.email, User.company)
            return paginate(session, statement.order_by(col(User.name).asc()), page, limit)

    def create_user(self, identity: Identity | None, payload: UserCreate) -> User:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            return self._create(session, payload, payload.role)

    def get_user(self, identity: Identity | None, user_id: str) -> User:
        enforce(identity, owner_id=user_id)
        with self._session() as session:
            return self._get_user(session, user_id)

    def update_user(self, identity: Identity | None, user_id: str, payload: UserUpdate) -> User:
        caller = enforce(identity, owner_id=user_id)
        changes: dict[str, Any] = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key not in NON_NULLABLE_FIELDS
        }
        if not changes:
            raise ValidationFailed("No valid fields provided")
        if "role" in changes and not caller.is_admin:
            raise AuthorizationDenied("Only administrators can change roles")

        with self._session() as session:
            user = self._get_user(session, user_id)
            if "role" in changes and changes["role"] != user.role and user.role == Role.ADMIN:
                self._ensure_not_last_admin(session, user, "Cannot demote the last admin user")
            if "email" in changes:
                changes["email"] = _normalize_email(changes["email"])
                self._ensure_email_free(session, changes["email"], exclude_id=user.id)
            if "name" in changes:
                changes["name"] = _require_text(changes["name"], "name")
            if "password" in changes:
                user.password_hash = hash_password(_require_text(changes.pop("password"), "password"))
            for key, value in changes.items():
                setattr(user, key, value)
            user.updated_at = now_utc()
            session.add(user)
            commit_or_raise(session, conflict_message="Email already registered")
            session.refresh(user)
            return user

    def _ensure_not_last_admin(
        self,
        session: Session,
        user: User,
        message: str = "Cannot delete the last admin user",
    ) -> None:
        admin_count = session.exec(select(func.count()).select_from(User).where(User.role == Role.ADMIN)).one()
        if user.role == Role.ADMIN and admin_count <= 1:
            raise ValidationFailed(message)

    def delete_user(self, identity: Identity | None, user_id: str) -> None:
        caller = enforce(identity, required_role=Role.ADMIN)
        if caller.id == user_id:
            raise ValidationFailed("Cannot delete your own account")
        with self._session() as session:
            user = self._get_user(session, user_id)
            self._ensure_not_last_admin(session, user)
            cascade.delete_user(session, user)
            commit_or_raise(session)
        logger.info("user %s deleted by %s", user_id, caller.id)

    def list_customers(
        self,
        identity: Identity | None,
        *,
        page: int,
        limit: int,
        search: str | None = None,
    ) -> tuple[Page[User], dict[str, dict[str, int]]]:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            statement = select(User).where(User.role == Role.CUSTOMER)
            statement = apply_search(statement, search, User.name, User.email, User.company)
            result = paginate(session, statement.order_by(col(User.name).asc()), page, limit)
            ids = [user.id for user in result.items]
            counts: dict[str, dict[str, int]] = {
                user_id: {"project_count": 0, "active_project_count": 0, "testimonial_count": 0}
                for user_id in ids
            }
            if ids:
                projects = session.exec(select(Project).where(col(Project.client_id).in_(ids))).all()
                for project in projects:
                    counts[project.client_id]["project_count"] += 1
                    if project.status == ProjectStatus.ACTIVE:
                        counts[project.client_id]["active_project_count"] += 1
                testimonials = session.exec(select(Testimonial).where(col(Testimonial.client_id).in_(ids))).all()
                for testimonial in testimonials:
                    counts[testimonial.client_id]["testimonial_count"] += 1
            return result, counts

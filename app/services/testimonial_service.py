from __future__ import annotations

from typing import Any

from sqlmodel import Session, col, select

from app.domain.errors import NotFound, ValidationFailed
from app.domain.models import (
    Testimonial,
    TestimonialAdminRead,
    TestimonialCreate,
    TestimonialRead,
    TestimonialUpdate,
    User,
    now_utc,
)
from app.domain.permissions import Identity, Role, enforce
from app.infra.db import commit_or_raise, get_engine

RATING_MIN = 1
RATING_MAX = 5
NON_NULLABLE_FIELDS = {"content", "client_id", "rating", "is_active", "order"}


def _check_rating(rating: int) -> int:
    if not RATING_MIN <= rating <= RATING_MAX:
        raise ValidationFailed(
            "Invalid rating",
            details=f"Rating must be between {RATING_MIN} and {RATING_MAX}",
        )
    return rating


def _public_read(testimonial: Testimonial, client: User | None) -> TestimonialRead:
    return TestimonialRead(
        id=testimonial.id,
        content=testimonial.content,
        rating=testimonial.rating,
        client_name=client.name if client is not None else "Anonymous",
        position=testimonial.position,
        company=testimonial.company or (client.company if client is not None else None),
        created_at=testimonial.created_at,
    )


def _admin_read(testimonial: Testimonial, client: User | None) -> TestimonialAdminRead:
    return TestimonialAdminRead(
        **dict(_public_read(testimonial, client)),
        client_id=testimonial.client_id,
        client_email=client.email if client is not None else "",
        is_active=testimonial.is_active,
        order=testimonial.order,
        updated_at=testimonial.updated_at,
    )


class TestimonialService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_testimonial(self, session: Session, testimonial_id: str) -> Testimonial:
        row = session.get(Testimonial, testimonial_id)
        if row is None:
            raise NotFound("Testimonial not found")
        return row

    @staticmethod
    def _get_client(session: Session, client_id: str) -> User:
        client = session.get(User, client_id)
        if client is None:
            raise NotFound("Client not found")
        return client

    def _list(self, session: Session, *, active_only: bool) -> list[tuple[Testimonial, User]]:
        statement = select(Testimonial, User).join(User, col(User.id) == col(Testimonial.client_id))
        if active_only:
            statement = statement.where(col(Testimonial.is_active).is_(True))
        statement = statement.order_by(col(Testimonial.order).asc(), col(Testimonial.created_at).desc())
        return [(testimonial, client) for testimonial, client in session.exec(statement).all()]

    def list_public(self) -> list[TestimonialRead]:
        with self._session() as session:
            return [_public_read(testimonial, client) for testimonial, client in self._list(session, active_only=True)]

    def list_admin(self, identity: Identity | None) -> list[TestimonialAdminRead]:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            return [_admin_read(testimonial, client) for testimonial, client in self._list(session, active_only=False)]

    def get_testimonial(self, identity: Identity | None, testimonial_id: str) -> TestimonialRead:
        with self._session() as session:
            testimonial = self._get_testimonial(session, testimonial_id)
            client = session.get(User, testimonial.client_id)
            if identity is not None and identity.is_admin:
                return _admin_read(testimonial, client)
            if not testimonial.is_active:
                raise NotFound("Testimonial not found")
            return _public_read(testimonial, client)

    def create_testimonial(self, identity: Identity | None, payload: TestimonialCreate) -> TestimonialAdminRead:
        enforce(identity, required_role=Role.ADMIN)
        content = payload.content.strip()
        if not content:
            raise ValidationFailed("Missing required fields", details="Missing required fields: content")
        _check_rating(payload.rating)
        with self._session() as session:
            client = self._get_client(session, payload.client_id)
            testimonial = Testimonial(
                client_id=client.id,
                content=content,
                rating=payload.rating,
                position=payload.position,
                company=payload.company,
                is_active=payload.is_active,
                order=payload.order,
            )
            session.add(testimonial)
            commit_or_raise(session)
            session.refresh(testimonial)
            return _admin_read(testimonial, client)

    def update_testimonial(
        self, identity: Identity | None, testimonial_id: str, payload: TestimonialUpdate
    ) -> TestimonialAdminRead:
        enforce(identity, required_role=Role.ADMIN)
        changes: dict[str, Any] = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key not in NON_NULLABLE_FIELDS
        }
        if not changes:
            raise ValidationFailed("No valid fields provided")
        if "rating" in changes:
            _check_rating(changes["rating"])
        with self._session() as session:
            testimonial = self._get_testimonial(session, testimonial_id)
            if "client_id" in changes:
                self._get_client(session, changes["client_id"])
            for key, value in changes.items():
                setattr(testimonial, key, value)
            testimonial.updated_at = now_utc()
            session.add(testimonial)
            commit_or_raise(session)
            session.refresh(testimonial)
            return _admin_read(testimonial, session.get(User, testimonial.client_id))

    def delete_testimonial(self, identity: Identity | None, testimonial_id: str) -> None:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            testimonial = self._get_testimonial(session, testimonial_id)
            session.delete(testimonial)
            commit_or_raise(session)

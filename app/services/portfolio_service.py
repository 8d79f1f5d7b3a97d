from __future__ import annotations

from typing import Any

from sqlmodel import Session, col, select

from app.domain.errors import NotFound, ValidationFailed
from app.domain.models import (
    PortfolioCategory,
    PortfolioItem,
    PortfolioItemCreate,
    PortfolioItemUpdate,
    now_utc,
)
from app.domain.permissions import Identity, Role, enforce
from app.infra.db import commit_or_raise, get_engine

NON_NULLABLE_FIELDS = {"title", "description", "category", "technologies", "features", "tags", "order"}
CATEGORY_CHOICES = ", ".join(category.value for category in PortfolioCategory)


def parse_category(value: str) -> PortfolioCategory:
    try:
        return PortfolioCategory(value.strip().upper())
    except ValueError as exc:
        raise ValidationFailed(
            "Invalid category",
            details=f"Category must be one of: {CATEGORY_CHOICES}",
        ) from exc


class PortfolioService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_item(self, session: Session, item_id: str) -> PortfolioItem:
        row = session.get(PortfolioItem, item_id)
        if row is None:
            raise NotFound("Portfolio item not found")
        return row

    def list_items(self) -> list[PortfolioItem]:
        with self._session() as session:
            return list(
                session.exec(
                    select(PortfolioItem).order_by(
                        col(PortfolioItem.order).asc(), col(PortfolioItem.created_at).desc()
                    )
                ).all()
            )

    def create_item(self, identity: Identity | None, payload: PortfolioItemCreate) -> PortfolioItem:
        enforce(identity, required_role=Role.ADMIN)
        missing = [
            name for name, value in (("title", payload.title), ("description", payload.description)) if not value.strip()
        ]
        if missing:
            raise ValidationFailed("Missing required fields", details=f"Missing required fields: {', '.join(missing)}")
        item = PortfolioItem(
            title=payload.title.strip(),
            description=payload.description.strip(),
            category=parse_category(payload.category),
            image_url=payload.image_url,
            demo_url=payload.demo_url,
            github_url=payload.github_url,
            technologies=payload.technologies,
            features=payload.features,
            tags=payload.tags,
            order=payload.order,
        )
        with self._session() as session:
            session.add(item)
            commit_or_raise(session)
            session.refresh(item)
            return item

    def update_item(self, identity: Identity | None, item_id: str, payload: PortfolioItemUpdate) -> PortfolioItem:
        enforce(identity, required_role=Role.ADMIN)
        changes: dict[str, Any] = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key not in NON_NULLABLE_FIELDS
        }
        if not changes:
            raise ValidationFailed("No valid fields provided for update.")
        if "category" in changes:
            changes["category"] = parse_category(changes["category"])
        with self._session() as session:
            item = self._get_item(session, item_id)
            for key, value in changes.items():
                setattr(item, key, value)
            item.updated_at = now_utc()
            session.add(item)
            commit_or_raise(session)
            session.refresh(item)
            return item

    def delete_item(self, identity: Identity | None, item_id: str) -> None:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            item = self._get_item(session, item_id)
            session.delete(item)
            commit_or_raise(session)

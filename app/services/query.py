"""Ownership scoping, search and pagination for collection reads."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import func, or_
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, select
from sqlmodel.sql.expression import SelectOfScalar

from app.domain.models import PaginationRead
from app.domain.permissions import Identity

T = TypeVar("T")

DEFAULT_LIMITS: dict[str, int] = {
    "customers": 10,
    "contact": 20,
    "conversations": 20,
    "invoices": 20,
    "projects": 20,
    "tasks": 20,
    "users": 20,
}


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> PaginationRead:
        return PaginationRead(total=self.total, page=self.page, limit=self.limit, pages=self.pages)


def scope(identity: Identity, statement: SelectOfScalar[T], owner_column: Any) -> SelectOfScalar[T]:
    """Restrict ``statement`` to rows owned by a non-admin caller.

    Callers add their own filters afterwards; those are AND-ed and can
    never drop the ownership predicate.
    """
    if identity.is_admin:
        return statement
    return statement.where(owner_column == identity.id)


def search_clause(term: str | None, *columns: Any) -> ColumnElement[bool] | None:
    if term is None or not term.strip():
        return None
    pattern = f"%{term.strip().lower()}%"
    return or_(*(func.lower(column).like(pattern) for column in columns))


def apply_search(statement: SelectOfScalar[T], term: str | None, *columns: Any) -> SelectOfScalar[T]:
    clause = search_clause(term, *columns)
    if clause is None:
        return statement
    return statement.where(clause)


def paginate(session: Session, statement: SelectOfScalar[T], page: int, limit: int) -> Page[T]:
    count_statement = select(func.count()).select_from(statement.order_by(None).subquery())
    total = session.exec(count_statement).one()
    rows = session.exec(statement.offset((page - 1) * limit).limit(limit)).all()
    return Page(items=list(rows), total=int(total), page=page, limit=limit)

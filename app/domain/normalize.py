"""Wire-format helpers shared by every read model."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT: dict[str, str] = {"id": "unknown", "name": "Unknown Customer", "email": ""}


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def progress(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    # round half up: 12.5 -> 13
    return (200 * completed + total) // (2 * total)


def client_ref(user: Any, *, context: str) -> dict[str, str]:
    if user is None:
        logger.warning("data integrity: unresolved reference to project owner (%s)", context)
        return dict(UNKNOWN_CLIENT)
    return {"id": user.id, "name": user.name, "email": user.email}


def _upper(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


def _split_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


IsoDatetime = Annotated[datetime, PlainSerializer(iso, return_type=str)]
LowerEnum = Annotated[str, PlainSerializer(lambda value: str(value).lower(), return_type=str)]
UpperInput = BeforeValidator(_upper)
StringList = Annotated[list[str], BeforeValidator(_split_list)]

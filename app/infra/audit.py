from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.domain.models import AuditLog
from app.infra.db import engine

logger = logging.getLogger(__name__)

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
HEALTH_PATHS = {"/healthz", "/readyz"}
OUTCOMES = {401: "unauthenticated", 403: "forbidden", 404: "not_found"}


@dataclass
class AuditNote:
    """What a handler wants recorded beyond the request line."""

    action: str | None = None
    resource: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


def _merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        current = merged.get(key)
        merged[key] = _merge(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return merged


def outcome_for(status_code: int) -> str:
    if status_code >= 500:
        return "failed"
    if status_code >= 400:
        return OUTCOMES.get(status_code, "rejected")
    return "ok"


def is_audited(method: str, path: str, status_code: int) -> bool:
    """Writes and access denials are recorded; health checks never are."""
    if path in HEALTH_PATHS:
        return False
    return method in WRITE_METHODS or status_code in (401, 403)


def annotate_audit(
    request: Request,
    *,
    action: str | None = None,
    resource: str | None = None,
    detail: dict[str, Any] | None = None,
) -> None:
    note = getattr(request.state, "audit_note", None)
    if not isinstance(note, AuditNote):
        note = AuditNote()
        request.state.audit_note = note
    if action is not None:
        note.action = action
    if resource is not None:
        note.resource = resource
    if detail:
        note.detail = _merge(note.detail, detail)


def record(entry: AuditLog) -> None:
    with Session(engine) as session:
        session.add(entry)
        session.commit()


class AuditMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        method = request.method
        path = request.url.path
        note = getattr(request.state, "audit_note", None)
        if not isinstance(note, AuditNote):
            if not is_audited(method, path, response.status_code):
                return response
            note = AuditNote()

        identity = getattr(request.state, "identity", None)
        actor_id = identity.id if identity is not None else None
        actor_role = str(identity.role) if identity is not None else None
        route = getattr(request.scope.get("route"), "path", path)
        detail = _merge(
            {
                "actor": {"id": actor_id, "role": actor_role},
                "request": {
                    "route": route,
                    "query": request.url.query,
                    "client_ip": request.client.host if request.client is not None else None,
                },
                "outcome": outcome_for(response.status_code),
            },
            note.detail,
        )
        entry = AuditLog(
            actor_id=actor_id,
            actor_role=actor_role,
            action=note.action or f"{method} {route}",
            resource=note.resource or path,
            method=method,
            status_code=response.status_code,
            detail=detail,
        )
        try:
            record(entry)
        except Exception:
            # best effort
            logger.exception("audit write failed for %s %s", method, path)
        return response

from __future__ import annotations

import logging

from sqlmodel import Session, col, select

from app.domain.errors import NotFound, ValidationFailed
from app.domain.models import ContactCreate, ContactSubmission
from app.domain.permissions import Identity, Role, enforce
from app.infra.db import commit_or_raise, get_engine
from app.services.query import Page, apply_search, paginate

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "email", "message")


class ContactService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_submission(self, session: Session, submission_id: str) -> ContactSubmission:
        row = session.get(ContactSubmission, submission_id)
        if row is None:
            raise NotFound("Contact submission not found")
        return row

    def submit(self, identity: Identity | None, payload: ContactCreate) -> ContactSubmission:
        values = {name: getattr(payload, name).strip() for name in REQUIRED_FIELDS}
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ValidationFailed(
                "Missing required fields",
                details=f"Required fields: {', '.join(REQUIRED_FIELDS)}; missing: {', '.join(missing)}",
            )
        submission = ContactSubmission(
            name=values["name"],
            email=values["email"],
            message=values["message"],
            subject=payload.subject,
            phone=payload.phone,
            user_id=identity.id if identity is not None else None,
        )
        with self._session() as session:
            session.add(submission)
            commit_or_raise(session)
            session.refresh(submission)
        logger.info("contact submission %s received", submission.id)
        return submission

    def list_submissions(
        self,
        identity: Identity | None,
        *,
        page: int,
        limit: int,
        search: str | None = None,
        read: bool | None = None,
    ) -> Page[ContactSubmission]:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            statement = select(ContactSubmission)
            if read is not None:
                statement = statement.where(col(ContactSubmission.read).is_(read))
            statement = apply_search(
                statement,
                search,
                ContactSubmission.name,
                ContactSubmission.email,
                ContactSubmission.message,
            )
            return paginate(session, statement.order_by(col(ContactSubmission.created_at).desc()), page, limit)

    def set_read(self, identity: Identity | None, submission_id: str, read: bool) -> ContactSubmission:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            submission = self._get_submission(session, submission_id)
            submission.read = read
            session.add(submission)
            commit_or_raise(session)
            return submission

    def delete_submission(self, identity: Identity | None, submission_id: str) -> None:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            submission = self._get_submission(session, submission_id)
            session.delete(submission)
            commit_or_raise(session)

from __future__ import annotations

from sqlmodel import Session

from app.domain.errors import ValidationFailed
from app.domain.models import (
    SITE_CONFIGURATION_ID,
    SiteConfiguration,
    SiteConfigurationRead,
    SiteConfigurationUpdate,
    now_utc,
)
from app.domain.permissions import Identity, Role, enforce
from app.infra.db import commit_or_raise, get_engine


class SiteConfigurationService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def get_configuration(self) -> SiteConfigurationRead:
        with self._session() as session:
            row = session.get(SiteConfiguration, SITE_CONFIGURATION_ID)
        if row is None:
            return SiteConfigurationRead(id=SITE_CONFIGURATION_ID)
        return SiteConfigurationRead.model_validate(row)

    def update_configuration(
        self, identity: Identity | None, payload: SiteConfigurationUpdate
    ) -> SiteConfigurationRead:
        enforce(identity, required_role=Role.ADMIN)
        changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
        if not changes:
            raise ValidationFailed("No valid fields provided")
        with self._session() as session:
            row = session.get(SiteConfiguration, SITE_CONFIGURATION_ID)
            if row is None:
                row = SiteConfiguration(id=SITE_CONFIGURATION_ID)
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = now_utc()
            session.add(row)
            commit_or_raise(session)
            session.refresh(row)
            return SiteConfigurationRead.model_validate(row)

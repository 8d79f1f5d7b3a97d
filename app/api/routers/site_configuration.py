from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.api.deps import OptionalIdentity, require_admin
from app.domain.models import SiteConfigurationRead, SiteConfigurationUpdate
from app.infra.audit import annotate_audit
from app.services.site_configuration_service import SiteConfigurationService

router = APIRouter()


def get_site_configuration_service() -> SiteConfigurationService:
    return SiteConfigurationService()


Service = Annotated[SiteConfigurationService, Depends(get_site_configuration_service)]


@router.get("", response_model=SiteConfigurationRead)
def get_site_configuration(service: Service) -> SiteConfigurationRead:
    return service.get_configuration()


@router.put("", response_model=SiteConfigurationRead, dependencies=[Depends(require_admin)])
def update_site_configuration(
    payload: SiteConfigurationUpdate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> SiteConfigurationRead:
    configuration = service.update_configuration(identity, payload)
    annotate_audit(
        request,
        action="site_configuration.update",
        detail={"target": {"fields": sorted(payload.model_fields_set)}},
    )
    return configuration

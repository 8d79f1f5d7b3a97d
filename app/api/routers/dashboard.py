from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import OptionalIdentity, require_admin, require_identity
from app.domain.models import ActivityList, AdminStatsRead, CustomerStatsRead, MarkReadRead, NotificationList
from app.services.dashboard_service import DashboardService

router = APIRouter()


def get_dashboard_service() -> DashboardService:
    return DashboardService()


Service = Annotated[DashboardService, Depends(get_dashboard_service)]


@router.get("/admin/stats", response_model=AdminStatsRead, dependencies=[Depends(require_admin)])
def admin_stats(identity: OptionalIdentity, service: Service) -> AdminStatsRead:
    return service.admin_stats(identity)


@router.get("/admin/activities", response_model=ActivityList, dependencies=[Depends(require_admin)])
def admin_activities(identity: OptionalIdentity, service: Service) -> ActivityList:
    return ActivityList(activities=service.admin_activities(identity))


@router.get("/customer/stats", response_model=CustomerStatsRead, dependencies=[Depends(require_identity)])
def customer_stats(identity: OptionalIdentity, service: Service) -> CustomerStatsRead:
    return service.customer_stats(identity)


@router.get("/customer/activities", response_model=ActivityList, dependencies=[Depends(require_identity)])
def customer_activities(identity: OptionalIdentity, service: Service) -> ActivityList:
    return ActivityList(activities=service.customer_activities(identity))


@router.get("/customer/notifications", response_model=NotificationList, dependencies=[Depends(require_identity)])
def customer_notifications(identity: OptionalIdentity, service: Service) -> NotificationList:
    return NotificationList(notifications=service.customer_notifications(identity))


@router.post(
    "/customer/notifications/messages/{conversation_id}/read",
    response_model=MarkReadRead,
    dependencies=[Depends(require_identity)],
)
def mark_message_notification_read(conversation_id: str, identity: OptionalIdentity, service: Service) -> MarkReadRead:
    return MarkReadRead(updated=service.mark_message_notification_read(identity, conversation_id))

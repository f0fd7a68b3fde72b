from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from apps.api.dependencies.auth import CurrentActor
from apps.api.dependencies.services import NotificationLedgerDep
from apps.api.services.models import Notification

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationModel(BaseModel):
    id: int
    title: str
    message: str
    link: str | None = None
    is_read: bool
    created_at: str

    @classmethod
    def from_entity(cls, entity: Notification) -> "NotificationModel":
        return cls(
            id=entity.id,
            title=entity.title,
            message=entity.message,
            link=entity.link,
            is_read=entity.is_read,
            created_at=entity.created_at.isoformat(),
        )


class UnreadCountModel(BaseModel):
    unread: int


class MarkAllReadModel(BaseModel):
    updated: int


@router.get("", response_model=list[NotificationModel], summary="Caller's notifications, newest first")
async def list_notifications(ledger: NotificationLedgerDep, actor: CurrentActor) -> list[NotificationModel]:
    notifications = await ledger.list_notifications(actor)
    return [NotificationModel.from_entity(item) for item in notifications]


@router.get("/unread-count", response_model=UnreadCountModel)
async def unread_count(ledger: NotificationLedgerDep, actor: CurrentActor) -> UnreadCountModel:
    return UnreadCountModel(unread=await ledger.unread_count(actor))


@router.post("/read-all", response_model=MarkAllReadModel)
async def mark_all_read(ledger: NotificationLedgerDep, actor: CurrentActor) -> MarkAllReadModel:
    return MarkAllReadModel(updated=await ledger.mark_all_read(actor))


@router.post("/{notification_id}/read", status_code=204)
async def mark_read(notification_id: int, ledger: NotificationLedgerDep, actor: CurrentActor) -> None:
    await ledger.mark_read(actor, notification_id)

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from apps.api.services.notifications import NotificationLedger
from apps.api.services.tickets import TicketService


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not available")
    return service


async def get_notification_ledger(request: Request) -> NotificationLedger:
    ledger = getattr(request.app.state, "notification_ledger", None)
    if ledger is None:
        raise HTTPException(status_code=503, detail="Notification ledger is not available")
    return ledger


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
NotificationLedgerDep = Annotated[NotificationLedger, Depends(get_notification_ledger)]

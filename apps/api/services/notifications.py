"""Notification fan-out and the per-recipient read/unread ledger."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Sequence

from opentelemetry import trace
from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from apps.api.core.clock import Clock, SystemClock, ensure_utc
from apps.api.metrics import NOTIFICATIONS_CREATED, MetricsRegistry, metrics_registry
from packages.db.models import NotificationTable

from .authorization import Actor, Role
from .errors import NotificationNotFoundError
from .models import Notification, Ticket
from .users import UserDirectory

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)


def resolve_recipients(
    *,
    admin_ids: Iterable[str],
    owner_id: str | None,
    assigned_to_id: str | None,
    actor_id: str | None,
) -> list[str]:
    """Admins, then owner, then assignee; deduplicated, minus the actor.

    ``actor_id`` of ``None`` marks a system-initiated event, in which case
    nobody is excluded.
    """

    candidates: list[str] = [*admin_ids]
    if owner_id:
        candidates.append(owner_id)
    if assigned_to_id:
        candidates.append(assigned_to_id)

    recipients = list(dict.fromkeys(candidates))
    if actor_id is not None:
        recipients = [recipient for recipient in recipients if recipient != actor_id]
    return recipients


class NotificationRepository:
    """Persistence helper wrapping the `notifications` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_many(
        self,
        recipients: Sequence[str],
        *,
        title: str,
        message: str,
        link: str | None,
        created_at: datetime,
    ) -> list[Notification]:
        """Insert one row per recipient in a single transaction."""

        rows = [
            NotificationTable(
                recipient_id=recipient,
                title=title,
                message=message,
                link=link,
                is_read=False,
                created_at=created_at,
            )
            for recipient in recipients
        ]
        if not rows:
            return []
        async with self._session_factory() as session:
            async with session.begin():
                session.add_all(rows)
                await session.flush()
                return [self._table_to_notification(row) for row in rows]

    async def list_for_recipient(self, recipient_id: str) -> list[Notification]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationTable)
                .where(NotificationTable.recipient_id == recipient_id)
                .order_by(NotificationTable.created_at.desc(), NotificationTable.id.desc())
            )
            return [self._table_to_notification(row) for row in result.scalars().all()]

    async def mark_read(self, recipient_id: str, notification_id: int) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(NotificationTable).where(
                        NotificationTable.id == notification_id,
                        NotificationTable.recipient_id == recipient_id,
                    )
                )
                row = result.scalars().first()
                if row is None:
                    return False
                row.is_read = True
        return True

    async def mark_all_read(self, recipient_id: str) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(NotificationTable)
                    .where(
                        NotificationTable.recipient_id == recipient_id,
                        NotificationTable.is_read.is_(False),
                    )
                    .values(is_read=True)
                )
        return int(result.rowcount or 0)

    async def count_unread(self, recipient_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(NotificationTable)
                .where(
                    NotificationTable.recipient_id == recipient_id,
                    NotificationTable.is_read.is_(False),
                )
            )
            return int(result.scalar_one())

    @staticmethod
    def _table_to_notification(row: NotificationTable) -> Notification:
        return Notification(
            id=int(row.id),
            recipient_id=row.recipient_id,
            title=row.title,
            message=row.message,
            link=row.link,
            is_read=bool(row.is_read),
            created_at=ensure_utc(row.created_at),
        )


class NotificationFanout:
    """Write one notification per interested party for a ticket event."""

    def __init__(
        self,
        repository: NotificationRepository,
        directory: UserDirectory,
        *,
        clock: Clock | None = None,
        registry: MetricsRegistry | None = None,
    ) -> None:
        self._repository = repository
        self._directory = directory
        self._clock = clock or SystemClock()
        self._created = (registry or metrics_registry).counter(NOTIFICATIONS_CREATED)

    async def recipients_for(self, ticket: Ticket, *, actor_id: str | None) -> list[str]:
        admin_ids = await self._directory.list_actor_ids_with_role(Role.ADMIN)
        return resolve_recipients(
            admin_ids=admin_ids,
            owner_id=ticket.owner_id,
            assigned_to_id=ticket.assigned_to_id,
            actor_id=actor_id,
        )

    async def publish(
        self,
        ticket: Ticket,
        *,
        actor_id: str | None,
        title: str,
        message: str,
        link: str | None = None,
    ) -> list[Notification]:
        """Fan out to the resolved recipients. ``ticket`` must be the post-mutation state."""

        with _tracer.start_as_current_span("notifications.fanout") as span:
            span.set_attribute("helpdesk.ticket_id", ticket.id)
            recipients = await self.recipients_for(ticket, actor_id=actor_id)
            span.set_attribute("helpdesk.recipients", len(recipients))
            if not recipients:
                return []
            created = await self._repository.add_many(
                recipients,
                title=title,
                message=message,
                link=link,
                created_at=self._clock.now(),
            )
        self._created.inc(len(created))
        logger.debug("Fan-out for ticket %s wrote %d notifications", ticket.id, len(created))
        return created


class NotificationLedger:
    """Read side of the notifications for the acting recipient."""

    def __init__(self, repository: NotificationRepository) -> None:
        self._repository = repository

    async def list_notifications(self, actor: Actor) -> list[Notification]:
        return await self._repository.list_for_recipient(actor.id)

    async def mark_read(self, actor: Actor, notification_id: int) -> None:
        # Someone else's notification is reported exactly like a missing one.
        if not await self._repository.mark_read(actor.id, notification_id):
            raise NotificationNotFoundError(f"Notification {notification_id} not found")

    async def mark_all_read(self, actor: Actor) -> int:
        return await self._repository.mark_all_read(actor.id)

    async def unread_count(self, actor: Actor) -> int:
        return await self._repository.count_unread(actor.id)

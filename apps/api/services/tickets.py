from __future__ import annotations

import logging
import unicodedata
from datetime import datetime
from typing import Callable, Sequence

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from apps.api.core.clock import Clock, SystemClock, ensure_utc
from apps.api.metrics import (
    FANOUT_FAILURES,
    TICKET_TRANSITIONS,
    TICKETS_CREATED,
    MetricsRegistry,
    metrics_registry,
)
from packages.db.models import CategoryTable, PriorityTable, TicketCommentTable, TicketTable

from . import authorization as authz
from .authorization import Actor, Role
from .errors import ForbiddenError, TicketNotFoundError, ValidationError
from .models import Category, Priority, Ticket, TicketComment, TicketDetail
from .notifications import NotificationFanout
from .users import UserDirectory

logger = logging.getLogger(__name__)

INITIAL_STATUS = "New"
DEFAULT_PRIORITY_NAMES: tuple[str, ...] = ("Medium", "Średni")

TITLE_MAX_LENGTH = 200
STATUS_MAX_LENGTH = 100
COMMENT_MAX_LENGTH = 1000
NOTIFICATION_MESSAGE_MAX_LENGTH = 1000
COMMENT_PREVIEW_LENGTH = 200


def fold_name(value: str) -> str:
    """Case- and accent-insensitive key: ``"Średni"`` and ``"sredni"`` compare equal."""

    decomposed = unicodedata.normalize("NFKD", value or "")
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return stripped.casefold().strip()


def select_default_priority(
    priorities: Sequence[Priority], preferred_names: Sequence[str]
) -> Priority | None:
    """Pick the configured default priority, else the lowest id, else ``None``."""

    if not priorities:
        return None
    wanted = {fold_name(name) for name in preferred_names}
    for priority in sorted(priorities, key=lambda item: item.id):
        if fold_name(priority.name) in wanted:
            return priority
    return min(priorities, key=lambda item: item.id)


def _assignee_guard(actor: Actor) -> str | None:
    """Assignee the write must still match; admins act regardless of assignment."""

    return None if actor.is_admin else actor.id


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


class TicketRepository:
    """Persistence helper wrapping `tickets`, `ticket_comments` and reference data."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def create_ticket(
        self,
        *,
        title: str,
        description: str,
        category_id: int,
        priority_id: int,
        status: str,
        owner_id: str,
        created_at: datetime,
    ) -> Ticket:
        row = TicketTable(
            title=title,
            description=description,
            category_id=category_id,
            priority_id=priority_id,
            status=status,
            owner_id=owner_id,
            assigned_to_id=None,
            created_at=created_at,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
                await session.flush()
                return self._table_to_ticket(row)

    async def get_ticket(self, ticket_id: int) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def list_tickets(self, *, owner_id: str | None = None) -> list[Ticket]:
        statement = select(TicketTable)
        if owner_id is not None:
            statement = statement.where(TicketTable.owner_id == owner_id)
        statement = statement.order_by(TicketTable.created_at.desc(), TicketTable.id.desc())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def update_content(
        self, ticket_id: int, *, title: str, description: str, category_id: int
    ) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            row.title = title
            row.description = description
            row.category_id = category_id
            await session.commit()
            await session.refresh(row)
            return self._table_to_ticket(row)

    async def update_status(self, ticket_id: int, status: str, *, assignee_id: str | None = None) -> bool:
        """Set the status; with ``assignee_id`` only while that actor still holds the ticket."""

        return await self._guarded_update(ticket_id, {"status": status}, assignee_id=assignee_id)

    async def update_priority(
        self, ticket_id: int, priority_id: int, *, assignee_id: str | None = None
    ) -> bool:
        return await self._guarded_update(ticket_id, {"priority_id": priority_id}, assignee_id=assignee_id)

    async def _guarded_update(
        self, ticket_id: int, values: dict[str, object], *, assignee_id: str | None
    ) -> bool:
        statement = update(TicketTable).where(TicketTable.id == ticket_id)
        if assignee_id is not None:
            statement = statement.where(TicketTable.assigned_to_id == assignee_id)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    statement.values(**values).execution_options(synchronize_session=False)
                )
        return result.rowcount == 1

    async def assign(self, ticket_id: int, assignee_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            row.assigned_to_id = assignee_id
            await session.commit()
            await session.refresh(row)
            return self._table_to_ticket(row)

    async def claim(self, ticket_id: int, assignee_id: str) -> bool:
        """Compare-and-swap: assign only while the ticket is unassigned."""

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(TicketTable)
                    .where(TicketTable.id == ticket_id, TicketTable.assigned_to_id.is_(None))
                    .values(assigned_to_id=assignee_id)
                    .execution_options(synchronize_session=False)
                )
        return result.rowcount == 1

    async def delete_ticket(self, ticket_id: int) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(TicketTable, ticket_id, with_for_update=True)
                if row is None:
                    return False
                # SQLite only honours ON DELETE CASCADE with foreign_keys=ON.
                await session.execute(
                    delete(TicketCommentTable).where(TicketCommentTable.ticket_id == ticket_id)
                )
                await session.delete(row)
        return True

    async def add_comment(
        self, *, ticket_id: int, author_id: str, content: str, created_at: datetime
    ) -> TicketComment | None:
        """Insert a comment, or return ``None`` when the ticket no longer exists."""

        row = TicketCommentTable(
            ticket_id=ticket_id,
            author_id=author_id,
            content=content,
            created_at=created_at,
        )
        async with self._session_factory() as session:
            async with session.begin():
                # Row lock keeps a concurrent delete from slipping in before the insert.
                if await session.get(TicketTable, ticket_id, with_for_update=True) is None:
                    return None
                session.add(row)
                await session.flush()
                return self._table_to_comment(row)

    async def get_comment(self, comment_id: int) -> TicketComment | None:
        async with self._session_factory() as session:
            row = await session.get(TicketCommentTable, comment_id)
            if row is None:
                return None
            return self._table_to_comment(row)

    async def list_comments(self, ticket_id: int) -> list[TicketComment]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketCommentTable)
                .where(TicketCommentTable.ticket_id == ticket_id)
                .order_by(TicketCommentTable.created_at.asc(), TicketCommentTable.id.asc())
            )
            return [self._table_to_comment(row) for row in result.scalars().all()]

    async def add_priority(self, name: str) -> Priority:
        async with self._session_factory() as session:
            async with session.begin():
                row = PriorityTable(name=name)
                session.add(row)
                await session.flush()
                return Priority(id=int(row.id), name=row.name)

    async def get_priority(self, priority_id: int) -> Priority | None:
        async with self._session_factory() as session:
            row = await session.get(PriorityTable, priority_id)
            if row is None:
                return None
            return Priority(id=int(row.id), name=row.name)

    async def list_priorities(self) -> list[Priority]:
        async with self._session_factory() as session:
            result = await session.execute(select(PriorityTable).order_by(PriorityTable.id.asc()))
            return [Priority(id=int(row.id), name=row.name) for row in result.scalars().all()]

    async def add_category(self, name: str) -> Category:
        async with self._session_factory() as session:
            async with session.begin():
                row = CategoryTable(name=name)
                session.add(row)
                await session.flush()
                return Category(id=int(row.id), name=row.name)

    async def get_category(self, category_id: int) -> Category | None:
        async with self._session_factory() as session:
            row = await session.get(CategoryTable, category_id)
            if row is None:
                return None
            return Category(id=int(row.id), name=row.name)

    async def list_categories(self) -> list[Category]:
        async with self._session_factory() as session:
            result = await session.execute(select(CategoryTable).order_by(CategoryTable.name.asc()))
            return [Category(id=int(row.id), name=row.name) for row in result.scalars().all()]

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=int(row.id),
            title=row.title,
            description=row.description,
            category_id=row.category_id,
            priority_id=row.priority_id,
            status=row.status,
            owner_id=row.owner_id,
            assigned_to_id=row.assigned_to_id,
            created_at=ensure_utc(row.created_at),
        )

    @staticmethod
    def _table_to_comment(row: TicketCommentTable) -> TicketComment:
        return TicketComment(
            id=int(row.id),
            ticket_id=row.ticket_id,
            author_id=row.author_id,
            content=row.content,
            created_at=ensure_utc(row.created_at),
        )


class TicketService:
    """Guarded ticket transitions followed by notification fan-out.

    Each operation loads the ticket as currently persisted, evaluates the
    relevant predicate from :mod:`.authorization`, applies a single-field
    write and only then notifies, using the committed ticket. Outcomes are
    raised as :class:`TicketNotFoundError`, :class:`ForbiddenError` or
    :class:`ValidationError`.
    """

    def __init__(
        self,
        repository: TicketRepository,
        directory: UserDirectory,
        *,
        fanout: NotificationFanout | None = None,
        clock: Clock | None = None,
        initial_status: str = INITIAL_STATUS,
        default_priority_names: Sequence[str] = DEFAULT_PRIORITY_NAMES,
        registry: MetricsRegistry | None = None,
    ) -> None:
        self._repository = repository
        self._directory = directory
        self._fanout = fanout
        self._clock = clock or SystemClock()
        self._initial_status = initial_status
        self._default_priority_names = tuple(default_priority_names)
        registry = registry or metrics_registry
        self._created = registry.counter(TICKETS_CREATED)
        self._transitions = registry.counter(TICKET_TRANSITIONS, label_names=("action",))
        self._fanout_failures = registry.counter(FANOUT_FAILURES, label_names=("event",))

    async def create_ticket(
        self, actor: Actor, *, title: str, description: str, category_id: int
    ) -> Ticket:
        title, description = await self._validate_content(title, description, category_id)

        priorities = await self._repository.list_priorities()
        priority = select_default_priority(priorities, self._default_priority_names)
        if priority is None:
            raise ValidationError("No priorities are configured; an administrator must add one")

        ticket = await self._repository.create_ticket(
            title=title,
            description=description,
            category_id=category_id,
            priority_id=priority.id,
            status=self._initial_status,
            owner_id=actor.id,
            created_at=self._clock.now(),
        )
        self._created.inc()
        logger.info("Ticket %s created by %s", ticket.id, actor.id)
        return ticket

    async def get_ticket(self, actor: Actor, ticket_id: int) -> TicketDetail:
        ticket = await self._load_for(actor, ticket_id, authz.can_view, "view")
        comments = await self._repository.list_comments(ticket.id)
        return TicketDetail(ticket=ticket, comments=comments)

    async def list_tickets(self, actor: Actor) -> list[Ticket]:
        return await self._repository.list_tickets(owner_id=authz.visible_owner_filter(actor))

    async def list_priorities(self) -> list[Priority]:
        return await self._repository.list_priorities()

    async def list_categories(self) -> list[Category]:
        return await self._repository.list_categories()

    async def edit_ticket_content(
        self,
        actor: Actor,
        ticket_id: int,
        *,
        title: str,
        description: str,
        category_id: int,
    ) -> Ticket:
        await self._load_for(actor, ticket_id, authz.can_edit_content, "edit")
        title, description = await self._validate_content(title, description, category_id)

        updated = await self._repository.update_content(
            ticket_id, title=title, description=description, category_id=category_id
        )
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        self._transitions.inc(labels={"action": "edit"})
        return updated

    async def change_status(self, actor: Actor, ticket_id: int, *, status: str) -> Ticket:
        label = (status or "").strip()
        if not label:
            raise ValidationError("Status must not be empty")
        if len(label) > STATUS_MAX_LENGTH:
            raise ValidationError(f"Status must be at most {STATUS_MAX_LENGTH} characters")

        current = await self._load_for(
            actor, ticket_id, authz.can_change_status_or_priority, "change the status of"
        )
        if not await self._repository.update_status(ticket_id, label, assignee_id=_assignee_guard(actor)):
            await self._raise_lost_guard(actor, ticket_id, "change the status of")
        updated = await self._load(ticket_id)
        self._transitions.inc(labels={"action": "status"})
        logger.info("Ticket %s status %r -> %r by %s", ticket_id, current.status, label, actor.id)

        await self._notify(
            "status",
            updated,
            actor,
            title=f"Ticket #{updated.id} status changed",
            message=f'Status of "{updated.title}" changed from "{current.status}" to "{label}".',
        )
        return updated

    async def change_priority(self, actor: Actor, ticket_id: int, *, priority_id: int) -> Ticket:
        await self._load_for(
            actor, ticket_id, authz.can_change_status_or_priority, "change the priority of"
        )
        priority = await self._repository.get_priority(priority_id)
        if priority is None:
            raise ValidationError(f"Priority {priority_id} does not exist")

        if not await self._repository.update_priority(
            ticket_id, priority.id, assignee_id=_assignee_guard(actor)
        ):
            await self._raise_lost_guard(actor, ticket_id, "change the priority of")
        updated = await self._load(ticket_id)
        self._transitions.inc(labels={"action": "priority"})

        await self._notify(
            "priority",
            updated,
            actor,
            title=f"Ticket #{updated.id} priority changed",
            message=f'Priority of "{updated.title}" set to "{priority.name}".',
        )
        return updated

    async def assign_to_support(
        self, actor: Actor, ticket_id: int, *, support_actor_id: str
    ) -> Ticket:
        await self._load(ticket_id)
        if not authz.can_assign_arbitrary(actor):
            raise ForbiddenError(f"{actor.id} may not assign ticket {ticket_id}")
        if not await self._directory.has_role(support_actor_id, Role.SUPPORT):
            raise ValidationError(f"{support_actor_id} does not hold the support role")

        updated = await self._repository.assign(ticket_id, support_actor_id)
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        self._transitions.inc(labels={"action": "assign"})
        logger.info("Ticket %s assigned to %s by %s", ticket_id, support_actor_id, actor.id)

        await self._notify(
            "assign",
            updated,
            actor,
            title=f"Ticket #{updated.id} assigned",
            message=f'"{updated.title}" was assigned to {support_actor_id}.',
        )
        return updated

    async def take_ticket(self, actor: Actor, ticket_id: int) -> Ticket:
        current = await self._load_for(actor, ticket_id, authz.can_self_assign, "take")
        if current.assigned_to_id == actor.id:
            return current

        if not await self._repository.claim(ticket_id, actor.id):
            # Lost the race: report against whatever is persisted now.
            latest = await self._load(ticket_id)
            if not authz.can_self_assign(actor, latest):
                raise ForbiddenError(f"Ticket {ticket_id} is already assigned to {latest.assigned_to_id}")
            return latest

        updated = await self._load(ticket_id)
        self._transitions.inc(labels={"action": "take"})
        logger.info("Ticket %s taken by %s", ticket_id, actor.id)

        await self._notify(
            "assign",
            updated,
            actor,
            title=f"Ticket #{updated.id} assigned",
            message=f'{actor.id} took "{updated.title}".',
        )
        return updated

    async def delete_ticket(self, actor: Actor, ticket_id: int) -> None:
        await self._load_for(actor, ticket_id, authz.can_delete, "delete")
        if not await self._repository.delete_ticket(ticket_id):
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        self._transitions.inc(labels={"action": "delete"})
        logger.info("Ticket %s deleted by %s", ticket_id, actor.id)

    async def add_comment(self, actor: Actor, ticket_id: int, *, content: str) -> TicketComment:
        text = (content or "").strip()
        if not text:
            raise ValidationError("Comment must not be empty")
        if len(text) > COMMENT_MAX_LENGTH:
            raise ValidationError(f"Comment must be at most {COMMENT_MAX_LENGTH} characters")

        ticket = await self._load_for(actor, ticket_id, authz.can_comment, "comment on")
        comment = await self._repository.add_comment(
            ticket_id=ticket.id,
            author_id=actor.id,
            content=text,
            created_at=self._clock.now(),
        )
        if comment is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        self._transitions.inc(labels={"action": "comment"})

        await self._notify(
            "comment",
            ticket,
            actor,
            title=f"New comment on ticket #{ticket.id}",
            message=f'{actor.id} commented on "{ticket.title}": '
            + _truncate(text, COMMENT_PREVIEW_LENGTH),
        )
        return comment

    async def _load(self, ticket_id: int) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def _load_for(
        self,
        actor: Actor,
        ticket_id: int,
        predicate: Callable[[Actor, Ticket], bool],
        action: str,
    ) -> Ticket:
        ticket = await self._load(ticket_id)
        if not predicate(actor, ticket):
            raise ForbiddenError(f"{actor.id} may not {action} ticket {ticket_id}")
        return ticket

    async def _raise_lost_guard(self, actor: Actor, ticket_id: int, action: str) -> None:
        # The ticket was deleted or reassigned after the check; report what is persisted now.
        latest = await self._load(ticket_id)
        raise ForbiddenError(
            f"{actor.id} may not {action} ticket {ticket_id} assigned to {latest.assigned_to_id}"
        )

    async def _validate_content(
        self, title: str, description: str, category_id: int
    ) -> tuple[str, str]:
        title = (title or "").strip()
        description = (description or "").strip()
        if not title:
            raise ValidationError("Title must not be empty")
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters")
        if not description:
            raise ValidationError("Description must not be empty")
        if await self._repository.get_category(category_id) is None:
            raise ValidationError(f"Category {category_id} does not exist")
        return title, description

    async def _notify(self, event: str, ticket: Ticket, actor: Actor, *, title: str, message: str) -> None:
        """Fan out after a committed mutation; failures are logged, never raised."""

        if self._fanout is None:
            return
        try:
            await self._fanout.publish(
                ticket,
                actor_id=actor.id,
                title=title,
                message=_truncate(message, NOTIFICATION_MESSAGE_MAX_LENGTH),
                link=f"/tickets/{ticket.id}",
            )
        except Exception:
            self._fanout_failures.inc(labels={"event": event})
            logger.exception(
                "Notification fan-out failed. event=%s ticket=%s actor=%s", event, ticket.id, actor.id
            )

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import packages.db.models  # noqa: F401  registers tables on SQLModel.metadata
from apps.api.metrics import MetricsRegistry, register_default_metrics
from apps.api.services.authorization import Actor, Role
from apps.api.services.notifications import NotificationFanout, NotificationLedger, NotificationRepository
from apps.api.services.tickets import TicketRepository, TicketService
from apps.api.services.users import UserDirectory

ACCOUNTS: dict[str, tuple[Role, ...]] = {
    "admin-1": (Role.ADMIN,),
    "admin-2": (Role.ADMIN,),
    "support-1": (Role.SUPPORT,),
    "support-2": (Role.SUPPORT,),
    "requester-1": (Role.REQUESTER,),
    "requester-2": (Role.REQUESTER,),
}


class ManualClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self._current = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        self._step = step

    def now(self) -> datetime:
        value = self._current
        self._current += self._step
        return value


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncEngine:
    # File based so that concurrent sessions get separate connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def registry() -> MetricsRegistry:
    return register_default_metrics(MetricsRegistry())


@pytest_asyncio.fixture
async def directory(session_factory: async_sessionmaker) -> UserDirectory:
    directory = UserDirectory(session_factory)
    for user_id, roles in ACCOUNTS.items():
        await directory.ensure_user(user_id, roles=roles)
    return directory


@pytest_asyncio.fixture
async def actors(directory: UserDirectory) -> dict[str, Actor]:
    return {user_id: await directory.get_actor(user_id) for user_id in ACCOUNTS}


@pytest.fixture
def ticket_repository(session_factory: async_sessionmaker, engine: AsyncEngine) -> TicketRepository:
    return TicketRepository(session_factory, engine=engine)


@pytest.fixture
def notification_repository(session_factory: async_sessionmaker) -> NotificationRepository:
    return NotificationRepository(session_factory)


@pytest_asyncio.fixture
async def reference_data(ticket_repository: TicketRepository):
    low = await ticket_repository.add_priority("Low")
    medium = await ticket_repository.add_priority("Średni")
    high = await ticket_repository.add_priority("High")
    category = await ticket_repository.add_category("Hardware")
    return {"low": low, "medium": medium, "high": high, "category": category}


@pytest.fixture
def fanout(
    notification_repository: NotificationRepository,
    directory: UserDirectory,
    clock: ManualClock,
    registry: MetricsRegistry,
) -> NotificationFanout:
    return NotificationFanout(notification_repository, directory, clock=clock, registry=registry)


@pytest.fixture
def ledger(notification_repository: NotificationRepository) -> NotificationLedger:
    return NotificationLedger(notification_repository)


@pytest.fixture
def service(
    ticket_repository: TicketRepository,
    directory: UserDirectory,
    fanout: NotificationFanout,
    clock: ManualClock,
    registry: MetricsRegistry,
) -> TicketService:
    return TicketService(ticket_repository, directory, fanout=fanout, clock=clock, registry=registry)

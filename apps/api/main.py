from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from apps.api.api.routes import notifications, ping, reference, tickets
from apps.api.core.clock import SystemClock
from apps.api.core.config import Settings, get_settings
from apps.api.core.errors import register_exception_handlers
from apps.api.core.logging import configure_logging, init_tracer, shutdown_tracer
from apps.api.services.notifications import NotificationFanout, NotificationLedger, NotificationRepository
from apps.api.services.tickets import TicketRepository, TicketService
from apps.api.services.users import UserDirectory


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    if dsn.startswith("postgres://"):
        return "postgresql+asyncpg://" + dsn[len("postgres://") :]
    return dsn


def build_services(app: FastAPI, session_factory: async_sessionmaker, settings: Settings, *, engine=None) -> None:
    """Wire repositories and services onto ``app.state``."""

    clock = SystemClock()
    directory = UserDirectory(session_factory)
    notification_repository = NotificationRepository(session_factory)
    fanout = NotificationFanout(notification_repository, directory, clock=clock)
    ticket_repository = TicketRepository(session_factory, engine=engine)

    app.state.user_directory = directory
    app.state.notification_ledger = NotificationLedger(notification_repository)
    app.state.ticket_service = TicketService(
        ticket_repository,
        directory,
        fanout=fanout,
        clock=clock,
        initial_status=settings.initial_status,
        default_priority_names=settings.default_priority_names,
    )
    app.state.ticket_repository = ticket_repository


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider

    db_engine = create_async_engine(_to_asyncpg_dsn(settings.database_dsn), echo=settings.database_echo)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    app.state.db_engine = db_engine
    app.state.db_session_factory = session_factory
    try:
        build_services(app, session_factory, settings, engine=db_engine)
        await app.state.ticket_repository.ensure_schema()
        logger.info("Helpdesk API started. environment=%s", settings.environment)
        yield
    finally:
        await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(reference.router)
    app.include_router(tickets.router)
    app.include_router(notifications.router)
    return app


app = create_app()

"""Service layer exports."""

from .authorization import Actor, Role
from .errors import (
    ForbiddenError,
    HelpdeskError,
    NotFoundError,
    NotificationNotFoundError,
    TicketNotFoundError,
    ValidationError,
)
from .notifications import NotificationFanout, NotificationLedger, NotificationRepository, resolve_recipients
from .tickets import TicketRepository, TicketService
from .users import UserDirectory

__all__ = [
    "Actor",
    "ForbiddenError",
    "HelpdeskError",
    "NotFoundError",
    "NotificationFanout",
    "NotificationLedger",
    "NotificationNotFoundError",
    "NotificationRepository",
    "Role",
    "TicketNotFoundError",
    "TicketRepository",
    "TicketService",
    "UserDirectory",
    "ValidationError",
    "resolve_recipients",
]

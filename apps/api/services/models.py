from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence


@dataclass(slots=True)
class Priority:
    id: int
    name: str


@dataclass(slots=True)
class Category:
    id: int
    name: str


@dataclass(slots=True)
class Ticket:
    """Snapshot of a persisted ticket."""

    id: int
    title: str
    description: str
    category_id: int
    priority_id: int
    status: str
    owner_id: str
    assigned_to_id: str | None
    created_at: datetime


@dataclass(slots=True)
class TicketComment:
    """Immutable comment posted on a ticket."""

    id: int
    ticket_id: int
    author_id: str
    content: str
    created_at: datetime


@dataclass(slots=True)
class TicketDetail:
    """Ticket together with its comments in chronological order."""

    ticket: Ticket
    comments: Sequence[TicketComment] = field(default_factory=list)


@dataclass(slots=True)
class Notification:
    """Ledger entry addressed to a single recipient."""

    id: int
    recipient_id: str
    title: str
    message: str
    link: str | None
    is_read: bool
    created_at: datetime

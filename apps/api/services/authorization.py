"""Authorization predicates for ticket access.

Every predicate is a pure function of the actor (id and current roles) and a
ticket snapshot. Callers must pass the ticket as currently persisted and the
roles as currently held; nothing here caches either.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from .models import Ticket


class Role(str, Enum):
    """Supported roles."""

    ADMIN = "admin"
    SUPPORT = "support"
    REQUESTER = "requester"


@dataclass(frozen=True, slots=True)
class Actor:
    """Identity performing an operation, with the roles it holds right now."""

    id: str
    roles: frozenset[Role] = field(default_factory=frozenset)

    @classmethod
    def with_roles(cls, actor_id: str, roles: Iterable[Role | str]) -> "Actor":
        return cls(id=actor_id, roles=frozenset(Role(role) for role in roles))

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    @property
    def is_support(self) -> bool:
        return Role.SUPPORT in self.roles

    @property
    def is_staff(self) -> bool:
        return self.is_admin or self.is_support


def is_owner(actor: Actor, ticket: Ticket) -> bool:
    return ticket.owner_id == actor.id


def can_view(actor: Actor, ticket: Ticket) -> bool:
    return actor.is_staff or is_owner(actor, ticket)


def can_comment(actor: Actor, ticket: Ticket) -> bool:
    return can_view(actor, ticket)


def can_edit_content(actor: Actor, ticket: Ticket) -> bool:
    # Support may edit content of tickets assigned to someone else.
    return actor.is_staff or is_owner(actor, ticket)


def can_delete(actor: Actor, ticket: Ticket) -> bool:
    return actor.is_staff or is_owner(actor, ticket)


def can_change_status_or_priority(actor: Actor, ticket: Ticket) -> bool:
    if actor.is_admin:
        return True
    return actor.is_support and ticket.assigned_to_id == actor.id


def can_assign_arbitrary(actor: Actor) -> bool:
    return actor.is_admin


def can_self_assign(actor: Actor, ticket: Ticket) -> bool:
    if not actor.is_support:
        return False
    return ticket.assigned_to_id is None or ticket.assigned_to_id == actor.id


def visible_owner_filter(actor: Actor) -> str | None:
    """Owner id to restrict ticket listings to, or ``None`` for all tickets."""

    if actor.is_staff:
        return None
    return actor.id

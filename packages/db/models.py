"""SQLModel table definitions for the helpdesk data layer."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class PriorityTable(SQLModel, table=True):
    """Reference data: ticket priorities."""

    __tablename__ = "priorities"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(50), nullable=False))


class CategoryTable(SQLModel, table=True):
    """Reference data: ticket categories."""

    __tablename__ = "categories"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(100), nullable=False))


class TicketTable(SQLModel, table=True):
    """Support requests raised by requesters."""

    __tablename__ = "tickets"

    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(sa_column=Column(String(200), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    category_id: int = Field(sa_column=Column(Integer, ForeignKey("categories.id"), nullable=False))
    priority_id: int = Field(sa_column=Column(Integer, ForeignKey("priorities.id"), nullable=False))
    status: str = Field(sa_column=Column(String(100), nullable=False))
    owner_id: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    assigned_to_id: str | None = Field(default=None, sa_column=Column(String(255), nullable=True, index=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketCommentTable(SQLModel, table=True):
    """Comments posted on a ticket. Removed together with the ticket."""

    __tablename__ = "ticket_comments"

    id: int | None = Field(default=None, primary_key=True)
    ticket_id: int = Field(
        sa_column=Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    author_id: str = Field(sa_column=Column(String(255), nullable=False))
    content: str = Field(sa_column=Column(String(1000), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class NotificationTable(SQLModel, table=True):
    """In-app notifications. The link is free text and survives ticket deletion."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),)

    id: int | None = Field(default=None, primary_key=True)
    recipient_id: str = Field(sa_column=Column(String(255), nullable=False))
    title: str = Field(sa_column=Column(String(300), nullable=False))
    message: str = Field(sa_column=Column(String(1000), nullable=False))
    link: str | None = Field(default=None, sa_column=Column(String(300), nullable=True))
    is_read: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class UserTable(SQLModel, table=True):
    """Mirror of identity provider accounts."""

    __tablename__ = "users"

    id: str = Field(primary_key=True, index=True)
    username: str = Field(sa_column=Column(String(150), nullable=False, unique=True))
    display_name: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class UserRoleTable(SQLModel, table=True):
    """Role memberships. Queried live, never cached."""

    __tablename__ = "user_roles"
    __table_args__ = (Index("ix_user_roles_role", "role"),)

    user_id: str = Field(
        sa_column=Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    )
    role: str = Field(sa_column=Column(String(50), primary_key=True))

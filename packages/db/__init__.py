"""Database models and utilities."""

from .models import (
    CategoryTable,
    NotificationTable,
    PriorityTable,
    TicketCommentTable,
    TicketTable,
    UserRoleTable,
    UserTable,
)

__all__ = [
    "CategoryTable",
    "NotificationTable",
    "PriorityTable",
    "TicketCommentTable",
    "TicketTable",
    "UserRoleTable",
    "UserTable",
]

"""Typed outcomes raised by the helpdesk services.

The HTTP layer maps them in :mod:`apps.api.core.errors`; services never raise
``HTTPException`` themselves.
"""

from __future__ import annotations


class HelpdeskError(RuntimeError):
    """Base error for helpdesk service failures."""

    user_message: str = "The request could not be completed."


class NotFoundError(HelpdeskError):
    """The target entity does not exist or must not be disclosed."""

    user_message = "The requested resource could not be found."


class TicketNotFoundError(NotFoundError):
    """Raised when an operation targets a non-existent ticket."""


class NotificationNotFoundError(NotFoundError):
    """Raised for missing notifications and for notifications owned by someone else."""


class ForbiddenError(HelpdeskError):
    """The entity exists but the actor may not perform this action on it."""

    user_message = "You do not have permission to perform this action."


class ValidationError(HelpdeskError):
    """Malformed input or a reference that does not resolve."""

    user_message = "The provided input is not valid."

"""Route modules exposed by the API package."""

from . import notifications, ping, reference, tickets

__all__ = ["notifications", "ping", "reference", "tickets"]

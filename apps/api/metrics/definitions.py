"""Metric definitions used across the application."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MetricDefinition:
    """Describe a counter that should exist in the registry."""

    name: str
    description: str
    label_names: Tuple[str, ...] = ()


TICKETS_CREATED = "helpdesk_tickets_created_total"
TICKET_TRANSITIONS = "helpdesk_ticket_transitions_total"
NOTIFICATIONS_CREATED = "helpdesk_notifications_created_total"
FANOUT_FAILURES = "helpdesk_notification_fanout_failures_total"


DEFAULT_METRIC_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name=TICKETS_CREATED,
        description="Number of tickets created.",
    ),
    MetricDefinition(
        name=TICKET_TRANSITIONS,
        description="Successful guarded ticket transitions.",
        label_names=("action",),
    ),
    MetricDefinition(
        name=NOTIFICATIONS_CREATED,
        description="Notification records written by the fan-out service.",
    ),
    MetricDefinition(
        name=FANOUT_FAILURES,
        description="Fan-out batches that failed after a committed ticket mutation.",
        label_names=("event",),
    ),
)

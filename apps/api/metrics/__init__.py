"""Application wide metrics utilities."""
from .definitions import (
    DEFAULT_METRIC_DEFINITIONS,
    FANOUT_FAILURES,
    NOTIFICATIONS_CREATED,
    TICKET_TRANSITIONS,
    TICKETS_CREATED,
    MetricDefinition,
)
from .registry import CounterMetric, MetricsRegistry

metrics_registry = MetricsRegistry()


def register_default_metrics(registry: MetricsRegistry | None = None) -> MetricsRegistry:
    """Ensure all default metric definitions exist in the registry."""
    target = registry or metrics_registry
    for definition in DEFAULT_METRIC_DEFINITIONS:
        target.counter(
            definition.name,
            description=definition.description,
            label_names=definition.label_names,
        )
    return target


# eagerly register the defaults for convenience
register_default_metrics()

__all__ = [
    "CounterMetric",
    "FANOUT_FAILURES",
    "MetricDefinition",
    "MetricsRegistry",
    "NOTIFICATIONS_CREATED",
    "TICKETS_CREATED",
    "TICKET_TRANSITIONS",
    "metrics_registry",
    "register_default_metrics",
]

"""In-process counters and their Prometheus text rendering."""
from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Dict, Iterable, Mapping, MutableMapping, Tuple

LabelValues = Tuple[str, ...]


class CounterMetric:
    """Monotonic counter, optionally split by label values."""

    def __init__(
        self, name: str, *, description: str = "", label_names: Iterable[str] | None = None
    ) -> None:
        self.name = name
        self.description = description
        self.label_names: Tuple[str, ...] = tuple(label_names or ())
        self._values: MutableMapping[LabelValues, float] = defaultdict(float)
        self._lock = Lock()

    def _label_values(self, labels: Mapping[str, str] | None) -> LabelValues:
        if not self.label_names:
            if labels:
                raise ValueError(f"Metric '{self.name}' does not accept labels")
            return ()
        if labels is None:
            raise ValueError(f"Metric '{self.name}' requires labels {self.label_names}")
        missing = [label for label in self.label_names if label not in labels]
        if missing:
            raise ValueError(f"Missing labels {missing} for metric '{self.name}'")
        return tuple(str(labels[label]) for label in self.label_names)

    def inc(self, amount: float = 1.0, *, labels: Mapping[str, str] | None = None) -> None:
        if amount < 0:
            raise ValueError("Counters can only increase")
        key = self._label_values(labels)
        with self._lock:
            self._values[key] += amount

    def value(self, labels: Mapping[str, str] | None = None) -> float:
        key = self._label_values(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> Dict[LabelValues, float]:
        with self._lock:
            return dict(self._values)


class MetricsRegistry:
    """Registry that owns counter instances by name."""

    def __init__(self) -> None:
        self._metrics: MutableMapping[str, CounterMetric] = {}
        self._lock = Lock()

    def counter(
        self,
        name: str,
        *,
        description: str = "",
        label_names: Iterable[str] | None = None,
    ) -> CounterMetric:
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = CounterMetric(name, description=description, label_names=label_names)
            return self._metrics[name]

    def metrics(self) -> Tuple[CounterMetric, ...]:
        with self._lock:
            return tuple(self._metrics.values())

    def render_prometheus(self) -> str:
        lines: list[str] = []
        for metric in self.metrics():
            if metric.description:
                lines.append(f"# HELP {metric.name} {metric.description}")
            lines.append(f"# TYPE {metric.name} counter")
            values = metric.snapshot()
            if not values and not metric.label_names:
                values = {(): 0.0}
            for label_values, value in sorted(values.items()):
                if label_values:
                    rendered = ",".join(
                        f'{name}="{_escape(val)}"' for name, val in zip(metric.label_names, label_values)
                    )
                    lines.append(f"{metric.name}{{{rendered}}} {value}")
                else:
                    lines.append(f"{metric.name} {value}")
        return "\n".join(lines) + "\n"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')

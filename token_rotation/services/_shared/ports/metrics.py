from __future__ import annotations

import logging
from collections import Counter
from typing import Protocol

log = logging.getLogger(__name__)


class MetricsSink(Protocol):
    """Fire-and-forget counters and histograms."""

    def increment(self, name: str, value: int = 1, **tags: str) -> None: ...

    def observe(self, name: str, value: float, **tags: str) -> None: ...


class LoggingMetricsSink(MetricsSink):
    """Emit metrics as DEBUG log lines; the default when no backend is wired."""

    def increment(self, name: str, value: int = 1, **tags: str) -> None:
        log.debug("metric counter %s +%d %s", name, value, tags or "")

    def observe(self, name: str, value: float, **tags: str) -> None:
        log.debug("metric histogram %s=%.3f %s", name, value, tags or "")


class InMemoryMetricsSink(MetricsSink):
    """Collect metrics in memory so tests can assert on them."""

    def __init__(self) -> None:
        self.counters: Counter[str] = Counter()
        self.observations: dict[str, list[float]] = {}

    def increment(self, name: str, value: int = 1, **tags: str) -> None:
        self.counters[name] += value

    def observe(self, name: str, value: float, **tags: str) -> None:
        self.observations.setdefault(name, []).append(value)

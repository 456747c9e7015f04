"""
Metrics — counters and timing histograms for the bootstrap sequence.

In-process only, exported as a dict for the CLI. Used for optional
instrumentation: how many load attempts the walk made, how often the
query cache hit, how long each boot phase took.

Names in use:
    loader.attempts     query.cache_hits    query.cache_misses
    query.type_scans    plugins.probes      native.extracted
    native.symlinks     activation.invoked  activation.failed
    boot.native, boot.plugins, boot.activation  (timers, ms)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Counter:
    """Count of events since process start (or the last reset)."""

    name: str
    value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc(self, n: int = 1) -> None:
        # Load hooks may fire from any thread
        with self._lock:
            self.value += n

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": "counter", "value": self.value}


@dataclass
class Histogram:
    """Running count/total/min/max of observed values."""

    name: str
    count: int = 0
    total: float = 0.0
    _low: float | None = field(default=None, repr=False)
    _high: float | None = field(default=None, repr=False)

    def observe(self, sample: float) -> None:
        self.count += 1
        self.total += sample
        self._low = sample if self._low is None else min(self._low, sample)
        self._high = sample if self._high is None else max(self._high, sample)

    @property
    def min(self) -> float:
        return self._low if self._low is not None else 0.0

    @property
    def max(self) -> float:
        return self._high if self._high is not None else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": "histogram",
            "count": self.count,
            "total": round(self.total, 2),
            "min": round(self.min, 2),
            "max": round(self.max, 2),
        }


class MetricsRegistry:
    """Named counters and histograms, created on first use."""

    def __init__(self) -> None:
        self._metrics: dict[tuple[str, str], Counter | Histogram] = {}
        self._guard = threading.Lock()

    def _get(self, kind: str, name: str, factory) -> Any:
        with self._guard:
            metric = self._metrics.get((kind, name))
            if metric is None:
                metric = self._metrics[(kind, name)] = factory(name=name)
            return metric

    def counter(self, name: str) -> Counter:
        return self._get("counter", name, Counter)

    def histogram(self, name: str) -> Histogram:
        return self._get("histogram", name, Histogram)

    def timer(self, name: str) -> TimerContext:
        """``with metrics.timer("boot.native"): ...`` records milliseconds."""
        return TimerContext(self.histogram(name))

    def value(self, name: str) -> int:
        """Current value of a counter (0 if it was never touched)."""
        counter = self._metrics.get(("counter", name))
        return counter.value if counter else 0

    def to_dict(self) -> dict[str, list[dict]]:
        snapshot = {"counters": [], "histograms": []}
        for (kind, _name), metric in list(self._metrics.items()):
            snapshot[f"{kind}s"].append(metric.to_dict())
        return snapshot

    def reset(self) -> None:
        with self._guard:
            self._metrics.clear()


class TimerContext:
    """Measures one ``with`` block into a histogram."""

    def __init__(self, histogram: Histogram) -> None:
        self._target = histogram
        self._began = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> TimerContext:
        self._began = time.perf_counter()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.elapsed_ms = (time.perf_counter() - self._began) * 1000
        self._target.observe(self.elapsed_ms)

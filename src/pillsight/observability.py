"""Request and search pipeline metrics for PillSight."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from statistics import mean
from threading import RLock
from time import perf_counter


@dataclass(frozen=True, slots=True)
class RequestMetric:
    method: str
    path: str
    status_code: int
    duration_ms: float


def _summarize(values: list[float]) -> dict[str, float]:
    return {
        "count": len(values),
        "avg_ms": round(mean(values), 2),
        "max_ms": round(max(values), 2),
    }


class MetricsStore:
    def __init__(self) -> None:
        self._lock = RLock()
        self._request_count = 0
        self._status_counts: dict[str, int] = defaultdict(int)
        self._route_latencies: dict[str, list[float]] = defaultdict(list)
        self._stage_latencies: dict[str, list[float]] = defaultdict(list)
        self._search_modes: dict[str, int] = defaultdict(int)
        self._fallbacks: dict[str, int] = defaultdict(int)

    def record(self, metric: RequestMetric) -> None:
        key = f"{metric.method} {metric.path}"
        with self._lock:
            self._request_count += 1
            self._status_counts[f"{metric.status_code // 100}xx"] += 1
            self._route_latencies[key].append(metric.duration_ms)

    def record_stage(self, stage: str, timing_ms: float) -> None:
        with self._lock:
            self._stage_latencies[stage].append(timing_ms)

    @contextmanager
    def timed(self, stage: str) -> Iterator[None]:
        started = perf_counter()
        try:
            yield
        finally:
            self.record_stage(stage, duration_ms(started))

    def record_search(self, mode: str, fallback_reason: str | None = None) -> None:
        with self._lock:
            self._search_modes[mode] += 1
            if fallback_reason is not None:
                self._fallbacks[fallback_reason] += 1

    def stage_count(self, stage: str) -> int:
        with self._lock:
            return len(self._stage_latencies.get(stage, []))

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "request_count": self._request_count,
                "status_counts": dict(self._status_counts),
                "route_counts": {
                    route: len(values) for route, values in self._route_latencies.items()
                },
                "route_latency_ms": {
                    route: _summarize(values)
                    for route, values in self._route_latencies.items()
                    if values
                },
                "pipeline_latency_ms": {
                    stage: _summarize(values)
                    for stage, values in self._stage_latencies.items()
                    if values
                },
                "search_modes": dict(self._search_modes),
                "search_fallbacks": dict(self._fallbacks),
            }


def duration_ms(start_time: float) -> float:
    return (perf_counter() - start_time) * 1000.0

"""Prometheus metrics definitions."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class Metrics:
    """Expose scan and zone metrics for monitoring.

    Each instance owns its registry so several instances (tests, multiple apps
    in one process) never collide on metric names.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.scan_tick_duration_sec = Histogram(
            "scan_tick_duration_sec",
            "Wall time of a completed scan tick",
            ["tracker"],
            registry=self.registry,
        )
        self.scan_ticks_total = Counter(
            "scan_ticks_total",
            "Completed scan ticks",
            ["tracker"],
            registry=self.registry,
        )
        self.scan_ticks_skipped_total = Counter(
            "scan_ticks_skipped_total",
            "Ticks skipped because the previous tick was still running",
            ["tracker"],
            registry=self.registry,
        )
        self.scan_tick_failures_total = Counter(
            "scan_tick_failures_total",
            "Ticks aborted by a metric source fault",
            ["tracker"],
            registry=self.registry,
        )
        self.zone_transitions_total = Counter(
            "zone_transitions_total",
            "Cache/recycle zone transitions by type",
            ["tracker", "transition"],
            registry=self.registry,
        )
        self.cache_zone_size = Gauge(
            "cache_zone_size", "Entries in the cache zone", ["tracker"], registry=self.registry
        )
        self.recycle_zone_size = Gauge(
            "recycle_zone_size", "Entries in the recycle zone", ["tracker"], registry=self.registry
        )
        self.ranked_symbols = Gauge(
            "ranked_symbols", "Symbols in the latest Top-K", ["tracker"], registry=self.registry
        )
        self.state_persist_failures_total = Counter(
            "state_persist_failures_total",
            "Failed tracking state writes",
            ["tracker"],
            registry=self.registry,
        )

    def start(self, port: int) -> None:
        start_http_server(port, registry=self.registry)

    def record_tick(
        self,
        tracker: str,
        duration_sec: float,
        transitions: dict[str, int],
        cache_size: int,
        recycle_size: int,
        ranked: int,
    ) -> None:
        self.scan_ticks_total.labels(tracker=tracker).inc()
        self.scan_tick_duration_sec.labels(tracker=tracker).observe(duration_sec)
        for transition, count in transitions.items():
            if count:
                self.zone_transitions_total.labels(tracker=tracker, transition=transition).inc(
                    count
                )
        self.cache_zone_size.labels(tracker=tracker).set(cache_size)
        self.recycle_zone_size.labels(tracker=tracker).set(recycle_size)
        self.ranked_symbols.labels(tracker=tracker).set(ranked)

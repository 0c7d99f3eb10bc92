"""
Prometheus collectors for the kkv client.

Collectors are built through injectable constructors so callers can register
them on their own ``CollectorRegistry`` or hand in test doubles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

LATENCY_BUCKETS = (0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)


def host_label(url: str) -> str:
    """Host part of a base URL, without scheme or trailing slash, for metric labels."""
    return url.split("://", 1)[-1].rstrip("/")


@dataclass
class KKVMetrics:
    """The set of collectors one or more clients report to."""

    last_seen_offset: Any
    get_latency_seconds: Any
    stream_latency_seconds: Any
    put_latency_seconds: Any
    put_attempts_total: Any
    malformed_records_total: Any


def create_metrics(
    registry: Optional[CollectorRegistry] = REGISTRY,
    *,
    counter_cls=Counter,
    gauge_cls=Gauge,
    histogram_cls=Histogram,
) -> KKVMetrics:
    """Build all kkv collectors.

    Args:
        registry: Registry to register on (``None`` skips registration)
        counter_cls: Counter constructor
        gauge_cls: Gauge constructor
        histogram_cls: Histogram constructor

    Returns:
        KKVMetrics bundle

    Note:
        Calling this twice with the same registry raises a duplicate
        timeseries error from prometheus_client; use ``default_metrics()``
        for the process-wide bundle.
    """
    return KKVMetrics(
        last_seen_offset=gauge_cls(
            "kafka_key_value_last_seen_offset",
            "Highest offset seen per partition by the cache",
            ["cache_kkv_host", "topic", "partition"],
            registry=registry,
        ),
        get_latency_seconds=histogram_cls(
            "kafka_key_value_get_latency_seconds",
            "Latency of single key reads from the cache",
            ["cache_kkv_host", "topic"],
            buckets=LATENCY_BUCKETS,
            registry=registry,
        ),
        stream_latency_seconds=histogram_cls(
            "kafka_key_value_stream_latency_seconds",
            "Duration of full topic streams from the cache",
            ["cache_kkv_host", "topic"],
            buckets=LATENCY_BUCKETS,
            registry=registry,
        ),
        put_latency_seconds=histogram_cls(
            "kafka_key_value_put_latency_seconds",
            "Latency of puts including retries",
            ["pixy_host", "topic"],
            buckets=LATENCY_BUCKETS,
            registry=registry,
        ),
        put_attempts_total=counter_cls(
            "kafka_key_value_put_attempts_total",
            "Put attempts sent to the write proxy",
            ["pixy_host", "topic", "outcome"],
            registry=registry,
        ),
        malformed_records_total=counter_cls(
            "kafka_key_value_malformed_records_total",
            "Stream lines skipped because they were not valid JSON",
            ["cache_kkv_host", "topic"],
            registry=registry,
        ),
    )


# --- Singleton accessor for in-process use ---

_metrics: Optional[KKVMetrics] = None


def default_metrics() -> KKVMetrics:
    """Get the process-wide metrics bundle registered on the global REGISTRY."""
    global _metrics
    if _metrics is None:
        _metrics = create_metrics()
    return _metrics

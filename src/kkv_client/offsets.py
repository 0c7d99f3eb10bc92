"""
Monotonic last-seen-offset tracking.

Offsets reach the gauge from three places: change notifications, which may be
delayed by debouncing, and the x-kkv-last-seen-offsets header on reads and
writes. Only strictly increasing values per partition are published, so an
older offset arriving late never moves the gauge backwards.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from loguru import logger
from pydantic import ValidationError

from .models import LastSeenOffset

LAST_SEEN_OFFSETS_HEADER = "x-kkv-last-seen-offsets"


def offsets_from_header(header_value: Optional[str], topic: str) -> Dict[str, int]:
    """Parse the last-seen-offsets header into ``{partition: offset}`` for one topic.

    A missing header yields an empty mapping. A malformed header is logged and
    ignored, the response it came with is still usable.
    """
    if not header_value:
        return {}
    try:
        entries = [LastSeenOffset.model_validate(e) for e in json.loads(header_value)]
    except (ValueError, TypeError, ValidationError) as exc:
        logger.warning(f"Ignoring malformed {LAST_SEEN_OFFSETS_HEADER} header: {exc}")
        return {}
    return {e.partition: e.offset for e in entries if e.topic == topic}


class OffsetTracker:
    """Highest offset per partition of one topic, mirrored to a gauge.

    All callers run on the event loop thread; the compare-then-set in
    ``update_partition_offset_metrics`` is never interleaved.
    """

    def __init__(self, gauge: Any, cache_host: str, topic: str):
        self._gauge = gauge
        self._cache_host = cache_host
        self._topic = topic
        self._last: Dict[str, int] = {}

    @property
    def topic(self) -> str:
        return self._topic

    def last_seen(self, partition) -> Optional[int]:
        return self._last.get(str(partition))

    def update_partition_offset_metrics(self, offsets: Mapping[Any, int]) -> list[str]:
        """Publish every offset that is higher than the one recorded for its partition.

        Args:
            offsets: partition -> candidate offset

        Returns:
            Partitions whose gauge was set
        """
        published: list[str] = []
        for partition, offset in offsets.items():
            p = str(partition)
            current = self._last.get(p)
            if current is not None and offset <= current:
                continue
            self._last[p] = offset
            self._gauge.labels(self._cache_host, self._topic, p).set(offset)
            published.append(p)
        if published:
            logger.debug(f"Last seen offsets topic={self._topic} {offsets} published={published}")
        return published

    def update_from_header(self, header_value: Optional[str]) -> list[str]:
        return self.update_partition_offset_metrics(offsets_from_header(header_value, self._topic))

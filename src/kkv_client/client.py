from __future__ import annotations

import time
from typing import Any, Callable, Optional, Union
from urllib.parse import quote

import httpx
from loguru import logger

from .compression import decompress_gzip_response
from .config import KKVSettings
from .dispatcher import UpdateDispatcher, UpdateHandler
from .errors import MalformedRecord, UnsupportedOperation
from .events import UpdateEventBus, update_events
from .metrics import KKVMetrics, default_metrics
from .models import PutOptions
from .offsets import LAST_SEEN_OFFSETS_HEADER, OffsetTracker
from .streaming import stream_response_body
from .writer import RetryingWriter


class KafkaKeyValue:
    """Async client for one kkv topic.

    Writes go to the pixy proxy with retries, reads go to the cache-kkv
    sidecar, and change notifications from ``bus`` are debounced per key and
    passed to ``on_update`` handlers.

    Usage:
        async with KafkaKeyValue({"cache_host": "http://cache-kkv",
                                  "pixy_host": "http://pixy",
                                  "topic_name": "users"}) as kkv:
            kkv.on_update(lambda key, value: print(key, value))
            offset = await kkv.put("u1", {"name": "x"})
            value = await kkv.get("u1")
    """

    def __init__(
        self,
        config: Union[KKVSettings, dict],
        *,
        metrics: Optional[KKVMetrics] = None,
        http: Optional[httpx.AsyncClient] = None,
        bus: Optional[UpdateEventBus] = None,
    ):
        self._cfg = config if isinstance(config, KKVSettings) else KKVSettings(**config)
        self._metrics = metrics or default_metrics()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=self._cfg.request_timeout)
        self._cache_host = self._cfg.cache_host.rstrip("/")
        self._cache_name = self._cfg.cache_name
        self._log = logger.bind(topic=self._cfg.topic_name)

        self._tracker = OffsetTracker(
            self._metrics.last_seen_offset, self._cache_name, self._cfg.topic_name
        )
        self._writer = RetryingWriter(
            self._http,
            pixy_host=self._cfg.pixy_host,
            topic=self._cfg.topic_name,
            metrics=self._metrics,
            tracker=self._tracker,
            gzip=self._cfg.gzip,
            defaults=PutOptions(
                interval_ms=self._cfg.put_interval_ms, n_retries=self._cfg.put_n_retries
            ),
        )
        self._dispatcher = UpdateDispatcher(
            topic=self._cfg.topic_name,
            # late bound so a replaced ``get`` is honoured
            fetch=lambda key: self.get(key),
            tracker=self._tracker,
            bus=bus or update_events(),
            debounce_ms=self._cfg.debounce_ms,
        )

    @property
    def topic(self) -> str:
        return self._cfg.topic_name

    @property
    def tracker(self) -> OffsetTracker:
        return self._tracker

    @property
    def dispatcher(self) -> UpdateDispatcher:
        return self._dispatcher

    # ---------- lifecycle ----------

    def start(self) -> None:
        """Subscribe to change notifications."""
        self._dispatcher.start()

    async def aclose(self) -> None:
        self._dispatcher.stop()
        await self._dispatcher.drain()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "KafkaKeyValue":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    # ---------- health ----------

    async def health(self) -> bool:
        try:
            res = await self._http.get(f"{self._cache_host}{self._cfg.readiness_path}")
        except httpx.TransportError as exc:
            self._log.debug(f"Cache readiness check failed: {exc}")
            return False
        return res.is_success

    # ---------- writes ----------

    async def put(self, key: str, value: Any, options: Optional[PutOptions] = None) -> int:
        return await self._writer.put(key, value, options)

    # ---------- reads ----------

    async def get(self, key: str) -> Any:
        """Read the current value of ``key`` from the cache; ``None`` if absent."""
        t0 = time.perf_counter()
        res = await self._http.get(f"{self._cache_host}/cache/v1/raw/{quote(key, safe='')}")
        self._tracker.update_from_header(res.headers.get(LAST_SEEN_OFFSETS_HEADER))
        if res.status_code == 404:
            return None
        res.raise_for_status()
        value = decompress_gzip_response(self._log, res.content) if self._cfg.gzip else res.json()
        self._metrics.get_latency_seconds.labels(self._cache_name, self.topic).observe(
            time.perf_counter() - t0
        )
        return value

    async def stream_values(self, on_record: Callable[[Any], Any]) -> int:
        """Stream every current value of the topic to ``on_record``.

        Returns:
            Number of records delivered
        """
        if self._cfg.gzip:
            raise UnsupportedOperation("stream_values is not supported for gzipped topics")

        def _malformed(err: MalformedRecord) -> None:
            self._metrics.malformed_records_total.labels(self._cache_name, self.topic).inc()

        t0 = time.perf_counter()
        async with self._http.stream("GET", f"{self._cache_host}/cache/v1/values") as res:
            res.raise_for_status()
            self._tracker.update_from_header(res.headers.get(LAST_SEEN_OFFSETS_HEADER))
            n = await stream_response_body(
                self._log, res.aiter_text(), on_record, on_malformed=_malformed
            )
        self._metrics.stream_latency_seconds.labels(self._cache_name, self.topic).observe(
            time.perf_counter() - t0
        )
        self._log.debug(f"Streamed {n} values")
        return n

    # ---------- updates ----------

    def on_update(self, handler: UpdateHandler) -> None:
        self._dispatcher.on_update(handler)

    def update_partition_offset_metrics(self, offsets) -> list[str]:
        return self._tracker.update_partition_offset_metrics(offsets)

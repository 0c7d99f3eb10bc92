"""
Retrying writes through the pixy write proxy.

The proxy is expected to be briefly unavailable during restarts, so a put is
retried at a fixed interval until a 200 arrives or the budget runs out.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from .compression import compress_gzip_payload
from .errors import RetryExhausted
from .metrics import host_label
from .models import PutOptions
from .offsets import LAST_SEEN_OFFSETS_HEADER, OffsetTracker


class RetryingWriter:
    """Issues one logical put as up to ``n_retries + 1`` POSTs."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        pixy_host: str,
        topic: str,
        metrics,
        tracker: Optional[OffsetTracker] = None,
        gzip: bool = False,
        defaults: Optional[PutOptions] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._http = http
        self._pixy_host = pixy_host.rstrip("/")
        self._pixy_label = host_label(pixy_host)
        self._topic = topic
        self._metrics = metrics
        self._tracker = tracker
        self._gzip = gzip
        self._defaults = defaults or PutOptions()
        self._sleep = sleep

    def _url(self, key: str) -> str:
        return f"{self._pixy_host}/topics/{self._topic}/messages?key={quote(key, safe='')}&sync"

    def _body(self, value: Any) -> tuple[bytes, dict]:
        payload = json.dumps(value)
        if self._gzip:
            return compress_gzip_payload(payload), {"Content-Type": "application/octet-stream"}
        return payload.encode("utf-8"), {"Content-Type": "application/json"}

    def _count(self, outcome: str) -> None:
        self._metrics.put_attempts_total.labels(self._pixy_label, self._topic, outcome).inc()

    async def put(self, key: str, value: Any, options: Optional[PutOptions] = None) -> int:
        """Write ``value`` under ``key`` and return the offset the proxy assigned.

        Raises:
            RetryExhausted: no attempt got a 200 response
        """
        opts = options or self._defaults
        url = self._url(key)
        content, headers = self._body(value)
        max_attempts = opts.n_retries + 1
        last_status: Optional[int] = None
        last_error: Optional[BaseException] = None

        t0 = time.perf_counter()
        for attempt in range(1, max_attempts + 1):
            try:
                res = await self._http.post(url, content=content, headers=headers)
            except httpx.TransportError as exc:
                last_status, last_error = None, exc
                self._count("error")
                logger.warning(
                    f"Put attempt {attempt}/{max_attempts} failed key={key} "
                    f"topic={self._topic}: {type(exc).__name__}: {exc}"
                )
            else:
                if res.status_code == 200:
                    self._count("success")
                    self._metrics.put_latency_seconds.labels(self._pixy_label, self._topic).observe(
                        time.perf_counter() - t0
                    )
                    if self._tracker is not None:
                        self._tracker.update_from_header(res.headers.get(LAST_SEEN_OFFSETS_HEADER))
                    offset = res.json()["offset"]
                    logger.debug(f"Put key={key} topic={self._topic} offset={offset} attempts={attempt}")
                    return offset
                last_status, last_error = res.status_code, None
                self._count("rejected")
                logger.warning(
                    f"Put attempt {attempt}/{max_attempts} got status {res.status_code} "
                    f"key={key} topic={self._topic}"
                )

            if attempt < max_attempts:
                await self._sleep(opts.interval_ms / 1000.0)

        raise RetryExhausted(max_attempts, last_status=last_status, last_error=last_error)

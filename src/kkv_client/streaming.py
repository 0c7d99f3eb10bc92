"""
Incremental NDJSON parsing for streamed cache responses.

The cache streams one JSON document per line. Chunk boundaries are arbitrary:
a chunk may end mid-record, span several records, or hold only part of a
record that started two chunks back.
"""

from __future__ import annotations

import codecs
import inspect
import json
from typing import Any, AsyncIterable, Callable, Optional, Union

from .errors import MalformedRecord

Chunk = Union[str, bytes]


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


async def stream_response_body(
    log,
    body: AsyncIterable[Chunk],
    on_record: Callable[[Any], Any],
    *,
    on_malformed: Optional[Callable[[MalformedRecord], Any]] = None,
) -> int:
    """Parse newline-delimited JSON from ``body`` and hand each record to ``on_record``.

    Args:
        log: loguru-compatible logger
        body: async iterable of text or UTF-8 byte chunks
        on_record: called (or awaited) once per decoded record
        on_malformed: optional callback for lines that fail to decode

    Returns:
        Number of records delivered to ``on_record``
    """
    decoder = codecs.getincrementaldecoder("utf-8")()
    pending: list[str] = []
    delivered = 0

    async def _emit(line: str) -> None:
        nonlocal delivered
        if not line.strip():
            return
        try:
            record = json.loads(line)
        except ValueError as exc:
            err = MalformedRecord(line, exc)
            log.warning(f"Skipping stream line: {err}")
            if on_malformed is not None:
                await _maybe_await(on_malformed(err))
            return
        await _maybe_await(on_record(record))
        delivered += 1

    async for chunk in body:
        if isinstance(chunk, bytes):
            chunk = decoder.decode(chunk)
        if "\n" not in chunk:
            # Only the new text is scanned; partial pieces are joined once complete
            pending.append(chunk)
            continue
        lines = chunk.split("\n")
        pending.append(lines[0])
        lines[0] = "".join(pending)
        pending = [lines.pop()]
        for line in lines:
            await _emit(line)

    buffer = "".join(pending) + decoder.decode(b"", final=True)
    if buffer.strip():
        log.warning(f"Discarding {len(buffer)} chars of unterminated trailing stream content")
    return delivered

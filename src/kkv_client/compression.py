"""Gzip helpers for topics that store compressed JSON values."""

from __future__ import annotations

import gzip
import json
from typing import Any, Union


def compress_gzip_payload(payload: Union[str, bytes]) -> bytes:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return gzip.compress(payload)


def decompress_gzip_response(log, body: bytes) -> Any:
    """Gunzip ``body`` and decode it as JSON."""
    try:
        raw = gzip.decompress(body)
    except (OSError, EOFError) as exc:
        log.error(f"Failed to gunzip {len(body)} byte response: {exc}")
        raise
    return json.loads(raw)

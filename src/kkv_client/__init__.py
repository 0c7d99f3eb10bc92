"""
Kafka Key-Value Client Library

An asyncio client for key-value topics journaled through a partitioned log:
writes go through the pixy proxy with retries, reads come from the local
cache-kkv sidecar, and change notifications are debounced per key.

Usage:
    from kkv_client import KafkaKeyValue

    async with KafkaKeyValue({"cache_host": "http://cache-kkv",
                              "pixy_host": "http://pixy",
                              "topic_name": "users"}) as kkv:
        kkv.on_update(on_user_changed)
        await kkv.stream_values(load_user)
        await kkv.put("u1", {"name": "x"})
"""

from .client import KafkaKeyValue
from .compression import compress_gzip_payload, decompress_gzip_response
from .config import KKVSettings, get_settings
from .dispatcher import UpdateDispatcher
from .errors import KKVOperationalError, MalformedRecord, RetryExhausted, UnsupportedOperation
from .events import UpdateEventBus, update_events
from .metrics import KKVMetrics, create_metrics, default_metrics
from .models import ChangeNotification, LastSeenOffset, PutOptions
from .offsets import LAST_SEEN_OFFSETS_HEADER, OffsetTracker, offsets_from_header
from .streaming import stream_response_body
from .writer import RetryingWriter

__version__ = "1.0.0"
__all__ = [
    "KafkaKeyValue",
    "KKVSettings",
    "get_settings",
    # components
    "RetryingWriter",
    "UpdateDispatcher",
    "OffsetTracker",
    "stream_response_body",
    "offsets_from_header",
    "LAST_SEEN_OFFSETS_HEADER",
    # events
    "UpdateEventBus",
    "update_events",
    "ChangeNotification",
    "LastSeenOffset",
    "PutOptions",
    # metrics
    "KKVMetrics",
    "create_metrics",
    "default_metrics",
    # codec
    "compress_gzip_payload",
    "decompress_gzip_response",
    # errors
    "KKVOperationalError",
    "RetryExhausted",
    "MalformedRecord",
    "UnsupportedOperation",
]

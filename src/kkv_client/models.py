"""
Pydantic data models for the Kafka key-value client.

Change notifications and last-seen-offset header entries are produced by
external services and only validated here.
"""

from dataclasses import dataclass
from typing import Any, Dict

from pydantic import BaseModel, field_validator

SUPPORTED_NOTIFICATION_VERSION = 1


class ChangeNotification(BaseModel):
    """Update event published by the cache after keys changed in a topic."""

    v: int
    topic: str
    offsets: Dict[str, int]
    updates: Dict[str, Any]

    @field_validator("offsets", mode="before")
    @classmethod
    def _partition_keys_as_str(cls, v):
        if isinstance(v, dict):
            return {str(k): o for k, o in v.items()}
        return v

    @property
    def changed_keys(self) -> list[str]:
        return list(self.updates)


class LastSeenOffset(BaseModel):
    """One entry of the x-kkv-last-seen-offsets response header."""

    topic: str
    partition: str
    offset: int

    @field_validator("partition", mode="before")
    @classmethod
    def _partition_as_str(cls, v):
        return str(v)


@dataclass
class PutOptions:
    """Retry budget for a single put."""

    interval_ms: int = 20
    n_retries: int = 5

    def __post_init__(self):
        if self.n_retries < 0:
            raise ValueError(f"n_retries must be >= 0, got {self.n_retries}")
        if self.interval_ms < 0:
            raise ValueError(f"interval_ms must be >= 0, got {self.interval_ms}")

"""
Custom exceptions for the Kafka key-value client.

Provides structured error handling for the write retry loop and stream parsing.
"""

from __future__ import annotations

from typing import Optional


class KKVOperationalError(Exception):
    """Base operational error for the kkv client."""

    pass


class RetryExhausted(KKVOperationalError):
    """A put never got a 200 from the write proxy within its attempt budget."""

    def __init__(
        self,
        attempts: int,
        *,
        last_status: Optional[int] = None,
        last_error: Optional[BaseException] = None,
    ):
        self.attempts = attempts
        self.last_status = last_status
        self.last_error = last_error
        if last_error is not None:
            detail = f"last error: {type(last_error).__name__}: {last_error}"
        else:
            detail = f"last status: {last_status}"
        super().__init__(f"put failed after {attempts} attempts ({detail})")


class MalformedRecord(KKVOperationalError):
    """A newline-terminated stream line was not valid JSON."""

    def __init__(self, line: str, cause: Exception):
        self.line = line
        self.cause = cause
        preview = line if len(line) <= 80 else line[:77] + "..."
        super().__init__(f"malformed record {preview!r}: {cause}")


class UnsupportedOperation(KKVOperationalError):
    """Operation not available for the configured topic (e.g. streaming gzip topics)."""

    pass

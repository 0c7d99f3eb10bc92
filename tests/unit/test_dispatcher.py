"""
Unit tests for UpdateDispatcher (per-key debounce + fan-out).
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from kkv_client import OffsetTracker, UpdateDispatcher

KEY_A = "bd3f6188-d865-443d-8646-03e8f1c643cb"
KEY_B = "aaaa6188-d865-443d-8646-03e8f1c643cb"


def notification(key, offset, *, topic="testtopic01", v=1):
    return {"v": v, "topic": topic, "offsets": {"0": offset}, "updates": {key: {}}}


@pytest.fixture
def gauge():
    g = MagicMock()
    g.labels.return_value = g
    return g


@pytest.fixture
def fetch():
    return AsyncMock(return_value={"foo": "bar"})


@pytest.fixture
def dispatcher(bus, fetch, gauge):
    d = UpdateDispatcher(
        topic="testtopic01",
        fetch=fetch,
        tracker=OffsetTracker(gauge, "cache-kkv", "testtopic01"),
        bus=bus,
        debounce_ms=10,
    )
    d.start()
    yield d
    d.stop()


@pytest.mark.asyncio
async def test_single_notification_dispatches_value(bus, dispatcher, fetch, gauge):
    handler = MagicMock()
    dispatcher.on_update(handler)

    await bus.publish(notification(KEY_A, 28262))
    await asyncio.sleep(0.05)

    handler.assert_called_once_with(KEY_A, {"foo": "bar"})
    fetch.assert_awaited_once_with(KEY_A)
    gauge.labels.assert_called_once_with("cache-kkv", "testtopic01", "0")
    gauge.set.assert_called_once_with(28262)

    await bus.publish(notification(KEY_A, 28263))
    await asyncio.sleep(0.05)

    assert handler.call_count == 2


@pytest.mark.asyncio
async def test_bursts_coalesce_per_key(bus, dispatcher, fetch):
    """Three duplicates each for two keys inside the window -> one call per key."""
    handler = MagicMock()
    dispatcher.on_update(handler)

    for _ in range(3):
        await bus.publish(notification(KEY_A, 28262))
    for _ in range(3):
        await bus.publish(notification(KEY_B, 28262))

    assert dispatcher.pending_count == 2

    await asyncio.sleep(0.05)
    assert handler.call_count == 2
    handler.assert_any_call(KEY_A, {"foo": "bar"})
    handler.assert_any_call(KEY_B, {"foo": "bar"})
    assert fetch.await_count == 2

    await bus.publish(notification(KEY_B, 28265))
    await asyncio.sleep(0.05)
    assert handler.call_count == 3


@pytest.mark.asyncio
async def test_value_is_read_at_resolution_time(bus, dispatcher, fetch):
    """Handlers see the value current when the timer fires, not at arrival."""
    store = {KEY_A: 1}

    async def read(key):
        return store[key]

    fetch.side_effect = read
    received = []
    dispatcher.on_update(lambda k, v: received.append((k, v)))

    await bus.publish(notification(KEY_A, 1))
    store[KEY_A] = 2
    await bus.publish(notification(KEY_A, 2))
    await asyncio.sleep(0.05)

    assert received == [(KEY_A, 2)]


@pytest.mark.asyncio
async def test_pending_key_keeps_one_timer(bus, dispatcher):
    await bus.publish(notification(KEY_A, 1))
    assert dispatcher.is_pending(KEY_A)
    await bus.publish(notification(KEY_A, 2))
    assert dispatcher.pending_count == 1

    await asyncio.sleep(0.05)
    assert not dispatcher.is_pending(KEY_A)


@pytest.mark.asyncio
async def test_offsets_forwarded_even_while_pending(bus, dispatcher, gauge):
    await bus.publish(notification(KEY_A, 10))
    await bus.publish(notification(KEY_A, 11))
    await bus.publish(notification(KEY_A, 9))

    assert [c.args[0] for c in gauge.set.call_args_list] == [10, 11]
    await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_other_topic_ignored(bus, dispatcher, fetch, gauge):
    handler = MagicMock()
    dispatcher.on_update(handler)

    await bus.publish(notification(KEY_A, 5, topic="othertopic"))
    await asyncio.sleep(0.05)

    handler.assert_not_called()
    fetch.assert_not_awaited()
    gauge.set.assert_not_called()


@pytest.mark.asyncio
async def test_unsupported_version_ignored(bus, dispatcher, fetch):
    await bus.publish(notification(KEY_A, 5, v=2))
    await asyncio.sleep(0.05)
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_async_handlers_and_handler_errors(bus, dispatcher):
    """A failing handler does not prevent the others from running."""
    received = []

    def broken(key, value):
        raise RuntimeError("boom")

    async def async_handler(key, value):
        received.append((key, value))

    dispatcher.on_update(broken)
    dispatcher.on_update(async_handler)

    await bus.publish(notification(KEY_A, 1))
    await asyncio.sleep(0.05)

    assert received == [(KEY_A, {"foo": "bar"})]


@pytest.mark.asyncio
async def test_failed_read_skips_handlers_and_returns_to_idle(bus, dispatcher, fetch):
    handler = MagicMock()
    dispatcher.on_update(handler)
    fetch.side_effect = [RuntimeError("cache down"), {"foo": "later"}]

    await bus.publish(notification(KEY_A, 1))
    await asyncio.sleep(0.05)
    handler.assert_not_called()
    assert not dispatcher.is_pending(KEY_A)

    await bus.publish(notification(KEY_A, 2))
    await asyncio.sleep(0.05)
    handler.assert_called_once_with(KEY_A, {"foo": "later"})


@pytest.mark.asyncio
async def test_slow_read_does_not_block_other_keys(bus, dispatcher, fetch):
    release = asyncio.Event()

    async def read(key):
        if key == KEY_A:
            await release.wait()
        return key

    fetch.side_effect = read
    received = []
    dispatcher.on_update(lambda k, v: received.append(k))

    await bus.publish(notification(KEY_A, 1))
    await bus.publish(notification(KEY_B, 2))
    await asyncio.sleep(0.05)
    assert received == [KEY_B]

    release.set()
    await dispatcher.drain()
    assert received == [KEY_B, KEY_A]


@pytest.mark.asyncio
async def test_handlers_added_after_fire_not_invoked_for_that_burst(bus, dispatcher, fetch):
    release = asyncio.Event()

    async def read(key):
        await release.wait()
        return "v"

    fetch.side_effect = read
    early, late = MagicMock(), MagicMock()
    dispatcher.on_update(early)

    await bus.publish(notification(KEY_A, 1))
    await asyncio.sleep(0.05)
    dispatcher.on_update(late)
    release.set()
    await dispatcher.drain()

    early.assert_called_once_with(KEY_A, "v")
    late.assert_not_called()


@pytest.mark.asyncio
async def test_stop_unsubscribes_and_drops_pending(bus, dispatcher, fetch):
    await bus.publish(notification(KEY_A, 1))
    assert bus.subscriber_count == 1

    dispatcher.stop()
    assert bus.subscriber_count == 0
    assert dispatcher.pending_count == 0

    await asyncio.sleep(0.05)
    fetch.assert_not_awaited()

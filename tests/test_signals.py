import pytest

from hangouts.signals import Signal


@pytest.mark.asyncio
async def test_emit_calls_sync_and_async_handlers_in_order():
    signal = Signal("test")
    calls = []

    def first(value):
        calls.append(("first", value))

    async def second(value):
        calls.append(("second", value))

    signal.subscribe(first)
    signal.subscribe(second)
    await signal.emit(1)

    assert calls == [("first", 1), ("second", 1)]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_delivery(caplog):
    signal = Signal("test")
    calls = []

    def broken(value):
        raise RuntimeError("boom")

    signal.subscribe(broken)
    signal.subscribe(calls.append)
    await signal.emit("x")

    assert calls == ["x"]
    (record,) = [r for r in caplog.records if "boom" in r.getMessage()]
    assert record.exc_info is not None
    assert record.exc_info[0] is RuntimeError


@pytest.mark.asyncio
async def test_subscription_cancel():
    signal = Signal("test")
    calls = []

    subscription = signal.subscribe(calls.append)
    assert subscription.active
    subscription.cancel()
    await signal.emit(1)

    assert not subscription.active
    assert calls == []
    assert len(signal) == 0


def test_duplicate_subscribe_is_ignored():
    signal = Signal("test")
    handler = lambda: None

    signal.subscribe(handler)
    signal.subscribe(handler)

    assert len(signal) == 1
    signal.clear()
    assert len(signal) == 0

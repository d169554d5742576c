import pytest

from services.event_manager import EventManager


@pytest.mark.asyncio
async def test_emit_reaches_async_and_sync_handlers():
    bus = EventManager()
    received = []

    async def async_handler(payload):
        received.append(("async", payload))

    def sync_handler(payload):
        received.append(("sync", payload))

    bus.subscribe("application.created", async_handler)
    bus.subscribe("application.created", sync_handler)
    await bus.emit("application.created", {"id": "app-1"})

    assert sorted(received) == [("async", {"id": "app-1"}), ("sync", {"id": "app-1"})]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others():
    bus = EventManager()
    received = []

    async def broken(payload):
        raise RuntimeError("boom")

    async def healthy(payload):
        received.append(payload)

    bus.subscribe("notification", broken)
    bus.subscribe("notification", healthy)
    await bus.emit("notification", {"status": "error"})

    assert received == [{"status": "error"}]


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventManager()
    received = []

    async def handler(payload):
        received.append(payload)

    bus.subscribe("notification", handler)
    bus.unsubscribe("notification", handler)
    await bus.emit("notification", {"status": "success"})

    assert received == []

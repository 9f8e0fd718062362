from __future__ import annotations

import asyncio

import pytest

from modbridge.common.config import RegisterRange
from modbridge.services.device.register_store import RegisterStore
from modbridge.services.publish.publisher import Publisher
from tests.conftest import FakeObserver, wait_until

ALL = RegisterRange(start=0, length=4, name="all")


def make_store() -> RegisterStore:
    return RegisterStore(4)


@pytest.mark.asyncio
async def test_initial_snapshot_precedes_broadcasts() -> None:
    store = make_store()
    store.merge([(ALL, [1, 2, 3, 4])])
    publisher = Publisher(store)
    observer = FakeObserver("obs-1")

    assert await publisher.subscribe(observer) is True
    assert observer.received == [[1, 2, 3, 4]]

    publisher.broadcast(store.merge([(ALL, [5, 6, 7, 8])]))
    await wait_until(lambda: len(observer.received) == 2)

    assert observer.received == [[1, 2, 3, 4], [5, 6, 7, 8]]
    await publisher.close()


@pytest.mark.asyncio
async def test_late_subscriber_gets_current_state() -> None:
    store = make_store()
    publisher = Publisher(store)
    publisher.broadcast(store.merge([(ALL, [9, 9, 9, 9])]))

    observer = FakeObserver("late")
    await publisher.subscribe(observer)

    assert observer.received == [[9, 9, 9, 9]]
    await publisher.close()


@pytest.mark.asyncio
async def test_slow_observer_does_not_delay_others() -> None:
    store = make_store()
    publisher = Publisher(store, send_timeout=2.0)
    fast = FakeObserver("fast")
    slow = FakeObserver("slow")
    await publisher.subscribe(fast)
    await publisher.subscribe(slow)
    slow.delay = 0.5

    assert publisher.broadcast(store.merge([(ALL, [1, 1, 1, 1])])) == 2
    await wait_until(lambda: len(fast.received) == 2, timeout=0.2)

    assert len(slow.received) == 1
    await publisher.close()


@pytest.mark.asyncio
async def test_slow_observer_receives_latest_snapshot() -> None:
    store = make_store()
    publisher = Publisher(store, send_timeout=2.0)
    observer = FakeObserver("slow")
    await publisher.subscribe(observer)
    observer.delay = 0.05

    publisher.broadcast(store.merge([(ALL, [1, 1, 1, 1])]))
    await asyncio.sleep(0.01)
    publisher.broadcast(store.merge([(ALL, [2, 2, 2, 2])]))
    publisher.broadcast(store.merge([(ALL, [3, 3, 3, 3])]))

    await wait_until(lambda: len(observer.received) == 3)

    assert observer.received[1:] == [[1, 1, 1, 1], [3, 3, 3, 3]]
    assert publisher.get_stats()["observers"]["slow"]["dropped"] == 1
    await publisher.close()


@pytest.mark.asyncio
async def test_failing_observer_is_dropped_and_closed() -> None:
    store = make_store()
    publisher = Publisher(store)
    broken = FakeObserver("broken")
    healthy = FakeObserver("healthy")
    await publisher.subscribe(broken)
    await publisher.subscribe(healthy)
    broken.fail = True

    publisher.broadcast(store.merge([(ALL, [4, 4, 4, 4])]))
    await wait_until(lambda: publisher.subscriber_count == 1)
    await wait_until(lambda: broken.closed)
    await wait_until(lambda: len(healthy.received) == 2)

    assert not healthy.closed
    await publisher.close()


@pytest.mark.asyncio
async def test_failed_initial_send_does_not_register() -> None:
    publisher = Publisher(make_store())
    observer = FakeObserver("dead")
    observer.fail = True

    assert await publisher.subscribe(observer) is False
    assert publisher.subscriber_count == 0


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent() -> None:
    publisher = Publisher(make_store())
    observer = FakeObserver("obs-1")
    await publisher.subscribe(observer)

    await publisher.unsubscribe(observer)
    await publisher.unsubscribe(observer)

    assert publisher.subscriber_count == 0
    assert publisher.broadcast(publisher._store.get()) == 0


@pytest.mark.asyncio
async def test_close_closes_observers_and_refuses_new_ones() -> None:
    publisher = Publisher(make_store())
    first = FakeObserver("obs-1")
    second = FakeObserver("obs-2")
    await publisher.subscribe(first)
    await publisher.subscribe(second)

    await publisher.close()

    assert first.closed and second.closed
    assert publisher.subscriber_count == 0
    assert await publisher.subscribe(FakeObserver("obs-3")) is False


@pytest.mark.asyncio
async def test_update_during_initial_send_is_delivered() -> None:
    store = make_store()
    publisher = Publisher(store)
    observer = FakeObserver("joining", delay=0.05)

    joining = asyncio.create_task(publisher.subscribe(observer))
    await asyncio.sleep(0.01)
    assert publisher.broadcast(store.merge([(ALL, [7, 7, 7, 7])])) == 0
    assert await joining is True

    await wait_until(lambda: len(observer.received) == 2)
    assert observer.received == [[0, 0, 0, 0], [7, 7, 7, 7]]
    await publisher.close()

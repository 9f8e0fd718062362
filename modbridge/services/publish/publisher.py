"""
Snapshot Publisher

Pushes full register snapshots to every subscribed observer. Each observer
gets its own writer task and a one-slot, latest-wins queue, so a slow or
dead observer never delays delivery to the others.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

from modbridge.common.logging_setup import get_service_logger
from modbridge.services.device.register_store import RegisterStore, Snapshot

logger = get_service_logger("publish")


class Observer(Protocol):
    """A push channel that receives full snapshots"""

    observer_id: str

    async def send(self, values: list[int]) -> None: ...

    async def close(self) -> None: ...


@dataclass
class Subscription:
    """A registered observer and its delivery state"""
    observer: Observer
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=1))
    writer: asyncio.Task | None = None
    delivered: int = 0
    dropped: int = 0


class Publisher:
    """
    Registry of observers with add/remove lifecycle hooks.

    subscribe() delivers the current snapshot before the observer is
    registered, so the initial snapshot always precedes broadcasts.
    """

    def __init__(self, store: RegisterStore, send_timeout: float = 5.0):
        self._store = store
        self._send_timeout = send_timeout
        self._subscriptions: dict[str, Subscription] = {}
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def subscribe(self, observer: Observer) -> bool:
        """
        Send the current snapshot to a new observer, then register it.

        Returns:
            False if the initial delivery failed (observer not registered)
        """
        if self._closed:
            return False

        snapshot = self._store.get()
        try:
            await asyncio.wait_for(observer.send(snapshot.to_list()), timeout=self._send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Initial snapshot to {observer.observer_id} failed: {e}")
            return False

        subscription = Subscription(observer=observer)
        subscription.delivered = 1

        # Broadcasts during the initial send did not see this observer yet
        latest = self._store.get()
        if latest.version != snapshot.version:
            subscription.queue.put_nowait(latest.to_list())

        subscription.writer = asyncio.create_task(
            self._writer(subscription),
            name=f"publish:{observer.observer_id}",
        )
        self._subscriptions[observer.observer_id] = subscription

        logger.info(
            f"Client connected: {observer.observer_id}",
            extra={"observer": observer.observer_id, "subscribers": len(self._subscriptions)},
        )
        return True

    async def unsubscribe(self, observer: Observer) -> None:
        """Remove an observer. No error if it is not registered."""
        subscription = self._subscriptions.pop(observer.observer_id, None)
        if subscription is None:
            return

        if subscription.writer is not None and subscription.writer is not asyncio.current_task():
            subscription.writer.cancel()

        logger.info(
            f"Client disconnected: {observer.observer_id}",
            extra={"observer": observer.observer_id, "subscribers": len(self._subscriptions)},
        )

    def broadcast(self, snapshot: Snapshot) -> int:
        """
        Queue a snapshot for every current observer without waiting.

        Returns:
            Number of observers the snapshot was queued for
        """
        values = snapshot.to_list()
        subscriptions = list(self._subscriptions.values())

        for subscription in subscriptions:
            queue = subscription.queue
            if queue.full():
                # Latest wins: the observer has not consumed the previous one
                queue.get_nowait()
                subscription.dropped += 1
            queue.put_nowait(values)

        return len(subscriptions)

    async def close(self) -> None:
        """Stop all writers and close every observer"""
        self._closed = True
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()

        for subscription in subscriptions:
            if subscription.writer is not None:
                subscription.writer.cancel()

        writers = [s.writer for s in subscriptions if s.writer is not None]
        if writers:
            await asyncio.gather(*writers, return_exceptions=True)

        for subscription in subscriptions:
            try:
                await asyncio.wait_for(subscription.observer.close(), timeout=self._send_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Error closing observer {subscription.observer.observer_id}: {e}")

        logger.info(f"Publisher closed ({len(subscriptions)} observers)")

    async def _writer(self, subscription: Subscription) -> None:
        observer = subscription.observer
        while True:
            values = await subscription.queue.get()
            try:
                await asyncio.wait_for(observer.send(values), timeout=self._send_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Dropping observer {observer.observer_id}: {e}")
                await self.unsubscribe(observer)
                try:
                    await asyncio.wait_for(observer.close(), timeout=self._send_timeout)
                except Exception as close_error:
                    logger.debug(f"Close after drop failed for {observer.observer_id}: {close_error}")
                return
            subscription.delivered += 1

    def get_stats(self) -> dict:
        """Get delivery statistics for observability"""
        return {
            "subscribers": len(self._subscriptions),
            "observers": {
                observer_id: {
                    "delivered": s.delivered,
                    "dropped": s.dropped,
                }
                for observer_id, s in self._subscriptions.items()
            },
        }

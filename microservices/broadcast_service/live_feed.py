"""
Live Change Feed

In-process dispatcher of delivery changes to push subscriptions.

Each subscription runs as its own asyncio task: it loads an initial snapshot,
then sleeps until a matching change marks it dirty and loads a fresh full
snapshot. Changes arriving while a load is in flight collapse into a single
follow-up refresh, so snapshots for one subscriber are delivered in order.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set

from .models import DeliveryChange
from .protocols import SubscriptionError

logger = logging.getLogger(__name__)


UpdateCallback = Callable[[Any], Any]
ErrorCallback = Callable[[SubscriptionError], Any]
Loader = Callable[[], Awaitable[Any]]
ChangeMatcher = Callable[[DeliveryChange], bool]
ChangeForwarder = Callable[[DeliveryChange], Awaitable[Any]]


async def _invoke(callback: Callable[[Any], Any], value: Any) -> None:
    """Call a plain or coroutine callback"""
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class Subscription:
    """
    A live projection pushed to one subscriber.

    Calling the subscription (or ``unsubscribe()``) cancels it immediately.
    """

    def __init__(
        self,
        name: str,
        loader: Loader,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
        matches: Optional[ChangeMatcher] = None,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.name = name
        self._loader = loader
        self._on_update = on_update
        self._on_error = on_error
        self._matches = matches
        self._on_close = on_close
        self._dirty = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    def start(self) -> "Subscription":
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"subscription:{self.name}")
        return self

    @property
    def active(self) -> bool:
        return not self._closed

    def notify(self, change: DeliveryChange) -> None:
        """Mark dirty if the change is relevant to this subscription"""
        if self._closed:
            return
        if self._matches is None or self._matches(change):
            self._dirty.set()

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        if self._on_close is not None:
            self._on_close(self)
        logger.debug(f"Subscription {self.name} closed")

    def __call__(self) -> None:
        self.unsubscribe()

    async def wait_closed(self) -> None:
        """Wait for the subscription task to finish"""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while not self._closed:
            # Cleared before loading so a change during the load triggers one more refresh
            self._dirty.clear()
            try:
                snapshot = await self._loader()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Subscription {self.name} failed to load snapshot: {e}")
                await self._deliver_error(
                    SubscriptionError(f"Live snapshot for {self.name} failed: {e}", subscription=self.name)
                )
                self.unsubscribe()
                return

            if self._closed:
                return

            try:
                await _invoke(self._on_update, snapshot)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Subscription {self.name} update callback failed: {e}")

            if self._closed:
                return
            await self._dirty.wait()

    async def _deliver_error(self, error: SubscriptionError) -> None:
        if self._on_error is None:
            return
        try:
            await _invoke(self._on_error, error)
        except Exception as e:
            logger.error(f"Subscription {self.name} error callback failed: {e}")


class ChangeFeed:
    """Fans delivery changes out to live subscriptions and forwarders"""

    def __init__(self):
        self._subscriptions: Set[Subscription] = set()
        self._forwarders: List[ChangeForwarder] = []

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def add_forwarder(self, forwarder: ChangeForwarder) -> None:
        """Register a coroutine called for every locally originated change"""
        self._forwarders.append(forwarder)

    def subscribe(
        self,
        name: str,
        loader: Loader,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
        matches: Optional[ChangeMatcher] = None,
    ) -> Subscription:
        """Start a subscription; must be called from a running event loop"""
        subscription = Subscription(
            name=name,
            loader=loader,
            on_update=on_update,
            on_error=on_error,
            matches=matches,
            on_close=self._discard,
        )
        self._subscriptions.add(subscription)
        return subscription.start()

    async def publish(self, change: DeliveryChange, forward: bool = True) -> None:
        """
        Dispatch a change to matching subscriptions.

        Args:
            change: The delivery change
            forward: Also hand the change to forwarders (False for changes
                received from peer instances)
        """
        for subscription in list(self._subscriptions):
            subscription.notify(change)

        if not forward:
            return

        for forwarder in self._forwarders:
            try:
                await forwarder(change)
            except Exception as e:
                logger.error(f"Failed to forward delivery change {change.kind.value}: {e}")

    async def close(self) -> None:
        """Cancel every live subscription"""
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.unsubscribe()
        for subscription in subscriptions:
            await subscription.wait_closed()

    def _discard(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

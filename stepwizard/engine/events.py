"""EventDispatcher - fan-out of lifecycle notifications to subscribers."""

import asyncio
import inspect
import logging
from typing import Callable, Dict, List, Any, Set

from .schema import WizardEvent

logger = logging.getLogger(__name__)

EVENT_KINDS = ('enter', 'exit', 'error', 'context_change', 'transition')

Listener = Callable[[WizardEvent], Any]


class _Subscription:
    """One registration of a listener; the same callable may hold several."""

    __slots__ = ('listener',)

    def __init__(self, listener: Listener):
        self.listener = listener


class EventDispatcher:
    """
    Publish-subscribe for wizard events.

    Delivery is synchronous and in subscription order. Listeners observe
    committed facts: their return values are ignored, coroutines they return
    are scheduled and not awaited, and their exceptions are logged without
    reaching the engine.
    """

    def __init__(self):
        self._listeners: Dict[str, List[_Subscription]] = {kind: [] for kind in EVENT_KINDS}
        self._pending: Set[asyncio.Future] = set()

    def subscribe(self, kind: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for one event kind.

        Args:
            kind: One of 'enter', 'exit', 'error', 'context_change', 'transition'
            listener: Called with a WizardEvent

        Returns:
            Function that removes the listener (safe to call twice)

        Raises:
            ValueError: If kind is not a known event kind
        """
        if kind not in self._listeners:
            raise ValueError(f"Unknown event kind '{kind}', expected one of {EVENT_KINDS}")
        if not callable(listener):
            raise TypeError("listener must be callable")

        subscriptions = self._listeners[kind]
        subscription = _Subscription(listener)
        subscriptions.append(subscription)

        def unsubscribe() -> None:
            # Only this registration, even if the callable is subscribed twice
            for index, existing in enumerate(subscriptions):
                if existing is subscription:
                    del subscriptions[index]
                    return

        return unsubscribe

    def emit(self, event: WizardEvent) -> None:
        """Deliver an event to every listener of its kind."""
        # Copy so listeners may unsubscribe while being notified
        for subscription in list(self._listeners[event.kind]):
            try:
                result = subscription.listener(event)
            except Exception:
                logger.exception(f"Listener for '{event.kind}' event raised")
                continue

            if inspect.isawaitable(result):
                self._schedule(result, event.kind)

    def _schedule(self, awaitable, kind: str) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Async listener for '{kind}' event returned an awaitable outside an event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)

        def done(fut: asyncio.Future) -> None:
            self._pending.discard(fut)
            if not fut.cancelled() and fut.exception() is not None:
                logger.error(
                    f"Async listener for '{kind}' event failed",
                    exc_info=fut.exception(),
                )

        future.add_done_callback(done)

    def listener_count(self, kind: str) -> int:
        return len(self._listeners[kind])

    async def drain(self) -> None:
        """Wait for scheduled async listeners to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        for listeners in self._listeners.values():
            listeners.clear()

import queue
import threading
from typing import Type, Callable, List, Dict, Any, Optional
from vcomp.domain.events import Event

Unsubscribe = Callable[[], None]


class EventBus:
    """A simple synchronous event bus for decoupled communication.

    Subscribers are called in the publishing thread, in subscription order.
    Subscribing to a base class (e.g. `Event`) receives every subclass event.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to a specific event type. Can be used as a decorator.

        Returns a function that removes the subscription when called directly.
        """
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(event_type, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def open_channel(self, event_type: Type[Event] = Event, maxsize: int = 0) -> "queue.Queue[Event]":
        """Returns a queue that receives every published event of `event_type`.

        Useful for consumers living on another thread. Call `close_channel`
        with the same queue to stop delivery.
        """
        channel: "queue.Queue[Event]" = queue.Queue(maxsize=maxsize)
        channel.unsubscribe = self.subscribe(event_type, channel.put)  # type: ignore[attr-defined]
        return channel

    def close_channel(self, channel: "queue.Queue[Event]"):
        unsubscribe = getattr(channel, "unsubscribe", None)
        if unsubscribe:
            unsubscribe()

    def publish(self, event: Event):
        """Publishes an event to all interested subscribers."""
        with self._lock:
            callbacks = [
                callback
                for event_type, subscribers in self._subscribers.items()
                if isinstance(event, event_type)
                for callback in subscribers
            ]
        for callback in callbacks:
            callback(event)

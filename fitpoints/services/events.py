"""
Best-effort change notifications for ledger and redemption mutations.

Dependent views (member balance screen, staff terminal) subscribe and
re-query after a change. Listeners run after the database commit; a failing
listener is logged and never affects the operation that triggered it.
"""
import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

# Event names
POINTS_EARNED = 'points.earned'
POINTS_SPENT = 'points.spent'
REDEMPTION_CREATED = 'redemption.created'
REDEMPTION_CONFIRMED = 'redemption.confirmed'
REDEMPTION_CANCELLED = 'redemption.cancelled'
REDEMPTION_EXPIRED = 'redemption.expired'

Listener = Callable[[str, Dict[str, Any]], None]


class EventBus:
    """
    Publish-on-mutate listener list.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(lambda event, payload: refresh(payload['member_id']))
        ...
        unsubscribe()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def notify(self, event: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event, payload)
            except Exception as e:
                logger.warning(f"Event listener failed for {event}: {e}")

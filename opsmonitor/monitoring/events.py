"""
Typed publish/subscribe bus for monitoring events.

Producers outside the HTTP pipeline (upload processing, data access layers)
and the engine itself publish typed events; subscribers register per event
class. A failing subscriber is logged and never affects other subscribers
or the publisher.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MonitoringEvent:
    """Base class for published events."""


@dataclass
class RequestCompleted(MonitoringEvent):
    method: str
    endpoint: str
    status_code: int
    duration_ms: float
    role: Optional[str] = None


@dataclass
class ErrorOccurred(MonitoringEvent):
    method: str
    endpoint: str
    status_code: int
    duration_ms: float
    role: Optional[str] = None
    user_agent: str = 'unknown'


@dataclass
class FileProcessed(MonitoringEvent):
    file_type: str
    duration_ms: float
    size_bytes: Optional[int] = None
    success: bool = True


@dataclass
class QueryExecuted(MonitoringEvent):
    collection: str
    operation: str
    duration_ms: float
    success: bool = True
    document_count: int = 0


@dataclass
class AlertRaised(MonitoringEvent):
    alert: Any = field(default=None)


Handler = Callable[[MonitoringEvent], Any]


class EventBus:
    """
    Synchronous in-process event bus.

    Handlers subscribed to a base class also receive events of its subclasses.
    """

    def __init__(self):
        self._subscribers: Dict[Type[MonitoringEvent], List[Handler]] = {}
        self._lock = threading.RLock()

    def subscribe(self, event_type: Type[MonitoringEvent], handler: Handler) -> None:
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Type[MonitoringEvent], handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: MonitoringEvent) -> int:
        """
        Deliver ``event`` to every matching subscriber.

        Returns:
            Number of handlers that completed without raising
        """
        with self._lock:
            handlers = [
                handler
                for event_type, registered in self._subscribers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Event subscriber failed",
                    event_type=type(event).__name__,
                    handler=getattr(handler, '__qualname__', repr(handler)),
                    error=str(e),
                    exc_info=True
                )
        return delivered


__all__ = [
    'MonitoringEvent',
    'RequestCompleted',
    'ErrorOccurred',
    'FileProcessed',
    'QueryExecuted',
    'AlertRaised',
    'EventBus',
]

"""
Outbound collaborators - notification, realtime events and audit trail
In-process implementations used by the API and the tests
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from config import settings
from domain.repositories import NotificationSender, EventPublisher, ActivityLogger

logger = logging.getLogger(__name__)


class LoggingNotificationSender(NotificationSender):
    """Records confirmation emails instead of delivering them"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send_confirmation(self, details: Dict[str, Any]) -> None:
        self.sent.append(details)
        logger.info(
            "Booking confirmation %s sent to %s",
            details.get("bookingNumber"), details.get("customerEmail")
        )


@dataclass
class Event:
    """Broadcast event"""
    topic: str
    payload: Dict[str, Any]
    channel: str
    timestamp: datetime = field(default_factory=datetime.utcnow)


class InMemoryEventPublisher(EventPublisher):
    """
    In-process publish/subscribe for dashboard updates

    Usage:
    1. Subscribe: publisher.subscribe("booking:new", handler)
    2. Publish: await publisher.emit("booking:new", {...})
    3. Unsubscribe: publisher.unsubscribe("booking:new", handler)
    """

    def __init__(self, channel: Optional[str] = None, history_size: int = 100):
        self.channel = channel or settings.EVENT_CHANNEL
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}
        self._history: Deque[Event] = deque(maxlen=history_size)

    def subscribe(self, topic: str, handler: Callable[[Event], None]) -> None:
        handlers = self._subscribers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, topic: str, handler: Callable[[Event], None]) -> None:
        if handler in self._subscribers.get(topic, []):
            self._subscribers[topic].remove(handler)

    async def emit(self, topic: str, payload: Dict[str, Any]) -> None:
        event = Event(topic=topic, payload=payload, channel=self.channel)
        self._history.append(event)

        # A failing subscriber must not starve the others
        for handler in list(self._subscribers.get(topic, [])):
            try:
                handler(event)
            except Exception:
                logger.error("Event handler %s failed for %s", handler.__name__, topic, exc_info=True)

    def get_history(self, topic: Optional[str] = None, limit: int = 50) -> List[Event]:
        """Recent events, newest first"""
        history = [e for e in self._history if topic is None or e.topic == topic]
        return list(reversed(history))[:limit]


@dataclass
class ActivityRecord:
    action: str
    payload: Dict[str, Any]
    actor_id: Optional[str]
    timestamp: datetime = field(default_factory=datetime.utcnow)


class InMemoryActivityLogger(ActivityLogger):
    """Audit trail kept in memory"""

    def __init__(self):
        self.records: List[ActivityRecord] = []

    async def log_activity(self, action: str, payload: Dict[str, Any], actor_id: Optional[str] = None) -> None:
        self.records.append(ActivityRecord(action=action, payload=payload, actor_id=actor_id))
        logger.debug("Activity %s by %s: %s", action, actor_id, payload)

    def find(self, action: str) -> List[ActivityRecord]:
        return [r for r in self.records if r.action == action]

"""
Publish/subscribe stream of RBAC state changes.
"""

import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Any, Optional, FrozenSet, Iterable

from shared.logging import get_logger
from ..rules.models import RbacEvent, RbacEventType


EventListener = Callable[[RbacEvent], None]


@dataclass
class Subscription:
    """Registered listener."""
    subscription_id: str
    callback: EventListener
    event_types: Optional[FrozenSet[RbacEventType]] = None
    delivered: int = field(default=0)

    def accepts(self, event: RbacEvent) -> bool:
        return self.event_types is None or event.type in self.event_types


class EventBus:
    """Synchronous callback registry for :class:`RbacEvent` notifications."""

    def __init__(self):
        self.logger = get_logger("rbac.events")
        self.subscriptions: Dict[str, Subscription] = {}
        self.completed = False

    def subscribe(
        self,
        callback: EventListener,
        event_types: Optional[Iterable[RbacEventType]] = None
    ) -> Callable[[], bool]:
        """Register ``callback``; returns a handle that unsubscribes it."""
        if self.completed:
            self.logger.warning("Subscribe on completed event stream ignored")
            return lambda: False

        subscription_id = str(uuid.uuid4())
        self.subscriptions[subscription_id] = Subscription(
            subscription_id=subscription_id,
            callback=callback,
            event_types=frozenset(RbacEventType(t) for t in event_types) if event_types else None
        )

        self.logger.debug("Listener subscribed", subscription_id=subscription_id)
        return lambda: self.unsubscribe(subscription_id)

    def unsubscribe(self, subscription_id: str) -> bool:
        if self.subscriptions.pop(subscription_id, None) is None:
            return False
        self.logger.debug("Listener unsubscribed", subscription_id=subscription_id)
        return True

    def emit(
        self,
        event_type: RbacEventType,
        payload: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> Optional[RbacEvent]:
        """Deliver an event to every matching listener."""
        if self.completed:
            return None

        event = RbacEvent(type=event_type, payload=payload or {}, user_id=user_id)

        for subscription in list(self.subscriptions.values()):
            if not subscription.accepts(event):
                continue
            try:
                subscription.callback(event)
                subscription.delivered += 1
            except Exception as e:
                self.logger.error(
                    "Event listener failed",
                    subscription_id=subscription.subscription_id,
                    event_type=event_type.value,
                    error=str(e)
                )

        return event

    def complete(self) -> None:
        """Drop all listeners; later emits are ignored."""
        self.completed = True
        self.subscriptions.clear()
        self.logger.debug("Event stream completed")

    @property
    def listener_count(self) -> int:
        return len(self.subscriptions)

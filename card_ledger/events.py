"""
Event System Module

Plain publish/subscribe dispatcher the services notify after a successful
commit, so a presentation layer can refresh without polling.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging


class LedgerEvent(Enum):
    """Events published after committed operations"""

    LOGIN_SUCCEEDED = "session.login_succeeded"
    LOGIN_FAILED = "session.login_failed"
    LOGGED_OUT = "session.logged_out"

    BALANCE_CHANGED = "account.balance_changed"
    PIN_CHANGED = "account.pin_changed"
    TEMPORARILY_LOCKED = "account.temporarily_locked"

    ACCOUNT_CREATED = "admin.account_created"
    ACCOUNT_UPDATED = "admin.account_updated"
    ACCOUNT_DELETED = "admin.account_deleted"
    LOCK_STATUS_CHANGED = "admin.lock_status_changed"

    TRANSACTION_RECORDED = "ledger.transaction_recorded"


@dataclass
class EventPayload:
    """Payload for ledger events"""
    event_type: LedgerEvent
    card_number: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_type': self.event_type.value,
            'card_number': self.card_number,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


Handler = Callable[[EventPayload], None]


class EventDispatcher:
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[LedgerEvent, List[Handler]] = {}
        self._global_handlers: List[Handler] = []
        self.logger = logging.getLogger("card_ledger.events")

    def subscribe(self, event_type: LedgerEvent, handler: Handler) -> None:
        """Subscribe to a specific event type"""
        self._handlers.setdefault(event_type, []).append(handler)
        self.logger.debug(f"Subscribed handler {_name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Handler) -> None:
        """Subscribe to ALL events"""
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: LedgerEvent, handler: Handler) -> None:
        try:
            self._handlers.get(event_type, []).remove(handler)
        except ValueError:
            self.logger.warning(f"Handler {_name(handler)} was not subscribed to {event_type.value}")

    def unsubscribe_all(self, handler: Handler) -> None:
        try:
            self._global_handlers.remove(handler)
        except ValueError:
            self.logger.warning(f"Global handler {_name(handler)} was not subscribed")

    def publish(self, event: EventPayload) -> None:
        """Publish event to all subscribers; handler errors never reach the caller"""
        self.logger.debug(f"Publishing {event.event_type.value} for card {event.card_number}")

        for handler in self._handlers.get(event.event_type, []) + self._global_handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Error in event handler {_name(handler)} for {event.event_type.value}: {e}")

    def emit(self, event_type: LedgerEvent, card_number: str, **data: Any) -> None:
        self.publish(EventPayload(event_type=event_type, card_number=card_number, data=data))

    def clear(self) -> None:
        self._handlers.clear()
        self._global_handlers.clear()

    def get_handler_count(self, event_type: Optional[LedgerEvent] = None) -> int:
        if event_type:
            return len(self._handlers.get(event_type, []))
        return sum(len(h) for h in self._handlers.values()) + len(self._global_handlers)


def _name(handler: Handler) -> str:
    return getattr(handler, "__name__", repr(handler))

"""
Event System Module

Synchronous publish/subscribe notifications for ledger and vault operations.
Events are delivered in-process, in subscription order, after the unit of
work that produced them has committed. Amounts in event data are decimal
strings.
"""

from enum import Enum
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock


class LedgerEvent(Enum):
    """Events that can occur in the ledger and vault"""

    # Rate policy
    INTEREST_RATE_SET = "ledger.interest_rate_set"

    # Balance changes
    INTEREST_SETTLED = "ledger.interest_settled"
    MINTED = "ledger.minted"
    BURNED = "ledger.burned"
    TRANSFERRED = "ledger.transferred"
    APPROVED = "ledger.approved"

    # Vault flows
    DEPOSITED = "vault.deposited"
    REDEEMED = "vault.redeemed"
    REWARDS_FUNDED = "vault.rewards_funded"


EventHandler = Callable[["EventPayload"], None]


@dataclass
class EventPayload:
    """
    A committed ledger or vault change

    ledger_time is the clock reading of the operation; emitted_at is the
    wall-clock time the payload was built.
    """
    event_type: LedgerEvent
    entity_type: str
    entity_id: str
    data: Dict[str, Any]
    ledger_time: int = 0
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_id': self.event_id,
            'event_type': self.event_type.value,
            'entity': f"{self.entity_type}:{self.entity_id}",
            'data': dict(self.data),
            'ledger_time': self.ledger_time,
            'emitted_at': self.emitted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EventPayload':
        entity_type, _, entity_id = data['entity'].partition(":")
        emitted_at = data['emitted_at']
        return cls(
            event_type=LedgerEvent(data['event_type']),
            entity_type=entity_type,
            entity_id=entity_id,
            data=dict(data['data']),
            ledger_time=int(data.get('ledger_time', 0)),
            emitted_at=datetime.fromisoformat(emitted_at) if isinstance(emitted_at, str) else emitted_at,
            event_id=data['event_id'],
        )


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", repr(handler))


class EventDispatcher:
    """
    In-process event bus

    Handlers for a specific event type run before catch-all handlers. A
    failing handler is logged and skipped; it cannot undo the committed
    operation or stop later handlers.
    """

    # Registry key for handlers that receive every event
    ALL = None

    def __init__(self):
        self._registry: Dict[Optional[LedgerEvent], List[EventHandler]] = {}
        self._lock = RLock()
        self.logger = logging.getLogger("rebase_vault.events")

    def _add(self, key: Optional[LedgerEvent], handler: EventHandler) -> None:
        with self._lock:
            self._registry.setdefault(key, []).append(handler)
        self.logger.debug(f"Subscribed {_handler_name(handler)} to {key.value if key else 'all events'}")

    def _remove(self, key: Optional[LedgerEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._registry.get(key, [])
            if handler in handlers:
                handlers.remove(handler)
                return
        self.logger.warning(f"{_handler_name(handler)} was not subscribed to "
                            f"{key.value if key else 'all events'}")

    def subscribe(self, event_type: LedgerEvent, handler: EventHandler) -> None:
        self._add(event_type, handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        self._add(self.ALL, handler)

    def unsubscribe(self, event_type: LedgerEvent, handler: EventHandler) -> None:
        self._remove(event_type, handler)

    def unsubscribe_all(self, handler: EventHandler) -> None:
        self._remove(self.ALL, handler)

    def publish(self, event: EventPayload) -> None:
        """Deliver event to its subscribers, then to catch-all handlers"""
        with self._lock:
            handlers = self._registry.get(event.event_type, []) + self._registry.get(self.ALL, [])

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Handler {_handler_name(handler)} failed on "
                                  f"{event.event_type.value} ({event.event_id}): {e}")

    def clear(self) -> None:
        with self._lock:
            self._registry.clear()

    def get_handler_count(self, event_type: Optional[LedgerEvent] = None) -> int:
        """Handlers for one event type, or every registered handler"""
        with self._lock:
            if event_type is not None:
                return len(self._registry.get(event_type, []))
            return sum(len(handlers) for handlers in self._registry.values())

    def get_subscribed_events(self) -> List[LedgerEvent]:
        with self._lock:
            return [key for key, handlers in self._registry.items() if key is not None and handlers]


_global_dispatcher: Optional[EventDispatcher] = None


def get_global_dispatcher() -> EventDispatcher:
    """Process-wide dispatcher used by ledgers built without one"""
    global _global_dispatcher
    if _global_dispatcher is None:
        _global_dispatcher = EventDispatcher()
    return _global_dispatcher


def set_global_dispatcher(dispatcher: EventDispatcher) -> None:
    global _global_dispatcher
    _global_dispatcher = dispatcher

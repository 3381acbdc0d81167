"""buyback/monitoring/events.py

Audit events and a synchronous fan-out bus.

Design goals:
- Fail-safe: a listener that raises is logged and skipped, never breaks an attempt
- Ordered: listeners see events in emission order
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuybackExecuted:
    execution_id: int
    bnb_amount: int
    tokens_received: int
    price_per_token: int
    executor: str
    timestamp: int

    name = "BuybackExecuted"


@dataclass(frozen=True)
class ExecutionFailed:
    execution_id: int
    reason: str
    timestamp: int

    name = "ExecutionFailed"


@dataclass(frozen=True)
class CircuitBreakerTriggered:
    reason: str
    cooldown_until: int
    timestamp: int

    name = "CircuitBreakerTriggered"


AuditEvent = Union[BuybackExecuted, ExecutionFailed, CircuitBreakerTriggered]
Listener = Callable[[AuditEvent], None]


def event_to_dict(event: AuditEvent) -> Dict[str, Any]:
    return {"event": event.name, **asdict(event)}


class EventBus:
    """Delivers audit events to subscribed listeners."""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, event: AuditEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        logger.info(f"[events] {event.name}: {asdict(event)}")
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"[events] Listener {listener!r} failed on {event.name}")

"""Monitoring: audit events, audit log, Telegram alerts and exporters.

Submodules:
- events: audit event types and the EventBus
- audit_log: append-only ExecutionRecord log (JSONL)
- alerts: Telegram bot client and EventBus listener
- exporters: CSV/Parquet export of records and metrics
"""

from .audit_log import AuditLog
from .events import (
    BuybackExecuted,
    CircuitBreakerTriggered,
    EventBus,
    ExecutionFailed,
)

__all__ = [
    "AuditLog",
    "BuybackExecuted",
    "CircuitBreakerTriggered",
    "EventBus",
    "ExecutionFailed",
]

"""buyback/execution/usage_ledger.py

Cumulative and rolling-window execution totals.

HARD RULES:
- Written only by the orchestrator, under its execution lock
- Reads never mutate: expired window entries are filtered on read and pruned
  on the next write
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional, Tuple

DAILY_WINDOW_SECONDS = 86400


@dataclass
class UsageLedger:
    """
    Execution totals used by the caps, the interval trigger and the accessors.

    Attributes:
        total_spent: Revenue asset spent across all successful executions
        total_acquired: Target asset delivered to the sink
        execution_count: Successful executions
        failed_attempts: Recorded FAILED attempts
        last_execution_time: Unix time of the last successful execution
        spend_log: (timestamp, amount) per success, trailing window only
    """
    total_spent: int = 0
    total_acquired: int = 0
    execution_count: int = 0
    failed_attempts: int = 0
    last_execution_time: Optional[int] = None
    spend_log: Deque[Tuple[int, int]] = field(default_factory=deque)
    window_seconds: int = DAILY_WINDOW_SECONDS

    def rolling_spend(self, now: int) -> int:
        """Sum of amounts spent in (now - window, now]."""
        cutoff = now - self.window_seconds
        # tuple() snapshots the deque so concurrent readers never see it mid-append
        return sum(amount for ts, amount in tuple(self.spend_log) if ts > cutoff)

    def remaining_daily(self, max_daily_amount: int, now: int) -> int:
        return max_daily_amount - self.rolling_spend(now)

    def record_execution(self, now: int, amount_in: int, amount_out: int) -> None:
        self._prune(now)
        self.spend_log.append((now, amount_in))
        self.total_spent += amount_in
        self.total_acquired += amount_out
        self.execution_count += 1
        self.last_execution_time = now

    def record_failure(self) -> None:
        self.failed_attempts += 1

    def _prune(self, now: int) -> None:
        cutoff = now - self.window_seconds
        while self.spend_log and self.spend_log[0][0] <= cutoff:
            self.spend_log.popleft()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_spent": self.total_spent,
            "total_acquired": self.total_acquired,
            "execution_count": self.execution_count,
            "failed_attempts": self.failed_attempts,
            "last_execution_time": self.last_execution_time,
            "spend_log": [list(entry) for entry in self.spend_log],
            "window_seconds": self.window_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageLedger":
        return cls(
            total_spent=int(data.get("total_spent", 0)),
            total_acquired=int(data.get("total_acquired", 0)),
            execution_count=int(data.get("execution_count", 0)),
            failed_attempts=int(data.get("failed_attempts", 0)),
            last_execution_time=data.get("last_execution_time"),
            spend_log=deque((int(ts), int(amount)) for ts, amount in data.get("spend_log", [])),
            window_seconds=int(data.get("window_seconds", DAILY_WINDOW_SECONDS)),
        )

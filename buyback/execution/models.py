"""buyback/execution/models.py

Audit-trail records and per-attempt results.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from buyback.execution.reject_reasons import NO_OP_REASONS, assert_reason_known


class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ExecutionRecord:
    """
    One recorded attempt. Never mutated or deleted.

    Attributes:
        execution_id: Monotonic id, starting at 1
        timestamp: Unix time of the attempt
        amount_in: Revenue asset committed (0 if rejected before sizing)
        amount_out: Target asset delivered to the sink (0 if failed)
        price_per_unit: amount_out per amount_in, scaled by PRICE_SCALE
        outcome: SUCCESS or FAILED
        reason: Failure reason (None on success)
        executor: Identity that invoked the attempt
    """
    execution_id: int
    timestamp: int
    amount_in: int
    amount_out: int
    price_per_unit: int
    outcome: Outcome
    reason: Optional[str] = None
    executor: str = ""

    def __post_init__(self):
        if self.outcome == Outcome.FAILED:
            if self.reason is None:
                raise ValueError("FAILED records need a reason")
            assert_reason_known(self.reason)
            if self.reason in NO_OP_REASONS:
                raise ValueError(f"{self.reason} is a no-op, not a failure")

    @property
    def succeeded(self) -> bool:
        return self.outcome == Outcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "timestamp": self.timestamp,
            "amount_in": self.amount_in,
            "amount_out": self.amount_out,
            "price_per_unit": self.price_per_unit,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "executor": self.executor,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionRecord":
        data = data.copy()
        data["outcome"] = Outcome(data["outcome"])
        return cls(**data)


@dataclass(frozen=True)
class NoAction:
    """Benign 'nothing to do this cycle' signal; nothing was recorded."""
    reason: str
    timestamp: int

    def __post_init__(self):
        if self.reason not in NO_OP_REASONS:
            raise ValueError(f"{self.reason} is not a no-op reason")


@dataclass(frozen=True)
class AttemptResult:
    """What execute_buyback hands back: a record, or a no-op signal."""
    result: Union[ExecutionRecord, NoAction]

    @property
    def is_no_action(self) -> bool:
        return isinstance(self.result, NoAction)

    @property
    def record(self) -> Optional[ExecutionRecord]:
        return None if self.is_no_action else self.result

    @property
    def succeeded(self) -> bool:
        return not self.is_no_action and self.result.succeeded

    @property
    def reason(self) -> Optional[str]:
        return self.result.reason

    @property
    def tokens_bought(self) -> int:
        record = self.record
        return record.amount_out if record is not None else 0

    def to_dict(self) -> Dict[str, Any]:
        if self.is_no_action:
            return {"action": "none", "reason": self.result.reason, "timestamp": self.result.timestamp}
        return {"action": "recorded", **self.result.to_dict()}

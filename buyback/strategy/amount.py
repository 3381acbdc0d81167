"""buyback/strategy/amount.py

Execution sizing: fixed or percentage-of-balance, clamped by the caps.

Integer arithmetic throughout, truncating division, no floating point.
"""

from __future__ import annotations

from typing import Optional

from buyback.config.schema import BuybackConfig, ExecutionMode
from buyback.execution.reject_reasons import NO_EXECUTABLE_AMOUNT
from buyback.execution.usage_ledger import UsageLedger


class NoExecutableAmount(Exception):
    """Caps or balance leave nothing to execute this cycle (benign skip)."""

    reason = NO_EXECUTABLE_AMOUNT

    def __init__(self, candidate: int, clamped: int):
        self.candidate = candidate
        self.clamped = clamped
        super().__init__(f"No executable amount (candidate={candidate}, clamped={clamped})")


class AmountCalculator:
    def __init__(self, config: BuybackConfig):
        self.config = config

    def candidate(self, balance: int) -> int:
        if self.config.execution_mode == ExecutionMode.FIXED:
            return self.config.fixed_amount
        return balance * self.config.percentage_of_balance // 100

    def upper_bound(self, usage: UsageLedger, now: int) -> int:
        """min(max_execution_amount, max_daily_amount - rolling daily spend)."""
        return min(
            self.config.max_execution_amount,
            usage.remaining_daily(self.config.max_daily_amount, now),
        )

    def compute_amount(
        self,
        balance: int,
        usage: UsageLedger,
        now: int,
        requested: Optional[int] = None,
    ) -> int:
        """
        Size the next execution.

        Args:
            balance: Current revenue-source balance
            usage: Usage ledger for the rolling daily spend
            now: Evaluation time
            requested: Caller-supplied amount; clamped like the candidate

        Returns:
            Positive amount to execute

        Raises:
            NoExecutableAmount: If the clamped amount is <= 0
        """
        candidate = self.candidate(balance) if requested is None else requested
        amount = min(candidate, self.upper_bound(usage, now), balance)
        if amount <= 0:
            raise NoExecutableAmount(candidate, amount)
        return amount

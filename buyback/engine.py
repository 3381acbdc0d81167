"""buyback/engine.py

BuybackEngine: the external interface of one deployed buyback instance.

Wires ConfigStore, UsageLedger, CircuitBreaker, TriggerEvaluator,
AmountCalculator, SafetyGuard and ExecutionOrchestrator together and exposes:
- execute_buyback (mutating, single-writer)
- check_execution_conditions / get_next_execution_time (read-only)
- totals and circuit-breaker accessors (read-only, lock-free)
- iter_records (lazy, restartable audit stream)
- save_state / load_state (JSON snapshot of usage and breaker state)

Usage:
    from buyback.engine import BuybackEngine

    engine = BuybackEngine(store, ledger=ledger, pool=pool, oracle=oracle)
    result = engine.execute_buyback()
    if result.succeeded:
        print(result.tokens_bought)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple, Union

from buyback.config.loader import ConfigStore
from buyback.config.schema import BuybackConfig
from buyback.execution.circuit_breaker import CircuitBreaker
from buyback.execution.errors import LedgerError, MarketDataError
from buyback.execution.models import AttemptResult, ExecutionRecord
from buyback.execution.orchestrator import ExecutionOrchestrator
from buyback.execution.reject_reasons import MARKET_DATA_UNAVAILABLE
from buyback.execution.routing.interfaces import Ledger, LiquidityPool, PriceOracle, SwapRouter
from buyback.execution.safety.guard import SafetyDecision, SafetyGuard
from buyback.execution.state_store import StateStore
from buyback.execution.usage_ledger import UsageLedger
from buyback.monitoring.audit_log import AuditLog
from buyback.monitoring.events import EventBus
from buyback.strategy.amount import AmountCalculator, NoExecutableAmount
from buyback.strategy.triggers import TriggerEvaluator

logger = logging.getLogger(__name__)


class BuybackEngine:
    """One deployed buyback instance."""

    def __init__(
        self,
        store: Union[ConfigStore, BuybackConfig],
        *,
        ledger: Ledger,
        pool: LiquidityPool,
        router: Optional[SwapRouter] = None,
        oracle: Optional[PriceOracle] = None,
        audit_log: Optional[AuditLog] = None,
        events: Optional[EventBus] = None,
        state_store: Optional[StateStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        if isinstance(store, BuybackConfig):
            store = ConfigStore.from_config(store)
        if router is None:
            if not isinstance(pool, SwapRouter):
                raise TypeError("router is required when the pool cannot swap")
            router = pool

        self.store = store
        self.config = store.config
        self.ledger = ledger
        self.pool = pool
        self.oracle = oracle
        self.audit_log = audit_log if audit_log is not None else AuditLog()
        self.events = events if events is not None else EventBus()
        self.state_store = state_store
        self._clock = clock

        state = state_store.load() if state_store is not None else None
        self.usage = state.usage if state is not None else UsageLedger()
        self.breaker = CircuitBreaker.from_config(self.config, state.breaker if state is not None else None)

        self.trigger = TriggerEvaluator(self.config, self.usage, pool)
        self.calculator = AmountCalculator(self.config)
        self.guard = SafetyGuard(self.config, pool, oracle, self.breaker)
        self.orchestrator = ExecutionOrchestrator(
            config=self.config,
            usage=self.usage,
            breaker=self.breaker,
            trigger=self.trigger,
            calculator=self.calculator,
            guard=self.guard,
            ledger=ledger,
            router=router,
            audit_log=self.audit_log,
            events=self.events,
            on_recorded=self._persist if state_store is not None else None,
        )

    def _persist(self, result: AttemptResult) -> None:
        try:
            self.state_store.save(self.usage, self.breaker.state)
        except OSError as e:
            logger.error(f"[engine] Failed to persist state after attempt #{result.record.execution_id}: {e}")

    def _now(self, now: Optional[int]) -> int:
        return int(self._clock()) if now is None else int(now)

    # ------------------------------------------------------------------
    # Mutating
    # ------------------------------------------------------------------

    def execute_buyback(
        self,
        amount: Optional[int] = None,
        min_tokens_out: Optional[int] = None,
        path: Optional[Sequence[str]] = None,
        *,
        now: Optional[int] = None,
        executor: str = "keeper",
    ) -> AttemptResult:
        """Run one attempt; result.tokens_bought is 0 unless it succeeded."""
        return self.orchestrator.execute_buyback(
            self._now(now),
            min_tokens_out=min_tokens_out,
            amount=amount,
            path=path,
            executor=executor,
        )

    def save_state(self, path: Optional[str] = None) -> None:
        store = self._state_store_for(path)
        store.save(self.usage, self.breaker.state)

    def load_state(self, path: Optional[str] = None) -> bool:
        """Restore usage and breaker state; False if nothing was saved yet."""
        state = self._state_store_for(path).load()
        if state is None:
            return False
        self.orchestrator.restore(state.usage, state.breaker)
        return True

    def _state_store_for(self, path: Optional[str]) -> StateStore:
        if path is not None:
            return StateStore(path, config_hash=self.store.config_hash)
        if self.state_store is None:
            raise ValueError("No state path given and no state_store configured")
        return self.state_store

    # ------------------------------------------------------------------
    # Read-only
    # ------------------------------------------------------------------

    def check_execution_conditions(self, now: Optional[int] = None) -> bool:
        """True iff the breaker is closed and the trigger currently holds."""
        ts = self._now(now)
        if self.breaker.is_active(ts):
            return False
        try:
            return self.trigger.can_execute(ts)
        except MarketDataError as e:
            logger.warning(f"[engine] Trigger check failed: {e}")
            return False

    def preview(self, now: Optional[int] = None) -> Dict[str, Any]:
        """Dry evaluation of sizing and guards; never arms the breaker."""
        ts = self._now(now)
        try:
            balance = self.ledger.balance_of(self.config.revenue_source, self.config.revenue_asset)
        except LedgerError as e:
            logger.warning(f"[engine] Balance read failed: {e}")
            return {"amount": 0, "reason": MARKET_DATA_UNAVAILABLE, "balance": None}
        try:
            amount = self.calculator.compute_amount(balance, self.usage, ts)
        except NoExecutableAmount as e:
            return {"amount": 0, "reason": e.reason, "balance": balance}
        decision: SafetyDecision = self.guard.check(amount)
        return {
            "amount": amount,
            "balance": balance,
            "ok": decision.ok,
            "reason": decision.reason,
            "expected_tokens": decision.expected_tokens,
            "min_tokens_out": decision.min_tokens_out,
        }

    def get_next_execution_time(self) -> Optional[int]:
        return self.trigger.next_execution_time()

    def get_total_buyback_amount(self) -> int:
        return self.usage.total_spent

    def get_total_tokens_acquired(self) -> int:
        return self.usage.total_acquired

    def get_execution_count(self) -> int:
        return self.usage.execution_count

    def get_last_execution_time(self) -> Optional[int]:
        return self.usage.last_execution_time

    def get_circuit_breaker_status(self, now: Optional[int] = None) -> Tuple[bool, int]:
        return self.breaker.status(self._now(now))

    def iter_records(self, start_id: int = 1) -> Iterator[ExecutionRecord]:
        return self.audit_log.iter_records(start_id)

    def snapshot(self, now: Optional[int] = None) -> Dict[str, Any]:
        ts = self._now(now)
        active, cooldown_end = self.breaker.status(ts)
        return {
            "timestamp": ts,
            "config_hash": self.store.config_hash,
            "total_buyback_amount": self.usage.total_spent,
            "total_tokens_acquired": self.usage.total_acquired,
            "execution_count": self.usage.execution_count,
            "failed_attempts": self.usage.failed_attempts,
            "last_execution_time": self.usage.last_execution_time,
            "next_execution_time": self.get_next_execution_time(),
            "rolling_daily_spend": self.usage.rolling_spend(ts),
            "circuit_breaker": {
                "active": active,
                "cooldown_end": cooldown_end,
                "consecutive_failures": self.breaker.state.consecutive_failures,
            },
            "records": self.audit_log.last_id,
        }

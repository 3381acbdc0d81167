"""buyback/execution/orchestrator.py

Buyback attempt orchestration.

Sequence per attempt (under one execution lock):
1. Circuit breaker active      -> FAILED(CircuitBreakerActive), not tallied
2. Trigger not met             -> NoAction(TriggerNotMet), nothing written
3. Amount clamps to <= 0       -> NoAction(NoExecutableAmount), nothing written
4. Safety guard rejects        -> FAILED(reason)
5. Pull / swap / sink transfer staged on one ledger transaction, bounded by
   execution_timeout_seconds, committed only if every step succeeded
6. Success                     -> SUCCESS record, usage totals, tally reset
7. Failure in step 5           -> FAILED(reason), spend totals untouched

HARD RULES:
- No collaborator exception escapes execute_buyback
- Usage and breaker state are written only here, at the end of an attempt
- A timed-out transaction is aborted and can never commit
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Sequence, Tuple

from buyback.config.schema import BuybackConfig
from buyback.execution.circuit_breaker import CircuitBreaker, CircuitBreakerState
from buyback.execution.errors import (
    LedgerError,
    MarketDataError,
    SlippageExceededError,
    SwapError,
)
from buyback.execution.models import AttemptResult, ExecutionRecord, NoAction, Outcome
from buyback.execution.reject_reasons import (
    CIRCUIT_BREAKER_ACTIVE,
    EXECUTION_TIMEOUT,
    MARKET_DATA_UNAVAILABLE,
    SLIPPAGE_EXCEEDED,
    SWAP_FAILED,
    TRANSFER_FAILED,
    TRIGGER_NOT_MET,
)
from buyback.execution.routing.interfaces import Ledger, LedgerTransaction, SwapRouter
from buyback.execution.routing.types import SwapResult
from buyback.execution.safety.guard import SafetyGuard
from buyback.execution.usage_ledger import UsageLedger
from buyback.monitoring.audit_log import AuditLog
from buyback.monitoring.events import (
    BuybackExecuted,
    CircuitBreakerTriggered,
    EventBus,
    ExecutionFailed,
)
from buyback.strategy.amm_math import output_per_input
from buyback.strategy.amount import AmountCalculator, NoExecutableAmount
from buyback.strategy.triggers import TriggerEvaluator

logger = logging.getLogger(__name__)


class ExecutionOrchestrator:
    """Single-writer entry point tying trigger, sizing, guards and settlement together."""

    def __init__(
        self,
        *,
        config: BuybackConfig,
        usage: UsageLedger,
        breaker: CircuitBreaker,
        trigger: TriggerEvaluator,
        calculator: AmountCalculator,
        guard: SafetyGuard,
        ledger: Ledger,
        router: SwapRouter,
        audit_log: AuditLog,
        events: EventBus,
        on_recorded: Optional[Callable[[AttemptResult], None]] = None,
    ):
        self.config = config
        self.usage = usage
        self.breaker = breaker
        self.trigger = trigger
        self.calculator = calculator
        self.guard = guard
        self.ledger = ledger
        self.router = router
        self.audit_log = audit_log
        self.events = events
        self.on_recorded = on_recorded
        self.audit_failures = 0
        self._lock = threading.Lock()

        self.breaker.on_trip(self._on_breaker_trip)

    def _on_breaker_trip(self, reason: str, cooldown_until: int, now: int) -> None:
        self.events.emit(CircuitBreakerTriggered(reason=reason, cooldown_until=cooldown_until, timestamp=now))

    def restore(self, usage: UsageLedger, breaker_state: CircuitBreakerState) -> None:
        """Replace usage totals and breaker state in place, between attempts."""
        with self._lock:
            for f in dataclasses.fields(UsageLedger):
                setattr(self.usage, f.name, getattr(usage, f.name))
            self.breaker.state = breaker_state
        logger.info(f"[orchestrator] State restored (executions={usage.execution_count})")

    def execute_buyback(
        self,
        now: int,
        *,
        min_tokens_out: Optional[int] = None,
        amount: Optional[int] = None,
        path: Optional[Sequence[str]] = None,
        executor: str = "keeper",
    ) -> AttemptResult:
        """
        Run one buyback attempt to a definite outcome.

        Args:
            now: Unix time of the attempt
            min_tokens_out: Override for the guard's slippage floor
            amount: Requested amount; still clamped by the caps and balance
            path: Swap path override (defaults to config.swap_path)
            executor: Identity recorded on the audit record

        Returns:
            AttemptResult wrapping an ExecutionRecord or a NoAction
        """
        with self._lock:
            result = self._execute(now, min_tokens_out, amount, path, executor)
            if self.on_recorded is not None and not result.is_no_action:
                self.on_recorded(result)
            return result

    def _execute(
        self,
        now: int,
        min_tokens_out: Optional[int],
        requested: Optional[int],
        path: Optional[Sequence[str]],
        executor: str,
    ) -> AttemptResult:
        # 1. Circuit breaker
        if self.breaker.is_active(now):
            logger.warning(f"[orchestrator] Circuit breaker active until {self.breaker.state.cooldown_until}")
            return self._fail(now, 0, CIRCUIT_BREAKER_ACTIVE, executor)

        # 2. Trigger
        try:
            if not self.trigger.can_execute(now):
                logger.debug(f"[orchestrator] Trigger not met at {now}")
                return AttemptResult(NoAction(reason=TRIGGER_NOT_MET, timestamp=now))
        except MarketDataError as e:
            logger.warning(f"[orchestrator] Trigger evaluation failed: {e}")
            return self._fail(now, 0, MARKET_DATA_UNAVAILABLE, executor)

        # 3. Amount
        try:
            balance = self.ledger.balance_of(self.config.revenue_source, self.config.revenue_asset)
        except LedgerError as e:
            logger.warning(f"[orchestrator] Balance read failed: {e}")
            return self._fail(now, 0, MARKET_DATA_UNAVAILABLE, executor)
        try:
            amount = self.calculator.compute_amount(balance, self.usage, now, requested=requested)
        except NoExecutableAmount as e:
            logger.info(f"[orchestrator] Skipping cycle: {e}")
            return AttemptResult(NoAction(reason=e.reason, timestamp=now))

        # 4. Safety guard
        decision = self.guard.validate(amount, now)
        if not decision.ok:
            return self._fail(now, amount, decision.reason, executor)

        floor = decision.min_tokens_out if min_tokens_out is None else min_tokens_out
        swap_path = tuple(path) if path else self.config.swap_path

        # 5. Atomic pull / swap / transfer
        reason, result = self._settle(amount, floor, swap_path)
        if reason is not None:
            return self._fail(now, amount, reason, executor)

        # 6. Success
        return self._succeed(now, amount, result.amount_out, executor)

    def _stage(self, txn: LedgerTransaction, amount: int, floor: int, path: Tuple[str, ...]) -> SwapResult:
        cfg = self.config
        txn.transfer(cfg.revenue_source, cfg.engine_account, cfg.revenue_asset, amount)
        result = self.router.swap(
            txn,
            amount_in=amount,
            min_amount_out=floor,
            path=path,
            payer=cfg.engine_account,
            recipient=cfg.engine_account,
        )
        if result.amount_out < floor:
            raise SlippageExceededError(result.amount_out, floor)
        txn.transfer(cfg.engine_account, cfg.sink, cfg.target_asset, result.amount_out)
        return result

    def _settle(
        self, amount: int, floor: int, path: Tuple[str, ...]
    ) -> Tuple[Optional[str], Optional[SwapResult]]:
        """Stage on a worker with a deadline, then commit. Returns (failure_reason, result)."""
        txn = self.ledger.begin()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="buyback-settle")
        try:
            future = pool.submit(self._stage, txn, amount, floor, path)
            try:
                result = future.result(timeout=self.config.execution_timeout_seconds)
            except FutureTimeoutError:
                txn.abort()
                logger.error(f"[orchestrator] Settlement exceeded {self.config.execution_timeout_seconds}s, aborted")
                return EXECUTION_TIMEOUT, None
            except SlippageExceededError as e:
                txn.abort()
                logger.warning(f"[orchestrator] {e}")
                return SLIPPAGE_EXCEEDED, None
            except LedgerError as e:
                txn.abort()
                logger.warning(f"[orchestrator] Transfer failed: {e}")
                return TRANSFER_FAILED, None
            except SwapError as e:
                txn.abort()
                logger.warning(f"[orchestrator] Swap failed: {e}")
                return SWAP_FAILED, None
            except Exception:
                txn.abort()
                logger.exception("[orchestrator] Unexpected settlement error")
                return SWAP_FAILED, None
        finally:
            # A timed-out worker keeps running against an aborted transaction.
            pool.shutdown(wait=False)

        try:
            txn.commit()
        except LedgerError as e:
            txn.abort()
            logger.warning(f"[orchestrator] Commit failed: {e}")
            return TRANSFER_FAILED, None
        return None, result

    def _succeed(self, now: int, amount_in: int, amount_out: int, executor: str) -> AttemptResult:
        price = output_per_input(amount_in, amount_out)
        record = ExecutionRecord(
            execution_id=self.audit_log.next_id(),
            timestamp=now,
            amount_in=amount_in,
            amount_out=amount_out,
            price_per_unit=price,
            outcome=Outcome.SUCCESS,
            executor=executor,
        )
        # Funds have moved: usage and breaker are updated before the audit write.
        self.usage.record_execution(now, amount_in, amount_out)
        self.breaker.record_outcome(True, now)
        self._append(record)

        logger.info(
            f"[orchestrator] Buyback #{record.execution_id}: {amount_in} {self.config.revenue_asset} -> "
            f"{amount_out} {self.config.target_asset} (sink={self.config.sink})"
        )
        self.events.emit(BuybackExecuted(
            execution_id=record.execution_id,
            bnb_amount=amount_in,
            tokens_received=amount_out,
            price_per_token=price,
            executor=executor,
            timestamp=now,
        ))
        return AttemptResult(record)

    def _append(self, record: ExecutionRecord) -> None:
        try:
            self.audit_log.append(record)
        except Exception:
            self.audit_failures += 1
            logger.exception(f"[orchestrator] Audit write failed for attempt #{record.execution_id}")

    def _fail(self, now: int, amount_in: int, reason: str, executor: str) -> AttemptResult:
        record = ExecutionRecord(
            execution_id=self.audit_log.next_id(),
            timestamp=now,
            amount_in=amount_in,
            amount_out=0,
            price_per_unit=0,
            outcome=Outcome.FAILED,
            reason=reason,
            executor=executor,
        )
        self._append(record)

        # CircuitBreakerActive must not touch any state beyond the audit trail.
        if reason != CIRCUIT_BREAKER_ACTIVE:
            self.usage.record_failure()
            if reason not in self.config.tally_excluded_reasons:
                self.breaker.record_outcome(False, now)

        logger.warning(f"[orchestrator] Attempt #{record.execution_id} FAILED: {reason}")
        self.events.emit(ExecutionFailed(execution_id=record.execution_id, reason=reason, timestamp=now))
        return AttemptResult(record)

"""
buyback/execution/safety/guard.py

Pre-swap safety guard.

Checks, in order:
1. Liquidity depth: pool's revenue-asset reserve >= amount * min_liquidity_multiplier
2. Price deviation (breaker enabled and oracle has a price): pool spot price
   within max_price_deviation_percent of the oracle price; a trip also arms
   the circuit breaker with the deviation cooldown
3. Output estimate: expected_tokens from the pool curve and the slippage floor
   min_tokens_out handed to the swap (enforced post-swap, not here)
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from buyback.config.schema import BuybackConfig
from buyback.execution.circuit_breaker import CircuitBreaker
from buyback.execution.errors import MarketDataError
from buyback.execution.reject_reasons import (
    INSUFFICIENT_LIQUIDITY,
    MARKET_DATA_UNAVAILABLE,
    PRICE_DEVIATION_EXCEEDED,
)
from buyback.execution.routing.interfaces import LiquidityPool, PriceOracle
from buyback.strategy.amm_math import (
    apply_min_output,
    deviation_bps,
    get_amount_out,
    required_liquidity,
    within_deviation,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SafetyDecision:
    """Result of SafetyGuard.validate; reason is set iff ok is False."""
    ok: bool
    reason: Optional[str] = None
    expected_tokens: int = 0
    min_tokens_out: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def reject(cls, reason: str, **details: Any) -> "SafetyDecision":
        return cls(ok=False, reason=reason, details=details)


class SafetyGuard:
    """
    Aggregates the liquidity, price-deviation and slippage bounds.

    validate() only reads pool/oracle state. The one side effect is arming
    the breaker on a deviation trip, so it is called from the orchestrator's
    critical section; observers use check() instead.
    """

    def __init__(
        self,
        config: BuybackConfig,
        pool: LiquidityPool,
        oracle: Optional[PriceOracle] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config
        self.pool = pool
        self.oracle = oracle
        self.breaker = breaker

    def _log_reject(self, msg: str, details: Optional[dict] = None):
        details_str = ""
        if details:
            details_str = " " + ", ".join(f"{k}={v}" for k, v in details.items())
        logger.warning(f"[safety_guard] REJECT: {msg}{details_str}")

    def check(self, amount: int) -> SafetyDecision:
        """Evaluate every bound without touching the circuit breaker."""
        try:
            state = self.pool.get_state()
        except MarketDataError as e:
            self._log_reject(f"Pool state unavailable: {e}")
            return SafetyDecision.reject(MARKET_DATA_UNAVAILABLE, error=str(e))

        # Check 1: Liquidity depth (an empty side can't be priced or traded)
        required = required_liquidity(amount, self.config.min_liquidity_multiplier)
        if state.reserve_native < required or state.reserve_native <= 0 or state.reserve_token <= 0:
            details = {"reserve": state.reserve_native, "required": required, "amount": amount}
            self._log_reject("Insufficient liquidity", details)
            return SafetyDecision.reject(INSUFFICIENT_LIQUIDITY, **details)

        # Check 2: Price deviation against the oracle
        pool_price = state.spot_price
        if self.config.circuit_breaker_enabled and self.oracle is not None:
            try:
                oracle_price = self.oracle.get_price(self.config.target_asset)
            except MarketDataError as e:
                # No reference available: the deviation check is skipped, not failed.
                logger.info(f"[safety_guard] Oracle unavailable, skipping deviation check: {e}")
                oracle_price = None
            if oracle_price is not None and oracle_price > 0:
                if not within_deviation(pool_price, oracle_price, self.config.max_price_deviation_percent):
                    details = {
                        "pool_price": pool_price,
                        "oracle_price": oracle_price,
                        "deviation_bps": deviation_bps(pool_price, oracle_price),
                        "max_percent": self.config.max_price_deviation_percent,
                    }
                    self._log_reject("Price deviation exceeded", details)
                    return SafetyDecision.reject(PRICE_DEVIATION_EXCEEDED, **details)

        # Check 3: Output estimate and slippage floor
        expected = get_amount_out(amount, state.reserve_native, state.reserve_token, state.fee_bps)
        min_out = apply_min_output(expected, self.config.min_output_percent)
        return SafetyDecision(
            ok=True,
            expected_tokens=expected,
            min_tokens_out=min_out,
            details={"pool_price": pool_price, "reserve": state.reserve_native},
        )

    def validate(self, amount: int, now: int) -> SafetyDecision:
        """check(), plus arming the breaker when the deviation guard trips."""
        decision = self.check(amount)
        if decision.reason == PRICE_DEVIATION_EXCEEDED and self.breaker is not None:
            self.breaker.trip(now, PRICE_DEVIATION_EXCEEDED, self.config.deviation_cooldown_seconds)
        return decision

    def get_limits(self) -> dict:
        return {
            "min_liquidity_multiplier": self.config.min_liquidity_multiplier,
            "max_price_deviation_percent": self.config.max_price_deviation_percent,
            "min_output_percent": self.config.min_output_percent,
            "circuit_breaker_enabled": self.config.circuit_breaker_enabled,
        }

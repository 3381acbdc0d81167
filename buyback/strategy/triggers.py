"""buyback/strategy/triggers.py

Read-only evaluation of the configured trigger condition.

Design goals:
- Pure function of config, last execution time and collaborator market state
- Safe to call any number of times from any number of observers
- VOLUME_THRESHOLD bounds query cost: the pool is asked at most once per
  check_interval_seconds, the cached observation answers in between
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from buyback.config.schema import BuybackConfig, TriggerType
from buyback.execution.errors import MarketDataError
from buyback.execution.routing.interfaces import LiquidityPool
from buyback.execution.usage_ledger import UsageLedger
from buyback.strategy.amm_math import price_outside_band

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VolumeObservation:
    checked_at: int
    volume: int


class TriggerEvaluator:
    """Answers 'may a buyback run now?' for the configured trigger."""

    def __init__(self, config: BuybackConfig, usage: UsageLedger, pool: LiquidityPool):
        self.config = config
        self.trigger = config.trigger
        self.usage = usage
        self.pool = pool
        self._volume_cache: Optional[VolumeObservation] = None
        self._cache_lock = threading.Lock()

    def can_execute(self, now: int) -> bool:
        """
        Evaluate the trigger at `now`.

        Raises:
            MarketDataError: If a pool query fails or the pool cannot be priced
        """
        trigger_type = self.trigger.trigger_type
        if trigger_type == TriggerType.INTERVAL:
            return self._interval_elapsed(now)
        if trigger_type == TriggerType.VOLUME_THRESHOLD:
            return self._observe_volume(now).volume >= self.trigger.volume_threshold
        if trigger_type == TriggerType.PRICE_THRESHOLD:
            state = self.pool.get_state()
            if state.reserve_token <= 0:
                raise MarketDataError("pool has no token reserve to price against")
            return price_outside_band(state.spot_price, self.trigger.price_below, self.trigger.price_above)
        if trigger_type == TriggerType.LIQUIDITY_DEPTH:
            return self.pool.get_state().reserve_native >= self.trigger.min_liquidity
        raise ValueError(f"Unsupported trigger type: {trigger_type}")

    def _interval_elapsed(self, now: int) -> bool:
        last = self.usage.last_execution_time
        if last is None:
            return now >= self.trigger.start_time
        return now - last >= self.trigger.interval_seconds

    def _observe_volume(self, now: int) -> VolumeObservation:
        with self._cache_lock:
            cached = self._volume_cache
            if cached is not None and 0 <= now - cached.checked_at < self.trigger.check_interval_seconds:
                return cached

            volume = self.pool.get_trailing_volume(self.trigger.volume_window_seconds, now)
            observation = VolumeObservation(checked_at=now, volume=volume)
            self._volume_cache = observation
            logger.debug(f"[trigger] Volume {volume} over {self.trigger.volume_window_seconds}s at {now}")
            return observation

    def next_execution_time(self) -> Optional[int]:
        """Earliest time an INTERVAL trigger fires; None for condition-based triggers."""
        if self.trigger.trigger_type != TriggerType.INTERVAL:
            return None
        last = self.usage.last_execution_time
        if last is None:
            return self.trigger.start_time
        return max(self.trigger.start_time, last + self.trigger.interval_seconds)

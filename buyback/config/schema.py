"""buyback/config/schema.py

Immutable configuration schema for one buyback deployment.

Every numeric field is validated once in __post_init__ and the dataclasses
are frozen: there is no runtime mutation path. Changing behaviour means
building a new engine from a new config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Optional, Tuple

from buyback.execution.reject_reasons import (
    CIRCUIT_BREAKER_ACTIVE,
    FAILURE_REASONS,
    PRICE_DEVIATION_EXCEEDED,
)

# Dead address used when the sink is a burn.
BURN_ADDRESS = "0x000000000000000000000000000000000000dEaD"

DEFAULT_TALLY_EXCLUDED_REASONS = frozenset({CIRCUIT_BREAKER_ACTIVE, PRICE_DEVIATION_EXCEEDED})


class ExecutionMode(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class TriggerType(str, Enum):
    INTERVAL = "INTERVAL"
    VOLUME_THRESHOLD = "VOLUME_THRESHOLD"
    PRICE_THRESHOLD = "PRICE_THRESHOLD"
    LIQUIDITY_DEPTH = "LIQUIDITY_DEPTH"


def _validate_range(name: str, value: Any, min_val: int, max_val: Optional[int] = None) -> None:
    # bool is an int subclass; a YAML `true` in a numeric slot is a typo
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < min_val:
        raise ValueError(f"{name} {value} is below minimum {min_val}")
    if max_val is not None and value > max_val:
        raise ValueError(f"{name} {value} is above maximum {max_val}")


def _validate_optional(name: str, value: Any, min_val: int) -> None:
    if value is not None:
        _validate_range(name, value, min_val)


@dataclass(frozen=True)
class TriggerConfig:
    """
    Trigger condition and its parameters.

    Only the parameters of the selected trigger_type are required; the rest
    are ignored.

    Attributes:
        trigger_type: Which condition gates execution
        interval_seconds: INTERVAL - minimum gap between executions
        start_time: INTERVAL - earliest unix time of the first execution
        volume_threshold: VOLUME_THRESHOLD - trailing volume (revenue units) required
        volume_window_seconds: VOLUME_THRESHOLD - trailing window length
        check_interval_seconds: VOLUME_THRESHOLD - min gap between volume queries
        price_below: PRICE_THRESHOLD - fire when spot price drops below (scaled)
        price_above: PRICE_THRESHOLD - fire when spot price rises above (scaled)
        min_liquidity: LIQUIDITY_DEPTH - revenue-asset reserve required
    """
    trigger_type: TriggerType = TriggerType.INTERVAL
    interval_seconds: int = 86400
    start_time: int = 0
    volume_threshold: int = 0
    volume_window_seconds: int = 86400
    check_interval_seconds: int = 3600
    price_below: Optional[int] = None
    price_above: Optional[int] = None
    min_liquidity: int = 0

    def __post_init__(self):
        if not isinstance(self.trigger_type, TriggerType):
            object.__setattr__(self, "trigger_type", TriggerType(self.trigger_type))

        _validate_range("trigger.start_time", self.start_time, 0)
        _validate_range("trigger.min_liquidity", self.min_liquidity, 0)
        _validate_range("trigger.volume_threshold", self.volume_threshold, 0)
        _validate_optional("trigger.price_below", self.price_below, 0)
        _validate_optional("trigger.price_above", self.price_above, 0)

        if self.trigger_type == TriggerType.INTERVAL:
            _validate_range("trigger.interval_seconds", self.interval_seconds, 1)
        elif self.trigger_type == TriggerType.VOLUME_THRESHOLD:
            _validate_range("trigger.volume_window_seconds", self.volume_window_seconds, 1)
            _validate_range("trigger.check_interval_seconds", self.check_interval_seconds, 0)
        elif self.trigger_type == TriggerType.PRICE_THRESHOLD:
            if self.price_below is None and self.price_above is None:
                raise ValueError("PRICE_THRESHOLD trigger needs price_below and/or price_above")


@dataclass(frozen=True)
class BuybackConfig:
    """
    Full configuration of one buyback deployment.

    Amounts are integers in the smallest unit of their asset; percentages are
    integers in [0, 100]; prices are scaled by amm_math.PRICE_SCALE.
    """
    # Identities
    revenue_source: str
    target_asset: str
    router: str
    sink: str = ""
    burn: bool = False
    revenue_asset: str = "BNB"
    engine_account: str = "buyback-engine"

    # Amount policy
    execution_mode: ExecutionMode = ExecutionMode.PERCENTAGE
    fixed_amount: int = 0
    percentage_of_balance: int = 10

    trigger: TriggerConfig = field(default_factory=TriggerConfig)

    # Limits
    min_output_percent: int = 95
    max_execution_amount: int = 0
    max_daily_amount: int = 0

    # Circuit breaker / guards
    circuit_breaker_enabled: bool = True
    max_price_deviation_percent: int = 10
    min_liquidity_multiplier: int = 20
    max_consecutive_failures: int = 3
    failure_cooldown_seconds: int = 3600
    deviation_cooldown_seconds: int = 3600
    tally_excluded_reasons: FrozenSet[str] = DEFAULT_TALLY_EXCLUDED_REASONS

    # Swap
    swap_path: Tuple[str, ...] = ()
    execution_timeout_seconds: float = 30.0

    def __post_init__(self):
        for name in ("revenue_source", "target_asset", "router", "engine_account", "revenue_asset"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"{name} must be a non-empty string")

        if not self.sink:
            if not self.burn:
                raise ValueError("sink is required unless burn is enabled")
            object.__setattr__(self, "sink", BURN_ADDRESS)

        if not isinstance(self.execution_mode, ExecutionMode):
            object.__setattr__(self, "execution_mode", ExecutionMode(self.execution_mode))

        _validate_range("fixed_amount", self.fixed_amount, 0)
        _validate_range("percentage_of_balance", self.percentage_of_balance, 0, 100)
        if self.execution_mode == ExecutionMode.FIXED and self.fixed_amount <= 0:
            raise ValueError("FIXED mode requires fixed_amount > 0")
        if self.execution_mode == ExecutionMode.PERCENTAGE and self.percentage_of_balance <= 0:
            raise ValueError("PERCENTAGE mode requires percentage_of_balance > 0")

        _validate_range("min_output_percent", self.min_output_percent, 0, 100)
        _validate_range("max_execution_amount", self.max_execution_amount, 0)
        _validate_range("max_daily_amount", self.max_daily_amount, 0)

        _validate_range("max_price_deviation_percent", self.max_price_deviation_percent, 0, 100)
        _validate_range("min_liquidity_multiplier", self.min_liquidity_multiplier, 0)
        _validate_range("max_consecutive_failures", self.max_consecutive_failures, 1)
        _validate_range("failure_cooldown_seconds", self.failure_cooldown_seconds, 0)
        _validate_range("deviation_cooldown_seconds", self.deviation_cooldown_seconds, 0)

        excluded = frozenset(self.tally_excluded_reasons) | {CIRCUIT_BREAKER_ACTIVE}
        unknown = excluded - FAILURE_REASONS
        if unknown:
            raise ValueError(f"tally_excluded_reasons has unknown reasons: {sorted(unknown)}")
        object.__setattr__(self, "tally_excluded_reasons", excluded)

        path = tuple(self.swap_path) or (self.revenue_asset, self.target_asset)
        if len(path) < 2 or path[0] != self.revenue_asset or path[-1] != self.target_asset:
            raise ValueError(
                f"swap_path must start at {self.revenue_asset} and end at {self.target_asset}, got {list(path)}"
            )
        object.__setattr__(self, "swap_path", path)

        if self.execution_timeout_seconds <= 0:
            raise ValueError("execution_timeout_seconds must be positive")

    @property
    def is_burn(self) -> bool:
        return self.sink == BURN_ADDRESS

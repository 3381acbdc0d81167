"""buyback/execution/circuit_breaker.py

Circuit breaker consulted before every buyback attempt.

States:
    CLOSED: Normal operation
    OPEN: Cooldown active, attempts rejected with CircuitBreakerActive

HARD RULES:
- OPEN -> CLOSED happens lazily once now >= cooldown_until; no explicit call
- Any success resets the consecutive-failure counter, whatever the state
- A trip resets the counter too, so a fresh run of failures is needed after cooldown
- A disabled breaker still counts failures but never opens
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Trip reasons reported in CircuitBreakerTriggered
TRIP_CONSECUTIVE_FAILURES = "ConsecutiveFailures"


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"


@dataclass
class CircuitBreakerState:
    consecutive_failures: int = 0
    active: bool = False
    cooldown_until: int = 0
    last_trip_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consecutive_failures": self.consecutive_failures,
            "active": self.active,
            "cooldown_until": self.cooldown_until,
            "last_trip_reason": self.last_trip_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitBreakerState":
        return cls(
            consecutive_failures=int(data.get("consecutive_failures", 0)),
            active=bool(data.get("active", False)),
            cooldown_until=int(data.get("cooldown_until", 0)),
            last_trip_reason=data.get("last_trip_reason"),
        )


TripListener = Callable[[str, int, int], None]  # (reason, cooldown_until, now)


class CircuitBreaker:
    """
    Consecutive-failure / price-deviation breaker.

    Reads (is_active, status) never mutate; the OPEN flag is only cleared by
    the next write after the cooldown has elapsed.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        max_consecutive_failures: int = 3,
        failure_cooldown_seconds: int = 3600,
        state: Optional[CircuitBreakerState] = None,
    ):
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")
        self.enabled = enabled
        self.max_consecutive_failures = max_consecutive_failures
        self.failure_cooldown_seconds = failure_cooldown_seconds
        self.state = state or CircuitBreakerState()
        self._listeners: List[TripListener] = []

    @classmethod
    def from_config(cls, config, state: Optional[CircuitBreakerState] = None) -> "CircuitBreaker":
        return cls(
            enabled=config.circuit_breaker_enabled,
            max_consecutive_failures=config.max_consecutive_failures,
            failure_cooldown_seconds=config.failure_cooldown_seconds,
            state=state,
        )

    def on_trip(self, listener: TripListener) -> None:
        self._listeners.append(listener)

    def is_active(self, now: int) -> bool:
        state = self.state
        return state.active and now < state.cooldown_until

    def phase(self, now: int) -> BreakerState:
        return BreakerState.OPEN if self.is_active(now) else BreakerState.CLOSED

    def status(self, now: int) -> Tuple[bool, int]:
        """(active, cooldown_end); cooldown_end is 0 when closed."""
        if self.is_active(now):
            return True, self.state.cooldown_until
        return False, 0

    def _settle(self, now: int) -> None:
        if self.state.active and now >= self.state.cooldown_until:
            logger.info(f"[circuit_breaker] Cooldown elapsed at {now}: OPEN -> CLOSED")
            self.state.active = False
            self.state.cooldown_until = 0

    def record_outcome(self, success: bool, now: int) -> None:
        """Update the consecutive-failure tally; may trip the breaker."""
        self._settle(now)
        if success:
            self.state.consecutive_failures = 0
            return

        self.state.consecutive_failures += 1
        count = self.state.consecutive_failures
        logger.warning(f"[circuit_breaker] Consecutive failures: {count}/{self.max_consecutive_failures}")
        if count >= self.max_consecutive_failures and not self.state.active:
            self.trip(now, TRIP_CONSECUTIVE_FAILURES, self.failure_cooldown_seconds)

    def trip(self, now: int, reason: str, cooldown_seconds: int) -> bool:
        """
        Open the breaker until now + cooldown_seconds.

        Returns:
            True if the breaker opened, False if disabled or cooldown is zero
        """
        self._settle(now)
        if not self.enabled or cooldown_seconds <= 0:
            logger.warning(f"[circuit_breaker] Trip '{reason}' ignored (enabled={self.enabled}, cooldown={cooldown_seconds})")
            return False

        cooldown_until = max(now + cooldown_seconds, self.state.cooldown_until)
        self.state.active = True
        self.state.cooldown_until = cooldown_until
        self.state.consecutive_failures = 0
        self.state.last_trip_reason = reason
        logger.critical(f"[circuit_breaker] CLOSED -> OPEN (reason: {reason}, cooldown_until: {cooldown_until})")

        for listener in self._listeners:
            listener(reason, cooldown_until, now)
        return True

"""buyback/execution/reject_reasons.py

Canonical outcome reasons for buyback attempts.

Keep as simple string constants so we can:
- aggregate stats (why did an attempt NOT buy?)
- avoid ad-hoc reason strings drifting across modules
"""

# Benign no-ops (never recorded, never counted)
TRIGGER_NOT_MET = "TriggerNotMet"
NO_EXECUTABLE_AMOUNT = "NoExecutableAmount"

# Pre-swap rejections
CIRCUIT_BREAKER_ACTIVE = "CircuitBreakerActive"
INSUFFICIENT_LIQUIDITY = "InsufficientLiquidity"
PRICE_DEVIATION_EXCEEDED = "PriceDeviationExceeded"
MARKET_DATA_UNAVAILABLE = "MarketDataUnavailable"

# Atomic pull/swap/transfer step
SLIPPAGE_EXCEEDED = "SlippageExceeded"
EXECUTION_TIMEOUT = "ExecutionTimeout"
TRANSFER_FAILED = "TransferFailed"
SWAP_FAILED = "SwapFailed"

NO_OP_REASONS = frozenset({TRIGGER_NOT_MET, NO_EXECUTABLE_AMOUNT})

FAILURE_REASONS = frozenset({
    CIRCUIT_BREAKER_ACTIVE,
    INSUFFICIENT_LIQUIDITY,
    PRICE_DEVIATION_EXCEEDED,
    MARKET_DATA_UNAVAILABLE,
    SLIPPAGE_EXCEEDED,
    EXECUTION_TIMEOUT,
    TRANSFER_FAILED,
    SWAP_FAILED,
})

ALL_REASONS = NO_OP_REASONS | FAILURE_REASONS


def assert_reason_known(reason: str) -> None:
    if reason not in ALL_REASONS:
        raise ValueError(f"Unknown outcome reason: {reason}")

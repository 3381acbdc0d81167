"""
AMM Constant Product Math (Uniswap v2 style), integer edition.

Pure functions for calculating swap amounts, spot prices and price deviation.
All inputs and outputs are integers in smallest units; division truncates.
No external dependencies, no I/O.
"""

from typing import Optional

# Fixed-point scale for prices (revenue-asset units per 1 whole target unit).
PRICE_SCALE = 10 ** 18

BPS_DENOMINATOR = 10_000


def get_amount_out(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_bps: int = 25
) -> int:
    """
    Calculate output amount for a swap using constant product formula.

    Formula: amount_out = (amount_in * (10000 - fee) * reserve_out) /
                          (reserve_in * 10000 + amount_in * (10000 - fee))

    Args:
        amount_in: Amount of input token being sold
        reserve_in: Reserve of input token in the pool
        reserve_out: Reserve of output token in the pool
        fee_bps: Fee in basis points (default 25 = 0.25%)

    Returns:
        Amount of output token received (truncated)

    Raises:
        ValueError: If reserves are zero or negative
        ValueError: If amount_in is negative
    """
    if amount_in < 0:
        raise ValueError("amount_in must be non-negative")

    if reserve_in <= 0 or reserve_out <= 0:
        raise ValueError("Reserves must be positive")

    if not 0 <= fee_bps < BPS_DENOMINATOR:
        raise ValueError("fee_bps must be in [0, 10000)")

    if amount_in == 0:
        return 0

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee

    return numerator // denominator


def spot_price(reserve_native: int, reserve_token: int) -> int:
    """
    Mid price of one whole target unit in revenue-asset units, scaled by PRICE_SCALE.

    Raises:
        ValueError: If the token reserve is empty
    """
    if reserve_token <= 0:
        raise ValueError("reserve_token must be positive")
    if reserve_native < 0:
        raise ValueError("reserve_native must be non-negative")
    return reserve_native * PRICE_SCALE // reserve_token


def output_per_input(amount_in: int, amount_out: int) -> int:
    """Output units received per input unit, scaled by PRICE_SCALE (0 if amount_in is 0)."""
    if amount_in <= 0:
        return 0
    return amount_out * PRICE_SCALE // amount_in


def deviation_bps(price: int, reference: int) -> int:
    """
    Absolute relative deviation of price from reference in basis points.

    Raises:
        ValueError: If reference is not positive
    """
    if reference <= 0:
        raise ValueError("reference price must be positive")
    return abs(price - reference) * BPS_DENOMINATOR // reference


def within_deviation(price: int, reference: int, max_deviation_percent: int) -> bool:
    """Exact check |price - reference| / reference <= max_deviation_percent / 100."""
    if reference <= 0:
        raise ValueError("reference price must be positive")
    return abs(price - reference) * 100 <= max_deviation_percent * reference


def apply_min_output(expected_out: int, min_output_percent: int) -> int:
    """Slippage floor: expected_out * min_output_percent / 100, truncated."""
    return expected_out * min_output_percent // 100


def required_liquidity(amount: int, multiplier: int) -> int:
    return amount * multiplier


def price_outside_band(
    price: int,
    price_below: Optional[int],
    price_above: Optional[int],
) -> bool:
    """True iff price is below price_below OR above price_above (missing bound = never fires)."""
    if price_below is not None and price < price_below:
        return True
    if price_above is not None and price > price_above:
        return True
    return False

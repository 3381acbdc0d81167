"""
buyback/execution/routing/types.py

Data structures exchanged with the pool/router collaborators.
"""
from dataclasses import dataclass

from buyback.strategy.amm_math import spot_price


@dataclass(frozen=True)
class PoolState:
    """
    Snapshot of a constant-product pool pairing the revenue asset with the target.

    reserve_native is the liquidity depth denominated in the revenue asset.
    """
    reserve_native: int   # Revenue-asset reserve (smallest units)
    reserve_token: int    # Target-asset reserve (smallest units)
    fee_bps: int = 25     # Swap fee in basis points

    @property
    def spot_price(self) -> int:
        """Revenue units per whole target unit, scaled by PRICE_SCALE."""
        return spot_price(self.reserve_native, self.reserve_token)

    def to_dict(self) -> dict:
        return {
            "reserve_native": self.reserve_native,
            "reserve_token": self.reserve_token,
            "fee_bps": self.fee_bps,
        }


@dataclass(frozen=True)
class SwapResult:
    """Outcome of a staged swap."""
    amount_in: int
    amount_out: int
    path: tuple

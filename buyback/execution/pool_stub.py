"""buyback/execution/pool_stub.py

Paper-mode collaborators: a constant-product pool/router whose reserves live
in the Ledger, and a static price oracle.

Because the pool's reserves are ordinary ledger balances, a swap staged on a
transaction is rolled back together with the pull and the sink transfer.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Dict, Optional, Sequence, Tuple

from buyback.execution.errors import MarketDataError, SlippageExceededError, SwapError
from buyback.execution.routing.interfaces import (
    Ledger,
    LedgerTransaction,
    LiquidityPool,
    PriceOracle,
    SwapRouter,
)
from buyback.execution.routing.types import PoolState, SwapResult
from buyback.strategy.amm_math import get_amount_out

logger = logging.getLogger(__name__)


class ConstantProductPool(LiquidityPool, SwapRouter):
    """x*y=k pool for one (native, token) pair, backed by ledger balances."""

    def __init__(
        self,
        ledger: Ledger,
        *,
        pool_account: str,
        native_asset: str,
        token_asset: str,
        fee_bps: int = 25,
    ):
        self.ledger = ledger
        self.pool_account = pool_account
        self.native_asset = native_asset
        self.token_asset = token_asset
        self.fee_bps = fee_bps
        self._trades: Deque[Tuple[int, int]] = deque()
        self._lock = threading.Lock()

    def get_state(self) -> PoolState:
        reserve_native = self.ledger.balance_of(self.pool_account, self.native_asset)
        reserve_token = self.ledger.balance_of(self.pool_account, self.token_asset)
        if reserve_token <= 0:
            raise MarketDataError(f"Pool {self.pool_account} has no {self.token_asset} reserve")
        return PoolState(reserve_native=reserve_native, reserve_token=reserve_token, fee_bps=self.fee_bps)

    def record_trade(self, ts: int, amount_native: int) -> None:
        """Register third-party volume (paper mode feeds this)."""
        with self._lock:
            self._trades.append((ts, amount_native))

    def get_trailing_volume(self, window_seconds: int, now: int) -> int:
        cutoff = now - window_seconds
        with self._lock:
            return sum(amount for ts, amount in self._trades if cutoff < ts <= now)

    def swap(
        self,
        txn: LedgerTransaction,
        *,
        amount_in: int,
        min_amount_out: int,
        path: Sequence[str],
        payer: str,
        recipient: str,
    ) -> SwapResult:
        if len(path) != 2 or path[0] != self.native_asset or path[-1] != self.token_asset:
            raise SwapError(f"Unsupported path {list(path)}")
        if amount_in <= 0:
            raise SwapError("amount_in must be positive")

        reserve_native = txn.balance_of(self.pool_account, self.native_asset)
        reserve_token = txn.balance_of(self.pool_account, self.token_asset)
        try:
            amount_out = get_amount_out(amount_in, reserve_native, reserve_token, self.fee_bps)
        except ValueError as e:
            raise SwapError(str(e)) from e

        if amount_out < min_amount_out:
            raise SlippageExceededError(amount_out, min_amount_out)

        txn.transfer(payer, self.pool_account, self.native_asset, amount_in)
        txn.transfer(self.pool_account, recipient, self.token_asset, amount_out)
        logger.debug(f"[pool] Staged swap {amount_in} {self.native_asset} -> {amount_out} {self.token_asset}")
        return SwapResult(amount_in=amount_in, amount_out=amount_out, path=tuple(path))


class StaticOracle(PriceOracle):
    """Oracle returning operator-supplied prices (None when unknown)."""

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        self._prices: Dict[str, int] = dict(prices or {})

    def set_price(self, asset: str, price: Optional[int]) -> None:
        if price is None:
            self._prices.pop(asset, None)
        else:
            self._prices[asset] = price

    def get_price(self, asset: str) -> Optional[int]:
        return self._prices.get(asset)

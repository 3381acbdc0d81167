import time
from typing import Optional

import pytest

from buyback.config.schema import BuybackConfig
from buyback.engine import BuybackEngine
from buyback.execution.errors import LedgerError, MarketDataError
from buyback.execution.ledger import InMemoryLedger, InMemoryTransaction
from buyback.execution.routing.interfaces import LiquidityPool, SwapRouter
from buyback.execution.routing.types import PoolState, SwapResult

E18 = 10 ** 18
T0 = 1_700_000_000


def make_config(**overrides) -> BuybackConfig:
    base = dict(
        revenue_source="treasury",
        target_asset="TOKEN",
        router="router",
        sink="sink",
        percentage_of_balance=10,
        min_output_percent=95,
        max_execution_amount=5 * E18,
        max_daily_amount=20 * E18,
        min_liquidity_multiplier=20,
        max_consecutive_failures=3,
        failure_cooldown_seconds=3600,
        deviation_cooldown_seconds=7200,
        execution_timeout_seconds=2.0,
    )
    base.update(overrides)
    return BuybackConfig(**base)


class FixedPool(LiquidityPool):
    """Pool with operator-set reserves and volume; never holds ledger balances."""

    def __init__(self, reserve_native: int, reserve_token: int, fee_bps: int = 0, volume: int = 0):
        self.reserve_native = reserve_native
        self.reserve_token = reserve_token
        self.fee_bps = fee_bps
        self.volume = volume
        self.fail = False
        self.volume_calls = 0

    def get_state(self) -> PoolState:
        if self.fail:
            raise MarketDataError("pool offline")
        return PoolState(self.reserve_native, self.reserve_token, self.fee_bps)

    def get_trailing_volume(self, window_seconds: int, now: int) -> int:
        self.volume_calls += 1
        if self.fail:
            raise MarketDataError("pool offline")
        return self.volume


class ScriptedRouter(SwapRouter):
    """Pays `rate` tokens per whole input unit out of a market-maker account."""

    def __init__(
        self,
        rate: int = 985 * E18 // 10,
        *,
        amount_out: Optional[int] = None,
        market: str = "market",
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.rate = rate
        self.amount_out = amount_out
        self.market = market
        self.delay = delay
        self.error = error
        self.calls = 0

    def swap(self, txn, *, amount_in, min_amount_out, path, payer, recipient):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        out = self.amount_out if self.amount_out is not None else amount_in * self.rate // E18
        txn.transfer(payer, self.market, path[0], amount_in)
        txn.transfer(self.market, recipient, path[-1], out)
        return SwapResult(amount_in=amount_in, amount_out=out, path=tuple(path))


class _SinkRejectingTransaction(InMemoryTransaction):
    def __init__(self, ledger, sink):
        super().__init__(ledger)
        self._sink = sink

    def transfer(self, source, destination, asset, amount):
        if destination == self._sink:
            raise LedgerError(f"sink {destination} rejected transfer")
        super().transfer(source, destination, asset, amount)


class SinkRejectingLedger(InMemoryLedger):
    """Ledger whose transactions refuse every credit to `sink`."""

    def __init__(self, sink: str = "sink"):
        super().__init__()
        self.sink = sink

    def begin(self):
        return _SinkRejectingTransaction(self, self.sink)


def fund(ledger: InMemoryLedger, treasury: int = 10 * E18, market_tokens: int = 1_000_000 * E18):
    ledger.deposit("treasury", "BNB", treasury)
    ledger.deposit("market", "TOKEN", market_tokens)
    return ledger


@pytest.fixture
def ledger():
    return fund(InMemoryLedger())


@pytest.fixture
def deep_pool():
    # spot price 0.01 BNB per TOKEN; 1 BNB in quotes ~99.9 TOKEN at zero fee
    return FixedPool(reserve_native=1000 * E18, reserve_token=100_000 * E18)


@pytest.fixture
def shallow_pool():
    return FixedPool(reserve_native=10 * E18, reserve_token=1000 * E18)


@pytest.fixture
def router():
    return ScriptedRouter()


@pytest.fixture
def make_engine(ledger, deep_pool, router):
    def _make(config=None, *, pool=None, ledger_=None, router_=None, **kwargs):
        return BuybackEngine(
            config or make_config(),
            ledger=ledger_ or ledger,
            pool=pool or deep_pool,
            router=router_ or router,
            clock=lambda: T0,
            **kwargs,
        )
    return _make

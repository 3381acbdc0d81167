import pytest

from buyback.execution.errors import (
    InsufficientBalanceError,
    MarketDataError,
    SlippageExceededError,
    SwapError,
    TransactionAbortedError,
)
from buyback.execution.ledger import InMemoryLedger
from buyback.execution.pool_stub import ConstantProductPool
from buyback.strategy.amm_math import get_amount_out

from conftest import E18, T0


def test_staged_transfers_invisible_until_commit():
    ledger = InMemoryLedger()
    ledger.deposit("a", "BNB", 10)
    txn = ledger.begin()
    txn.transfer("a", "b", "BNB", 4)

    assert txn.balance_of("b", "BNB") == 4
    assert ledger.balance_of("b", "BNB") == 0

    txn.commit()
    assert ledger.balance_of("a", "BNB") == 6
    assert ledger.balance_of("b", "BNB") == 4


def test_overdraw_rejected_at_stage_time():
    ledger = InMemoryLedger()
    ledger.deposit("a", "BNB", 3)
    txn = ledger.begin()
    with pytest.raises(InsufficientBalanceError):
        txn.transfer("a", "b", "BNB", 4)


def test_abort_discards_and_blocks_commit():
    ledger = InMemoryLedger()
    ledger.deposit("a", "BNB", 10)
    txn = ledger.begin()
    txn.transfer("a", "b", "BNB", 4)
    txn.abort()
    txn.abort()

    assert txn.aborted
    with pytest.raises(TransactionAbortedError):
        txn.commit()
    with pytest.raises(TransactionAbortedError):
        txn.transfer("a", "b", "BNB", 1)
    assert ledger.balance_of("a", "BNB") == 10


def test_commit_validates_against_concurrent_spend():
    ledger = InMemoryLedger()
    ledger.deposit("a", "BNB", 10)
    first = ledger.begin()
    second = ledger.begin()
    first.transfer("a", "b", "BNB", 8)
    second.transfer("a", "c", "BNB", 8)
    first.commit()

    with pytest.raises(InsufficientBalanceError):
        second.commit()
    assert ledger.balance_of("c", "BNB") == 0
    assert ledger.balance_of("a", "BNB") == 2


@pytest.fixture
def pool_ledger():
    ledger = InMemoryLedger()
    ledger.deposit("pool", "BNB", 1000 * E18)
    ledger.deposit("pool", "TOKEN", 100_000 * E18)
    ledger.deposit("payer", "BNB", 10 * E18)
    pool = ConstantProductPool(ledger, pool_account="pool", native_asset="BNB", token_asset="TOKEN")
    return ledger, pool


def test_pool_swap_moves_reserves_on_commit(pool_ledger):
    ledger, pool = pool_ledger
    expected = get_amount_out(E18, 1000 * E18, 100_000 * E18, 25)
    txn = ledger.begin()

    result = pool.swap(txn, amount_in=E18, min_amount_out=0, path=("BNB", "TOKEN"), payer="payer", recipient="payer")

    assert result.amount_out == expected
    assert pool.get_state().reserve_native == 1000 * E18
    txn.commit()
    state = pool.get_state()
    assert state.reserve_native == 1001 * E18
    assert state.reserve_token == 100_000 * E18 - expected
    assert ledger.balance_of("payer", "TOKEN") == expected


def test_pool_swap_slippage_stages_nothing(pool_ledger):
    ledger, pool = pool_ledger
    txn = ledger.begin()
    with pytest.raises(SlippageExceededError):
        pool.swap(txn, amount_in=E18, min_amount_out=200 * E18, path=("BNB", "TOKEN"), payer="payer", recipient="payer")
    assert txn.balance_of("payer", "BNB") == 10 * E18


def test_pool_rejects_foreign_path(pool_ledger):
    ledger, pool = pool_ledger
    with pytest.raises(SwapError):
        pool.swap(ledger.begin(), amount_in=E18, min_amount_out=0, path=("BNB", "USDT", "TOKEN"),
                  payer="payer", recipient="payer")


def test_pool_volume_and_empty_reserve():
    ledger = InMemoryLedger()
    pool = ConstantProductPool(ledger, pool_account="pool", native_asset="BNB", token_asset="TOKEN")
    pool.record_trade(T0 - 100, 5)
    pool.record_trade(T0 - 10, 7)
    assert pool.get_trailing_volume(50, T0) == 7
    assert pool.get_trailing_volume(86400, T0) == 12
    with pytest.raises(MarketDataError):
        pool.get_state()

import pytest

from buyback.config.schema import TriggerConfig, TriggerType
from buyback.execution.errors import MarketDataError
from buyback.execution.usage_ledger import UsageLedger
from buyback.strategy.triggers import TriggerEvaluator

from conftest import E18, T0, FixedPool, make_config


def _evaluator(trigger, pool=None, usage=None):
    return TriggerEvaluator(
        make_config(trigger=trigger),
        usage or UsageLedger(),
        pool or FixedPool(1000 * E18, 100_000 * E18),
    )


def test_interval_first_run_waits_for_start_time():
    ev = _evaluator(TriggerConfig(interval_seconds=3600, start_time=T0))
    assert not ev.can_execute(T0 - 1)
    assert ev.can_execute(T0)
    assert ev.next_execution_time() == T0


def test_interval_after_execution():
    usage = UsageLedger()
    usage.record_execution(T0, 1, 1)
    ev = _evaluator(TriggerConfig(interval_seconds=3600), usage=usage)
    assert not ev.can_execute(T0 + 3599)
    assert ev.can_execute(T0 + 3600)
    assert ev.next_execution_time() == T0 + 3600


def test_volume_threshold_caches_between_checks():
    pool = FixedPool(1000 * E18, 100_000 * E18, volume=10)
    trigger = TriggerConfig(
        trigger_type=TriggerType.VOLUME_THRESHOLD,
        volume_threshold=50,
        check_interval_seconds=600,
    )
    ev = _evaluator(trigger, pool=pool)

    assert not ev.can_execute(T0)
    pool.volume = 100
    # cached observation still answers inside the check interval
    assert not ev.can_execute(T0 + 599)
    assert pool.volume_calls == 1

    assert ev.can_execute(T0 + 600)
    assert pool.volume_calls == 2
    assert ev.next_execution_time() is None


def test_price_threshold():
    pool = FixedPool(1000 * E18, 100_000 * E18)  # spot 1e16
    ev = _evaluator(TriggerConfig(trigger_type=TriggerType.PRICE_THRESHOLD, price_below=2 * 10 ** 16), pool=pool)
    assert ev.can_execute(T0)

    ev = _evaluator(TriggerConfig(trigger_type=TriggerType.PRICE_THRESHOLD, price_above=2 * 10 ** 16), pool=pool)
    assert not ev.can_execute(T0)


def test_liquidity_depth():
    pool = FixedPool(1000 * E18, 100_000 * E18)
    ev = _evaluator(TriggerConfig(trigger_type=TriggerType.LIQUIDITY_DEPTH, min_liquidity=500 * E18), pool=pool)
    assert ev.can_execute(T0)
    pool.reserve_native = 100 * E18
    assert not ev.can_execute(T0)


def test_evaluation_is_read_only():
    usage = UsageLedger()
    ev = _evaluator(TriggerConfig(), usage=usage)
    before = usage.to_dict()
    for _ in range(3):
        ev.can_execute(T0)
    assert usage.to_dict() == before


def test_pool_failure_propagates():
    pool = FixedPool(1000 * E18, 100_000 * E18)
    pool.fail = True
    ev = _evaluator(TriggerConfig(trigger_type=TriggerType.LIQUIDITY_DEPTH, min_liquidity=1), pool=pool)
    with pytest.raises(MarketDataError):
        ev.can_execute(T0)


def test_empty_token_reserve_is_market_data_error():
    pool = FixedPool(1000 * E18, 0)
    ev = _evaluator(TriggerConfig(trigger_type=TriggerType.PRICE_THRESHOLD, price_below=2 * 10 ** 16), pool=pool)
    with pytest.raises(MarketDataError):
        ev.can_execute(T0)

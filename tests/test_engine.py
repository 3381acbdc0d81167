import json

import pytest

from buyback.config.loader import ConfigStore
from buyback.config.schema import TriggerConfig
from buyback.engine import BuybackEngine
from buyback.execution.circuit_breaker import CircuitBreakerState
from buyback.execution.errors import LedgerError
from buyback.execution.ledger import InMemoryLedger
from buyback.execution.pool_stub import ConstantProductPool
from buyback.execution.reject_reasons import INSUFFICIENT_LIQUIDITY, MARKET_DATA_UNAVAILABLE
from buyback.execution.state_store import StateStore, StateStoreError
from buyback.execution.usage_ledger import UsageLedger

from conftest import E18, T0, make_config


def test_read_accessors_never_mutate(make_engine):
    engine = make_engine()
    before = engine.usage.to_dict()

    assert engine.check_execution_conditions(now=T0)
    assert engine.get_next_execution_time() == 0
    preview = engine.preview(now=T0)
    assert preview["amount"] == E18
    assert preview["ok"]
    assert engine.get_circuit_breaker_status(now=T0) == (False, 0)
    assert engine.usage.to_dict() == before
    assert engine.audit_log.last_id == 0


def test_check_conditions_false_while_breaker_open(make_engine, shallow_pool):
    engine = make_engine(pool=shallow_pool)
    for i in range(3):
        engine.execute_buyback(now=T0 + i)
    assert not engine.check_execution_conditions(now=T0 + 5)


def test_next_execution_time_after_success(make_engine):
    engine = make_engine(make_config(trigger=TriggerConfig(interval_seconds=600)))
    engine.execute_buyback(now=T0)
    assert engine.get_next_execution_time() == T0 + 600
    assert not engine.check_execution_conditions(now=T0 + 599)


def test_default_clock_is_used(make_engine):
    engine = make_engine()
    result = engine.execute_buyback()
    assert result.record.timestamp == T0


def test_snapshot_shape(make_engine):
    engine = make_engine()
    engine.execute_buyback(now=T0)
    snap = engine.snapshot(now=T0)
    assert snap["execution_count"] == 1
    assert snap["rolling_daily_spend"] == E18
    assert snap["circuit_breaker"] == {"active": False, "cooldown_end": 0, "consecutive_failures": 0}
    assert snap["records"] == 1


def test_state_persists_after_each_recorded_attempt(make_engine, shallow_pool, tmp_path):
    path = tmp_path / "state.json"
    engine = make_engine(pool=shallow_pool, state_store=StateStore(str(path)))
    engine.execute_buyback(now=T0)

    payload = json.loads(path.read_text())
    assert payload["usage"]["failed_attempts"] == 1
    assert payload["circuit_breaker"]["consecutive_failures"] == 1


def test_state_is_restored_on_construction(make_engine, tmp_path):
    path = tmp_path / "state.json"
    engine = make_engine(state_store=StateStore(str(path)))
    engine.execute_buyback(now=T0)

    restarted = make_engine(state_store=StateStore(str(path)))
    assert restarted.get_execution_count() == 1
    assert restarted.get_last_execution_time() == T0
    # the restored usage drives the interval trigger
    assert not restarted.check_execution_conditions(now=T0 + 10)


def test_save_and_load_state(make_engine, shallow_pool, tmp_path):
    path = str(tmp_path / "snap.json")
    engine = make_engine(pool=shallow_pool)
    for i in range(3):
        assert engine.execute_buyback(now=T0 + i).reason == INSUFFICIENT_LIQUIDITY
    engine.save_state(path)

    fresh = make_engine(pool=shallow_pool)
    assert fresh.load_state(path)
    assert fresh.get_circuit_breaker_status(now=T0 + 3) == (True, T0 + 2 + 3600)
    assert fresh.usage.failed_attempts == 3
    # components share the restored objects
    assert fresh.trigger.usage is fresh.usage
    assert fresh.guard.breaker is fresh.breaker


def test_load_state_missing_file(make_engine, tmp_path):
    assert make_engine().load_state(str(tmp_path / "none.json")) is False
    with pytest.raises(ValueError):
        make_engine().save_state()


def test_state_store_rejects_other_config(tmp_path):
    path = str(tmp_path / "state.json")
    StateStore(path, config_hash="a" * 64).save(UsageLedger(), CircuitBreakerState())
    with pytest.raises(StateStoreError):
        StateStore(path, config_hash="b" * 64).load()


def test_state_store_rejects_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json")
    with pytest.raises(StateStoreError):
        StateStore(str(path)).load()


def test_router_defaults_to_pool(ledger):
    ledger.deposit("pool", "BNB", 1000 * E18)
    ledger.deposit("pool", "TOKEN", 100_000 * E18)
    pool = ConstantProductPool(ledger, pool_account="pool", native_asset="BNB", token_asset="TOKEN")
    engine = BuybackEngine(ConfigStore.from_config(make_config()), ledger=ledger, pool=pool)

    result = engine.execute_buyback(now=T0)

    assert result.succeeded
    assert ledger.balance_of("sink", "TOKEN") == result.tokens_bought
    assert pool.get_state().reserve_native == 1001 * E18


def test_router_required_for_read_only_pool(ledger, deep_pool):
    with pytest.raises(TypeError):
        BuybackEngine(make_config(), ledger=ledger, pool=deep_pool)


def test_preview_reports_unreadable_balance(make_engine):
    class _UnreachableLedger(InMemoryLedger):
        def balance_of(self, account, asset):
            raise LedgerError("ledger node unreachable")

    engine = make_engine(ledger_=_UnreachableLedger())
    assert engine.preview(now=T0) == {"amount": 0, "reason": MARKET_DATA_UNAVAILABLE, "balance": None}

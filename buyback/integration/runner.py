"""buyback/integration/runner.py

CLI entry point for the buyback engine.

Paper mode builds an in-memory ledger, a constant-product pool and a static
oracle from the `paper:` section of the config file, then runs the service
loop for --max-iterations attempts.

Design goals:
- Clean stdout (logs to stderr; --summary-json is the only stdout output)
- Deterministic in smoke tests (paper clock advanced by paper.clock_step)
- Exit code 0 on a completed run, 2 on a config/state error

Usage:
    python3 -m buyback.integration.runner --config configs/buyback.example.yaml \\
        --paper --max-iterations 5 --summary-json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from buyback.config.loader import ConfigError, ConfigStore, load_buyback_config
from buyback.engine import BuybackEngine
from buyback.execution.ledger import InMemoryLedger
from buyback.execution.pool_stub import ConstantProductPool, StaticOracle
from buyback.execution.state_store import StateStore, StateStoreError
from buyback.monitoring.alerts import AlertListener, TelegramBot
from buyback.monitoring.audit_log import AuditLog
from buyback.monitoring.exporters import export_records
from buyback.integration.service import BuybackService
from buyback.strategy.amm_math import spot_price

logger = logging.getLogger(__name__)

DEFAULT_POOL_ACCOUNT = "paper-pool"


@dataclass
class PaperEnv:
    ledger: InMemoryLedger
    pool: ConstantProductPool
    oracle: Optional[StaticOracle]
    clock: Optional[Callable[[], int]]


class _SteppedClock:
    """Deterministic clock: returns start, start+step, start+2*step, ..."""

    def __init__(self, start: int, step: int):
        self._next = start
        self.step = step

    def __call__(self) -> int:
        now = self._next
        self._next += self.step
        return now


def build_paper_env(store: ConfigStore) -> PaperEnv:
    """Build paper collaborators from the `paper:` section of the YAML."""
    cfg = store.config
    paper: Dict[str, Any] = (store.raw or {}).get("paper") or {}
    if not isinstance(paper, dict):
        raise ConfigError("paper must be a mapping")

    try:
        reserve_native = int(paper["pool_native_reserve"])
        reserve_token = int(paper["pool_token_reserve"])
        revenue_balance = int(paper.get("revenue_balance", 0))
        fee_bps = int(paper.get("fee_bps", 25))
        trades = [(int(t["ts"]), int(t["amount"])) for t in paper.get("volume") or []]
        oracle_price = paper.get("oracle_price", "spot")
        if oracle_price is not None and oracle_price != "spot":
            oracle_price = int(oracle_price)
        clock_start = int(paper["clock_start"]) if "clock_start" in paper else None
        clock_step = int(paper.get("clock_step", 0))
    except KeyError as e:
        raise ConfigError(f"Missing required paper key: {e.args[0]}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid paper value: {e}") from e
    if reserve_native <= 0 or reserve_token <= 0 or revenue_balance < 0:
        raise ConfigError("paper reserves must be positive and revenue_balance non-negative")

    ledger = InMemoryLedger()
    pool_account = str(paper.get("pool_account", DEFAULT_POOL_ACCOUNT))
    ledger.deposit(cfg.revenue_source, cfg.revenue_asset, revenue_balance)
    ledger.deposit(pool_account, cfg.revenue_asset, reserve_native)
    ledger.deposit(pool_account, cfg.target_asset, reserve_token)

    pool = ConstantProductPool(
        ledger,
        pool_account=pool_account,
        native_asset=cfg.revenue_asset,
        token_asset=cfg.target_asset,
        fee_bps=fee_bps,
    )
    for ts, amount in trades:
        pool.record_trade(ts, amount)

    oracle: Optional[StaticOracle] = None
    if oracle_price is not None:
        if oracle_price == "spot":
            oracle_price = spot_price(reserve_native, reserve_token)
        oracle = StaticOracle({cfg.target_asset: oracle_price})

    clock = None
    if clock_start is not None:
        clock = _SteppedClock(clock_start, clock_step)

    return PaperEnv(ledger=ledger, pool=pool, oracle=oracle, clock=clock)


def _build_summary(engine: BuybackEngine, service: BuybackService, store: ConfigStore) -> Dict[str, Any]:
    cfg = store.config
    active, cooldown_end = engine.get_circuit_breaker_status(service.last_now)
    return {
        "config_hash": store.config_hash,
        "attempts": service.iterations,
        "outcomes": dict(sorted(service.outcomes.items())),
        "execution_count": engine.get_execution_count(),
        "total_buyback_amount": str(engine.get_total_buyback_amount()),
        "total_tokens_acquired": str(engine.get_total_tokens_acquired()),
        "sink": cfg.sink,
        "sink_balance": str(engine.ledger.balance_of(cfg.sink, cfg.target_asset)),
        "last_execution_time": engine.get_last_execution_time(),
        "circuit_breaker": {"active": active, "cooldown_end": cooldown_end},
    }


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Run the buyback engine control loop")
    ap.add_argument("--config", required=True, help="Buyback YAML config")
    ap.add_argument("--paper", action="store_true", help="Run against in-memory paper collaborators")
    ap.add_argument("--max-iterations", type=int, default=None, help="Stop after N attempts")
    ap.add_argument("--interval-sec", type=float, default=60.0, help="Seconds between attempts")
    ap.add_argument("--audit-log", default="", help="JSONL audit log path (in-memory if omitted)")
    ap.add_argument("--state-file", default="", help="JSON state file for usage/breaker persistence")
    ap.add_argument("--export", default="", help="Export audit records to this path after the run")
    ap.add_argument("--export-format", default="csv", choices=["csv", "parquet"])
    ap.add_argument("--alerts", action="store_true", help="Send Telegram alerts (BUYBACK_TELEGRAM_* env vars)")
    ap.add_argument("--summary-json", action="store_true", help="Print a JSON summary to stdout")
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    if not args.paper:
        print("ERROR: live mode needs ledger/router adapters; run with --paper", file=sys.stderr)
        return 2

    try:
        store = load_buyback_config(args.config)
        env = build_paper_env(store)
        state_store = StateStore(args.state_file, config_hash=store.config_hash) if args.state_file else None
        engine = BuybackEngine(
            store,
            ledger=env.ledger,
            pool=env.pool,
            oracle=env.oracle,
            audit_log=AuditLog(args.audit_log or None),
            state_store=state_store,
        )
    except (ConfigError, StateStoreError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if args.alerts:
        engine.events.subscribe(AlertListener(
            TelegramBot.from_env(),
            revenue_asset=store.config.revenue_asset,
            target_asset=store.config.target_asset,
        ))

    service = BuybackService(engine, interval_sec=args.interval_sec, clock=env.clock)
    try:
        service.run_loop(max_iterations=args.max_iterations)
    except KeyboardInterrupt:
        logger.info("[runner] Interrupted")

    if args.export:
        export_records(engine.iter_records(), args.export, args.export_format)

    if args.summary_json:
        print(json.dumps(_build_summary(engine, service, store), sort_keys=True))
    else:
        print(f"[runner] attempts={service.iterations} outcomes={dict(service.outcomes)}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""buyback/config/loader.py

YAML loader for the deployment config.

Design goals:
- One frozen BuybackConfig per deployment, exposed read-only through ConfigStore.
- Deterministic config hash (sha256 of file bytes) so every log line and audit
  export can be tied to the exact config that produced it.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from buyback.config.schema import BuybackConfig, TriggerConfig

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    pass


def _sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def _require(d: Dict[str, Any], key: str) -> Any:
    if key not in d:
        raise ConfigError(f"Missing required key: {key}")
    return d[key]


def _int_or_none(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _build_trigger(raw: Any) -> TriggerConfig:
    if raw is None:
        return TriggerConfig()
    if not isinstance(raw, dict):
        raise ConfigError("trigger must be a mapping")

    kwargs: Dict[str, Any] = {"trigger_type": str(raw.get("type", "INTERVAL")).upper()}
    for key in (
        "interval_seconds",
        "start_time",
        "volume_threshold",
        "volume_window_seconds",
        "check_interval_seconds",
        "min_liquidity",
    ):
        if key in raw:
            kwargs[key] = int(raw[key])
    kwargs["price_below"] = _int_or_none(raw.get("price_below"))
    kwargs["price_above"] = _int_or_none(raw.get("price_above"))
    return TriggerConfig(**kwargs)


def build_config(raw: Dict[str, Any]) -> BuybackConfig:
    """Map a parsed YAML `buyback:` subtree onto BuybackConfig.

    Raises:
        ConfigError: On missing keys, wrong shapes or failed validation.
    """
    if not isinstance(raw, dict):
        raise ConfigError("buyback config must be a mapping")

    limits = raw.get("limits") or {}
    breaker = raw.get("circuit_breaker") or {}
    if not isinstance(limits, dict) or not isinstance(breaker, dict):
        raise ConfigError("limits and circuit_breaker must be mappings")

    try:
        kwargs: Dict[str, Any] = {
            "revenue_source": str(_require(raw, "revenue_source")),
            "target_asset": str(_require(raw, "target_asset")),
            "router": str(_require(raw, "router")),
            "sink": str(raw.get("sink") or ""),
            "burn": bool(raw.get("burn", False)),
            "execution_mode": str(raw.get("execution_mode", "PERCENTAGE")).upper(),
            "fixed_amount": int(raw.get("fixed_amount", 0)),
            "percentage_of_balance": int(raw.get("percentage_of_balance", 0)),
            "trigger": _build_trigger(raw.get("trigger")),
            "min_output_percent": int(limits.get("min_output_percent", 95)),
            "max_execution_amount": int(_require(limits, "max_execution_amount")),
            "max_daily_amount": int(_require(limits, "max_daily_amount")),
            "circuit_breaker_enabled": bool(breaker.get("enabled", True)),
            "max_price_deviation_percent": int(breaker.get("max_price_deviation_percent", 10)),
            "min_liquidity_multiplier": int(breaker.get("min_liquidity_multiplier", 20)),
            "max_consecutive_failures": int(breaker.get("max_consecutive_failures", 3)),
            "failure_cooldown_seconds": int(breaker.get("failure_cooldown_seconds", 3600)),
            "deviation_cooldown_seconds": int(breaker.get("deviation_cooldown_seconds", 3600)),
            "swap_path": tuple(raw.get("swap_path") or ()),
            "execution_timeout_seconds": float(raw.get("execution_timeout_seconds", 30.0)),
        }
        for key in ("revenue_asset", "engine_account"):
            if key in raw:
                kwargs[key] = str(raw[key])
        if "tally_excluded_reasons" in breaker:
            kwargs["tally_excluded_reasons"] = frozenset(breaker["tally_excluded_reasons"] or ())
        return BuybackConfig(**kwargs)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid buyback config: {e}") from e


@dataclass(frozen=True)
class ConfigStore:
    """Construct-once holder of the deployment config.

    Attributes:
        config: Validated, frozen BuybackConfig
        config_hash: sha256 hex of the source bytes ("" when built in code)
        path: Source file path, if any
        raw: The full parsed YAML document (paper section etc.)
    """
    config: BuybackConfig
    config_hash: str = ""
    path: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None

    @classmethod
    def from_config(cls, config: BuybackConfig) -> "ConfigStore":
        return cls(config=config)


def load_buyback_config(path: str) -> ConfigStore:
    """Load and validate a buyback YAML file.

    The file must hold a top-level mapping with a `buyback:` subtree.
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config not found: {p}")

    data = p.read_bytes()
    raw = yaml.safe_load(data.decode("utf-8"))
    if not isinstance(raw, dict):
        raise ConfigError(f"{p.name} must be a YAML mapping (dict at top-level)")

    config = build_config(_require(raw, "buyback"))
    store = ConfigStore(config=config, config_hash=_sha256_bytes(data), path=str(p), raw=raw)
    logger.info(f"[config] Loaded {p} (sha256={store.config_hash[:12]}, trigger={config.trigger.trigger_type.value})")
    return store

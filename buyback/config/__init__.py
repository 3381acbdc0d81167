"""Deployment configuration: frozen schema plus YAML loader."""

from .loader import ConfigError, ConfigStore, build_config, load_buyback_config
from .schema import BURN_ADDRESS, BuybackConfig, ExecutionMode, TriggerConfig, TriggerType

__all__ = [
    "BURN_ADDRESS",
    "BuybackConfig",
    "ConfigError",
    "ConfigStore",
    "ExecutionMode",
    "TriggerConfig",
    "TriggerType",
    "build_config",
    "load_buyback_config",
]

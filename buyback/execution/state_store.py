"""buyback/execution/state_store.py

File-backed persistence of UsageLedger and CircuitBreakerState.

Design:
- Single JSON document, rewritten after every recorded attempt
- Atomic write via temp file + rename, so a crash leaves either the old or
  the new state on disk, never a torn file
- Config hash stored alongside so state is never loaded into a different deployment
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from buyback.execution.circuit_breaker import CircuitBreakerState
from buyback.execution.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateStoreError(RuntimeError):
    pass


@dataclass
class EngineState:
    usage: UsageLedger
    breaker: CircuitBreakerState


class StateStore:
    """Persists engine state to a JSON file."""

    def __init__(self, path: str, *, config_hash: str = ""):
        self.path = Path(path)
        self.config_hash = config_hash

    def save(self, usage: UsageLedger, breaker: CircuitBreakerState) -> None:
        payload = {
            "version": STATE_VERSION,
            "config_hash": self.config_hash,
            "usage": usage.to_dict(),
            "circuit_breaker": breaker.to_dict(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_file, self.path)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def load(self) -> Optional[EngineState]:
        """Load persisted state; None if nothing has been saved yet.

        Raises:
            StateStoreError: On a corrupt file or a config hash mismatch.
        """
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StateStoreError(f"Corrupt state file {self.path}: {e}") from e

        if payload.get("version") != STATE_VERSION:
            raise StateStoreError(f"Unsupported state version: {payload.get('version')}")
        stored_hash = payload.get("config_hash", "")
        if self.config_hash and stored_hash and stored_hash != self.config_hash:
            raise StateStoreError(
                f"State in {self.path} belongs to config {stored_hash[:12]}, not {self.config_hash[:12]}"
            )

        state = EngineState(
            usage=UsageLedger.from_dict(payload.get("usage") or {}),
            breaker=CircuitBreakerState.from_dict(payload.get("circuit_breaker") or {}),
        )
        logger.info(f"[state_store] Loaded state from {self.path} (executions={state.usage.execution_count})")
        return state

"""buyback/execution/ledger.py

In-memory reference Ledger with staged, all-or-nothing transactions.

Used for paper mode and tests. A transaction only records deltas; the shared
balance table is touched once, under the ledger lock, at commit time. An
aborted (or failed) transaction therefore never leaves partial state.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Dict, Tuple

from buyback.execution.errors import (
    InsufficientBalanceError,
    LedgerError,
    TransactionAbortedError,
)
from buyback.execution.routing.interfaces import Ledger, LedgerTransaction

logger = logging.getLogger(__name__)

_Key = Tuple[str, str]  # (account, asset)


class InMemoryTransaction(LedgerTransaction):
    """Staged deltas against an InMemoryLedger."""

    def __init__(self, ledger: "InMemoryLedger"):
        self._ledger = ledger
        self._deltas: Dict[_Key, int] = defaultdict(int)
        self._lock = threading.Lock()
        self._aborted = False
        self._committed = False

    def _check_open(self) -> None:
        if self._aborted:
            raise TransactionAbortedError("Transaction was aborted")
        if self._committed:
            raise LedgerError("Transaction already committed")

    def balance_of(self, account: str, asset: str) -> int:
        with self._lock:
            return self._ledger.balance_of(account, asset) + self._deltas.get((account, asset), 0)

    def transfer(self, source: str, destination: str, asset: str, amount: int) -> None:
        if amount < 0:
            raise LedgerError(f"Negative transfer amount: {amount}")
        with self._lock:
            self._check_open()
            available = self._ledger.balance_of(source, asset) + self._deltas.get((source, asset), 0)
            if available < amount:
                raise InsufficientBalanceError(
                    f"{source} has {available} {asset}, needs {amount}",
                    {"account": source, "asset": asset, "available": available, "amount": amount},
                )
            self._deltas[(source, asset)] -= amount
            self._deltas[(destination, asset)] += amount

    def commit(self) -> None:
        with self._lock:
            self._check_open()
            self._ledger._apply(self._deltas)
            self._committed = True

    def abort(self) -> None:
        with self._lock:
            if self._committed:
                return
            self._aborted = True
            self._deltas.clear()

    @property
    def aborted(self) -> bool:
        return self._aborted


class InMemoryLedger(Ledger):
    """Thread-safe balance table keyed by (account, asset)."""

    def __init__(self):
        self._balances: Dict[_Key, int] = defaultdict(int)
        self._lock = threading.RLock()

    def balance_of(self, account: str, asset: str) -> int:
        with self._lock:
            return self._balances.get((account, asset), 0)

    def deposit(self, account: str, asset: str, amount: int) -> None:
        """Credit an account from outside the system (revenue inflow, pool seeding)."""
        if amount < 0:
            raise LedgerError(f"Negative deposit: {amount}")
        with self._lock:
            self._balances[(account, asset)] += amount

    def begin(self) -> InMemoryTransaction:
        return InMemoryTransaction(self)

    def _apply(self, deltas: Dict[_Key, int]) -> None:
        with self._lock:
            # Validate everything first so a failed commit applies nothing.
            for key, delta in deltas.items():
                if self._balances.get(key, 0) + delta < 0:
                    account, asset = key
                    raise InsufficientBalanceError(
                        f"Commit would overdraw {account} in {asset}",
                        {"account": account, "asset": asset},
                    )
            for key, delta in deltas.items():
                self._balances[key] += delta
        logger.debug(f"[ledger] Committed {len(deltas)} balance changes")

    def snapshot(self) -> Dict[_Key, int]:
        with self._lock:
            return dict(self._balances)

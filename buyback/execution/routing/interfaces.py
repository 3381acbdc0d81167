"""
buyback/execution/routing/interfaces.py

Abstract interfaces for the engine's external collaborators.

The engine never owns balances: it stages debits and credits on a transaction
obtained from the external Ledger and commits them in one step. Pools and
oracles are read-only from the engine's point of view; the router stages its
side of a swap on the same transaction.
"""
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from buyback.execution.routing.types import PoolState, SwapResult


class LedgerTransaction(ABC):
    """
    A staged unit of work against the Ledger.

    Nothing staged is visible outside the transaction until commit(); abort()
    discards everything and makes any later commit() fail.
    """

    @abstractmethod
    def balance_of(self, account: str, asset: str) -> int:
        """Balance including this transaction's staged changes."""

    @abstractmethod
    def transfer(self, source: str, destination: str, asset: str, amount: int) -> None:
        """
        Stage a debit of source and a credit of destination.

        Raises:
            InsufficientBalanceError: If source cannot cover amount
            TransactionAbortedError: If the transaction was aborted
        """

    @abstractmethod
    def commit(self) -> None:
        """
        Apply every staged change atomically.

        Raises:
            LedgerError: If the changes can no longer be applied; nothing is applied
        """

    @abstractmethod
    def abort(self) -> None:
        """Discard staged changes. Idempotent."""


class Ledger(ABC):
    """External ledger with atomic debit/credit semantics."""

    @abstractmethod
    def balance_of(self, account: str, asset: str) -> int:
        pass

    @abstractmethod
    def begin(self) -> LedgerTransaction:
        pass


class LiquidityPool(ABC):
    """Read-only view of the revenue/target pool."""

    @abstractmethod
    def get_state(self) -> PoolState:
        """
        Current reserves.

        Raises:
            MarketDataError: If reserves cannot be read
        """

    @abstractmethod
    def get_trailing_volume(self, window_seconds: int, now: int) -> int:
        """
        Traded volume (revenue-asset units) in (now - window_seconds, now].

        Raises:
            MarketDataError: If volume cannot be read
        """


class SwapRouter(ABC):
    """Performs swaps by staging transfers on a LedgerTransaction."""

    @abstractmethod
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
        """
        Swap amount_in of path[0] for path[-1], paying from payer to recipient.

        Raises:
            SlippageExceededError: If output < min_amount_out (nothing staged)
            SwapError: On any other swap failure
            LedgerError: If staging the transfers fails
        """


class PriceOracle(ABC):
    """External reference price for the deviation guard."""

    @abstractmethod
    def get_price(self, asset: str) -> Optional[int]:
        """
        Reference price of asset in revenue units, scaled by PRICE_SCALE.

        Returns:
            None when no reference is currently available
        """

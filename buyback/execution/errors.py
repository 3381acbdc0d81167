"""buyback/execution/errors.py

Exceptions raised by external collaborators (ledger, pool/router, oracle).

The orchestrator maps each of these onto an outcome reason; none of them
escape an execute_buyback call.
"""

from typing import Optional


class BuybackError(Exception):
    """Base class for collaborator failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.details = details or {}
        super().__init__(message)


class LedgerError(BuybackError):
    """A debit/credit could not be staged or committed."""


class InsufficientBalanceError(LedgerError):
    pass


class TransactionAbortedError(LedgerError):
    """The transaction was aborted (e.g. after a timeout) and can no longer commit."""


class SwapError(BuybackError):
    """The router could not perform the swap."""


class SlippageExceededError(SwapError):
    """Swap output came in below min_tokens_out."""

    def __init__(self, amount_out: int, min_amount_out: int):
        self.amount_out = amount_out
        self.min_amount_out = min_amount_out
        super().__init__(
            f"Swap output {amount_out} below minimum {min_amount_out}",
            {"amount_out": amount_out, "min_amount_out": min_amount_out},
        )


class MarketDataError(BuybackError):
    """A read-only pool or oracle query failed."""

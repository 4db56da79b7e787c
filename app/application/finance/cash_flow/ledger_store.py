"""
Ledger store interface consumed by the cash flow service.

The store owns persistence and querying; the engine only reads. Records may be
returned as raw documents (dicts) or as already-validated models.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from app.domain.finance.cash_flow.models import Expense, LedgerTransaction, Payment

TransactionRecord = Union[Mapping[str, Any], LedgerTransaction]
PaymentRecord = Union[Mapping[str, Any], Payment]
ExpenseRecord = Union[Mapping[str, Any], Expense]


class LedgerStore(Protocol):
    """Interface for ledger read operations."""

    async def find_transactions(
        self,
        start: date,
        end: date,
        residence: Optional[str] = None,
        status_not_in: Sequence[str] = ("reversed", "draft"),
        sources: Optional[Sequence[str]] = None,
    ) -> List[TransactionRecord]:
        """Transactions dated within [start, end]; sources=None means any source."""
        ...

    async def find_payments(
        self,
        start: date,
        end: date,
        residence: Optional[str] = None,
        status_in: Sequence[str] = ("confirmed", "completed", "paid"),
    ) -> List[PaymentRecord]:
        """Payments dated within [start, end] with one of the given statuses (any case)."""
        ...

    async def find_expenses(
        self,
        start: date,
        end: date,
        residence: Optional[str] = None,
        payment_status: str = "Paid",
    ) -> List[ExpenseRecord]:
        """Expenses dated within [start, end] with the given payment status."""
        ...

    async def cash_balance_as_of(
        self,
        as_of: date,
        residence: Optional[str] = None,
    ) -> Dict[str, Decimal]:
        """Balance of every cash account, by account code, at the end of as_of."""
        ...

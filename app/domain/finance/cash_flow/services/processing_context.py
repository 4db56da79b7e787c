"""
Processing Context - per-invocation deduplication state.

One context is created for each statement request and dropped afterwards,
so dedup decisions never leak between requests.
"""
import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Set

from app.shared.utils.datetime_utils import days_between
from app.shared.utils.validators import CENT, amounts_match

from ..models.ledger import Expense, LedgerTransaction
from .description_signals import DescriptionSignalExtractor


def _normalize_text(text: Optional[str]) -> str:
    return " ".join((text or "").lower().split())


class ProcessingContext:
    """
    Tracks which transactions and Expense records have been counted.

    A ledger transaction links to an Expense by exact key (expense id or code
    via transaction id, source_id, reference, metadata expenseId or an EXP-
    token in the description) or, failing that, by identical description and
    amount within the date window.
    """

    def __init__(
        self,
        expenses: Sequence[Expense] = (),
        signals: Optional[DescriptionSignalExtractor] = None,
        amount_tolerance: Decimal = CENT,
        date_window_days: int = 7,
    ):
        self.expenses: List[Expense] = list(expenses)
        self.signals = signals or DescriptionSignalExtractor()
        self.amount_tolerance = amount_tolerance
        self.date_window_days = date_window_days

        self.counted_transactions: Set[str] = set()
        self.linked_expenses: Set[str] = set()
        self.expense_links: Dict[str, str] = {}

        self._by_key: Dict[str, Expense] = {}
        self._by_transaction: Dict[str, Expense] = {}
        for expense in self.expenses:
            for key in expense.keys:
                self._by_key.setdefault(key.upper(), expense)
            if expense.transaction_id:
                self._by_transaction.setdefault(expense.transaction_id, expense)

    def is_counted(self, transaction_id: str) -> bool:
        return transaction_id in self.counted_transactions

    def mark_counted(self, transaction_id: str) -> bool:
        """
        Record a transaction as counted.

        Returns:
            False if it was already counted
        """
        if transaction_id in self.counted_transactions:
            return False
        self.counted_transactions.add(transaction_id)
        return True

    def find_expense(
        self,
        transaction: LedgerTransaction,
        amount: Decimal,
        effective_date: datetime.date,
    ) -> Optional[Expense]:
        """Expense record covered by a ledger transaction, if any"""
        expense = self._by_transaction.get(transaction.id)
        if expense is not None:
            return expense

        candidates = [
            transaction.source_id,
            transaction.reference,
            transaction.meta("expenseId", "expense_id"),
        ]
        candidates.extend(self.signals.extract(transaction.description).expense_refs)
        for key in candidates:
            if key and key.upper() in self._by_key:
                return self._by_key[key.upper()]

        return self._find_by_proximity(transaction.description, amount, effective_date)

    def link_expense(
        self,
        transaction: LedgerTransaction,
        amount: Decimal,
        effective_date: datetime.date,
    ) -> Optional[Expense]:
        """Find and claim the Expense record covered by a counted ledger transaction"""
        expense = self.find_expense(transaction, amount, effective_date)
        if expense is None:
            return None
        self.linked_expenses.add(expense.id)
        self.expense_links[expense.id] = transaction.id
        return expense

    def unlinked_expenses(self) -> List[Expense]:
        """Expense records no counted ledger transaction has claimed"""
        return [e for e in self.expenses if e.id not in self.linked_expenses]

    def _find_by_proximity(
        self,
        description: str,
        amount: Decimal,
        effective_date: datetime.date,
    ) -> Optional[Expense]:
        text = _normalize_text(description)
        if not text:
            return None

        matches = [
            e for e in self.expenses
            if e.id not in self.linked_expenses
            and _normalize_text(e.description) == text
            and amounts_match(e.amount, amount, self.amount_tolerance)
            and days_between(e.expense_date, effective_date) <= self.date_window_days
        ]
        if not matches:
            return None
        return min(matches, key=lambda e: days_between(e.expense_date, effective_date))

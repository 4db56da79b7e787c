"""
Payment Linker Service - maps ledger transactions to the payment that produced them.

A link gives the transaction an effective date (the payment date) and lets
the categorizer tell advance payments from payments for the current month.
"""
import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from app.core.unified_config import LinkingConfig
from app.shared.utils.datetime_utils import days_between, month_key, to_date
from app.shared.utils.validators import amounts_match

from ..models.classification import LinkResult
from ..models.ledger import Allocation, LedgerTransaction, Payment
from .description_signals import DescriptionSignalExtractor

MATCH_REFERENCE = "reference"
MATCH_STUDENT_AMOUNT = "student_amount"
MATCH_AMOUNT_DATE = "amount_date"

ADVANCE_ALLOCATION_TYPE = "advance_payment"


class PaymentLinker:
    """
    Links transactions to payments with priority-ordered rules:
    1. Exact id via reference, metadata paymentId or payment code in the description
    2. Same student and matching amount
    3. Matching amount within the date window, closest date wins
    """

    def __init__(
        self,
        config: Optional[LinkingConfig] = None,
        signals: Optional[DescriptionSignalExtractor] = None,
    ):
        self.config = config or LinkingConfig()
        self.signals = signals or DescriptionSignalExtractor()
        self.tolerance = Decimal(str(self.config.amount_tolerance))
        self.window_days = self.config.payment_date_window_days

    def link(
        self,
        transaction: LedgerTransaction,
        payments: Sequence[Payment],
        amount: Optional[Decimal] = None,
    ) -> Optional[Payment]:
        """
        Find the payment behind a transaction.

        Args:
            transaction: Included ledger transaction
            payments: Candidate payments for the period
            amount: Cash amount of the transaction, defaults to its total debit

        Returns:
            The linked Payment or None
        """
        payment, _ = self.match(transaction, payments, amount)
        return payment

    def match(
        self,
        transaction: LedgerTransaction,
        payments: Sequence[Payment],
        amount: Optional[Decimal] = None,
    ) -> Tuple[Optional[Payment], Optional[str]]:
        """Find the payment and the name of the rule that matched"""
        if not payments:
            return None, None
        if amount is None:
            amount = transaction.total_debit

        payment = self._match_by_reference(transaction, payments)
        if payment is not None:
            return payment, MATCH_REFERENCE

        payment = self._match_by_student(transaction, payments, amount)
        if payment is not None:
            return payment, MATCH_STUDENT_AMOUNT

        payment = self._match_by_amount_and_date(transaction, payments, amount)
        if payment is not None:
            return payment, MATCH_AMOUNT_DATE

        return None, None

    def effective_date(
        self,
        transaction: LedgerTransaction,
        payment: Optional[Payment],
        is_deposit_movement: bool = False,
    ) -> datetime.date:
        """
        Date used to bucket a transaction.

        Deposit receipts and returns always use their own ledger date. Expense
        payments use metadata datePaid when present. Otherwise the linked
        payment's date wins over the ledger date.
        """
        if is_deposit_movement:
            return transaction.date

        if transaction.source == "expense_payment":
            date_paid = transaction.metadata.get("datePaid") or transaction.metadata.get("date_paid")
            if date_paid:
                try:
                    return to_date(date_paid)
                except (TypeError, ValueError):
                    # unparseable datePaid falls back to the payment or ledger date
                    pass

        if payment is not None:
            return payment.date
        return transaction.date

    def detect_advance(
        self,
        transaction: LedgerTransaction,
        payment: Optional[Payment],
        amount: Decimal,
        effective_date: datetime.date,
    ) -> bool:
        """Check whether the amount covers a month after the effective month"""
        return self.advance_month(transaction, payment, amount, effective_date) is not None

    def advance_month(
        self,
        transaction: LedgerTransaction,
        payment: Optional[Payment],
        amount: Decimal,
        effective_date: datetime.date,
    ) -> Optional[str]:
        """
        Month an advance is allocated to, or None when the amount is not an advance.

        Allocations matching the amount are checked first; when none match, any
        allocation of the payment counts. Without structured allocations the
        description is searched for an explicit "for YYYY-MM" token.
        """
        effective_month = month_key(effective_date)

        if payment is not None and payment.monthly_breakdown:
            matching = self._matching_allocations(payment.monthly_breakdown, amount)
            candidates = matching or payment.monthly_breakdown
            future = sorted(a.month for a in candidates if a.month > effective_month)
            if future:
                return future[0]

            for allocation in matching:
                if allocation.allocation_type == ADVANCE_ALLOCATION_TYPE:
                    return allocation.month
            return None

        for_month = self.signals.extract(transaction.description).for_month
        if for_month and for_month > effective_month:
            return for_month
        return None

    def allocation_type(self, payment: Optional[Payment], amount: Decimal) -> Optional[str]:
        """Type of the allocation matching the amount, if exactly one type matches"""
        if payment is None:
            return None
        types = {a.allocation_type for a in self._matching_allocations(payment.monthly_breakdown, amount)}
        if len(types) == 1:
            return types.pop() or None
        return None

    def resolve(
        self,
        transaction: LedgerTransaction,
        payments: Sequence[Payment],
        amount: Decimal,
        is_deposit_movement: bool = False,
    ) -> LinkResult:
        """
        Link, date and advance-check a transaction in one pass.

        Deposit movements are dated by the ledger and never treated as advances.
        """
        payment, rule = self.match(transaction, payments, amount)
        effective = self.effective_date(transaction, payment, is_deposit_movement)

        advance = None
        if not is_deposit_movement:
            advance = self.advance_month(transaction, payment, amount, effective)

        return LinkResult(
            payment=payment,
            match_rule=rule,
            effective_date=effective,
            is_advance=advance is not None,
            advance_month=advance,
            allocation_type=self.allocation_type(payment, amount),
        )

    # Matching rules

    def _match_by_reference(
        self,
        transaction: LedgerTransaction,
        payments: Sequence[Payment],
    ) -> Optional[Payment]:
        references = [
            transaction.reference,
            transaction.meta("paymentId", "payment_id"),
        ]
        for reference in references:
            if not reference:
                continue
            for payment in payments:
                if payment.has_identifier(reference):
                    return payment

        description = transaction.description
        if description:
            for payment in payments:
                if payment.payment_code and payment.payment_code in description:
                    return payment
        return None

    def _match_by_student(
        self,
        transaction: LedgerTransaction,
        payments: Sequence[Payment],
        amount: Decimal,
    ) -> Optional[Payment]:
        student = transaction.meta("studentId", "student_id", "student")
        if not student:
            return None
        candidates = [
            p for p in payments
            if p.student == student and self._amount_matches(p, amount)
        ]
        return self._closest(transaction.date, candidates)

    def _match_by_amount_and_date(
        self,
        transaction: LedgerTransaction,
        payments: Sequence[Payment],
        amount: Decimal,
    ) -> Optional[Payment]:
        candidates = [
            p for p in payments
            if self._amount_matches(p, amount)
            and days_between(p.date, transaction.date) <= self.window_days
        ]
        return self._closest(transaction.date, candidates)

    # Helpers

    def _amount_matches(self, payment: Payment, amount: Decimal) -> bool:
        if amounts_match(payment.total_amount, amount, self.tolerance):
            return True
        if self._matching_allocations(payment.monthly_breakdown, amount):
            return True
        return any(amounts_match(c.amount, amount, self.tolerance) for c in payment.components)

    def _matching_allocations(self, allocations: Sequence[Allocation], amount: Decimal) -> List[Allocation]:
        return [a for a in allocations if amounts_match(a.amount_allocated, amount, self.tolerance)]

    @staticmethod
    def _closest(on: datetime.date, candidates: List[Payment]) -> Optional[Payment]:
        """Closest payment by date; ties keep input order"""
        if not candidates:
            return None
        return min(candidates, key=lambda p: days_between(p.date, on))

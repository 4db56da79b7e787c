"""
Reconciliation Verifier Service - checks buckets against their transaction lists
and the statement against the ledger's actual ending cash.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from app.shared.utils.logging_config import get_logger
from app.shared.utils.validators import ZERO, format_amount, to_money

from ..models.classification import CategorizedItem
from ..models.statement import CashReconciliation, MonthlyBucket

logger = get_logger(__name__)


@dataclass
class BucketVerification:
    """Result of verifying a single monthly bucket"""
    bucket: MonthlyBucket
    difference: Decimal
    corrected: bool


@dataclass
class ExcludedAmount:
    """An amount that was left out of the statement, for mismatch suggestions"""
    transaction_id: str
    amount: Decimal
    reason: str
    description: str = ""


class ReconciliationVerifier:
    """
    Service to verify cash flow totals:
    1. Expense totals are recomputed from the per-transaction list
    2. Calculated ending cash is compared with the ledger's actual balance
    3. Excluded amounts that explain a difference are suggested
    """

    def __init__(self, tolerance: Decimal = ZERO, currency: str = "USD"):
        """
        Args:
            tolerance: Largest absolute difference still treated as reconciled
            currency: Currency code for log output
        """
        self.tolerance = tolerance
        self.currency = currency

    def verify(self, bucket: MonthlyBucket) -> BucketVerification:
        """
        Recompute expenses.total from expenses.transactions.

        The transaction list is the source of truth whenever it is non-empty;
        operating outflows follow the corrected total.

        Returns:
            BucketVerification with difference = stored total - recomputed total
        """
        transactions = bucket.expenses.transactions
        if not transactions:
            return BucketVerification(bucket=bucket, difference=ZERO, corrected=False)

        recomputed = sum((line.amount for line in transactions), ZERO)
        difference = bucket.expenses.total - recomputed
        corrected = difference != ZERO

        if corrected:
            logger.warning(
                f"Month {bucket.month}: expenses.total {format_amount(bucket.expenses.total, self.currency)} "
                f"disagrees with its transactions {format_amount(recomputed, self.currency)}, correcting"
            )
            bucket.expenses.total = recomputed

        # every operating outflow in this engine is an expense line
        bucket.operating_activities.outflows = recomputed
        return BucketVerification(bucket=bucket, difference=difference, corrected=corrected)

    def reconcile(
        self,
        beginning: Decimal,
        inflows: Decimal,
        outflows: Decimal,
        actual_ending: Decimal,
        excluded: Optional[Sequence[ExcludedAmount]] = None,
    ) -> CashReconciliation:
        """
        Compare calculated ending cash with the ledger's actual ending cash.

        Args:
            beginning: Opening cash of the period
            inflows: Total cash inflows, all activities
            outflows: Total cash outflows, all activities
            actual_ending: Ledger cash balance at period end
            excluded: Amounts left out of the statement

        Returns:
            CashReconciliation; a non-zero difference is reported, never zeroed
        """
        beginning = to_money(beginning)
        inflows = to_money(inflows)
        outflows = to_money(outflows)
        actual_ending = to_money(actual_ending)

        net_change = inflows - outflows
        calculated = beginning + net_change
        difference = actual_ending - calculated
        is_reconciled = abs(difference) <= self.tolerance

        suggestions: List[str] = []
        if not is_reconciled:
            logger.warning(
                f"Cash flow does not reconcile: calculated {format_amount(calculated, self.currency)}, "
                f"ledger {format_amount(actual_ending, self.currency)}, "
                f"difference {format_amount(difference, self.currency)}"
            )
            suggestions = self.find_missing_transactions(difference, excluded or [])

        return CashReconciliation(
            beginning_cash=beginning,
            cash_inflows=inflows,
            cash_outflows=outflows,
            net_change_in_cash=net_change,
            calculated_ending_cash=calculated,
            actual_ending_cash=actual_ending,
            difference=difference,
            is_reconciled=is_reconciled,
            suggestions=suggestions,
        )

    def find_missing_transactions(
        self,
        difference: Decimal,
        excluded: Sequence[ExcludedAmount],
    ) -> List[str]:
        """Suggest excluded amounts equal to the absolute difference"""
        target = abs(difference)
        suggestions = []
        for item in excluded:
            if abs(item.amount) == target:
                label = f" ({item.description[:50]})" if item.description else ""
                suggestions.append(
                    f"{item.reason} transaction {item.transaction_id}{label} "
                    f"matches the difference of {format_amount(target, self.currency)}"
                )
        return suggestions

    @staticmethod
    def excluded_from_items(items: Sequence[CategorizedItem], reason: str) -> List[ExcludedAmount]:
        return [
            ExcludedAmount(
                transaction_id=item.transaction_id,
                amount=item.amount,
                reason=reason,
                description=item.description,
            )
            for item in items
        ]

"""
Cash Flow Statement model - the main report container.
"""
import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from app.shared.utils.datetime_utils import MONTH_NAMES, is_month_key, month_name
from app.shared.utils.validators import ZERO

from .money import Money


INCOME_CATEGORIES = ["rental_income", "admin_fees", "deposits", "utilities", "advance_payments"]
EXPENSE_TAXONOMY = ["maintenance", "utilities", "cleaning", "security", "management"]
UNASSIGNED = "unassigned"


class StatementBasis(str, Enum):
    CASH = "cash"
    ACCRUAL = "accrual"


class ActivityTotals(BaseModel):
    """Inflows and outflows of one activity type"""
    inflows: Money = ZERO
    outflows: Money = ZERO

    @computed_field
    @property
    def net(self) -> Money:
        return self.inflows - self.outflows


class AdvancePayments(BaseModel):
    """Income received before the month it settles"""
    total: Money = ZERO
    by_student: Dict[str, Money] = Field(default_factory=dict)
    by_residence: Dict[str, Money] = Field(default_factory=dict)


class IncomeSummary(BaseModel):
    total: Money = ZERO
    by_category: Dict[str, Money] = Field(
        default_factory=lambda: {category: ZERO for category in INCOME_CATEGORIES}
    )
    by_residence: Dict[str, Money] = Field(
        default_factory=dict,
        description=f"Operating income per residence id, '{UNASSIGNED}' when unknown"
    )
    advance_payments: AdvancePayments = Field(default_factory=AdvancePayments)


class ExpenseLine(BaseModel):
    """One counted outflow; the list of these is the source of truth for expenses.total"""
    transaction_id: str
    date: datetime.date
    amount: Money
    description: str = ""
    category: str = Field(description="Named expense bucket")
    taxonomy: str = "maintenance"
    account_code: Optional[str] = None
    source: str = "ledger"


class ExpenseTotals(BaseModel):
    total: Money = ZERO
    by_category: Dict[str, Money] = Field(default_factory=dict, description="Named expense buckets")
    by_taxonomy: Dict[str, Money] = Field(
        default_factory=lambda: {category: ZERO for category in EXPENSE_TAXONOMY}
    )
    by_residence: Dict[str, Money] = Field(
        default_factory=dict,
        description=f"Operating expenses per residence id, '{UNASSIGNED}' when unknown"
    )


class ExpenseSummary(ExpenseTotals):
    transactions: List[ExpenseLine] = Field(default_factory=list)


class MonthlyBucket(BaseModel):
    """Cash flow of a single month"""
    month: str = Field(description="YYYY-MM")
    month_name: str = Field(description="Lower-case month name")

    income: IncomeSummary = Field(default_factory=IncomeSummary)
    expenses: ExpenseSummary = Field(default_factory=ExpenseSummary)

    operating_activities: ActivityTotals = Field(default_factory=ActivityTotals)
    investing_activities: ActivityTotals = Field(default_factory=ActivityTotals)
    financing_activities: ActivityTotals = Field(default_factory=ActivityTotals)

    opening_balance: Money = ZERO
    closing_balance: Money = ZERO
    cash_accounts: Dict[str, Money] = Field(default_factory=dict, description="Cash balance by account code at month end")
    transaction_count: int = 0

    @classmethod
    def empty(cls, key: str) -> "MonthlyBucket":
        return cls(month=key, month_name=month_name(key))

    @computed_field
    @property
    def net_cash_flow(self) -> Money:
        return (
            self.operating_activities.net
            + self.investing_activities.net
            + self.financing_activities.net
        )

    @property
    def total_inflows(self) -> Decimal:
        return (
            self.operating_activities.inflows
            + self.investing_activities.inflows
            + self.financing_activities.inflows
        )

    @property
    def total_outflows(self) -> Decimal:
        return (
            self.operating_activities.outflows
            + self.investing_activities.outflows
            + self.financing_activities.outflows
        )


class YearlyTotals(BaseModel):
    """Sum of all monthly buckets"""
    income: IncomeSummary = Field(default_factory=IncomeSummary)
    expenses: ExpenseTotals = Field(default_factory=ExpenseTotals)
    operating_activities: ActivityTotals = Field(default_factory=ActivityTotals)
    investing_activities: ActivityTotals = Field(default_factory=ActivityTotals)
    financing_activities: ActivityTotals = Field(default_factory=ActivityTotals)
    transaction_count: int = 0

    @computed_field
    @property
    def net_cash_flow(self) -> Money:
        return (
            self.operating_activities.net
            + self.investing_activities.net
            + self.financing_activities.net
        )


class CashReconciliation(BaseModel):
    """Computed vs ledger-derived ending cash; the difference is never zeroed"""
    beginning_cash: Money = ZERO
    cash_inflows: Money = ZERO
    cash_outflows: Money = ZERO
    net_change_in_cash: Money = ZERO
    calculated_ending_cash: Money = ZERO
    actual_ending_cash: Money = ZERO
    difference: Money = Field(default=ZERO, description="actual_ending_cash - calculated_ending_cash")
    is_reconciled: bool = True
    suggestions: List[str] = Field(default_factory=list)


class StatementSummary(BaseModel):
    total_income: Money = ZERO
    total_expenses: Money = ZERO
    net_change_in_cash: Money = ZERO
    transactions_processed: int = 0
    transactions_included: int = 0
    transactions_excluded: int = 0
    excluded_by_reason: Dict[str, int] = Field(default_factory=dict)
    transfer_hints_included: int = Field(
        default=0,
        description="Included transactions whose description reads like a transfer but whose lines are not cash to cash"
    )
    expense_records_added: int = 0
    items_dropped: int = Field(default=0, description="Unclassified income and out-of-period items")
    corrected_months: List[str] = Field(default_factory=list)


class CashFlowStatement(BaseModel):
    """
    Period-bucketed cash flow statement.

    monthly_breakdown is keyed "YYYY-MM"; cash_balance_by_account is keyed by
    lower-case month name. get_month() accepts either.
    """
    period: str
    basis: StatementBasis = StatementBasis.CASH
    residence: Optional[str] = None
    generated_at: datetime.datetime

    monthly_breakdown: Dict[str, MonthlyBucket] = Field(default_factory=dict)
    yearly_totals: YearlyTotals = Field(default_factory=YearlyTotals)
    cash_balance_by_account: Dict[str, Dict[str, Money]] = Field(default_factory=dict)

    operating_activities: ActivityTotals = Field(default_factory=ActivityTotals)
    investing_activities: ActivityTotals = Field(default_factory=ActivityTotals)
    financing_activities: ActivityTotals = Field(default_factory=ActivityTotals)

    reconciliation: CashReconciliation = Field(default_factory=CashReconciliation)
    summary: StatementSummary = Field(default_factory=StatementSummary)

    def get_month(self, key: str) -> Optional[MonthlyBucket]:
        """Look up a month by "YYYY-MM" key or by month name ("august")."""
        if is_month_key(key):
            return self.monthly_breakdown.get(key)
        name = key.strip().lower()
        if name not in MONTH_NAMES:
            return None
        for bucket in self.monthly_breakdown.values():
            if bucket.month_name == name:
                return bucket
        return None

    def get_cash_balances(self, key: str) -> Dict[str, Decimal]:
        """Cash balance by account for a month, addressed either way."""
        bucket = self.get_month(key)
        if bucket is None:
            return {}
        return self.cash_balance_by_account.get(bucket.month_name, {})

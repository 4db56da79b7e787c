from .money import Money
from .ledger import (
    AccountType,
    TransactionStatus,
    LedgerLine,
    LedgerTransaction,
    Allocation,
    PaymentComponent,
    Payment,
    Expense,
)
from .classification import (
    ExclusionReason,
    CashDirection,
    ActivityType,
    ItemSource,
    CashLeg,
    ExclusionResult,
    LinkResult,
    CategorizedItem,
)
from .statement import (
    INCOME_CATEGORIES,
    EXPENSE_TAXONOMY,
    UNASSIGNED,
    StatementBasis,
    ActivityTotals,
    AdvancePayments,
    IncomeSummary,
    ExpenseLine,
    ExpenseTotals,
    ExpenseSummary,
    MonthlyBucket,
    YearlyTotals,
    CashReconciliation,
    StatementSummary,
    CashFlowStatement,
)

__all__ = [
    "Money",
    "AccountType",
    "TransactionStatus",
    "LedgerLine",
    "LedgerTransaction",
    "Allocation",
    "PaymentComponent",
    "Payment",
    "Expense",
    "ExclusionReason",
    "CashDirection",
    "ActivityType",
    "ItemSource",
    "CashLeg",
    "ExclusionResult",
    "LinkResult",
    "CategorizedItem",
    "INCOME_CATEGORIES",
    "EXPENSE_TAXONOMY",
    "UNASSIGNED",
    "StatementBasis",
    "ActivityTotals",
    "AdvancePayments",
    "IncomeSummary",
    "ExpenseLine",
    "ExpenseTotals",
    "ExpenseSummary",
    "MonthlyBucket",
    "YearlyTotals",
    "CashReconciliation",
    "StatementSummary",
    "CashFlowStatement",
]

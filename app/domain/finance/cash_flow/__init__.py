from .models import (
    AccountType,
    TransactionStatus,
    LedgerLine,
    LedgerTransaction,
    Allocation,
    Payment,
    Expense,
    ExclusionReason,
    CashDirection,
    ActivityType,
    CashLeg,
    ExclusionResult,
    LinkResult,
    CategorizedItem,
    StatementBasis,
    MonthlyBucket,
    YearlyTotals,
    CashReconciliation,
    CashFlowStatement,
)

from .services import (
    AccountClassifier,
    DescriptionSignalExtractor,
    ExclusionFilter,
    PaymentLinker,
    Categorizer,
    ProcessingContext,
    PeriodAggregator,
    ReconciliationVerifier,
)

__all__ = [
    # Models
    "AccountType",
    "TransactionStatus",
    "LedgerLine",
    "LedgerTransaction",
    "Allocation",
    "Payment",
    "Expense",
    "ExclusionReason",
    "CashDirection",
    "ActivityType",
    "CashLeg",
    "ExclusionResult",
    "LinkResult",
    "CategorizedItem",
    "StatementBasis",
    "MonthlyBucket",
    "YearlyTotals",
    "CashReconciliation",
    "CashFlowStatement",
    # Services
    "AccountClassifier",
    "DescriptionSignalExtractor",
    "ExclusionFilter",
    "PaymentLinker",
    "Categorizer",
    "ProcessingContext",
    "PeriodAggregator",
    "ReconciliationVerifier",
]

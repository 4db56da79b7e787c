"""
Categorizer Service - assigns an economic category to each included cash movement.

Categories come from ordered rule lists, one for inflows and one for outflows.
Rules are evaluated top to bottom and the first match wins.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from app.shared.utils.logging_config import get_logger

from ..models.classification import (
    ActivityType,
    CashDirection,
    CashLeg,
    CategorizedItem,
    ItemSource,
    LinkResult,
)
from ..models.ledger import Expense, LedgerLine, LedgerTransaction
from .account_classifier import AccountClassifier
from .description_signals import DescriptionSignalExtractor, DescriptionSignals

logger = get_logger(__name__)

UNCLASSIFIED_INCOME = "other_income"
DEPOSIT_RETURNS = "deposit_returns"
DEFAULT_TAXONOMY = "maintenance"
UNNAMED_EXPENSE = "Unspecified expense"

INCOME_CODE_CATEGORIES: Dict[str, str] = {
    "4001": "rental_income",
    "4002": "admin_fees",
    "4003": "deposits",
    "4004": "utilities",
}

EXPENSE_CODE_TAXONOMY: Dict[str, str] = {
    "5001": "maintenance",
    "5002": "utilities",
    "5003": "cleaning",
    "5004": "security",
    "5005": "management",
}


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule predicate may look at, computed once per transaction"""
    transaction: LedgerTransaction
    cash_leg: CashLeg
    link: LinkResult
    signals: DescriptionSignals

    has_deposit_credit: bool = False
    has_deposit_debit: bool = False
    income_credit_codes: Tuple[str, ...] = ()
    expense_debit_codes: Tuple[str, ...] = ()
    equity_credited: bool = False
    equity_debited: bool = False

    # Keyword signals of the counter accounts' names
    asset_debit_signals: DescriptionSignals = DescriptionSignals()
    liability_debit_signals: DescriptionSignals = DescriptionSignals()
    liability_credit_signals: DescriptionSignals = DescriptionSignals()
    expense_name_signals: DescriptionSignals = DescriptionSignals()


@dataclass(frozen=True)
class CategoryRule:
    """
    A named {predicate, category} pair.
    A category of None means the transaction description is used verbatim.
    """
    name: str
    predicate: Callable[[RuleContext], bool]
    category: Optional[str]
    activity: ActivityType = ActivityType.OPERATING


class Categorizer:
    """
    Service to categorize cash movements:
    - inflows into income categories (or financing proceeds)
    - outflows into named expense buckets with a fixed taxonomy view
      (or investing/financing payments)
    """

    def __init__(
        self,
        classifier: AccountClassifier,
        signals: Optional[DescriptionSignalExtractor] = None,
    ):
        self.classifier = classifier
        self.signals = signals or DescriptionSignalExtractor()
        self.inflow_rules = self._build_inflow_rules()
        self.outflow_rules = self._build_outflow_rules()

    def _build_inflow_rules(self) -> List[CategoryRule]:
        rules = [
            CategoryRule("deposit_receipt", lambda c: c.has_deposit_credit, "deposits"),
            CategoryRule("admin_keyword", lambda c: c.signals.is_admin, "admin_fees"),
            CategoryRule("linked_advance", lambda c: c.link.is_advance, "advance_payments"),
            CategoryRule(
                "advance_keyword",
                lambda c: c.signals.is_advance or c.transaction.source == "advance_payment",
                "advance_payments",
            ),
            CategoryRule("rent_keyword", lambda c: c.signals.is_rent, "rental_income"),
            CategoryRule("deposit_keyword", lambda c: c.signals.is_deposit, "deposits"),
            CategoryRule("utilities_keyword", lambda c: c.signals.is_utilities, "utilities"),
            CategoryRule(
                "rent_allocation",
                lambda c: c.link.allocation_type == "rent_settlement",
                "rental_income",
            ),
            CategoryRule(
                "admin_allocation",
                lambda c: c.link.allocation_type == "admin_settlement",
                "admin_fees",
            ),
        ]

        for code, category in INCOME_CODE_CATEGORIES.items():
            rules.append(CategoryRule(
                f"income_code_{code}",
                lambda c, code=code: code in c.income_credit_codes,
                category,
            ))

        rules.extend([
            CategoryRule(
                "owners_contribution",
                lambda c: c.equity_credited or c.liability_credit_signals.is_owner_contribution,
                "owners_contribution",
                ActivityType.FINANCING,
            ),
            CategoryRule(
                "loan_proceeds",
                lambda c: c.liability_credit_signals.is_loan,
                "loan_proceeds",
                ActivityType.FINANCING,
            ),
            CategoryRule("unclassified", lambda c: True, UNCLASSIFIED_INCOME),
        ])
        return rules

    def _build_outflow_rules(self) -> List[CategoryRule]:
        return [
            CategoryRule("deposit_return", lambda c: c.has_deposit_debit, DEPOSIT_RETURNS),
            CategoryRule(
                "purchase_of_equipment",
                lambda c: c.asset_debit_signals.is_equipment,
                "purchase_of_equipment",
                ActivityType.INVESTING,
            ),
            CategoryRule(
                "purchase_of_buildings",
                lambda c: c.asset_debit_signals.is_building,
                "purchase_of_buildings",
                ActivityType.INVESTING,
            ),
            CategoryRule(
                "loan_repayments",
                lambda c: c.liability_debit_signals.is_loan,
                "loan_repayments",
                ActivityType.FINANCING,
            ),
            CategoryRule(
                "owners_drawings",
                lambda c: c.equity_debited,
                "owners_drawings",
                ActivityType.FINANCING,
            ),
            CategoryRule("operating_expense", lambda c: True, None),
        ]

    def is_deposit_movement(self, transaction: LedgerTransaction, cash_leg: CashLeg) -> bool:
        """Deposit receipt (deposit credited on an inflow) or return (deposit debited on an outflow)"""
        for line in transaction.lines:
            if not self.classifier.is_deposit_line(line):
                continue
            if cash_leg.direction == CashDirection.INFLOW and line.credit > 0:
                return True
            if cash_leg.direction == CashDirection.OUTFLOW and line.debit > 0:
                return True
        return False

    def build_context(
        self,
        cash_leg: CashLeg,
        transaction: LedgerTransaction,
        link_result: LinkResult,
    ) -> RuleContext:
        counter_lines = [line for line in transaction.lines if not self.classifier.is_cash_line(line)]

        deposit_lines = [line for line in counter_lines if self.classifier.is_deposit_line(line)]
        income_lines = [line for line in counter_lines if self.classifier.is_income_line(line)]
        expense_lines = [line for line in counter_lines if self.classifier.is_expense_line(line)]
        equity_lines = [line for line in counter_lines if self.classifier.is_equity_line(line)]
        liability_lines = [
            line for line in counter_lines
            if self.classifier.is_liability_line(line) and line not in deposit_lines
        ]
        asset_lines = [
            line for line in counter_lines
            if line not in income_lines and line not in expense_lines
            and line not in equity_lines and line not in liability_lines and line not in deposit_lines
        ]

        return RuleContext(
            transaction=transaction,
            cash_leg=cash_leg,
            link=link_result,
            signals=self.signals.extract(transaction.description),
            has_deposit_credit=any(line.credit > 0 for line in deposit_lines),
            has_deposit_debit=any(line.debit > 0 for line in deposit_lines),
            income_credit_codes=tuple(line.account_code for line in income_lines if line.credit > 0),
            expense_debit_codes=tuple(line.account_code for line in expense_lines if line.debit > 0),
            equity_credited=any(line.credit > 0 for line in equity_lines),
            equity_debited=any(line.debit > 0 for line in equity_lines),
            asset_debit_signals=self._name_signals(line for line in asset_lines if line.debit > 0),
            liability_debit_signals=self._name_signals(line for line in liability_lines if line.debit > 0),
            liability_credit_signals=self._name_signals(line for line in liability_lines if line.credit > 0),
            expense_name_signals=self._name_signals(expense_lines),
        )

    def match_rule(self, context: RuleContext) -> CategoryRule:
        """First rule whose predicate holds; the last rule of each list always matches"""
        rules = self.inflow_rules if context.cash_leg.direction == CashDirection.INFLOW else self.outflow_rules
        for rule in rules:
            if rule.predicate(context):
                return rule
        return rules[-1]

    def categorize(
        self,
        cash_leg: CashLeg,
        transaction: LedgerTransaction,
        link_result: LinkResult,
    ) -> CategorizedItem:
        """
        Categorize a single included transaction.

        Args:
            cash_leg: Net cash effect from the exclusion filter
            transaction: The ledger transaction
            link_result: Payment link and effective date

        Returns:
            CategorizedItem; inflows nothing matched carry category other_income
        """
        context = self.build_context(cash_leg, transaction, link_result)
        rule = self.match_rule(context)

        taxonomy = None
        category = rule.category
        if cash_leg.direction == CashDirection.OUTFLOW and rule.activity == ActivityType.OPERATING:
            if category is None:
                category = transaction.description or UNNAMED_EXPENSE
                taxonomy = self.expense_taxonomy(context)
            else:
                taxonomy = category

        logger.debug(
            f"Transaction {transaction.id}: {cash_leg.direction.value} {cash_leg.amount} "
            f"-> {category} (rule {rule.name}, effective {link_result.effective_date})"
        )

        payment = link_result.payment
        return CategorizedItem(
            transaction_id=transaction.id,
            source=ItemSource.LEDGER,
            effective_date=link_result.effective_date,
            direction=cash_leg.direction,
            activity=rule.activity,
            category=category,
            taxonomy=taxonomy,
            amount=cash_leg.amount,
            description=transaction.description,
            account_code=cash_leg.account_code,
            residence=transaction.residence or (payment.residence if payment else None),
            student=(payment.student if payment else None) or transaction.meta("studentId", "student_id", "student"),
            rule=rule.name,
        )

    def categorize_expense(self, expense: Expense) -> CategorizedItem:
        """Outflow for an Expense record that no counted ledger transaction covers"""
        taxonomy = (
            self.signals.taxonomy(expense.category)
            or self.signals.taxonomy(expense.description)
            or DEFAULT_TAXONOMY
        )
        return CategorizedItem(
            transaction_id=expense.transaction_id or expense.id,
            source=ItemSource.EXPENSE,
            effective_date=expense.expense_date,
            direction=CashDirection.OUTFLOW,
            activity=ActivityType.OPERATING,
            category=expense.description or expense.category or UNNAMED_EXPENSE,
            taxonomy=taxonomy,
            amount=expense.amount,
            description=expense.description,
            expense_id=expense.id,
            residence=expense.residence,
            rule="expense_record",
        )

    def expense_taxonomy(self, context: RuleContext) -> str:
        """Description keywords, then expense account code, then expense account name"""
        if context.signals.taxonomy:
            return context.signals.taxonomy
        for code in context.expense_debit_codes:
            if code in EXPENSE_CODE_TAXONOMY:
                return EXPENSE_CODE_TAXONOMY[code]
        return context.expense_name_signals.taxonomy or DEFAULT_TAXONOMY

    @staticmethod
    def is_unclassified(item: CategorizedItem) -> bool:
        return item.direction == CashDirection.INFLOW and item.category == UNCLASSIFIED_INCOME

    def _name_signals(self, lines: Iterable[LedgerLine]) -> DescriptionSignals:
        names = " ".join(line.account_name for line in lines if line.account_name)
        return self.signals.extract(names)

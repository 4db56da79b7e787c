"""
Cash Flow Service - builds period cash flow statements from the ledger.

Pipeline per request:
ledger store -> normalization -> exclusion filter -> payment linker
-> categorizer (+ Expense record dedup) -> period aggregator
-> reconciliation verifier -> CashFlowStatement
"""
import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.core.exceptions import CashFlowError, InvalidPeriodError, LedgerDataError, UpstreamQueryError
from app.core.unified_config import CashFlowConfig, get_cash_flow_config
from app.shared.utils import datetime_utils
from app.shared.utils.logging_config import get_logger
from app.shared.utils.validators import ZERO, format_amount, normalize_account_code, to_money

from app.domain.finance.cash_flow.models import (
    CashDirection,
    CashFlowStatement,
    CashLeg,
    CategorizedItem,
    Expense,
    LedgerTransaction,
    Payment,
    StatementBasis,
    StatementSummary,
    TransactionStatus,
)
from app.domain.finance.cash_flow.services import (
    AccountClassifier,
    Categorizer,
    DescriptionSignalExtractor,
    ExcludedAmount,
    ExclusionFilter,
    PaymentLinker,
    PeriodAggregator,
    ProcessingContext,
    ReconciliationVerifier,
)

from .ledger_store import LedgerStore

logger = get_logger(__name__)


@dataclass
class FoldResult:
    """Output of the per-transaction fold over one batch"""
    items: List[CategorizedItem] = field(default_factory=list)
    excluded: List[ExcludedAmount] = field(default_factory=list)
    excluded_by_reason: Counter = field(default_factory=Counter)
    unclassified: List[CategorizedItem] = field(default_factory=list)
    expense_records_added: int = 0
    processed: int = 0
    transfer_hints: int = 0


class CashFlowService:
    """
    Main service for cash flow statements.

    Orchestrates the flow:
    1. Fetch transactions, payments and expenses concurrently
    2. Classify, link and categorize each transaction
    3. Add Expense records no ledger transaction covers
    4. Aggregate into monthly buckets and verify them
    5. Fetch cash balances concurrently and reconcile
    """

    def __init__(
        self,
        store: LedgerStore,
        config: Optional[CashFlowConfig] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the service.

        Args:
            store: Ledger store to read from
            config: Engine configuration, defaults to the environment-driven config
            today: Clock used to clamp cash snapshots, for tests
        """
        self.store = store
        self.config = config or get_cash_flow_config()
        self._today = today or datetime_utils.today

        self.classifier = AccountClassifier(self.config.accounts)
        self.signals = DescriptionSignalExtractor(self.config.exclusions)
        self.exclusion_filter = ExclusionFilter(self.classifier, self.signals, self.config.exclusions)
        self.linker = PaymentLinker(self.config.linking, self.signals)
        self.categorizer = Categorizer(self.classifier, self.signals)
        self.aggregator = PeriodAggregator()
        self.verifier = ReconciliationVerifier(
            tolerance=Decimal(str(self.config.reporting.reconciliation_tolerance)),
            currency=self.config.reporting.currency,
        )

    async def generate_cash_flow_statement(
        self,
        period: str,
        basis: str = "cash",
        residence: Optional[str] = None,
    ) -> CashFlowStatement:
        """
        Generate a cash flow statement.

        Args:
            period: "YYYY" for twelve monthly buckets or "YYYY-MM" for one
            basis: "cash" restricts transaction sources, "accrual" does not
            residence: Optional residence filter

        Returns:
            CashFlowStatement, possibly with a non-zero reconciliation difference

        Raises:
            InvalidPeriodError: If period or basis is invalid
            UpstreamQueryError: If any ledger store query fails
        """
        statement_basis = self._parse_basis(basis)
        months = self.aggregator.months_for(period)
        start, end = self.aggregator.period_bounds(period)
        today = self._today()

        logger.info(
            f"Generating {statement_basis.value}-basis cash flow statement for {period}"
            + (f" (residence {residence})" if residence else "")
        )

        transactions, payments, expenses = await self._fetch_records(start, end, statement_basis, residence)

        context = ProcessingContext(
            expenses,
            signals=self.signals,
            amount_tolerance=self.linker.tolerance,
            date_window_days=self.config.linking.expense_date_window_days,
        )
        fold = self._fold(transactions, payments, context, months, end)

        _, outside = self.aggregator.split_by_period(fold.items, months)
        buckets = self.aggregator.aggregate(fold.items, period)
        verifications = [self.verifier.verify(bucket) for bucket in buckets.values()]

        opening_date = self.aggregator.opening_balance_date(period)
        ending_date = min(end, today)
        snapshot_dates = self.aggregator.snapshot_dates(months, today)
        opening_balances, ending_balances, snapshots = await self._fetch_balances(
            opening_date, ending_date, snapshot_dates, residence
        )

        opening = self._total(opening_balances)
        self.aggregator.apply_running_balances(buckets, opening)
        cash_by_month = self.aggregator.attach_cash_snapshots(buckets, snapshots)
        yearly = self.aggregator.yearly_totals(buckets)

        excluded = fold.excluded + self.verifier.excluded_from_items(
            fold.unclassified, "unclassified income"
        ) + self.verifier.excluded_from_items(outside, "out-of-period")
        reconciliation = self.verifier.reconcile(
            beginning=opening,
            inflows=sum((b.total_inflows for b in buckets.values()), ZERO),
            outflows=sum((b.total_outflows for b in buckets.values()), ZERO),
            actual_ending=self._total(ending_balances),
            excluded=excluded,
        )

        summary = StatementSummary(
            total_income=yearly.income.total,
            total_expenses=yearly.expenses.total,
            net_change_in_cash=yearly.net_cash_flow,
            transactions_processed=fold.processed,
            transactions_included=sum(1 for i in fold.items if i.rule != "expense_record"),
            transactions_excluded=sum(fold.excluded_by_reason.values()),
            excluded_by_reason=dict(fold.excluded_by_reason),
            transfer_hints_included=fold.transfer_hints,
            expense_records_added=fold.expense_records_added,
            items_dropped=len(fold.unclassified) + len(outside),
            corrected_months=[v.bucket.month for v in verifications if v.corrected],
        )

        statement = CashFlowStatement(
            period=period,
            basis=statement_basis,
            residence=residence,
            generated_at=datetime_utils.utc_now(),
            monthly_breakdown=buckets,
            yearly_totals=yearly,
            cash_balance_by_account=cash_by_month,
            operating_activities=yearly.operating_activities,
            investing_activities=yearly.investing_activities,
            financing_activities=yearly.financing_activities,
            reconciliation=reconciliation,
            summary=summary,
        )

        logger.info(
            f"Cash flow statement for {period}: {summary.transactions_included} included, "
            f"{summary.transactions_excluded} excluded, net change "
            f"{format_amount(summary.net_change_in_cash, self.config.reporting.currency)}, "
            f"difference {format_amount(reconciliation.difference, self.config.reporting.currency)}"
        )
        return statement

    # Fetching

    async def _fetch_records(
        self,
        start: date,
        end: date,
        basis: StatementBasis,
        residence: Optional[str],
    ) -> Tuple[List[LedgerTransaction], List[Payment], List[Expense]]:
        """
        Fetch and normalize the three record sets concurrently.

        Transactions are read up to the payment window past the period end so
        a receipt posted after the period can still settle a payment inside
        it; payments are read a window either side so boundary transactions
        link the same way they do in a longer period.
        """
        reporting = self.config.reporting
        sources = reporting.cash_basis_sources if basis == StatementBasis.CASH else None
        window = timedelta(days=self.config.linking.payment_date_window_days)

        raw_transactions, raw_payments, raw_expenses = await asyncio.gather(
            self._query("transactions", self.store.find_transactions(
                start, end + window,
                residence=residence,
                status_not_in=reporting.excluded_statuses,
                sources=sources,
            )),
            self._query("payments", self.store.find_payments(
                start - window, end + window,
                residence=residence,
                status_in=reporting.payment_statuses,
            )),
            self._query("expenses", self.store.find_expenses(
                start, end,
                residence=residence,
                payment_status=reporting.expense_payment_status,
            )),
        )

        transactions = self._normalize(raw_transactions, LedgerTransaction.from_record)
        payments = self._normalize(raw_payments, Payment.from_record)
        expenses = self._normalize(raw_expenses, Expense.from_record)

        logger.info(
            f"Loaded {len(transactions)} transactions, {len(payments)} payments, "
            f"{len(expenses)} expenses for {start.isoformat()}..{end.isoformat()}"
        )
        return transactions, payments, expenses

    async def _fetch_balances(
        self,
        opening_date: date,
        ending_date: date,
        snapshot_dates: Dict[str, Optional[date]],
        residence: Optional[str],
    ) -> Tuple[Dict[str, Decimal], Dict[str, Decimal], Dict[str, Dict[str, Decimal]]]:
        """Opening, ending and per-month cash account balances, fetched concurrently and merged by month"""
        months_to_fetch = [key for key, as_of in snapshot_dates.items() if as_of is not None]

        results = await asyncio.gather(
            self._query("opening cash balance", self.store.cash_balance_as_of(opening_date, residence)),
            self._query("ending cash balance", self.store.cash_balance_as_of(ending_date, residence)),
            *[
                self._query(f"cash balance {key}", self.store.cash_balance_as_of(snapshot_dates[key], residence))
                for key in months_to_fetch
            ],
        )

        opening = self._cash_only(results[0], "opening")
        ending = self._cash_only(results[1], "ending")
        snapshots: Dict[str, Dict[str, Decimal]] = {key: {} for key in snapshot_dates}
        for key, balances in zip(months_to_fetch, results[2:]):
            snapshots[key] = self._cash_only(balances, key)
        return opening, ending, snapshots

    async def _query(self, name: str, awaitable: Awaitable[Any]) -> Any:
        """Await a store call; any failure is fatal for this request"""
        try:
            return await awaitable
        except CashFlowError:
            raise
        except Exception as e:
            logger.error(f"Ledger store query '{name}' failed: {e}", exc_info=True)
            raise UpstreamQueryError(name, details=str(e)) from e

    # Processing

    def _fold(
        self,
        transactions: Sequence[LedgerTransaction],
        payments: Sequence[Payment],
        context: ProcessingContext,
        months: Sequence[str],
        end: date,
    ) -> FoldResult:
        """Classify, link and categorize every transaction, then add uncovered Expense records"""
        result = FoldResult()
        seen = set()

        for transaction in transactions:
            if transaction.status != TransactionStatus.POSTED:
                logger.debug(f"Skipping {transaction.status.value} transaction {transaction.id}")
                continue
            if transaction.id in seen or context.is_counted(transaction.id):
                logger.debug(f"Transaction {transaction.id} already seen, skipping duplicate")
                continue
            seen.add(transaction.id)

            if transaction.date > end:
                self._fold_settled_after(transaction, payments, context, months, result)
                continue
            result.processed += 1

            exclusion = self.exclusion_filter.classify(transaction)
            if not exclusion.included:
                logger.debug(f"Excluding {transaction.id}: {exclusion.reason.value}")
                result.excluded_by_reason[exclusion.reason.value] += 1
                result.excluded.append(ExcludedAmount(
                    transaction_id=transaction.id,
                    amount=transaction.total_debit,
                    reason=exclusion.reason.value,
                    description=transaction.description,
                ))
                continue

            item = self._categorize(transaction, exclusion.cash_leg, payments)
            if self.categorizer.is_unclassified(item):
                logger.warning(
                    f"Unclassified income {item.amount} in {transaction.id} "
                    f"('{transaction.description[:60]}') dropped from the statement"
                )
                result.unclassified.append(item)
                continue

            if exclusion.transfer_hint:
                logger.info(
                    f"Transaction {transaction.id} ('{transaction.description[:60]}') reads like a "
                    f"transfer but has a non-cash counterpart, counted as {item.category}"
                )
                result.transfer_hints += 1

            context.mark_counted(transaction.id)
            if item.direction == CashDirection.OUTFLOW:
                expense = context.link_expense(transaction, item.amount, item.effective_date)
                if expense is not None:
                    logger.debug(f"Transaction {transaction.id} covers expense {expense.id}")
            result.items.append(item)

        for expense in context.unlinked_expenses():
            item = self.categorizer.categorize_expense(expense)
            if not context.mark_counted(item.transaction_id):
                logger.debug(f"Expense {expense.id} points at counted transaction {item.transaction_id}")
                continue
            logger.debug(f"Adding expense record {expense.id} ({item.amount}) not covered by the ledger")
            result.items.append(item)
            result.expense_records_added += 1

        return result

    def _fold_settled_after(
        self,
        transaction: LedgerTransaction,
        payments: Sequence[Payment],
        context: ProcessingContext,
        months: Sequence[str],
        result: FoldResult,
    ) -> None:
        """Count a receipt posted after the period only when its linked payment falls inside it"""
        exclusion = self.exclusion_filter.classify(transaction)
        if not exclusion.included or exclusion.cash_leg.direction != CashDirection.INFLOW:
            return

        item = self._categorize(transaction, exclusion.cash_leg, payments)
        if item.month not in months or self.categorizer.is_unclassified(item):
            return

        logger.debug(f"Transaction {transaction.id} posted {transaction.date} settles a payment in {item.month}")
        result.processed += 1
        if exclusion.transfer_hint:
            result.transfer_hints += 1
        context.mark_counted(transaction.id)
        result.items.append(item)

    def _categorize(
        self,
        transaction: LedgerTransaction,
        cash_leg: CashLeg,
        payments: Sequence[Payment],
    ) -> CategorizedItem:
        is_deposit = self.categorizer.is_deposit_movement(transaction, cash_leg)
        # outflows are never linked to student payments
        candidates = payments if cash_leg.direction == CashDirection.INFLOW else ()
        link = self.linker.resolve(transaction, candidates, cash_leg.amount, is_deposit_movement=is_deposit)
        if not link.linked and candidates:
            logger.debug(f"No payment linked to {transaction.id}, using ledger date {transaction.date}")
        return self.categorizer.categorize(cash_leg, transaction, link)

    # Helpers

    def _normalize(self, records: Optional[Iterable[Any]], validate: Callable[[Any], Any]) -> List[Any]:
        """Validate raw records, skipping malformed ones"""
        normalized = []
        for record in records or []:
            try:
                normalized.append(validate(record))
            except LedgerDataError as e:
                logger.warning(f"Skipping malformed record: {e.message} ({e.details})")
        return normalized

    @staticmethod
    def _parse_basis(basis: str) -> StatementBasis:
        try:
            return StatementBasis((basis or "").strip().lower())
        except ValueError as exc:
            raise InvalidPeriodError(f"Invalid basis: {basis!r}", value=basis) from exc

    def _cash_only(self, balances: Optional[Mapping[str, Any]], label: str) -> Dict[str, Decimal]:
        """Keep the balances of cash accounts; clearing, income and other codes are dropped"""
        cash: Dict[str, Decimal] = {}
        for raw_code, balance in (balances or {}).items():
            code = normalize_account_code(raw_code)
            if self.classifier.is_cash_account(code, self.classifier.cash_account_name(code)):
                cash[code] = to_money(balance)
            else:
                logger.debug(f"Ignoring non-cash balance {code} ({label})")
        return cash

    @staticmethod
    def _total(balances: Dict[str, Decimal]) -> Decimal:
        return sum((to_money(v) for v in balances.values()), ZERO)

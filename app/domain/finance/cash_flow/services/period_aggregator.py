"""
Period Aggregator Service - folds categorized cash movements into monthly buckets.
"""
import datetime
import re
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from app.core.exceptions import InvalidPeriodError
from app.shared.utils.datetime_utils import (
    day_before,
    month_end,
    month_name,
    month_start,
    months_of_year,
    parse_month_key,
)
from app.shared.utils.logging_config import get_logger
from app.shared.utils.validators import ZERO, to_money

from ..models.classification import ActivityType, CashDirection, CategorizedItem
from ..models.statement import (
    ActivityTotals,
    ExpenseLine,
    ExpenseTotals,
    IncomeSummary,
    MonthlyBucket,
    UNASSIGNED,
    YearlyTotals,
)

logger = get_logger(__name__)

_YEAR_RE = re.compile(r"^\d{4}$")
ADVANCE_CATEGORY = "advance_payments"


class PeriodAggregator:
    """
    Service to build monthly buckets:
    1. Initialize 12 buckets for "YYYY" or one for "YYYY-MM"
    2. Add each categorized item to its month
    3. Chain opening/closing balances month to month
    4. Attach per-month cash account snapshots
    """

    def months_for(self, period: str) -> List[str]:
        """
        Month keys covered by a period.

        Raises:
            InvalidPeriodError: If the period is neither "YYYY" nor "YYYY-MM"
        """
        period = (period or "").strip()
        if _YEAR_RE.match(period):
            return months_of_year(int(period))
        try:
            parse_month_key(period)
        except ValueError as exc:
            raise InvalidPeriodError(f"Invalid period: {period!r}", value=period) from exc
        return [period]

    def period_bounds(self, period: str) -> Tuple[datetime.date, datetime.date]:
        """First and last day of a period"""
        months = self.months_for(period)
        return month_start(months[0]), month_end(months[-1])

    def opening_balance_date(self, period: str) -> datetime.date:
        """Day before the period starts; opening cash is read as of this date"""
        start, _ = self.period_bounds(period)
        return day_before(start)

    def snapshot_dates(self, months: Iterable[str], today: datetime.date) -> Dict[str, Optional[datetime.date]]:
        """
        Date to read each month's cash balances at.

        Month end for past months, today for the current month, None for
        future months (their snapshot is zero).
        """
        dates: Dict[str, Optional[datetime.date]] = {}
        for key in months:
            start, end = month_start(key), month_end(key)
            if start > today:
                dates[key] = None
            else:
                dates[key] = min(end, today)
        return dates

    def split_by_period(
        self,
        items: Iterable[CategorizedItem],
        months: Iterable[str],
    ) -> Tuple[List[CategorizedItem], List[CategorizedItem]]:
        """Separate items inside the period from items dated outside it"""
        wanted = set(months)
        inside, outside = [], []
        for item in items:
            (inside if item.month in wanted else outside).append(item)
        return inside, outside

    def aggregate(self, items: Iterable[CategorizedItem], period: str) -> Dict[str, MonthlyBucket]:
        """
        Fold items into monthly buckets.

        Args:
            items: Categorized cash movements
            period: "YYYY" or "YYYY-MM"

        Returns:
            Dict of month key -> MonthlyBucket, in calendar order
        """
        months = self.months_for(period)
        buckets = {key: MonthlyBucket.empty(key) for key in months}

        inside, outside = self.split_by_period(items, months)
        for item in outside:
            logger.warning(
                f"Dropping {item.direction.value} {item.amount} from {item.transaction_id}: "
                f"effective month {item.month} is outside period {period}"
            )

        for item in inside:
            self.add_item(buckets[item.month], item)

        return buckets

    def add_item(self, bucket: MonthlyBucket, item: CategorizedItem) -> None:
        """Add one item to exactly one side of exactly one bucket"""
        activity = self._activity(bucket, item.activity)
        amount = item.amount
        residence = item.residence or UNASSIGNED

        if item.direction == CashDirection.INFLOW:
            activity.inflows += amount
            if item.activity == ActivityType.OPERATING:
                income = bucket.income
                income.total += amount
                self._add(income.by_category, item.category, amount)
                self._add(income.by_residence, residence, amount)
                if item.category == ADVANCE_CATEGORY:
                    advances = income.advance_payments
                    advances.total += amount
                    self._add(advances.by_student, item.student or UNASSIGNED, amount)
                    self._add(advances.by_residence, residence, amount)
        else:
            activity.outflows += amount
            if item.activity == ActivityType.OPERATING:
                taxonomy = item.taxonomy or "maintenance"
                expenses = bucket.expenses
                expenses.total += amount
                self._add(expenses.by_category, item.category, amount)
                self._add(expenses.by_taxonomy, taxonomy, amount)
                self._add(expenses.by_residence, residence, amount)
                expenses.transactions.append(ExpenseLine(
                    transaction_id=item.transaction_id,
                    date=item.effective_date,
                    amount=amount,
                    description=item.description,
                    category=item.category,
                    taxonomy=taxonomy,
                    account_code=item.account_code,
                    source=item.source.value,
                ))

        bucket.transaction_count += 1

    def apply_running_balances(self, buckets: Mapping[str, MonthlyBucket], opening: Decimal) -> Decimal:
        """
        Chain balances: closing = opening + net, next opening = this closing.

        Returns:
            Closing balance of the last month
        """
        balance = to_money(opening)
        for key in sorted(buckets):
            bucket = buckets[key]
            bucket.opening_balance = balance
            bucket.closing_balance = balance + bucket.net_cash_flow
            balance = bucket.closing_balance
        return balance

    def attach_cash_snapshots(
        self,
        buckets: Mapping[str, MonthlyBucket],
        snapshots: Mapping[str, Mapping[str, Decimal]],
    ) -> Dict[str, Dict[str, Decimal]]:
        """
        Store each month's cash-by-account snapshot on its bucket.

        Returns:
            The same balances keyed by lower-case month name
        """
        by_month_name: Dict[str, Dict[str, Decimal]] = {}
        for key in sorted(buckets):
            balances = {
                code: to_money(balance)
                for code, balance in sorted((snapshots.get(key) or {}).items())
            }
            buckets[key].cash_accounts = balances
            by_month_name[month_name(key)] = dict(balances)
        return by_month_name

    def yearly_totals(self, buckets: Mapping[str, MonthlyBucket]) -> YearlyTotals:
        """Sum every bucket into period totals"""
        totals = YearlyTotals(income=IncomeSummary(), expenses=ExpenseTotals())
        for bucket in buckets.values():
            totals.income.total += bucket.income.total
            self._merge(totals.income.by_category, bucket.income.by_category)
            self._merge(totals.income.by_residence, bucket.income.by_residence)
            advances = totals.income.advance_payments
            advances.total += bucket.income.advance_payments.total
            self._merge(advances.by_student, bucket.income.advance_payments.by_student)
            self._merge(advances.by_residence, bucket.income.advance_payments.by_residence)

            totals.expenses.total += bucket.expenses.total
            self._merge(totals.expenses.by_category, bucket.expenses.by_category)
            self._merge(totals.expenses.by_taxonomy, bucket.expenses.by_taxonomy)
            self._merge(totals.expenses.by_residence, bucket.expenses.by_residence)

            for name in ("operating_activities", "investing_activities", "financing_activities"):
                target: ActivityTotals = getattr(totals, name)
                source: ActivityTotals = getattr(bucket, name)
                target.inflows += source.inflows
                target.outflows += source.outflows

            totals.transaction_count += bucket.transaction_count
        return totals

    @staticmethod
    def _activity(bucket: MonthlyBucket, activity: ActivityType) -> ActivityTotals:
        if activity == ActivityType.INVESTING:
            return bucket.investing_activities
        if activity == ActivityType.FINANCING:
            return bucket.financing_activities
        return bucket.operating_activities

    @staticmethod
    def _add(target: Dict[str, Decimal], key: str, amount: Decimal) -> None:
        target[key] = target.get(key, ZERO) + amount

    @staticmethod
    def _merge(target: Dict[str, Decimal], source: Mapping[str, Decimal]) -> None:
        for key, value in source.items():
            target[key] = target.get(key, ZERO) + value

"""Shared fixtures and record builders for the cash flow test suite."""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from app.core.unified_config import CashFlowConfig
from app.domain.finance.cash_flow.models import LedgerTransaction
from app.domain.finance.cash_flow.services import AccountClassifier
from app.shared.utils.datetime_utils import to_date


def _line(code, name="", debit=0, credit=0, type=None) -> Dict[str, Any]:
    """Raw ledger line dict, in the store's camelCase shape."""
    line = {"accountCode": code, "accountName": name, "debit": debit, "credit": credit}
    if type is not None:
        line["accountType"] = type
    return line


def _tx(tx_id: str, on: str, description: str, lines: List[Dict[str, Any]], **extra) -> Dict[str, Any]:
    """Raw posted ledger transaction dict."""
    record = {
        "transactionId": tx_id,
        "date": on,
        "description": description,
        "status": "posted",
        "source": "payment",
        "entries": lines,
    }
    record.update(extra)
    return record


def _cash_in(tx_id: str, on: str, description: str, amount, code="4001", name="Rental Income", **extra):
    """Cash (1000) debited against a single credited account."""
    return _tx(tx_id, on, description, [
        _line("1000", "Cash", debit=amount),
        _line(code, name, credit=amount),
    ], **extra)


def _cash_out(tx_id: str, on: str, description: str, amount, code="5001", name="Maintenance Expense", **extra):
    """A single debited account paid from cash (1000)."""
    extra.setdefault("source", "expense_payment")
    return _tx(tx_id, on, description, [
        _line(code, name, debit=amount),
        _line("1000", "Cash", credit=amount),
    ], **extra)


def _payment(payment_id: str, on: str, amount, breakdown=None, **extra) -> Dict[str, Any]:
    record = {
        "_id": payment_id,
        "date": on,
        "totalAmount": amount,
        "status": "Confirmed",
        "monthlyBreakdown": breakdown or [],
    }
    record.update(extra)
    return record


def _expense(expense_id: str, on: str, amount, description="", **extra) -> Dict[str, Any]:
    record = {
        "_id": expense_id,
        "expenseDate": on,
        "amount": amount,
        "description": description,
        "category": extra.pop("category", "Maintenance"),
        "paymentStatus": "Paid",
    }
    record.update(extra)
    return record


def _model(record: Dict[str, Any]) -> LedgerTransaction:
    return LedgerTransaction.from_record(record)


class FakeLedgerStore:
    """
    In-memory LedgerStore over raw record dicts.

    Cash balances are looked up by exact date in ``balances``; dates without
    an entry report no cash accounts. ``fail_on`` names a query that raises.
    """

    def __init__(
        self,
        transactions=None,
        payments=None,
        expenses=None,
        balances: Optional[Dict[date, Dict[str, Any]]] = None,
        fail_on: Optional[str] = None,
    ):
        self.transactions = list(transactions or [])
        self.payments = list(payments or [])
        self.expenses = list(expenses or [])
        self.balances = balances or {}
        self.fail_on = fail_on
        self.calls: List[tuple] = []

    def _check(self, name: str):
        if self.fail_on == name:
            raise ConnectionError(f"{name} backend unavailable")

    @staticmethod
    def _in_range(value, start: date, end: date) -> bool:
        return start <= to_date(value) <= end

    async def find_transactions(self, start, end, residence=None, status_not_in=("reversed", "draft"), sources=None):
        self.calls.append(("find_transactions", start, end, residence, tuple(sources or ())))
        self._check("find_transactions")
        hidden = {s.lower() for s in status_not_in}
        return [
            t for t in self.transactions
            if self._in_range(t["date"], start, end)
            and t.get("status", "posted").lower() not in hidden
            and (sources is None or t.get("source") in sources)
            and (residence is None or t.get("residence") == residence)
        ]

    async def find_payments(self, start, end, residence=None, status_in=("confirmed", "completed", "paid")):
        self.calls.append(("find_payments", start, end, residence))
        self._check("find_payments")
        wanted = {s.lower() for s in status_in}
        return [
            p for p in self.payments
            if self._in_range(p["date"], start, end)
            and str(p.get("status", "confirmed")).lower() in wanted
            and (residence is None or p.get("residence") == residence)
        ]

    async def find_expenses(self, start, end, residence=None, payment_status="Paid"):
        self.calls.append(("find_expenses", start, end, residence))
        self._check("find_expenses")
        return [
            e for e in self.expenses
            if self._in_range(e["expenseDate"], start, end)
            and e.get("paymentStatus") == payment_status
            and (residence is None or e.get("residence") == residence)
        ]

    async def cash_balance_as_of(self, as_of, residence=None):
        self.calls.append(("cash_balance_as_of", as_of, residence))
        self._check("cash_balance_as_of")
        return {code: Decimal(str(value)) for code, value in self.balances.get(as_of, {}).items()}


@pytest.fixture
def config():
    """Default configuration, independent of the process environment cache."""
    return CashFlowConfig()


@pytest.fixture
def classifier(config):
    return AccountClassifier(config.accounts)

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from app.application.finance.cash_flow import CashFlowService
from app.core.exceptions import InvalidPeriodError, UpstreamQueryError
from app.domain.finance.cash_flow.models import StatementBasis
from tests.conftest import FakeLedgerStore, _cash_in, _cash_out, _expense, _line, _payment, _tx


def _generate(store, config, period="2025", today=date(2025, 12, 31), **kwargs):
    service = CashFlowService(store, config=config, today=lambda: today)
    return asyncio.run(service.generate_cash_flow_statement(period, **kwargs))


class TestScenarios:
    """End-to-end statements for the reference scenarios."""

    def test_advance_payment_bucketed_by_payment_month(self, config):
        store = FakeLedgerStore(
            transactions=[
                _cash_in("T1", "2025-09-01", "Payment allocation: rent for 2025-09", 300, reference="P1"),
            ],
            payments=[
                _payment("P1", "2025-08-15", 300, breakdown=[
                    {"month": "2025-09", "amountAllocated": 300, "allocationType": "rent_settlement"},
                ]),
            ],
        )
        statement = _generate(store, config)

        august = statement.get_month("august")
        assert august.income.by_category["advance_payments"] == Decimal("300.00")
        assert august.income.total == Decimal("300.00")
        assert statement.get_month("2025-09").income.total == Decimal("0.00")

    def test_monthly_queries_agree_with_yearly_on_advance(self, config):
        store = FakeLedgerStore(
            transactions=[
                _cash_in("T1", "2025-09-01", "Payment allocation: rent for 2025-09", 300, reference="P1"),
                _cash_in("T2", "2025-09-02", "Rent September", 250),
            ],
            payments=[
                _payment("P1", "2025-08-15", 300, breakdown=[
                    {"month": "2025-09", "amountAllocated": 300, "allocationType": "rent_settlement"},
                ]),
            ],
        )

        august = _generate(store, config, period="2025-08")
        assert august.get_month("2025-08").income.by_category["advance_payments"] == Decimal("300.00")
        assert august.yearly_totals.income.total == Decimal("300.00")
        assert august.summary.transactions_processed == 1
        assert august.summary.items_dropped == 0
        assert ("find_transactions", date(2025, 8, 1), date(2025, 9, 30), None,
                tuple(config.reporting.cash_basis_sources)) in store.calls
        assert ("find_payments", date(2025, 7, 2), date(2025, 9, 30), None) in store.calls

        september = _generate(store, config, period="2025-09")
        assert september.get_month("2025-09").income.total == Decimal("250.00")
        assert september.get_month("2025-09").income.by_category["advance_payments"] == Decimal("0.00")
        assert september.summary.items_dropped == 1

    def test_internal_transfer_excluded(self, config):
        store = FakeLedgerStore(transactions=[
            _tx("T1", "2025-08-03", "Transfer to vault", [
                _line("1000", "Cash", debit=500),
                _line("1001", "Bank Account", credit=500),
            ], source="manual"),
        ])
        statement = _generate(store, config)

        assert statement.yearly_totals.income.total == Decimal("0.00")
        assert statement.yearly_totals.expenses.total == Decimal("0.00")
        assert statement.summary.excluded_by_reason == {"internal_cash_transfer": 1}
        assert statement.summary.transactions_included == 0

    def test_deposit_receipt_and_return(self, config):
        store = FakeLedgerStore(
            transactions=[
                _tx("T1", "2025-08-20", "Student deposit", [
                    _line("1000", "Cash", debit=400),
                    _line("2028", "Security Deposit Liability", credit=400),
                ], reference="P1"),
                _tx("T2", "2025-10-02", "Deposit returned", [
                    _line("2028", "Security Deposit Liability", debit=400),
                    _line("1000", "Cash", credit=400),
                ], source="expense_payment"),
            ],
            payments=[_payment("P1", "2025-07-30", 400)],
        )
        statement = _generate(store, config)

        assert statement.get_month("2025-08").income.by_category["deposits"] == Decimal("400.00")
        assert statement.get_month("2025-07").income.total == Decimal("0.00")
        october = statement.get_month("2025-10")
        assert october.expenses.total == Decimal("400.00")
        assert october.expenses.by_taxonomy["deposit_returns"] == Decimal("400.00")
        assert statement.yearly_totals.net_cash_flow == Decimal("0.00")

    def test_running_balances(self, config):
        store = FakeLedgerStore(
            transactions=[
                _cash_in("T1", "2025-01-10", "Rent January", 600),
                _cash_out("T2", "2025-01-20", "Gate repair", 200),
            ],
            balances={date(2024, 12, 31): {"1000": 1000}},
        )
        statement = _generate(store, config)

        january = statement.get_month("2025-01")
        february = statement.get_month("2025-02")
        assert january.opening_balance == Decimal("1000.00")
        assert january.closing_balance == Decimal("1400.00")
        assert february.opening_balance == Decimal("1400.00")

    def test_reconciliation_difference_is_reported(self, config):
        store = FakeLedgerStore(
            transactions=[
                _cash_in("T1", "2025-01-10", "Rent January", 600),
                _cash_out("T2", "2025-01-20", "Gate repair", 200),
            ],
            balances={
                date(2024, 12, 31): {"1000": 1000},
                date(2025, 12, 31): {"1000": 1200, "1001": 250},
            },
        )
        statement = _generate(store, config)

        reconciliation = statement.reconciliation
        assert reconciliation.beginning_cash == Decimal("1000.00")
        assert reconciliation.cash_inflows == Decimal("600.00")
        assert reconciliation.cash_outflows == Decimal("200.00")
        assert reconciliation.calculated_ending_cash == Decimal("1400.00")
        assert reconciliation.actual_ending_cash == Decimal("1450.00")
        assert reconciliation.difference == Decimal("50.00")
        assert not reconciliation.is_reconciled


class TestExactlyOnce:
    """Ledger transactions and Expense records are never double counted."""

    def test_expense_linked_by_source_id_and_proximity(self, config):
        store = FakeLedgerStore(
            transactions=[
                _cash_out("T1", "2025-08-05", "Gate repair", 80, sourceId="E1"),
                _cash_out("T3", "2025-08-10", "Water bill", 45, code="5002", name="Utilities"),
            ],
            expenses=[
                _expense("E1", "2025-08-05", 80, "Gate repair"),
                _expense("E2", "2025-08-09", 30, "Refuse removal", category="Cleaning"),
                _expense("E3", "2025-08-08", 45, "Water bill", category="Utilities"),
            ],
        )
        statement = _generate(store, config, period="2025-08")

        august = statement.get_month("2025-08")
        assert august.expenses.total == Decimal("155.00")
        assert sorted(line.transaction_id for line in august.expenses.transactions) == ["E2", "T1", "T3"]
        assert august.expenses.by_taxonomy["maintenance"] == Decimal("80.00")
        assert august.expenses.by_taxonomy["utilities"] == Decimal("45.00")
        assert august.expenses.by_taxonomy["cleaning"] == Decimal("30.00")
        assert statement.summary.expense_records_added == 1

    def test_expense_pointing_at_ledger_transaction(self, config):
        store = FakeLedgerStore(
            transactions=[_cash_out("T1", "2025-08-05", "Invoice 88", 80)],
            expenses=[_expense("E1", "2025-08-05", 80, "Security services", transactionId="T1")],
        )
        statement = _generate(store, config, period="2025-08")
        assert statement.get_month("2025-08").expenses.total == Decimal("80.00")
        assert statement.summary.expense_records_added == 0

    def test_duplicate_transaction_records(self, config):
        record = _cash_in("T1", "2025-08-01", "Rent August", 300)
        store = FakeLedgerStore(transactions=[record, dict(record)])
        statement = _generate(store, config, period="2025-08")
        assert statement.yearly_totals.income.total == Decimal("300.00")
        assert statement.summary.transactions_processed == 1


class TestStatementShape:
    """Totals, filters and the dropped-income policy."""

    def test_bucket_arithmetic(self, config):
        store = FakeLedgerStore(transactions=[
            _cash_in("T1", "2025-02-10", "Rent February", 300.10),
            _cash_in("T2", "2025-05-10", "Admin fee", 20.05, code="4002", name="Admin Fees"),
            _cash_out("T3", "2025-05-20", "Manager salary", 150.33, code="5005", name="Salaries"),
            _cash_out("T4", "2025-06-01", "New beds", 99.99, code="1500", name="Furniture and Equipment"),
        ])
        statement = _generate(store, config)

        months = statement.monthly_breakdown.values()
        assert len(statement.monthly_breakdown) == 12
        assert sum((b.net_cash_flow for b in months), Decimal("0")) == statement.yearly_totals.net_cash_flow
        assert statement.yearly_totals.net_cash_flow == Decimal("69.83")
        assert statement.investing_activities.outflows == Decimal("99.99")
        assert statement.summary.total_expenses == Decimal("150.33")
        for bucket in months:
            assert bucket.closing_balance == bucket.opening_balance + bucket.net_cash_flow

    def test_unclassified_income_dropped(self, config):
        store = FakeLedgerStore(transactions=[
            _cash_in("T1", "2025-08-01", "Receipt", 10, code="4010", name="Sundry"),
            _cash_in("T2", "2025-08-02", "Rent August", 300),
        ])
        statement = _generate(store, config, period="2025-08")
        assert statement.yearly_totals.income.total == Decimal("300.00")
        assert "other_income" not in statement.yearly_totals.income.by_category
        assert statement.summary.items_dropped == 1

    def test_cash_basis_restricts_sources(self, config):
        store = FakeLedgerStore(transactions=[
            _cash_in("T1", "2025-08-01", "Rent August", 300, source="invoice"),
        ])
        cash = _generate(store, config, period="2025-08")
        accrual = _generate(store, config, period="2025-08", basis="accrual")
        assert cash.yearly_totals.income.total == Decimal("0.00")
        assert accrual.yearly_totals.income.total == Decimal("300.00")
        assert accrual.basis == StatementBasis.ACCRUAL

    def test_residence_and_snapshots(self, config):
        store = FakeLedgerStore(
            transactions=[
                _cash_in("T1", "2025-07-01", "Rent July", 300, residence="R1"),
                _cash_in("T2", "2025-07-02", "Rent July", 999, residence="R2"),
            ],
            balances={
                date(2025, 7, 31): {"1000": 300},
                date(2025, 8, 14): {"1000": 310, "1002": 5},
            },
        )
        statement = _generate(store, config, today=date(2025, 8, 14), residence="R1")

        assert statement.residence == "R1"
        assert statement.yearly_totals.income.total == Decimal("300.00")
        assert statement.cash_balance_by_account["july"] == {"1000": Decimal("300.00")}
        assert statement.get_cash_balances("2025-08") == {"1000": Decimal("310.00"), "1002": Decimal("5.00")}
        assert statement.cash_balance_by_account["september"] == {}
        assert all(call[-1] == "R1" for call in store.calls if call[0] == "cash_balance_as_of")

    def test_non_cash_balances_ignored(self, config):
        store = FakeLedgerStore(
            transactions=[_cash_in("T1", "2025-08-02", "Rent August", 300)],
            balances={
                date(2025, 7, 31): {"1000": 1000, "10005": 500, "4001": 70},
                date(2025, 8, 31): {"1000": 1300, "10010": 45, "2028": 400},
            },
        )
        statement = _generate(store, config, period="2025-08")

        reconciliation = statement.reconciliation
        assert reconciliation.beginning_cash == Decimal("1000.00")
        assert reconciliation.actual_ending_cash == Decimal("1300.00")
        assert reconciliation.difference == Decimal("0.00")
        assert reconciliation.is_reconciled
        assert statement.get_month("2025-08").opening_balance == Decimal("1000.00")
        assert statement.get_cash_balances("2025-08") == {"1000": Decimal("1300.00")}

    def test_breakdowns_by_residence_and_student(self, config):
        store = FakeLedgerStore(
            transactions=[
                _cash_in("T1", "2025-09-01", "Payment allocation: rent for 2025-09", 300,
                         reference="P1", residence="R1"),
                _cash_in("T2", "2025-08-02", "Rent August", 250, residence="R2"),
                _cash_out("T3", "2025-08-05", "Gate repair", 80, residence="R1"),
            ],
            payments=[
                _payment("P1", "2025-08-15", 300, student={"_id": "S1"}, residence="R1", breakdown=[
                    {"month": "2025-09", "amountAllocated": 300, "allocationType": "rent_settlement"},
                ]),
            ],
            expenses=[_expense("E1", "2025-08-09", 30, "Refuse removal", category="Cleaning", residence="R2")],
        )
        statement = _generate(store, config)

        income = statement.yearly_totals.income
        assert income.by_residence == {"R1": Decimal("300.00"), "R2": Decimal("250.00")}
        assert income.advance_payments.total == Decimal("300.00")
        assert income.advance_payments.by_student == {"S1": Decimal("300.00")}
        assert income.advance_payments.by_residence == {"R1": Decimal("300.00")}
        assert statement.yearly_totals.expenses.by_residence == {"R1": Decimal("80.00"), "R2": Decimal("30.00")}
        assert statement.get_month("2025-08").income.by_residence["R1"] == Decimal("300.00")

    def test_transfer_wording_on_a_receipt_is_counted(self, config):
        store = FakeLedgerStore(transactions=[
            _cash_in("T1", "2025-08-02", "Bank transfer from student", 300),
            _tx("T2", "2025-08-03", "Transfer to vault", [
                _line("1000", "Cash", debit=500),
                _line("1001", "Bank Account", credit=500),
            ], source="manual"),
        ])
        statement = _generate(store, config, period="2025-08")

        assert statement.yearly_totals.income.by_category["rental_income"] == Decimal("300.00")
        assert statement.summary.transfer_hints_included == 1
        assert statement.summary.excluded_by_reason == {"internal_cash_transfer": 1}

    def test_serializable(self, config):
        store = FakeLedgerStore(transactions=[_cash_in("T1", "2025-08-01", "Rent August", 300)])
        dumped = _generate(store, config, period="2025-08").model_dump(mode="json")
        assert dumped["monthly_breakdown"]["2025-08"]["income"]["total"] == 300.0
        assert dumped["reconciliation"]["difference"] == -300.0


class TestErrors:
    """Invalid input and upstream failures."""

    @pytest.mark.parametrize("period", ["2025-13", "last year"])
    def test_invalid_period(self, config, period):
        with pytest.raises(InvalidPeriodError):
            _generate(FakeLedgerStore(), config, period=period)

    def test_invalid_basis(self, config):
        with pytest.raises(InvalidPeriodError):
            _generate(FakeLedgerStore(), config, basis="modified")

    @pytest.mark.parametrize("failing,query", [
        ("find_transactions", "transactions"),
        ("find_payments", "payments"),
        ("find_expenses", "expenses"),
    ])
    def test_fetch_failure(self, config, failing, query):
        with pytest.raises(UpstreamQueryError) as exc_info:
            _generate(FakeLedgerStore(fail_on=failing), config)
        assert exc_info.value.query == query
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_balance_failure(self, config):
        with pytest.raises(UpstreamQueryError):
            _generate(FakeLedgerStore(fail_on="cash_balance_as_of"), config)

    def test_malformed_record_skipped(self, config):
        bad = _tx("T1", "2025-08-01", "Broken", [_line("1000", "Cash", debit=10, credit=10)])
        store = FakeLedgerStore(transactions=[bad, _cash_in("T2", "2025-08-02", "Rent August", 300)])
        statement = _generate(store, config, period="2025-08")
        assert statement.yearly_totals.income.total == Decimal("300.00")

    def test_unparseable_amount_skipped(self, config):
        bad = _tx("T1", "2025-08-01", "Rent August", [
            _line("1000", "Cash", debit="abc"),
            _line("4001", "Rental Income", credit=300),
        ])
        store = FakeLedgerStore(transactions=[bad, _cash_in("T2", "2025-08-02", "Rent August", 300)])
        statement = _generate(store, config, period="2025-08")
        assert statement.yearly_totals.income.total == Decimal("300.00")
        assert statement.summary.transactions_processed == 1
        assert statement.summary.excluded_by_reason == {}

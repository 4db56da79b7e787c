import pytest

from app.core.unified_config import AccountsConfig
from app.domain.finance.cash_flow.models import LedgerLine
from app.domain.finance.cash_flow.services import AccountClassifier


class TestIsCashAccount:
    """Cash account detection by code range, known codes and name keywords."""

    @pytest.mark.parametrize("code", ["1000", "1001", "1004", "1010", "1014", "1019", "10003"])
    def test_cash_range_and_vault(self, classifier, code):
        assert classifier.is_cash_account(code, "")

    @pytest.mark.parametrize("code", [str(c) for c in range(10005, 10016)])
    def test_clearing_codes_are_never_cash(self, classifier, code):
        """Clearing accounts sit in the cash range but carry no cash."""
        assert not classifier.is_cash_account(code, "Cash Clearing")

    def test_name_keyword_fallback(self, classifier):
        assert classifier.is_cash_account("1200", "Ecocash Wallet")
        assert classifier.is_cash_account("1300", "Petty Cash - Site")

    def test_name_keyword_ignored_in_pl_and_liability_ranges(self, classifier):
        assert not classifier.is_cash_account("5010", "Bank Charges")
        assert not classifier.is_cash_account("4010", "Cash Discounts Received")
        assert not classifier.is_cash_account("2100", "Bank Loan")

    def test_non_cash_asset(self, classifier):
        assert not classifier.is_cash_account("1100", "Accounts Receivable")

    def test_empty_code(self, classifier):
        assert not classifier.is_cash_account(None, "Cash")
        assert not classifier.is_cash_account("  ", "Cash")

    def test_configurable_cash_codes(self):
        classifier = AccountClassifier(AccountsConfig(known_cash_accounts={"1500": "Float"}))
        assert classifier.is_cash_account("1500", "Float")


class TestIsDepositAccount:
    """Deposit liability detection."""

    @pytest.mark.parametrize("code", ["2020", "2002", "20001", "20002"])
    def test_enumerated_codes(self, classifier, code):
        assert classifier.is_deposit_account(code, "")

    def test_liability_range_with_security_deposit_name(self, classifier):
        assert classifier.is_deposit_account("2028", "Security Deposit Liability")

    def test_name_needs_both_words(self, classifier):
        assert not classifier.is_deposit_account("2028", "Deposit Liability")
        assert not classifier.is_deposit_account("2028", "Security Services Payable")

    def test_name_outside_liability_range(self, classifier):
        assert not classifier.is_deposit_account("4003", "Security Deposit Income")


class TestLineHelpers:
    """Line predicates use the account type first and the code range second."""

    def test_income_by_type_or_code(self, classifier):
        assert classifier.is_income_line(LedgerLine(account_code="4001", credit=10))
        assert classifier.is_income_line(LedgerLine(account_code="9000", account_type="Revenue", credit=10))
        assert not classifier.is_income_line(LedgerLine(account_code="1000", debit=10))

    def test_expense_and_liability(self, classifier):
        assert classifier.is_expense_line(LedgerLine(account_code="5002", debit=10))
        assert classifier.is_liability_line(LedgerLine(account_code="2100", credit=10))

    def test_equity(self, classifier):
        assert classifier.is_equity_line(LedgerLine(account_code="3001", credit=10))
        assert classifier.is_equity_line(LedgerLine(account_code="9100", account_type="equity", credit=10))

    def test_cash_account_name(self, classifier):
        assert classifier.cash_account_name("10003") == "CBZ Vault"
        assert classifier.cash_account_name("1999") is None

    def test_deterministic(self, classifier):
        results = {classifier.is_cash_account("1002", "Ecocash") for _ in range(5)}
        assert results == {True}

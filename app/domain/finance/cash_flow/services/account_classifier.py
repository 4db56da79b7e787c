"""
Account Classifier Service - decides what kind of account a ledger line posts to.

The same instance is shared by every stage of the engine so the exclusion
filter, categorizer and cash balance reporting agree on which accounts are cash.
"""
import re
from typing import Optional

from app.core.unified_config import AccountsConfig

from ..models.ledger import AccountType, LedgerLine


class AccountClassifier:
    """
    Pure, deterministic account predicates driven by code ranges,
    enumerated codes and account name keywords.
    """

    def __init__(self, config: Optional[AccountsConfig] = None):
        self.config = config or AccountsConfig()
        self._init_patterns()

    def _init_patterns(self):
        """Compile code patterns and freeze code sets"""
        self.cash_pattern = re.compile(self.config.cash_code_pattern)
        self.income_pattern = re.compile(self.config.income_code_pattern)
        self.expense_pattern = re.compile(self.config.expense_code_pattern)
        self.liability_pattern = re.compile(self.config.liability_code_pattern)

        self.known_cash_codes = frozenset(self.config.known_cash_accounts)
        self.clearing_codes = frozenset(self.config.clearing_codes)
        self.deposit_codes = frozenset(self.config.deposit_codes)
        self.cash_keywords = tuple(kw.lower() for kw in self.config.cash_name_keywords)

    def is_cash_account(self, code: Optional[str], name: Optional[str] = "") -> bool:
        """
        Check if an account holds cash.

        Clearing codes are never cash, whatever their name says.

        Args:
            code: Account code
            name: Account name, used as a keyword fallback

        Returns:
            True for cash, bank, mobile-money and petty cash accounts
        """
        code = (code or "").strip()
        if not code or code in self.clearing_codes:
            return False

        if code in self.known_cash_codes or self.cash_pattern.match(code):
            return True

        # "Bank Charges" and friends live in the P&L and liability ranges
        if self._in_non_cash_range(code):
            return False

        name_lower = (name or "").lower()
        return any(kw in name_lower for kw in self.cash_keywords)

    def is_deposit_account(self, code: Optional[str], name: Optional[str] = "") -> bool:
        """Check if an account is a security deposit liability"""
        code = (code or "").strip()
        if code in self.deposit_codes:
            return True

        name_lower = (name or "").lower()
        return (
            bool(self.liability_pattern.match(code))
            and "deposit" in name_lower
            and "security" in name_lower
        )

    # Line helpers

    def is_cash_line(self, line: LedgerLine) -> bool:
        return self.is_cash_account(line.account_code, line.account_name)

    def is_deposit_line(self, line: LedgerLine) -> bool:
        return self.is_deposit_account(line.account_code, line.account_name)

    def is_income_line(self, line: LedgerLine) -> bool:
        return line.account_type == AccountType.INCOME or bool(self.income_pattern.match(line.account_code))

    def is_expense_line(self, line: LedgerLine) -> bool:
        return line.account_type == AccountType.EXPENSE or bool(self.expense_pattern.match(line.account_code))

    def is_liability_line(self, line: LedgerLine) -> bool:
        return line.account_type == AccountType.LIABILITY or bool(self.liability_pattern.match(line.account_code))

    def is_equity_line(self, line: LedgerLine) -> bool:
        return line.account_type == AccountType.EQUITY or line.account_code.startswith("3")

    def cash_account_name(self, code: str) -> Optional[str]:
        """Display name of a known cash account"""
        return self.config.known_cash_accounts.get(code)

    def _in_non_cash_range(self, code: str) -> bool:
        return bool(
            self.income_pattern.match(code)
            or self.expense_pattern.match(code)
            or self.liability_pattern.match(code)
        )

# app/core/unified_config.py
"""Unified configuration for the cash flow engine with validation."""

from typing import Dict, List
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.shared.utils.logging_config import get_logger

logger = get_logger(__name__)


class AccountsConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CASH_FLOW_ACCOUNTS__")
    """Chart-of-accounts configuration section."""

    cash_code_pattern: str = Field(
        default=r"^(100|101)\d*$",
        description="Regex matching cash account codes (1000-1019 plus the vault code)"
    )
    known_cash_accounts: Dict[str, str] = Field(
        default={
            "1000": "Cash/Bank",
            "1001": "Bank Account",
            "1002": "Ecocash",
            "1003": "Innbucks",
            "1004": "Petty Cash",
            "1005": "Cash on Hand",
            "1010": "Admin Petty Cash",
            "1011": "Finance Petty Cash",
            "1012": "Property Manager Petty Cash",
            "1013": "Maintenance Petty Cash",
            "1014": "General Petty Cash",
            "10003": "CBZ Vault",
        },
        description="Known cash account codes and their display names"
    )
    clearing_codes: List[str] = Field(
        default=[str(code) for code in range(10005, 10016)],
        description="Clearing account codes that are never cash"
    )
    cash_name_keywords: List[str] = Field(
        default=["cash", "bank", "petty cash", "ecocash", "innbucks", "wallet"],
        description="Account name keywords that mark a cash account"
    )
    deposit_codes: List[str] = Field(
        default=["2020", "2002", "20001", "20002"],
        description="Enumerated deposit-liability account codes"
    )
    income_code_pattern: str = Field(default=r"^4\d{3,}$", description="Income account code regex")
    expense_code_pattern: str = Field(default=r"^5\d{3,}$", description="Expense account code regex")
    liability_code_pattern: str = Field(default=r"^2\d{3,}$", description="Liability account code regex")

    @field_validator('clearing_codes', 'deposit_codes', mode='before')
    @classmethod
    def coerce_codes(cls, v):
        """Account codes may arrive as numbers from JSON env values."""
        return [str(code).strip() for code in v]


class ExclusionConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CASH_FLOW_EXCLUSIONS__")
    """Exclusion filter configuration section."""

    adjustment_keywords: List[str] = Field(
        default=[
            "opening balance",
            "balance adjustment",
            "clearing account",
            "journal entry",
            "internal transfer",
            "reclassification",
            "take-on balances",
            "take on balances",
        ],
        description="Description keywords that mark a balance-sheet adjustment"
    )
    adjustment_prefixes: List[str] = Field(
        default=["ADJ-", "ADJ_"],
        description="Transaction id or reference prefixes that mark an adjustment"
    )
    transfer_keywords: List[str] = Field(
        default=[
            "petty cash",
            "cash allocation",
            "funds to",
            "cash to",
            "vault",
            "transfer to",
            "transfer from",
            "move to",
            "internal transfer",
            "transfer",
        ],
        description="Description keywords that hint at an internal cash transfer"
    )


class LinkingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CASH_FLOW_LINKING__")
    """Payment and expense linking configuration section."""

    amount_tolerance: float = Field(
        default=0.01,
        description="Amount tolerance when matching payments and expenses",
        ge=0,
        le=100
    )
    payment_date_window_days: int = Field(
        default=30,
        description="Maximum distance in days between a transaction and its payment",
        ge=0,
        le=366
    )
    expense_date_window_days: int = Field(
        default=7,
        description="Maximum distance in days for description+amount expense matching",
        ge=0,
        le=366
    )


class ReportingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CASH_FLOW_REPORTING__")
    """Statement generation configuration section."""

    cash_basis_sources: List[str] = Field(
        default=[
            "payment",
            "expense_payment",
            "rental_payment",
            "manual",
            "payment_collection",
            "bank_transfer",
            "advance_payment",
        ],
        description="Transaction sources that carry cash on a cash-basis statement"
    )
    excluded_statuses: List[str] = Field(
        default=["reversed", "draft"],
        description="Transaction statuses hidden from the engine"
    )
    payment_statuses: List[str] = Field(
        default=["confirmed", "completed", "paid"],
        description="Payment statuses that count as received"
    )
    expense_payment_status: str = Field(
        default="Paid",
        description="Expense payment status that counts as paid out"
    )
    reconciliation_tolerance: float = Field(
        default=0.0,
        description="Largest absolute difference at which the statement still counts as reconciled",
        ge=0,
        le=1000
    )
    currency: str = Field(default="USD", description="Currency code used in log output")


class CashFlowConfig(BaseSettings):
    """
    Unified configuration for the cash flow engine.

    Every section can be overridden from the environment, e.g.
    CASH_FLOW_LINKING__PAYMENT_DATE_WINDOW_DAYS=45.
    """

    accounts: AccountsConfig = Field(default_factory=AccountsConfig)
    exclusions: ExclusionConfig = Field(default_factory=ExclusionConfig)
    linking: LinkingConfig = Field(default_factory=LinkingConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)

    model_config = SettingsConfigDict(
        env_prefix="CASH_FLOW_",
        env_nested_delimiter="__",
        case_sensitive=False
    )


# Global configuration instance
@lru_cache()
def get_cash_flow_config() -> CashFlowConfig:
    """Get the cash flow configuration instance with caching."""
    try:
        config = CashFlowConfig()
        logger.info("Cash flow configuration loaded successfully")
        return config
    except Exception as e:
        logger.error(f"Failed to load cash flow configuration: {e}", exc_info=True)
        raise

"""
Classification models - the per-transaction outputs of the exclusion,
linking and categorization stages.
"""
import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.shared.utils.datetime_utils import month_key

from .ledger import Payment
from .money import Money


class ExclusionReason(str, Enum):
    """Why a transaction is dropped from the cash flow statement"""
    BALANCE_SHEET_ADJUSTMENT = "balance_sheet_adjustment"
    INTERNAL_CASH_TRANSFER = "internal_cash_transfer"
    ACCRUAL_WITHOUT_CASH = "accrual_without_cash"
    LATE_PAYMENT_FEE = "late_payment_fee"
    NO_CASH_MOVEMENT = "no_cash_movement"


class CashDirection(str, Enum):
    """Direction of a cash movement - debit to cash is inflow, credit is outflow"""
    INFLOW = "inflow"
    OUTFLOW = "outflow"


class ActivityType(str, Enum):
    OPERATING = "operating"
    INVESTING = "investing"
    FINANCING = "financing"


class ItemSource(str, Enum):
    """Code path an item was counted from"""
    LEDGER = "ledger"
    EXPENSE = "expense"


class CashLeg(BaseModel):
    """
    The net cash effect of an included transaction.
    The account is the cash line carrying the largest amount.
    """
    model_config = ConfigDict(frozen=True)

    account_code: str
    account_name: str = ""
    direction: CashDirection
    amount: Money = Field(description="|cash debits - cash credits|")


class ExclusionResult(BaseModel):
    """Outcome of the exclusion filter for one transaction"""
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    included: bool
    reason: Optional[ExclusionReason] = None
    cash_leg: Optional[CashLeg] = None
    transfer_hint: bool = Field(default=False, description="Description reads like a transfer")

    @classmethod
    def include(cls, transaction_id: str, cash_leg: CashLeg, transfer_hint: bool = False) -> "ExclusionResult":
        return cls(transaction_id=transaction_id, included=True, cash_leg=cash_leg, transfer_hint=transfer_hint)

    @classmethod
    def exclude(cls, transaction_id: str, reason: ExclusionReason, transfer_hint: bool = False) -> "ExclusionResult":
        return cls(transaction_id=transaction_id, included=False, reason=reason, transfer_hint=transfer_hint)


class LinkResult(BaseModel):
    """Payment link and effective date for one transaction"""
    model_config = ConfigDict(frozen=True)

    payment: Optional[Payment] = None
    match_rule: Optional[str] = Field(
        default=None,
        description="reference, student_amount or amount_date"
    )
    effective_date: datetime.date
    is_advance: bool = False
    advance_month: Optional[str] = Field(default=None, description="Allocated month of an advance, YYYY-MM")
    allocation_type: Optional[str] = Field(default=None, description="Type of the allocation matching the amount")

    @property
    def linked(self) -> bool:
        return self.payment is not None


class CategorizedItem(BaseModel):
    """A single cash movement ready for aggregation"""
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    source: ItemSource = ItemSource.LEDGER
    effective_date: datetime.date
    direction: CashDirection
    activity: ActivityType = ActivityType.OPERATING
    category: str = Field(description="Income category or named expense bucket")
    taxonomy: Optional[str] = Field(default=None, description="Fixed expense taxonomy for outflows")
    amount: Money
    description: str = ""
    account_code: Optional[str] = None
    expense_id: Optional[str] = None
    residence: Optional[str] = None
    student: Optional[str] = Field(default=None, description="Student id of the linked payment or transaction metadata")
    rule: Optional[str] = Field(default=None, description="Name of the rule that matched")

    @computed_field
    @property
    def month(self) -> str:
        return month_key(self.effective_date)

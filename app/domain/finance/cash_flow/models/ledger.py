"""
Ledger models - transactions, lines, payments and expenses as read from the ledger store.

Raw records arrive as loosely-shaped dicts (camelCase keys, nested account
objects, ObjectId-like references). They are normalized here, once, into
strict models so the rest of the engine never branches on record shape.
"""
import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from app.core.exceptions import LedgerDataError
from app.shared.utils.datetime_utils import to_date
from app.shared.utils.validators import ZERO, normalize_account_code, sanitize_string

from .money import Money


class AccountType(str, Enum):
    """Chart-of-accounts type of a ledger line"""
    ASSET = "Asset"
    LIABILITY = "Liability"
    INCOME = "Income"
    EXPENSE = "Expense"
    EQUITY = "Equity"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "revenue":
                return cls.INCOME
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        return None


class TransactionStatus(str, Enum):
    """Ledger transaction lifecycle status"""
    POSTED = "posted"
    REVERSED = "reversed"
    DRAFT = "draft"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


def _as_id(value: Any) -> Optional[str]:
    """Reduce an id-like value (string, number, populated document) to a string id."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
        if value is None:
            return None
    text = str(value).strip()
    return text or None


def _parse_date(value: Any) -> Any:
    if value is None or value == "":
        return None
    try:
        return to_date(value)
    except (TypeError, ValueError):
        return value


def _validate_record(model_cls, record: Any, kind: str):
    """Validate a raw record, turning pydantic errors into LedgerDataError."""
    try:
        return model_cls.model_validate(record)
    except ValidationError as exc:
        record_id = None
        if isinstance(record, dict):
            record_id = _as_id(record.get("transactionId") or record.get("_id") or record.get("id"))
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ())) or None
        raise LedgerDataError(f"Malformed {kind}: {error['msg']}", record_id=record_id, field=field) from exc


class LedgerLine(BaseModel):
    """
    A single debit or credit line of a ledger transaction.
    At most one of debit/credit is non-zero and neither is negative.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    account_code: str = Field(
        validation_alias=AliasChoices("account_code", "accountCode", "code"),
        description="Chart-of-accounts code, e.g. 1000"
    )
    account_name: str = Field(
        default="",
        validation_alias=AliasChoices("account_name", "accountName", "name"),
        description="Account display name"
    )
    account_type: Optional[AccountType] = Field(
        default=None,
        validation_alias=AliasChoices("account_type", "accountType", "type"),
        description="Asset, Liability, Income, Expense or Equity"
    )
    debit: Money = Field(default=ZERO, description="Debit amount")
    credit: Money = Field(default=ZERO, description="Credit amount")

    @model_validator(mode='before')
    @classmethod
    def flatten_account(cls, data):
        """Lift a nested {account: {code, name, type}} shape onto the line."""
        if isinstance(data, dict) and isinstance(data.get("account"), dict):
            account = data["account"]
            data = dict(data)
            data.setdefault("account_code", account.get("code"))
            data.setdefault("account_name", account.get("name"))
            data.setdefault("account_type", account.get("type"))
            data.pop("account")
        return data

    @field_validator('account_code', mode='before')
    @classmethod
    def parse_code(cls, v):
        code = normalize_account_code(v)
        if not code:
            raise ValueError("account code is required")
        return code

    @field_validator('account_name', mode='before')
    @classmethod
    def parse_name(cls, v):
        return sanitize_string(v, max_length=255)

    @field_validator('account_type', mode='before')
    @classmethod
    def parse_type(cls, v):
        if v is None or v == "":
            return None
        try:
            return AccountType(v)
        except ValueError:
            return None

    @model_validator(mode='after')
    def check_single_sided(self):
        if self.debit < ZERO or self.credit < ZERO:
            raise ValueError(f"negative amount on line {self.account_code}")
        if self.debit > ZERO and self.credit > ZERO:
            raise ValueError(f"line {self.account_code} has both a debit and a credit")
        return self

    @property
    def amount(self) -> Decimal:
        """The non-zero side of the line"""
        return self.debit if self.debit > ZERO else self.credit

    @property
    def is_debit(self) -> bool:
        return self.debit > ZERO


class LedgerTransaction(BaseModel):
    """
    An atomic, balanced set of debit/credit lines.
    Only posted transactions are visible to the cash flow engine.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(
        validation_alias=AliasChoices("id", "transaction_id", "transactionId", "_id"),
        description="Transaction id"
    )
    date: datetime.date = Field(description="Ledger date")
    description: str = Field(default="", description="Free-text memo")
    status: TransactionStatus = Field(default=TransactionStatus.POSTED)
    source: str = Field(default="", description="Originating flow, e.g. payment, expense_payment, manual")
    reference: Optional[str] = Field(default=None, description="Reference to the originating record")
    source_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("source_id", "sourceId"),
        description="Id of the originating record"
    )
    residence: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("residence", "residence_id", "residenceRef"),
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)
    lines: List[LedgerLine] = Field(
        default_factory=list,
        validation_alias=AliasChoices("lines", "entries"),
    )

    @field_validator('id', 'reference', 'source_id', 'residence', mode='before')
    @classmethod
    def parse_ids(cls, v):
        return _as_id(v)

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, v):
        return _parse_date(v)

    @field_validator('description', 'source', mode='before')
    @classmethod
    def parse_text(cls, v):
        return sanitize_string(v)

    @field_validator('status', mode='before')
    @classmethod
    def parse_status(cls, v):
        return v or TransactionStatus.POSTED

    @field_validator('metadata', mode='before')
    @classmethod
    def parse_metadata(cls, v):
        return v or {}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "LedgerTransaction":
        """
        Validate a raw ledger record.

        Raises:
            LedgerDataError: If the record is malformed
        """
        return _validate_record(cls, record, "ledger transaction")

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    def meta(self, *keys: str) -> Optional[str]:
        """First non-empty metadata value among keys, as a string id"""
        for key in keys:
            value = _as_id(self.metadata.get(key))
            if value:
                return value
        return None


class Allocation(BaseModel):
    """A slice of a payment allocated to a specific month"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    month: str = Field(description="Allocated month, YYYY-MM")
    amount_allocated: Money = Field(
        default=ZERO,
        validation_alias=AliasChoices("amount_allocated", "amountAllocated", "amount"),
    )
    allocation_type: str = Field(
        default="",
        validation_alias=AliasChoices("allocation_type", "allocationType", "type"),
        description="rent_settlement, admin_settlement, advance_payment, ..."
    )

    @model_validator(mode='before')
    @classmethod
    def combine_month_and_year(cls, data):
        """Accept {month: 9, year: 2025} as well as {month: "2025-09"}."""
        if isinstance(data, dict):
            month, year = data.get("month"), data.get("year")
            if year is not None and month is not None and str(month).isdigit():
                data = dict(data)
                data["month"] = f"{int(year):04d}-{int(month):02d}"
        return data

    @field_validator('month', mode='before')
    @classmethod
    def parse_month(cls, v):
        text = str(v or "").strip()
        parts = text.split("-")
        if len(parts) >= 2 and parts[0].isdigit() and parts[1].isdigit():
            return f"{int(parts[0]):04d}-{int(parts[1]):02d}"
        raise ValueError(f"invalid allocation month {v!r}")


class PaymentComponent(BaseModel):
    """A typed component of a payment (rent, admin, deposit)"""
    type: str = ""
    amount: Money = ZERO


class Payment(BaseModel):
    """A payment record received from a student"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    payment_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("payment_code", "paymentId", "paymentCode"),
        description="Human-facing payment code, e.g. PAY1757..."
    )
    date: datetime.date
    total_amount: Money = Field(
        default=ZERO,
        validation_alias=AliasChoices("total_amount", "totalAmount", "amount"),
    )
    student: Optional[str] = Field(default=None, description="Student id")
    residence: Optional[str] = None
    status: str = Field(default="confirmed")
    monthly_breakdown: List[Allocation] = Field(
        default_factory=list,
        validation_alias=AliasChoices("monthly_breakdown", "monthlyBreakdown"),
    )
    components: List[PaymentComponent] = Field(
        default_factory=list,
        validation_alias=AliasChoices("components", "payments"),
    )

    @model_validator(mode='before')
    @classmethod
    def lift_nested_allocation(cls, data):
        """Use allocation.monthlyBreakdown when the top-level breakdown is absent."""
        if isinstance(data, dict) and not data.get("monthlyBreakdown") and not data.get("monthly_breakdown"):
            allocation = data.get("allocation")
            if isinstance(allocation, dict) and allocation.get("monthlyBreakdown"):
                data = dict(data)
                data["monthly_breakdown"] = allocation["monthlyBreakdown"]
        return data

    @field_validator('id', 'payment_code', 'student', 'residence', mode='before')
    @classmethod
    def parse_ids(cls, v):
        return _as_id(v)

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, v):
        return _parse_date(v)

    @field_validator('status', mode='before')
    @classmethod
    def parse_status(cls, v):
        return str(v or "confirmed").strip().lower()

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Payment":
        return _validate_record(cls, record, "payment")

    def has_identifier(self, value: Optional[str]) -> bool:
        """Check a reference against the payment's id and code"""
        if not value:
            return False
        return value == self.id or (self.payment_code is not None and value == self.payment_code)


class Expense(BaseModel):
    """A denormalized expense record, possibly also present in the ledger"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    expense_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("expense_code", "expenseId", "expenseCode"),
        description="Human-facing expense code, e.g. EXP-2025-001"
    )
    expense_date: datetime.date = Field(validation_alias=AliasChoices("expense_date", "expenseDate", "paidDate", "date"))
    amount: Money = ZERO
    category: str = ""
    payment_status: str = Field(
        default="Paid",
        validation_alias=AliasChoices("payment_status", "paymentStatus"),
    )
    residence: Optional[str] = None
    description: str = ""
    reference: Optional[str] = None
    transaction_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("transaction_id", "transactionId"),
    )

    @field_validator('id', 'expense_code', 'residence', 'reference', 'transaction_id', mode='before')
    @classmethod
    def parse_ids(cls, v):
        return _as_id(v)

    @field_validator('expense_date', mode='before')
    @classmethod
    def parse_date(cls, v):
        return _parse_date(v)

    @field_validator('category', 'description', mode='before')
    @classmethod
    def parse_text(cls, v):
        return sanitize_string(v)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Expense":
        return _validate_record(cls, record, "expense")

    @property
    def keys(self) -> List[str]:
        """Every identifier this expense can be referenced by"""
        return [key for key in (self.id, self.expense_code) if key]

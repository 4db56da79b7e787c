# app/core/exceptions.py
"""Custom exceptions for the cash flow engine with business-friendly messages."""

from typing import Any, Dict, List, Optional
from datetime import datetime

from app.shared.utils.logging_config import get_logger

logger = get_logger(__name__)


class CashFlowError(Exception):
    """Base exception for cash flow errors with business-friendly messaging."""
    def __init__(
        self,
        message: str,
        details: str = None,
        user_message: str = None,
        error_code: str = None,
        suggestions: list = None
    ):
        self.message = message
        self.details = details
        self.user_message = user_message or self._generate_user_friendly_message(message)
        self.error_code = error_code or self.__class__.__name__.upper()
        self.suggestions = suggestions or []
        self.timestamp = datetime.now().isoformat()
        super().__init__(self.message)

    def _generate_user_friendly_message(self, technical_message: str) -> str:
        """Generate user-friendly message from technical error."""
        user_friendly_map = {
            "timeout": "The ledger is taking longer than expected to respond. Please try again.",
            "connection": "The ledger could not be reached. Please check the connection.",
            "period": "The requested reporting period is not valid.",
            "basis": "The requested accounting basis is not supported.",
        }

        message_lower = technical_message.lower()
        for key, friendly_msg in user_friendly_map.items():
            if key in message_lower:
                return friendly_msg

        return "An error occurred while generating the cash flow statement. Please try again or contact support."

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for API consumers."""
        return {
            "error_code": self.error_code,
            "message": self.user_message,
            "details": self.details,
            "suggestions": self.suggestions,
            "timestamp": self.timestamp,
        }


class UpstreamQueryError(CashFlowError):
    """A ledger store fetch failed; fatal for the current invocation."""
    def __init__(self, query: str, message: str = None, details: str = None):
        self.query = query
        message = message or f"Ledger store query '{query}' failed"
        super().__init__(
            message=message,
            details=details,
            user_message=f"We could not load {query.replace('_', ' ')} from the ledger. Please try again.",
            error_code="UPSTREAM_QUERY_ERROR",
            suggestions=[
                "Check that the ledger store is reachable",
                "Retry the request; the engine does not retry on its own",
            ]
        )


class LedgerDataError(CashFlowError):
    """Exception for malformed ledger, payment or expense records."""
    def __init__(self, message: str, record_id: str = None, field: str = None):
        self.record_id = record_id
        self.field = field
        record_ref = f" '{record_id}'" if record_id else ""
        field_ref = f" (field '{field}')" if field else ""

        super().__init__(
            message=message,
            details=f"record{record_ref}{field_ref}",
            user_message=f"Ledger record{record_ref} is malformed{field_ref} and was skipped.",
            error_code="LEDGER_DATA_ERROR",
            suggestions=[
                "Each line must have either a debit or a credit, not both",
                "Debit and credit amounts must not be negative",
            ]
        )


class InvalidPeriodError(CashFlowError):
    """Exception for invalid period or basis input."""
    def __init__(self, message: str, value: Any = None, suggestions: Optional[List[str]] = None):
        self.value = value
        value_ref = f" (value: {value!r})" if value is not None else ""

        super().__init__(
            message=message,
            user_message=f"Invalid statement request{value_ref}. Please check the period and basis.",
            error_code="INVALID_PERIOD_ERROR",
            suggestions=suggestions or [
                "Use 'YYYY' for a yearly statement or 'YYYY-MM' for a single month",
                "Basis must be 'cash' or 'accrual'",
            ]
        )

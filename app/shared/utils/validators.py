"""
Input validation utilities for the cash flow engine.

This module provides common validation functions for:
- Money amounts (parsing, rounding, tolerance comparison)
- Account code normalization
- Free-text sanitization
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional


# =============================================================================
# Amount/Currency Parsing
# =============================================================================

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a currency amount to Decimal.

    Handles:
    - Numbers: 1000, 1000.5, Decimal("1000.50")
    - Thousands separators: "1,000,000"
    - Negative values: "-500" or "(500)"
    - Currency symbols: "$1,000.00" or "USD 1,000"

    Args:
        value: Value to parse

    Returns:
        Parsed Decimal value or None if invalid
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # str() first so 0.1 stays 0.1
        return Decimal(str(value))
    if not isinstance(value, str):
        return None

    value = value.strip()
    if not value:
        return None

    # Check for accounting notation (negative in parentheses)
    is_negative = False
    if value.startswith('(') and value.endswith(')'):
        is_negative = True
        value = value[1:-1]
    elif value.startswith('-'):
        is_negative = True
        value = value[1:]

    currency_patterns = [
        r'USD\s*', r'\s*USD',
        r'\$\s*', r'\s*\$',
    ]
    for pattern in currency_patterns:
        value = re.sub(pattern, '', value, flags=re.IGNORECASE)

    value = value.replace(',', '').replace(' ', '')

    try:
        result = Decimal(value)
    except (InvalidOperation, ValueError):
        return None
    return -result if is_negative else result


def to_money(value: Any) -> Decimal:
    """
    Round a value to 2 decimal places (half up).

    None and unparseable values become 0.00.
    """
    parsed = parse_amount(value)
    if parsed is None:
        return ZERO
    return parsed.quantize(CENT, rounding=ROUND_HALF_UP)


def to_strict_money(value: Any) -> Decimal:
    """
    Round a value to 2 decimal places (half up), rejecting garbage.

    None and blank strings become 0.00; anything else that is not a finite
    amount raises.

    Raises:
        ValueError: If the value is present but not an amount
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return ZERO
    parsed = parse_amount(value)
    if parsed is None or not parsed.is_finite():
        raise ValueError(f"invalid amount {value!r}")
    return parsed.quantize(CENT, rounding=ROUND_HALF_UP)


def amounts_match(first: Any, second: Any, tolerance: Decimal = CENT) -> bool:
    """Check whether two amounts differ by less than the tolerance."""
    a = parse_amount(first)
    b = parse_amount(second)
    if a is None or b is None:
        return False
    return abs(a - b) < tolerance


def format_amount(value: Optional[Decimal], currency: str = "USD") -> str:
    """
    Format a numeric amount for log output.

    Args:
        value: Numeric value
        currency: Currency code for display

    Returns:
        Formatted amount string
    """
    if value is None:
        return "N/A"
    return f"{to_money(value):,.2f} {currency}"


# =============================================================================
# Account Code Validation
# =============================================================================

def normalize_account_code(code: Any) -> str:
    """
    Normalize an account code to a trimmed string.

    Numeric codes stored as floats ("1000.0") are converted back to "1000".
    """
    if code is None:
        return ""
    if isinstance(code, float) and code.is_integer():
        code = int(code)
    text = str(code).strip()
    if re.fullmatch(r"\d+\.0+", text):
        text = text.split(".")[0]
    return text


# =============================================================================
# General Input Validation
# =============================================================================

def sanitize_string(value: Any, max_length: int = 1000) -> str:
    """
    Sanitize a free-text value.

    Collapses whitespace and truncates to max_length.
    """
    if value is None:
        return ""
    text = re.sub(r'\s+', ' ', str(value)).strip()
    return text[:max_length]

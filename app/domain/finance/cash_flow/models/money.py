"""
Money type shared by every cash flow model.

Amounts are Decimal rounded half-up to 2 places on the way in and dumped as
plain JSON numbers on the way out. A value that is present but is not an
amount fails validation instead of becoming zero.
"""
from decimal import Decimal
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer

from app.shared.utils.validators import to_strict_money


def _serialize_money(value: Decimal) -> float:
    return float(value)


Money = Annotated[
    Decimal,
    BeforeValidator(to_strict_money),
    PlainSerializer(_serialize_money, return_type=float, when_used="json"),
]

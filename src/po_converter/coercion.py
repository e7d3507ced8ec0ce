"""
Numeric coercion shared by validation, mapping and rendering.

One policy everywhere: thousands separators are ignored, blanks and
non-numeric text coerce to ``None`` and never raise.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Union

Number = Union[int, float]


def parse_number(value: Any) -> Optional[float]:
    """Return *value* as a float, or None when it is blank or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def parse_whole(value: Any) -> Optional[int]:
    """Whole part of a numeric value ("3.7" -> 3), or None."""
    number = parse_number(value)
    if number is None:
        return None
    return int(number)


def is_whole_number(value: Any) -> bool:
    number = parse_number(value)
    return number is not None and number == int(number)


def tidy(number: Number) -> Number:
    """Drop a redundant fractional part so 15000.0 is stored as 15000."""
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def compute_amount(quantity: Any, unit_price: Any) -> Optional[Number]:
    """Line amount = whole quantity x unit price; None if either is unusable."""
    qty = parse_whole(quantity)
    price = parse_number(unit_price)
    if qty is None or price is None:
        return None
    return tidy(qty * price)

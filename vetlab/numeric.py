"""
Numeric input handling for the calculator forms.

- filter_keystroke(): keeps a text buffer syntactically parseable while typing.
- parse_number():     explicit optional parse (None for empty / invalid).
- safe_parse():       boundary adapter, collapses None to 0.0 ("fail to zero").
- fmt():              display formatting shared by previews, sentences and export.
"""

from __future__ import annotations
from typing import Any, Optional
import math
import re

PLACEHOLDER = "—"
DEFAULT_DECIMALS = 4
SCIENTIFIC_BELOW = 1e-4

_NOT_NUMERIC = re.compile(r"[^0-9.]")


# ------------------------------------------------------------
# SANITIZER
# ------------------------------------------------------------

def filter_keystroke(text: Any) -> str:
    """
    Strip everything except digits and the first decimal point.

    >>> filter_keystroke("1a2.3.4")
    '12.34'
    """
    cleaned = _NOT_NUMERIC.sub("", str(text))
    head, dot, tail = cleaned.partition(".")
    return head + dot + tail.replace(".", "")


def parse_number(text: Any) -> Optional[float]:
    """
    Parse free text into a finite float.

    A comma decimal separator is accepted ("2,5" -> 2.5). Returns None for
    empty, unparseable or non-finite input.
    """
    if text is None:
        return None
    if isinstance(text, (int, float)):
        value = float(text)
    else:
        s = str(text).strip().replace(",", ".", 1)
        if not s or "_" in s:
            return None
        try:
            value = float(s)
        except ValueError:
            return None
    if not math.isfinite(value):
        return None
    return value


def safe_parse(text: Any) -> float:
    """parse_number() for form fields: anything invalid reads as 0.0."""
    value = parse_number(text)
    return 0.0 if value is None else value


# ------------------------------------------------------------
# FORMATTER
# ------------------------------------------------------------

def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num):
        return None
    return num


def _scientific(num: float, decimals: int) -> str:
    # 5.0000e-05 -> 5.0000e-5, the shape the exported history already uses
    mantissa, exponent = f"{num:.{decimals}e}".split("e")
    exp = int(exponent)
    return f"{mantissa}e{'+' if exp >= 0 else '-'}{abs(exp)}"


def fmt(value: Any, decimals: int = DEFAULT_DECIMALS) -> str:
    """
    Format a computed value for display.

    - None / NaN / non-numeric -> PLACEHOLDER
    - 0 < |v| < 1e-4           -> scientific notation, `decimals` fraction digits
    - otherwise                -> rounded to `decimals` places, trailing zeros dropped

    >>> fmt(1.2)
    '1.2'
    >>> fmt(0.00005)
    '5.0000e-5'
    """
    num = _to_float(value)
    if num is None:
        return PLACEHOLDER
    if math.isinf(num):
        return "Infinity" if num > 0 else "-Infinity"
    if num != 0 and abs(num) < SCIENTIFIC_BELOW:
        return _scientific(num, decimals)

    text = f"{num:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text == "-0":
        text = "0"
    return text

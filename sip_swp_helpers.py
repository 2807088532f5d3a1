import copy
import math
import re
from typing import Any, Dict, Mapping, Union

from sip_swp_simulation import round_money
from sip_swp_solver import CalculationMode


# ==========================================================
# DEFAULTS
# ==========================================================
DEFAULTS = {
    # ======================
    # Timeline
    # ======================
    "current_age": 25,
    "retirement_age": 50,
    "end_age": 85,
    "sip_payment_end_age": 85,
    "sip_freeze_age": 65,

    # ======================
    # Growth
    # ======================
    "yearly_income_increase": 5,
    "sip_increase_rate": 5,
    "expected_return": 10,

    # ======================
    # Lump sums
    # ======================
    "added_corpus_now": 0,
    "added_corpus_retirement": 100000000,

    # ======================
    # Goal
    # ======================
    "calculation_mode": CalculationMode.SIP.value,
    "starting_sip_amount": 0,
    "starting_monthly_income": 800000,
    "target_end_corpus": 0,

    # Debug / Dev
    "enable_debug_logging": False,
}

NUMERIC_KEYS = tuple(
    k for k, v in DEFAULTS.items() if isinstance(v, (int, float)) and not isinstance(v, bool)
)

CRORE = 10_000_000
LAKH = 100_000

Number = Union[int, float]


def default_settings() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULTS)


# ==========================================================
# 1) Input normalisation
# ==========================================================

_LEADING_NUMBER = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)")


def to_number(value: Any) -> Number:
    """
    Normalise a form field to a number.

    Thousands separators are dropped, the leading numeric part is parsed
    (so "12abc" reads as 12), text with a decimal point becomes a float and
    anything else an int. Empty, missing or unparseable input reads as 0.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else 0
    if value is None:
        return 0

    clean = str(value).replace(",", "").strip()
    m = _LEADING_NUMBER.match(clean)
    if not m:
        return 0
    text = m.group(0).strip()
    if "." in text:
        return float(text)
    return int(text)


def normalize_settings(settings: Mapping) -> Dict[str, Any]:
    """Merge over DEFAULTS and coerce every known field to its expected type."""
    merged = default_settings()
    if isinstance(settings, Mapping):
        for k, v in settings.items():
            if k in DEFAULTS:
                merged[k] = v

    for k in NUMERIC_KEYS:
        merged[k] = to_number(merged[k])

    valid_modes = {m.value for m in CalculationMode}
    mode = merged["calculation_mode"]
    if not isinstance(mode, str) or mode not in valid_modes:
        merged["calculation_mode"] = DEFAULTS["calculation_mode"]

    merged["enable_debug_logging"] = bool(merged["enable_debug_logging"])
    return merged


# ==========================================================
# 2) Display formatting (Indian numbering)
# ==========================================================

def _group_indian(digits: str) -> str:
    """'12345678' -> '1,23,45,678'"""
    last_three = digits[-3:]
    others = digits[:-3]
    if not others:
        return last_three
    head = re.sub(r"\B(?=(\d{2})+(?!\d))", ",", others)
    return f"{head},{last_three}"


def _is_blank(amount: Any) -> bool:
    return not amount or (isinstance(amount, float) and math.isnan(amount))


def _plain(number: Number) -> Number:
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def format_currency(amount: Number) -> str:
    if _is_blank(amount):
        return "₹0"

    if amount >= CRORE:
        return f"₹{amount / CRORE:.2f} Cr"
    if amount >= LAKH:
        return f"₹{amount / LAKH:.2f} L"

    digits = str(round_money(amount))
    negative = digits.startswith("-")
    if negative:
        digits = digits[1:]
    return "₹" + ("-" if negative else "") + _group_indian(digits)


def format_number_with_commas(number: Number) -> str:
    if _is_blank(number):
        return "0"

    integer_part, _, decimal_part = str(_plain(number)).partition(".")
    negative = integer_part.startswith("-")
    if negative:
        integer_part = integer_part[1:]

    out = ("-" if negative else "") + _group_indian(integer_part)
    return out + ("." + decimal_part if decimal_part else "")


def convert_to_words(amount: Number) -> str:
    if _is_blank(amount):
        return ""
    if amount >= CRORE:
        crores = f"{amount / CRORE:.1f}"
        return f"{crores} Crore{'s' if crores != '1.0' else ''}"
    if amount >= LAKH:
        lakhs = f"{amount / LAKH:.1f}"
        return f"{lakhs} Lakh{'s' if lakhs != '1.0' else ''}"
    if amount >= 1000:
        return f"{amount / 1000:.1f} Thousand"
    return str(_plain(amount))


def format_currency_for_pdf(amount: Number) -> str:
    """Plain 'Rs 1,234,567' (international grouping, no rupee glyph) for the PDF fonts."""
    if amount == 0:
        return "Rs 0"
    negative = amount < 0
    return f"{'-' if negative else ''}Rs {round_money(abs(amount)):,}"


def format_percent(value: Number) -> str:
    return f"{_plain(value)}%"

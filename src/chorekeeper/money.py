"""Utilities for working with integer minor-unit amounts in ChoreKeeper."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

WHOLE = Decimal("1")
CENT = Decimal("0.01")

AmountLike = Union[Decimal, int, float, str]

SUFFIX_CURRENCIES = frozenset({"Kč", "CZK", "€", "EUR", "kr", "SEK", "NOK", "DKK", "zł", "PLN", "Ft", "HUF"})

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def round_half_up(value: AmountLike) -> int:
    """Round ``value`` to the nearest whole minor unit, sending midpoints up (166.5 -> 167)."""

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        amount = Decimal(value)
    else:  # pragma: no cover - defensive programming branch
        raise TypeError(f"Unsupported amount type: {type(value)!r}")
    return int(amount.quantize(WHOLE, rounding=ROUND_HALF_UP))


def require_positive(amount: int, *, allow_zero: bool = False) -> int:
    """Ensure ``amount`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if amount < 0:
            raise ValueError("Amount must be zero or greater.")
    else:
        if amount <= 0:
            raise ValueError("Amount must be greater than zero.")
    return amount


def is_suffix_currency(currency: str) -> bool:
    return currency in SUFFIX_CURRENCIES


def _major_units(cents: int) -> str:
    return str((Decimal(abs(cents)) / 100).quantize(CENT, rounding=ROUND_HALF_UP))


def format_currency(cents: int, currency: str = "$") -> str:
    """Return ``cents`` as a display string, e.g. ``$12.34`` or ``12.34 Kč``."""

    value = _major_units(cents)
    sign = "-" if cents < 0 else ""
    if is_suffix_currency(currency):
        return f"{sign}{value} {currency}"
    return f"{sign}{currency}{value}"


def format_currency_with_sign(cents: int, currency: str = "$", show_positive_sign: bool = False) -> str:
    """Like :func:`format_currency` but optionally prefixes positive amounts with ``+``."""

    if cents < 0:
        sign = "-"
    elif show_positive_sign:
        sign = "+"
    else:
        sign = ""
    value = _major_units(cents)
    if is_suffix_currency(currency):
        return f"{sign}{value} {currency}"
    return f"{sign}{currency}{value}"


def parse_to_cents(value: AmountLike) -> int:
    """Convert a major-unit amount (``12.34``, ``"$12.34"``) into minor units."""

    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        try:
            amount = Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValueError(f"Cannot parse amount from {value!r}.") from exc
        return round_half_up(amount * 100)
    if isinstance(value, Decimal):
        return round_half_up(value * 100)
    return round_half_up(Decimal(str(value)) * 100)


__all__ = [
    "AmountLike",
    "SUFFIX_CURRENCIES",
    "format_currency",
    "format_currency_with_sign",
    "is_suffix_currency",
    "parse_to_cents",
    "require_positive",
    "round_half_up",
]

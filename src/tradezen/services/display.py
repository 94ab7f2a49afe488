"""Value formatting shared by every view: currency amounts, privacy masking, P&L colours."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from tradezen.config.constants import COLOR_LOSS, COLOR_NEUTRAL, COLOR_PROFIT, PRIVACY_MASK


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _plain(value: Decimal) -> str:
    """Thousands-separated number without trailing zeros."""
    if value == value.to_integral_value():
        return f"{int(value):,}"
    return f"{value.normalize():,}"


def color_for_value(value: Any) -> str:
    """
    Return the colour for a P&L-like value.

    Returns:
        COLOR_PROFIT if value > 0, COLOR_LOSS if value < 0, COLOR_NEUTRAL
        for zero, None or anything non-numeric.
    """
    v = _to_decimal(value)
    if v is None or v == 0:
        return COLOR_NEUTRAL
    return COLOR_PROFIT if v > 0 else COLOR_LOSS


def format_amount(amount: Any, currency: str, privacy_mode: bool = False) -> str:
    """Unsigned amount with currency symbol, e.g. ``$1,250.5``; masked in privacy mode."""
    if privacy_mode:
        return PRIVACY_MASK
    v = _to_decimal(amount)
    if v is None:
        return ""
    return f"{currency}{_plain(abs(v))}"


def format_signed_amount(amount: Any, currency: str, privacy_mode: bool = False) -> str:
    """Like format_amount but prefixed with + or - (no sign for zero)."""
    if privacy_mode:
        return PRIVACY_MASK
    v = _to_decimal(amount)
    if v is None:
        return ""
    sign = "+" if v > 0 else "-" if v < 0 else ""
    return f"{sign}{format_amount(v, currency)}"


def format_compact(amount: Any, currency: str, privacy_mode: bool = False) -> str:
    """Short form for tight spaces: ``$950``, ``-$1.2k``, ``$3.4M``."""
    if privacy_mode:
        return PRIVACY_MASK
    v = _to_decimal(amount)
    if v is None:
        return ""
    sign = "-" if v < 0 else ""
    mag = abs(v)
    if mag >= 1_000_000:
        text = f"{mag / 1_000_000:.1f}".rstrip("0").rstrip(".") + "M"
    elif mag >= 1_000:
        text = f"{mag / 1_000:.1f}".rstrip("0").rstrip(".") + "k"
    else:
        text = _plain(mag.quantize(Decimal("0.01")))
    return f"{sign}{currency}{text}"

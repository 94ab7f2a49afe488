"""Row codec: convert between sheet rows (lists of cells) and journal records.

This is the input boundary of the aggregation engine. Values read here are
coerced once (amount to Decimal, settings by value shape) so the metrics
functions can assume well-typed records.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence

from tradezen.config.constants import DEFAULT_SETTINGS, TAG_COLUMNS, TRADE_COLUMNS
from tradezen.models.core import Tag, Trade

_NUMERIC_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

# Fields stored as None (not "") when their cell is blank
_OPTIONAL_TRADE_FIELDS = ("tagId", "imageRef")


def _pad(row: Sequence[Any], width: int) -> List[Any]:
    """Sheets omits trailing empty cells; pad back to the full column count."""
    cells = list(row)[:width]
    return cells + [""] * (width - len(cells))


def _is_blank(row: Sequence[Any]) -> bool:
    return all(cell in ("", None) for cell in row)


def parse_amount(value: Any) -> Decimal:
    """Parse a cell into a signed Decimal. Raises ValueError on non-numeric input."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"invalid amount: {value!r}")
    text = str(value).strip().replace(",", "")
    if not text:
        raise ValueError("empty amount")
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {value!r}") from exc


def _cell_number(value: Decimal) -> Any:
    """JSON-friendly number for writing back to the sheet."""
    return int(value) if value == value.to_integral_value() else float(value)


def parse_trade_row(row: Sequence[Any]) -> Trade:
    """Build a Trade from a Trades sheet row (column order TRADE_COLUMNS)."""
    cells = _pad(row, len(TRADE_COLUMNS))
    trade: Dict[str, Any] = {}
    for name, cell in zip(TRADE_COLUMNS, cells):
        trade[name] = "" if cell is None else cell
    trade["tradeId"] = str(trade["tradeId"])
    trade["date"] = str(trade["date"])[:10]
    trade["time"] = str(trade["time"])
    trade["amount"] = parse_amount(trade["amount"])
    for name in _OPTIONAL_TRADE_FIELDS:
        trade[name] = str(trade[name]) if trade[name] != "" else None
    return trade  # type: ignore[return-value]


def trade_to_row(trade: Trade) -> List[Any]:
    """Serialize a Trade into a Trades sheet row."""
    row: List[Any] = []
    for name in TRADE_COLUMNS:
        value = trade.get(name)
        if name == "amount":
            row.append(_cell_number(parse_amount(value)))
        else:
            row.append("" if value is None else value)
    return row


def parse_trade_rows(rows: Iterable[Sequence[Any]]) -> List[Trade]:
    """Parse data rows, skipping blank ones. Malformed rows raise ValueError."""
    return [parse_trade_row(r) for r in rows if not _is_blank(r)]


def parse_tag_row(row: Sequence[Any]) -> Tag:
    cells = _pad(row, len(TAG_COLUMNS))
    tag_id, name, color, emoji, order = cells
    try:
        order_value = int(float(order)) if order not in ("", None) else 0
    except (TypeError, ValueError):
        order_value = 0
    return {
        "tagId": str(tag_id),
        "name": str(name),
        "color": str(color),
        "emoji": str(emoji),
        "order": order_value,
    }


def tag_to_row(tag: Tag) -> List[Any]:
    return [tag.get("tagId", ""), tag.get("name", ""), tag.get("color", ""), tag.get("emoji", ""), tag.get("order", 0)]


def parse_tag_rows(rows: Iterable[Sequence[Any]]) -> List[Tag]:
    return [parse_tag_row(r) for r in rows if not _is_blank(r)]


def parse_setting_value(value: Any) -> Any:
    """
    Coerce a stored setting by the shape of its value, not a declared type.

    "true"/"false" become booleans, numeric-looking strings become int or
    float, anything else is returned unchanged.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if text == "true":
        return True
    if text == "false":
        return False
    if _NUMERIC_RE.match(text):
        number = float(text)
        if number.is_integer() and "." not in text and "e" not in text.lower():
            return int(text)
        return number
    return value


def format_setting_value(value: Any) -> str:
    """Inverse of parse_setting_value for writing a Settings row."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def settings_from_rows(rows: Iterable[Sequence[Any]]) -> Dict[str, Any]:
    """Parse key/value rows; rows with fewer than two cells are ignored."""
    settings: Dict[str, Any] = {}
    for row in rows:
        if row is None or len(row) < 2 or row[0] in ("", None):
            continue
        settings[str(row[0])] = parse_setting_value(row[1])
    return settings


def settings_to_rows(settings: Dict[str, Any]) -> List[List[str]]:
    return [[key, format_setting_value(value)] for key, value in settings.items()]


def merge_settings(remote: Optional[Dict[str, Any]], base: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Overlay remote values on defaults (or ``base``); missing keys keep their default."""
    merged = dict(DEFAULT_SETTINGS if base is None else base)
    if remote:
        merged.update(remote)
    return merged

"""Trade aggregation engine (pure functions).

Every function here is deterministic and free of I/O: given the same trades
it returns the same statistics. Trades are plain dicts shaped like
``models.core.Trade``; only ``date``, ``amount`` and the tag fields are read.

A trade with ``amount == 0`` is neither a winner nor a loser but still counts
toward trade totals. Sums keep the type of the amounts (``Decimal`` when the
trades come from the row codec) and only the win-rate percentage is rounded.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from tradezen.config.constants import NO_TAG_ID
from tradezen.models.core import (
    Averages,
    BestWorst,
    DayTotal,
    MonthStat,
    MonthSummary,
    Number,
    TagStat,
    Trade,
    YearlyTotals,
)
from tradezen.services.rows import parse_amount

TAG_TRADE_FILTERS = ("all", "winners", "losers")
TAG_TRADE_SORTS = ("latest", "oldest", "highest", "lowest")


def _year_month(date_str: Optional[str]) -> Optional[Tuple[int, int]]:
    """Return (year, 0-based month) of a YYYY-MM-DD string, no timezone applied."""
    if not date_str:
        return None
    parts = str(date_str)[:10].split("-")
    if len(parts) < 2:
        return None
    try:
        return int(parts[0]), int(parts[1]) - 1
    except ValueError:
        return None


def _amount(trade: Trade) -> Number:
    return trade.get("amount", 0)


def _round_half_up(value: Number) -> int:
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def win_rate(wins: int, total: int) -> int:
    """Percentage of winners rounded half-up to an integer; 0 when total is 0."""
    if total <= 0:
        return 0
    return _round_half_up(Decimal(100 * wins) / Decimal(total))


def filter_by_year(trades: Iterable[Trade], year: int) -> List[Trade]:
    """Trades whose calendar date falls in the given year."""
    out = []
    for trade in trades:
        ym = _year_month(trade.get("date"))
        if ym is not None and ym[0] == year:
            out.append(trade)
    return out


def filter_by_month(trades: Iterable[Trade], year: int, month: int) -> List[Trade]:
    """Trades whose date's year and 0-based month match exactly."""
    return [t for t in trades if _year_month(t.get("date")) == (year, month)]


def monthly_breakdown(trades: Iterable[Trade], year: int) -> List[MonthStat]:
    """
    Compute per-month P&L and win/loss counts for one calendar year.

    Returns:
        Exactly 12 MonthStat entries ordered January to December. Months
        without trades have all-zero stats.
    """
    months: List[MonthStat] = [
        {"month": m, "totalPL": 0, "tradeCount": 0, "winCount": 0, "lossCount": 0}
        for m in range(12)
    ]
    for trade in trades:
        ym = _year_month(trade.get("date"))
        if ym is None or ym[0] != year or not 0 <= ym[1] <= 11:
            continue
        stat = months[ym[1]]
        amount = _amount(trade)
        stat["totalPL"] += amount
        stat["tradeCount"] += 1
        if amount > 0:
            stat["winCount"] += 1
        elif amount < 0:
            stat["lossCount"] += 1
    return months


def yearly_totals(months: Iterable[MonthStat]) -> YearlyTotals:
    """Sum a monthly breakdown into yearly P&L, trade count and win rate."""
    total_pl: Number = 0
    total_trades = 0
    total_wins = 0
    total_losses = 0
    for m in months:
        total_pl += m["totalPL"]
        total_trades += m["tradeCount"]
        total_wins += m["winCount"]
        total_losses += m["lossCount"]
    return {
        "totalPL": total_pl,
        "totalTrades": total_trades,
        "totalWins": total_wins,
        "totalLosses": total_losses,
        "winRate": win_rate(total_wins, total_trades),
    }


def best_worst(trades: Iterable[Trade]) -> Optional[BestWorst]:
    """
    Return the trades with the highest and lowest amount.

    Ties go to the first trade encountered. Returns None for no trades;
    callers must check before use.
    """
    trades = list(trades)
    if not trades:
        return None
    return {
        "best": max(trades, key=_amount),
        "worst": min(trades, key=_amount),
    }


def averages(trades: Iterable[Trade]) -> Averages:
    """Mean winning amount and mean losing amount (negative); 0 when none."""
    wins = []
    losses = []
    for trade in trades:
        amount = _amount(trade)
        if amount > 0:
            wins.append(amount)
        elif amount < 0:
            losses.append(amount)
    return {
        "avgWinner": sum(wins) / len(wins) if wins else 0,
        "avgLoser": sum(losses) / len(losses) if losses else 0,
    }


def avg_pl_per_trade(total_pl: Number, total_trades: int) -> Number:
    return total_pl / total_trades if total_trades > 0 else 0


def account_balance(starting_balance: Number, total_pl: Number) -> Number:
    """
    Projected account balance: starting balance plus realised P&L.

    ``starting_balance`` is a settings value and may arrive as text ("2500",
    "1,000.50") or a float from the local cache; blank means 0. Raises
    ValueError if it is not numeric.
    """
    start = Decimal(0) if starting_balance in (None, "") else parse_amount(starting_balance)
    return start + parse_amount(total_pl)


def tag_performance(trades: Iterable[Trade], tags: Optional[Iterable[Any]] = None) -> List[TagStat]:
    """
    Group trades by tagId into per-tag P&L stats, best performing tag first.

    Untagged trades (no tagId, or the "none" sentinel) are left out rather
    than bucketed. Display fields come from the first trade of each group,
    i.e. the tag as it looked when that trade was recorded; ``tags`` (the
    current Tag definitions) is accepted for call-site symmetry but never
    used to overwrite those snapshots.
    """
    groups: Dict[str, Dict[str, Any]] = {}
    for trade in trades:
        tag_id = trade.get("tagId") or NO_TAG_ID
        if tag_id == NO_TAG_ID:
            continue
        stat = groups.get(tag_id)
        if stat is None:
            stat = groups[tag_id] = {
                "tagId": tag_id,
                "tagName": trade.get("tagName"),
                "tagColor": trade.get("tagColor"),
                "tagEmoji": trade.get("tagEmoji"),
                "totalPL": 0,
                "trades": 0,
                "wins": 0,
                "losses": 0,
            }
        amount = _amount(trade)
        stat["totalPL"] += amount
        stat["trades"] += 1
        if amount > 0:
            stat["wins"] += 1
        elif amount < 0:
            stat["losses"] += 1

    out: List[TagStat] = []
    for stat in groups.values():
        stat["winRate"] = win_rate(stat["wins"], stat["trades"])
        out.append(stat)  # type: ignore[arg-type]
    # sorted() is stable, so equal totals keep first-seen order
    return sorted(out, key=lambda s: s["totalPL"], reverse=True)


def group_by_date(trades: Iterable[Trade]) -> Dict[str, List[Trade]]:
    """Map each exact date string to its trades, keeping input order."""
    grouped: Dict[str, List[Trade]] = {}
    for trade in trades:
        grouped.setdefault(trade.get("date", ""), []).append(trade)
    return grouped


def daily_totals(trades: Iterable[Trade]) -> Dict[str, DayTotal]:
    """Map each exact date string to its summed P&L and trade count."""
    totals: Dict[str, DayTotal] = {}
    for trade in trades:
        day = totals.setdefault(trade.get("date", ""), {"totalPL": 0, "tradeCount": 0})
        day["totalPL"] += _amount(trade)
        day["tradeCount"] += 1
    return totals


def list_days(trades: Iterable[Trade]) -> List[str]:
    """Dates that have trades, most recent first (list view order)."""
    return sorted({t.get("date", "") for t in trades}, reverse=True)


def month_summary(trades: Iterable[Trade]) -> MonthSummary:
    """Stat strip for an already month-scoped list of trades."""
    total_pl: Number = 0
    count = wins = losses = 0
    for trade in trades:
        amount = _amount(trade)
        total_pl += amount
        count += 1
        if amount > 0:
            wins += 1
        elif amount < 0:
            losses += 1
    return {
        "totalPL": total_pl,
        "tradeCount": count,
        "winCount": wins,
        "lossCount": losses,
        "winRate": win_rate(wins, count),
    }


def tag_trades(
    trades: Iterable[Trade],
    tag_id: str,
    filter_by: str = "all",
    sort_by: str = "latest",
) -> List[Trade]:
    """
    Trades carrying one tag, optionally narrowed to winners or losers.

    Args:
        filter_by: "all", "winners" or "losers".
        sort_by: "latest"/"oldest" by date, "highest"/"lowest" by amount.
    """
    if filter_by not in TAG_TRADE_FILTERS:
        raise ValueError(f"unknown filter {filter_by!r}")
    if sort_by not in TAG_TRADE_SORTS:
        raise ValueError(f"unknown sort {sort_by!r}")
    selected = [t for t in trades if t.get("tagId") == tag_id]
    if filter_by == "winners":
        selected = [t for t in selected if _amount(t) > 0]
    elif filter_by == "losers":
        selected = [t for t in selected if _amount(t) < 0]

    if sort_by == "latest":
        selected.sort(key=lambda t: t.get("date", ""), reverse=True)
    elif sort_by == "oldest":
        selected.sort(key=lambda t: t.get("date", ""))
    elif sort_by == "highest":
        selected.sort(key=_amount, reverse=True)
    else:
        selected.sort(key=_amount)
    return selected


def comparison_text(trade: Trade, avgs: Averages) -> Optional[str]:
    """
    Describe a trade relative to the average winner or loser, e.g.
    "3.8x your average winner". None when there is no average to compare to.
    """
    amount = _amount(trade)
    if amount > 0 and avgs["avgWinner"]:
        ratio, label = amount / avgs["avgWinner"], "winner"
    elif amount < 0 and avgs["avgLoser"]:
        ratio, label = amount / avgs["avgLoser"], "loser"
    else:
        return None
    return f"{float(ratio):.1f}x your average {label}"

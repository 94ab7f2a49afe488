"""Typed structures for journal records and derived statistics."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional, TypedDict, Union

Number = Union[int, float, Decimal]


class Trade(TypedDict, total=False):
    """A logged trade as stored in one row of the Trades sheet.

    tagName/tagColor/tagEmoji are a snapshot of the tag taken when the trade
    was written; they are never re-resolved against the Tags sheet.
    """

    tradeId: str
    date: str
    time: str
    amount: Decimal
    tagId: Optional[str]
    tagName: str
    tagColor: str
    tagEmoji: str
    imageRef: Optional[str]
    notes: str
    createdAt: str
    updatedAt: str


class Tag(TypedDict, total=False):
    """Current definition of a strategy tag."""

    tagId: str
    name: str
    color: str
    emoji: str
    order: int


class Settings(TypedDict, total=False):
    currency: str
    startingBalance: Number
    privacyMode: bool


class MonthStat(TypedDict):
    month: int
    totalPL: Number
    tradeCount: int
    winCount: int
    lossCount: int


class YearlyTotals(TypedDict):
    totalPL: Number
    totalTrades: int
    totalWins: int
    totalLosses: int
    winRate: int


class BestWorst(TypedDict):
    best: Trade
    worst: Trade


class Averages(TypedDict):
    avgWinner: Number
    avgLoser: Number


class TagStat(TypedDict):
    tagId: str
    tagName: Optional[str]
    tagColor: Optional[str]
    tagEmoji: Optional[str]
    totalPL: Number
    trades: int
    wins: int
    losses: int
    winRate: int


class DayTotal(TypedDict):
    totalPL: Number
    tradeCount: int


class MonthSummary(TypedDict):
    totalPL: Number
    tradeCount: int
    winCount: int
    lossCount: int
    winRate: int


class DashboardSummary(TypedDict, total=False):
    """Everything the yearly dashboard renders, as returned by dashboard_summary."""

    year: int
    months: List[MonthStat]
    totals: YearlyTotals
    averages: Averages
    avgPLPerTrade: Number
    bestWorst: Optional[BestWorst]
    accountBalance: Number
    tagPerformance: List[TagStat]
    settings: Dict[str, Any]

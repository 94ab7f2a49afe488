"""Application container and core API entrypoints for TradeZen.

``JournalApp`` wires the session, remote client, backing store, journal
repository and settings synchronizer together; it is built once with
``create_app`` and handed to whatever view layer sits on top. The pure
``dashboard_summary`` and ``month_view`` functions turn trade lists into
what those views render.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from tradezen.config.constants import DEFAULT_SETTINGS, AppConfig
from tradezen.errors import AuthDenied, JournalError, Unauthenticated
from tradezen.models.core import DashboardSummary, Trade
from tradezen.services import metrics
from tradezen.services.backing_store import BackingStore
from tradezen.services.credentials import CredentialProvider, GoogleOAuthProvider
from tradezen.services.journal import JournalRepository
from tradezen.services.local_store import LocalStore, MemoryStore
from tradezen.services.remote import SheetsClient
from tradezen.services.session import SessionManager
from tradezen.services.settings_sync import SettingsSynchronizer

log = logging.getLogger(__name__)


def dashboard_summary(
    trades: List[Trade],
    year: int,
    settings: Optional[Dict[str, Any]] = None,
) -> DashboardSummary:
    """Compute every figure the yearly dashboard shows.

    Args:
        trades: All trades; only those dated in ``year`` are used.
        year: Calendar year to summarize.
        settings: Merged settings (startingBalance is read); defaults if None.

    Returns:
        Monthly breakdown, yearly totals, averages, best/worst (None when the
        year has no trades), account balance and tag performance.
    """
    settings = dict(DEFAULT_SETTINGS if settings is None else settings)
    year_trades = metrics.filter_by_year(trades, year)
    months = metrics.monthly_breakdown(year_trades, year)
    totals = metrics.yearly_totals(months)
    try:
        balance = metrics.account_balance(settings.get("startingBalance"), totals["totalPL"])
    except ValueError:
        log.warning("Ignoring non-numeric startingBalance %r", settings.get("startingBalance"))
        balance = metrics.account_balance(0, totals["totalPL"])
    return {
        "year": year,
        "months": months,
        "totals": totals,
        "averages": metrics.averages(year_trades),
        "avgPLPerTrade": metrics.avg_pl_per_trade(totals["totalPL"], totals["totalTrades"]),
        "bestWorst": metrics.best_worst(year_trades),
        "accountBalance": balance,
        "tagPerformance": metrics.tag_performance(year_trades),
        "settings": settings,
    }


def month_view(trades: List[Trade], year: int, month: int) -> Dict[str, Any]:
    """Calendar / list view data for one month (month is 0-based)."""
    month_trades = metrics.filter_by_month(trades, year, month)
    return {
        "year": year,
        "month": month,
        "trades": month_trades,
        "summary": metrics.month_summary(month_trades),
        "days": metrics.daily_totals(month_trades),
        "byDate": metrics.group_by_date(month_trades),
        "dayOrder": metrics.list_days(month_trades),
        "tagPerformance": metrics.tag_performance(month_trades),
    }


@dataclass
class JournalApp:
    """Explicitly constructed state container; no module-level singletons."""

    store: MemoryStore
    session: SessionManager
    client: SheetsClient
    backing: BackingStore
    journal: JournalRepository
    settings: SettingsSynchronizer

    async def start(self) -> None:
        """Sign in, attach to the spreadsheet and hydrate settings.

        Raises AuthDenied if the user refuses consent. Remote failures after
        sign-in are logged; the app stays usable with cached settings.
        """
        await self.session.initialize()
        await self.session.sign_in()
        try:
            await self.session.validate(self.backing.get_or_create_spreadsheet)
            if not self.client.spreadsheet_id:
                await self.backing.get_or_create_spreadsheet()
        except (Unauthenticated, AuthDenied):
            raise
        except JournalError as exc:
            log.error("Could not attach to spreadsheet: %s", exc)
        await self.settings.load()

    async def close(self) -> None:
        """Flush pending settings writes and cancel the renewal timer."""
        await self.settings.flush()
        self.session.close()

    def sign_out(self) -> None:
        self.session.sign_out()

    async def dashboard(self, year: int) -> DashboardSummary:
        trades = await self.journal.list_trades()
        return dashboard_summary(trades, year, self.settings.settings)

    async def month(self, year: int, month: int) -> Dict[str, Any]:
        trades = await self.journal.list_trades()
        return month_view(trades, year, month)


def create_app(
    config: AppConfig,
    provider: CredentialProvider,
    http: Optional[requests.Session] = None,
    store: Optional[MemoryStore] = None,
    on_signed_out: Optional[Callable[[Exception], None]] = None,
) -> JournalApp:
    """Build a JournalApp; ``store`` defaults to the JSON state file under config.data_dir.

    ``on_signed_out`` is called when a background token renewal fails and the
    view must send the user back to sign-in.
    A GoogleOAuthProvider built without a store shares this one, so its
    refresh token survives restarts.
    """
    store = store if store is not None else LocalStore(config.state_file)
    if isinstance(provider, GoogleOAuthProvider) and provider.store is None:
        provider.store = store
    session = SessionManager(provider, store, on_signed_out=on_signed_out)
    client = SheetsClient(lambda: session.access_token, spreadsheet_id=None, http=http)
    return JournalApp(
        store=store,
        session=session,
        client=client,
        backing=BackingStore(client, store),
        journal=JournalRepository(client),
        settings=SettingsSynchronizer(client, store),
    )

"""Settings synchronizer: local settings cache kept in step with the Settings sheet.

Writes are two-phase. The in-memory settings (and the local cache) change
synchronously; the remote write runs as a task the caller may await or
ignore. A failed remote write is logged and reported through that task
but never rolls back the local change.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from tradezen.config.constants import SETTING_COLUMNS, SHEET_SETTINGS, STORAGE_KEYS
from tradezen.errors import JournalError
from tradezen.services.remote import SheetsClient
from tradezen.services.rows import merge_settings, settings_from_rows, settings_to_rows

log = logging.getLogger(__name__)

SETTINGS_RANGE = "A2:B"


class SettingsSynchronizer:
    """Holds the merged settings and syncs them with the remote key/value sheet."""

    def __init__(self, client: SheetsClient, store: Any) -> None:
        self.client = client
        self.store = store
        cached = store.get(STORAGE_KEYS["SETTINGS"])
        self._settings: Dict[str, Any] = merge_settings(cached if isinstance(cached, dict) else None)
        self.loaded = False
        self._load_task: Optional[asyncio.Task] = None
        # Keys changed locally; they win over whatever a later load brings back
        self._touched: Set[str] = set()
        self._pending: Set[asyncio.Task] = set()

    @property
    def settings(self) -> Dict[str, Any]:
        return dict(self._settings)

    def get(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    @property
    def currency(self) -> str:
        return self._settings["currency"]

    @property
    def privacy_mode(self) -> bool:
        return bool(self._settings.get("privacyMode"))

    async def load(self) -> Dict[str, Any]:
        """
        Fetch remote settings once and merge them over the defaults.

        Concurrent callers share the same fetch. If the fetch fails, or no
        spreadsheet is attached yet, the current settings are kept and a
        later call tries again.
        """
        if self.loaded:
            return self.settings
        if self._load_task is None:
            self._load_task = asyncio.get_running_loop().create_task(self._fetch())
        ok = await self._load_task
        if not ok:
            self._load_task = None
        return self.settings

    async def _fetch(self) -> bool:
        if not self.client.spreadsheet_id:
            # Not loaded: a later load() fetches once the sheet is attached
            log.info("No sheet ID yet, keeping cached settings")
            return False
        try:
            data = await asyncio.to_thread(self.client.get_rows, SHEET_SETTINGS, SETTINGS_RANGE)
        except JournalError as exc:
            log.error("Failed to fetch settings: %s", exc)
            return False

        remote = settings_from_rows(data)
        log.debug("Received %d settings rows", len(data))
        merged = merge_settings(remote)
        merged.update({k: self._settings[k] for k in self._touched if k in self._settings})
        self._settings = merged
        self._save_local()
        self.loaded = True
        log.info("Local settings synced from remote store")
        return True

    def update(self, partial: Dict[str, Any]) -> "asyncio.Task[bool]":
        """
        Apply ``partial`` locally right away and persist the merged settings remotely.

        Must be called from a running event loop. Returns the remote-write
        task, which resolves to False if the write failed.
        """
        self._settings.update(partial)
        self._touched.update(partial)
        self._save_local()
        task = asyncio.get_running_loop().create_task(self._push())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def set_option(self, key: str, value: Any) -> "asyncio.Task[bool]":
        return self.update({key: value})

    def toggle_privacy(self) -> "asyncio.Task[bool]":
        return self.set_option("privacyMode", not self.privacy_mode)

    async def _push(self) -> bool:
        if not self.loaded:
            # Merge remote keys first so the full write does not drop them
            await self.load()
        if not self.loaded:
            # Writing now would overwrite remote keys we never read
            log.warning("Settings not loaded from remote, change kept locally only")
            return False
        data = settings_to_rows(self._settings)
        end_col = chr(ord("A") + len(SETTING_COLUMNS) - 1)
        try:
            await asyncio.to_thread(
                self.client.update_rows, SHEET_SETTINGS, f"A2:{end_col}{len(data) + 1}", data
            )
        except JournalError as exc:
            log.error("Failed to update settings: %s", exc)
            return False
        log.debug("Settings synced: %s", sorted(self._settings))
        return True

    async def flush(self) -> None:
        """Wait for outstanding remote writes (used at shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    def _save_local(self) -> None:
        self.store.set(STORAGE_KEYS["SETTINGS"], dict(self._settings))

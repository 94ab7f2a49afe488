"""Locate (or provision) the user's spreadsheet and screenshot folder.

Ids are cached locally and survive sign-out, so signing back in reattaches
to the same spreadsheet instead of creating a new one. A cached id that no
longer resolves falls back to "search Drive, then create".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from tradezen.config.constants import (
    DRIVE_FOLDER_NAME,
    FOLDER_MIME,
    GOOGLE_THUMBNAIL_URL,
    IMAGE_MIME,
    SCREENSHOTS_FOLDER_NAME,
    SETTING_COLUMNS,
    SHEET_NAME,
    SHEET_ROW_COUNT,
    SHEET_SETTINGS,
    SHEET_TAGS,
    SHEET_TRADES,
    SPREADSHEET_MIME,
    STORAGE_KEYS,
    TAG_COLUMNS,
    TRADE_COLUMNS,
)
from tradezen.errors import NotFound, RemoteUnavailable
from tradezen.services.remote import SheetsClient

log = logging.getLogger(__name__)

SHEET_LAYOUT = {
    SHEET_TRADES: TRADE_COLUMNS,
    SHEET_TAGS: TAG_COLUMNS,
    SHEET_SETTINGS: SETTING_COLUMNS,
}


def screenshot_display_name(filename: str) -> str:
    """Turn ``uuid_YYYY-MM-DD_HH-MM.jpg`` into ``Trade_YYYY-MM-DD_HH-MM.jpg``."""
    parts = filename.split("_")
    if len(parts) < 2:
        return filename
    date = parts[1]
    time = parts[2].replace(".jpg", "") if len(parts) > 2 else ""
    return f"Trade_{date}_{time or 'unknown'}.jpg"


def image_url(file_id: str, size: int = 800) -> str:
    return f"{GOOGLE_THUMBNAIL_URL}?id={file_id}&sz=w{size}"


def header_requests(sheets: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """batchUpdate requests writing the header row of each known sheet."""
    out = []
    for sheet in sheets:
        props = sheet.get("properties", {})
        columns = SHEET_LAYOUT.get(props.get("title"))
        if columns is None:
            continue
        out.append({
            "updateCells": {
                "range": {"sheetId": props.get("sheetId"), "startRowIndex": 0, "endRowIndex": 1},
                "rows": [{"values": [{"userEnteredValue": {"stringValue": c}} for c in columns]}],
                "fields": "userEnteredValue",
            }
        })
    return out


class BackingStore:
    """Finds the spreadsheet and Drive folder that hold this user's journal."""

    def __init__(self, client: SheetsClient, store: Any) -> None:
        self.client = client
        self.store = store

    async def get_or_create_spreadsheet(self) -> str:
        saved = self.store.get(STORAGE_KEYS["SHEET_ID"])
        if saved:
            try:
                await asyncio.to_thread(self.client.get_spreadsheet, saved)
                return self._use_spreadsheet(saved)
            except NotFound:
                log.info("Saved sheet not accessible, searching Drive...")

        query = f"name='{SHEET_NAME}' and mimeType='{SPREADSHEET_MIME}' and trashed=false"
        try:
            files = await asyncio.to_thread(self.client.list_files, query, "createdTime desc")
        except RemoteUnavailable as exc:
            log.warning("Could not search Drive, creating new sheet: %s", exc)
            files = []
        if files:
            log.info("Found existing %s sheet, reusing it", SHEET_NAME)
            return self._use_spreadsheet(files[0]["id"])

        log.info("Creating new %s sheet", SHEET_NAME)
        layout = [
            {"properties": {"title": title, "gridProperties": {"rowCount": SHEET_ROW_COUNT, "columnCount": len(cols)}}}
            for title, cols in SHEET_LAYOUT.items()
        ]
        created = await asyncio.to_thread(self.client.create_spreadsheet, SHEET_NAME, layout)
        sheet_id = self._use_spreadsheet(created["spreadsheetId"])
        await asyncio.to_thread(self.client.batch_update, header_requests(created.get("sheets", [])))
        return sheet_id

    def _use_spreadsheet(self, sheet_id: str) -> str:
        self.store.set(STORAGE_KEYS["SHEET_ID"], sheet_id)
        self.client.spreadsheet_id = sheet_id
        return sheet_id

    async def get_or_create_drive_folder(self) -> str:
        """Return the id of ``TradeZen/Screenshots``, creating folders as needed."""
        saved = self.store.get(STORAGE_KEYS["DRIVE_FOLDER_ID"])
        if saved:
            try:
                await asyncio.to_thread(self.client.get_file, saved)
                return saved
            except NotFound:
                log.info("Saved folder not found, searching/creating...")

        main_id = await self._find_or_create_folder(DRIVE_FOLDER_NAME)
        screenshots_id = await self._find_or_create_folder(SCREENSHOTS_FOLDER_NAME, main_id)
        self.store.set(STORAGE_KEYS["DRIVE_FOLDER_ID"], screenshots_id)
        return screenshots_id

    async def _find_or_create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        query = f"name='{name}' and mimeType='{FOLDER_MIME}' and trashed=false"
        if parent_id:
            query = f"name='{name}' and '{parent_id}' in parents and mimeType='{FOLDER_MIME}' and trashed=false"
        files = await asyncio.to_thread(self.client.list_files, query)
        if files:
            return files[0]["id"]
        log.info("Creating Drive folder %s", name)
        return await asyncio.to_thread(self.client.create_folder, name, parent_id)

    async def upload_image(self, data: bytes, filename: str) -> str:
        """Upload a trade screenshot; returns the Drive file id stored as the trade's imageRef."""
        folder_id = await self.get_or_create_drive_folder()
        metadata = {"name": screenshot_display_name(filename), "parents": [folder_id], "mimeType": IMAGE_MIME}
        return await asyncio.to_thread(self.client.upload_blob, data, metadata)

"""Trade and tag CRUD against the Trades / Tags sheets."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tradezen.config.constants import SHEET_TAGS, SHEET_TRADES, TAG_COLUMNS, TRADE_COLUMNS
from tradezen.errors import NotFound
from tradezen.models.core import Number, Tag, Trade
from tradezen.services import metrics, rows
from tradezen.services.remote import SheetsClient

log = logging.getLogger(__name__)

_LAST_TRADE_COL = chr(ord("A") + len(TRADE_COLUMNS) - 1)  # L
_LAST_TAG_COL = chr(ord("A") + len(TAG_COLUMNS) - 1)  # E
TRADE_DATA_RANGE = f"A2:{_LAST_TRADE_COL}"
TAG_DATA_RANGE = f"A2:{_LAST_TAG_COL}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def new_trade(
    date: str,
    amount: Number,
    tag: Optional[Tag] = None,
    time: str = "",
    notes: str = "",
    image_ref: Optional[str] = None,
) -> Trade:
    """
    Build an unsaved trade record from form input.

    The tag's name, colour and emoji are copied onto the trade here; later
    edits to the Tag do not change this snapshot.
    """
    trade: Trade = {
        "date": date,
        "time": time,
        "amount": rows.parse_amount(amount),
        "tagId": None,
        "tagName": "",
        "tagColor": "",
        "tagEmoji": "",
        "imageRef": image_ref,
        "notes": notes,
    }
    if tag:
        trade.update({
            "tagId": tag["tagId"],
            "tagName": tag.get("name", ""),
            "tagColor": tag.get("color", ""),
            "tagEmoji": tag.get("emoji", ""),
        })
    return trade


def _row_index(data: Sequence[Sequence[Any]], record_id: str) -> int:
    for i, row in enumerate(data):
        if row and str(row[0]) == record_id:
            return i
    return -1


class JournalRepository:
    """Reads and writes journal rows through the remote tabular store."""

    def __init__(self, client: SheetsClient) -> None:
        self.client = client
        self._sheet_gids: Dict[Tuple[Optional[str], str], int] = {}

    # ---------- trades ----------
    async def list_trades(self) -> List[Trade]:
        """All trades in sheet order. Rows that fail to parse are logged and skipped."""
        data = await asyncio.to_thread(self.client.get_rows, SHEET_TRADES, TRADE_DATA_RANGE)
        trades: List[Trade] = []
        for n, row in enumerate(data, start=2):
            if not any(cell not in ("", None) for cell in row):
                continue
            try:
                trades.append(rows.parse_trade_row(row))
            except ValueError as exc:
                log.warning("Skipping malformed trade row %d: %s", n, exc)
        return trades

    async def month_trades(self, year: int, month: int) -> List[Trade]:
        return metrics.filter_by_month(await self.list_trades(), year, month)

    async def add_trade(self, trade: Trade) -> Trade:
        record: Trade = dict(trade)  # type: ignore[assignment]
        record.setdefault("tradeId", str(uuid.uuid4()))
        stamp = _now()
        record.setdefault("createdAt", stamp)
        record["updatedAt"] = stamp
        await asyncio.to_thread(self.client.append_rows, SHEET_TRADES, [rows.trade_to_row(record)])
        log.info("Added trade %s", record["tradeId"])
        return record

    async def update_trade(self, trade: Trade) -> Trade:
        """Replace a stored trade wholesale. Raises NotFound for an unknown tradeId."""
        data = await asyncio.to_thread(self.client.get_rows, SHEET_TRADES, TRADE_DATA_RANGE)
        idx = _row_index(data, trade["tradeId"])
        if idx < 0:
            raise NotFound(f"trade {trade['tradeId']} not found")
        record: Trade = dict(trade)  # type: ignore[assignment]
        if not record.get("createdAt"):
            existing = rows.parse_trade_row(data[idx])
            record["createdAt"] = existing.get("createdAt", "")
        record["updatedAt"] = _now()
        row_no = idx + 2
        await asyncio.to_thread(
            self.client.update_rows,
            SHEET_TRADES,
            f"A{row_no}:{_LAST_TRADE_COL}{row_no}",
            [rows.trade_to_row(record)],
        )
        log.info("Updated trade %s", record["tradeId"])
        return record

    async def delete_trade(self, trade_id: str) -> None:
        await self._delete_row(SHEET_TRADES, TRADE_DATA_RANGE, trade_id)
        log.info("Deleted trade %s", trade_id)

    # ---------- tags ----------
    async def list_tags(self) -> List[Tag]:
        data = await asyncio.to_thread(self.client.get_rows, SHEET_TAGS, TAG_DATA_RANGE)
        return sorted(rows.parse_tag_rows(data), key=lambda t: t["order"])

    async def add_tag(self, name: str, color: str, emoji: str, order: Optional[int] = None) -> Tag:
        if order is None:
            order = len(await self.list_tags())
        tag: Tag = {"tagId": str(uuid.uuid4()), "name": name, "color": color, "emoji": emoji, "order": order}
        await asyncio.to_thread(self.client.append_rows, SHEET_TAGS, [rows.tag_to_row(tag)])
        log.info("Added tag %s (%s)", tag["tagId"], name)
        return tag

    async def update_tag(self, tag: Tag) -> Tag:
        """Replace a tag definition. Trades already recorded keep their old snapshot."""
        data = await asyncio.to_thread(self.client.get_rows, SHEET_TAGS, TAG_DATA_RANGE)
        idx = _row_index(data, tag["tagId"])
        if idx < 0:
            raise NotFound(f"tag {tag['tagId']} not found")
        row_no = idx + 2
        await asyncio.to_thread(
            self.client.update_rows,
            SHEET_TAGS,
            f"A{row_no}:{_LAST_TAG_COL}{row_no}",
            [rows.tag_to_row(tag)],
        )
        return tag

    async def delete_tag(self, tag_id: str) -> None:
        """Remove a tag. Trades referencing it are left untouched."""
        await self._delete_row(SHEET_TAGS, TAG_DATA_RANGE, tag_id)
        log.info("Deleted tag %s", tag_id)

    async def _sheet_gid(self, sheet: str) -> int:
        """Numeric sheetId of a tab, looked up once per spreadsheet."""
        key = (self.client.spreadsheet_id, sheet)
        if key not in self._sheet_gids:
            meta = await asyncio.to_thread(self.client.get_spreadsheet, self.client.spreadsheet_id)
            for entry in meta.get("sheets", []):
                props = entry.get("properties", {})
                self._sheet_gids[(self.client.spreadsheet_id, props.get("title"))] = props.get("sheetId")
        gid = self._sheet_gids.get(key)
        if gid is None:
            raise NotFound(f"sheet {sheet} not found")
        return gid

    async def _delete_row(self, sheet: str, data_range: str, record_id: str) -> None:
        """Remove the matching row in one request; the rows below shift up."""
        data = await asyncio.to_thread(self.client.get_rows, sheet, data_range)
        idx = _row_index(data, record_id)
        if idx < 0:
            raise NotFound(f"{sheet} row {record_id} not found")
        gid = await self._sheet_gid(sheet)
        # Data starts on row 2, i.e. 0-based grid row 1
        request = {
            "deleteDimension": {
                "range": {"sheetId": gid, "dimension": "ROWS", "startIndex": idx + 1, "endIndex": idx + 2}
            }
        }
        await asyncio.to_thread(self.client.batch_update, [request])

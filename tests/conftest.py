"""Pytest configuration: src on path, plus in-memory fakes for the remote store and token issuer."""

import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import pytest

_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.is_dir() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from tradezen.errors import AuthDenied, NotFound, RemoteUnavailable  # noqa: E402
from tradezen.services.local_store import MemoryStore  # noqa: E402

_RANGE_RE = re.compile(r"^[A-Z]+(\d+)(?::[A-Z]+(\d+)?)?$")


def _rows_span(range_spec: str):
    """Map an A1 range like A2:L or A5:L5 to 0-based data row slice bounds."""
    m = _RANGE_RE.match(range_spec)
    if not m:
        return 0, None
    start = int(m.group(1)) - 2
    end = int(m.group(2)) - 1 if m.group(2) else None
    return max(start, 0), end


class FakeRemote:
    """In-memory stand-in for SheetsClient; each sheet holds data rows only (no header)."""

    def __init__(self, spreadsheet_id: Optional[str] = "sheet-1") -> None:
        self.spreadsheet_id = spreadsheet_id
        self.sheets: Dict[str, List[List[Any]]] = {"Trades": [], "Tags": [], "Settings": []}
        self.calls: List[tuple] = []
        self.fail = False
        # Method names that raise RemoteUnavailable while the rest keep working
        self.fail_on: Set[str] = set()

    def _check(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if self.fail or name in self.fail_on:
            raise RemoteUnavailable(f"{name} failed")
        if not self.spreadsheet_id:
            raise NotFound("no spreadsheet selected")

    def get_rows(self, sheet: str, range_spec: Optional[str] = None) -> List[List[Any]]:
        self._check("get_rows", sheet, range_spec)
        start, end = _rows_span(range_spec or "A2")
        return [list(r) for r in self.sheets[sheet][start:end]]

    def update_rows(self, sheet: str, range_spec: str, rows: List[List[Any]]) -> None:
        self._check("update_rows", sheet, range_spec, rows)
        start, _ = _rows_span(range_spec)
        data = self.sheets[sheet]
        for offset, row in enumerate(rows):
            idx = start + offset
            while len(data) <= idx:
                data.append([])
            data[idx] = list(row)

    def append_rows(self, sheet: str, rows: List[List[Any]]) -> None:
        self._check("append_rows", sheet, rows)
        self.sheets[sheet].extend(list(r) for r in rows)

    def clear_range(self, sheet: str, range_spec: str) -> None:
        self._check("clear_range", sheet, range_spec)
        start, end = _rows_span(range_spec)
        data = self.sheets[sheet]
        stop = len(data) if end is None else min(end, len(data))
        del data[start:stop]

    def get_spreadsheet(self, sheet_id: str) -> Dict[str, Any]:
        self._check("get_spreadsheet", sheet_id)
        return {
            "spreadsheetId": sheet_id,
            "sheets": [{"properties": {"title": title, "sheetId": gid}} for gid, title in enumerate(self.sheets)],
        }

    def batch_update(self, requests_: List[Dict[str, Any]]) -> None:
        """Apply deleteDimension row requests; other request kinds are only recorded."""
        self._check("batch_update", requests_)
        titles = list(self.sheets)
        for req in requests_:
            rng = req.get("deleteDimension", {}).get("range")
            if rng and rng["dimension"] == "ROWS":
                # Grid row 0 is the header, which the fake does not store
                del self.sheets[titles[rng["sheetId"]]][rng["startIndex"] - 1 : rng["endIndex"] - 1]


class FakeProvider:
    """Credential provider handing out tok-1, tok-2, ... ; can be told to refuse."""

    def __init__(self) -> None:
        self.loads = 0
        self.requests: List[bool] = []
        self.deny_consent = False
        self.deny_silent = False
        self._n = 0

    def load(self) -> None:
        self.loads += 1

    def request_token(self, silent: bool) -> str:
        self.requests.append(silent)
        if (silent and self.deny_silent) or (not silent and self.deny_consent):
            raise AuthDenied("refused")
        self._n += 1
        return f"tok-{self._n}"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_trade():
    """Factory for trade dicts with sensible defaults."""
    from decimal import Decimal

    counter = {"n": 0}

    def _make(amount: Any, date: str = "2024-03-15", tag_id: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
        counter["n"] += 1
        trade = {
            "tradeId": extra.pop("tradeId", f"t{counter['n']}"),
            "date": date,
            "time": "09:30",
            "amount": Decimal(str(amount)),
            "tagId": tag_id,
            "tagName": extra.pop("tagName", f"Tag {tag_id}" if tag_id else ""),
            "tagColor": extra.pop("tagColor", "#3b82f6" if tag_id else ""),
            "tagEmoji": extra.pop("tagEmoji", "🚀" if tag_id else ""),
            "imageRef": None,
            "notes": "",
        }
        trade.update(extra)
        return trade

    return _make

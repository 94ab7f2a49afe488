"""Remote tabular store client (Google Sheets v4 + Drive v3 over requests).

Every call is scoped to the current access token, obtained from
``token_source`` at request time so a renewed token is picked up without
rebuilding the client. HTTP outcomes are mapped onto ``tradezen.errors``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

from tradezen.config.constants import (
    FOLDER_MIME,
    GOOGLE_DRIVE_API_V3,
    GOOGLE_DRIVE_UPLOAD_API,
    GOOGLE_SHEETS_API,
    HTTP_TIMEOUT,
)
from tradezen.errors import NotFound, RemoteUnavailable, Unauthenticated

log = logging.getLogger(__name__)

Row = List[Any]


def a1_range(sheet: str, range_spec: Optional[str] = None) -> str:
    """Build an A1 range such as ``Trades!A2:L``."""
    return f"{sheet}!{range_spec}" if range_spec else sheet


class SheetsClient:
    """Thin request/response wrapper over the spreadsheet and file APIs."""

    def __init__(
        self,
        token_source: Callable[[], Optional[str]],
        spreadsheet_id: Optional[str] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        self._token_source = token_source
        self.spreadsheet_id = spreadsheet_id
        self.http = http or requests.Session()

    # ---------- transport ----------
    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        token = self._token_source()
        if not token:
            raise Unauthenticated(f"{method} {url}: no access token")
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {token}"
        try:
            resp = self.http.request(method, url, headers=headers, timeout=HTTP_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise RemoteUnavailable(f"{method} {url}: {exc}") from exc

        status = resp.status_code
        if status in (401, 403):
            raise Unauthenticated(f"{method} {url}: HTTP {status}")
        if status == 404:
            raise NotFound(f"{method} {url}: HTTP 404")
        if status >= 400:
            raise RemoteUnavailable(f"{method} {url}: HTTP {status}")
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteUnavailable(f"{method} {url}: invalid JSON response") from exc

    def _sheet_url(self, suffix: str = "") -> str:
        if not self.spreadsheet_id:
            raise NotFound("no spreadsheet selected")
        return f"{GOOGLE_SHEETS_API}/{self.spreadsheet_id}{suffix}"

    def _values_url(self, rng: str, action: str = "") -> str:
        return self._sheet_url(f"/values/{quote(rng, safe='')}{action}")

    # ---------- values ----------
    def get_rows(self, sheet: str, range_spec: Optional[str] = None) -> List[Row]:
        """Return the rows of a range; trailing empty cells are omitted by the API."""
        data = self._request(
            "GET",
            self._values_url(a1_range(sheet, range_spec)),
            params={"valueRenderOption": "UNFORMATTED_VALUE", "dateTimeRenderOption": "FORMATTED_STRING"},
        )
        return data.get("values", [])

    def update_rows(self, sheet: str, range_spec: str, rows: Sequence[Row]) -> None:
        self._request(
            "PUT",
            self._values_url(a1_range(sheet, range_spec)),
            params={"valueInputOption": "RAW"},
            json={"values": [list(r) for r in rows]},
        )

    def append_rows(self, sheet: str, rows: Sequence[Row]) -> None:
        self._request(
            "POST",
            self._values_url(a1_range(sheet, "A:A"), ":append"),
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [list(r) for r in rows]},
        )

    def clear_range(self, sheet: str, range_spec: str) -> None:
        self._request("POST", self._values_url(a1_range(sheet, range_spec), ":clear"), json={})

    # ---------- spreadsheets ----------
    def get_spreadsheet(self, spreadsheet_id: str) -> Dict[str, Any]:
        """Fetch spreadsheet metadata. Raises NotFound if it no longer exists."""
        return self._request(
            "GET",
            f"{GOOGLE_SHEETS_API}/{spreadsheet_id}",
            params={"fields": "spreadsheetId,sheets.properties"},
        )

    def create_spreadsheet(self, title: str, sheets: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request(
            "POST",
            GOOGLE_SHEETS_API,
            json={"properties": {"title": title}, "sheets": list(sheets)},
        )

    def batch_update(self, requests_: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request("POST", self._sheet_url(":batchUpdate"), json={"requests": list(requests_)})

    # ---------- drive ----------
    def list_files(self, query: str, order_by: Optional[str] = None) -> List[Dict[str, str]]:
        params = {"q": query, "fields": "files(id, name)"}
        if order_by:
            params["orderBy"] = order_by
        return self._request("GET", GOOGLE_DRIVE_API_V3, params=params).get("files", [])

    def get_file(self, file_id: str) -> Dict[str, Any]:
        return self._request("GET", f"{GOOGLE_DRIVE_API_V3}/{file_id}", params={"fields": "id, name"})

    def create_file(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", GOOGLE_DRIVE_API_V3, params={"fields": "id"}, json=metadata)

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        metadata: Dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME}
        if parent_id:
            metadata["parents"] = [parent_id]
        return self.create_file(metadata)["id"]

    def upload_blob(self, data: bytes, metadata: Dict[str, Any]) -> str:
        """Upload binary content with its metadata in one multipart request; returns the file id."""
        files = {
            "metadata": (None, json.dumps(metadata), "application/json"),
            "file": (metadata.get("name", "upload"), data, metadata.get("mimeType", "application/octet-stream")),
        }
        result = self._request("POST", GOOGLE_DRIVE_UPLOAD_API, params={"uploadType": "multipart"}, files=files)
        log.debug("Uploaded %s (%d bytes)", metadata.get("name"), len(data))
        return result["id"]

"""Global configuration constants for TradeZen.

These values are intentionally free of any UI concerns so they can be reused
by the services, the application container, and tests.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Default directory for locally persisted state (token, sheet ids, settings)
DEFAULT_DATA_DIR = Path.home() / ".tradezen"
LOCAL_STATE_FILE = "tradezen_state.json"

# Google API endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
GOOGLE_DRIVE_API_V3 = "https://www.googleapis.com/drive/v3/files"
GOOGLE_DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3/files"
GOOGLE_THUMBNAIL_URL = "https://drive.google.com/thumbnail"
GOOGLE_SCOPES = " ".join([
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
])
OOB_REDIRECT_URI = "http://localhost"
HTTP_TIMEOUT = 15

# Google access tokens are valid for one hour; renew with 1/6 of it left
TOKEN_LIFETIME_SECONDS = 60 * 60
RENEWAL_FRACTION = 5 / 6

# Spreadsheet / Drive layout
SHEET_NAME = "TradeZen"
DRIVE_FOLDER_NAME = "TradeZen"
SCREENSHOTS_FOLDER_NAME = "Screenshots"
SPREADSHEET_MIME = "application/vnd.google-apps.spreadsheet"
FOLDER_MIME = "application/vnd.google-apps.folder"
IMAGE_MIME = "image/jpeg"

SHEET_TRADES = "Trades"
SHEET_TAGS = "Tags"
SHEET_SETTINGS = "Settings"

# Column order of each sheet (row 1 holds these headers)
TRADE_COLUMNS = [
    "tradeId",
    "date",
    "time",
    "amount",
    "tagId",
    "tagName",
    "tagColor",
    "tagEmoji",
    "imageRef",
    "notes",
    "createdAt",
    "updatedAt",
]
TAG_COLUMNS = ["tagId", "name", "color", "emoji", "order"]
SETTING_COLUMNS = ["key", "value"]
SHEET_ROW_COUNT = 1000

# Local storage keys
STORAGE_KEYS = {
    "AUTH_TOKEN": "tradezen_auth_token",
    "REFRESH_TOKEN": "tradezen_refresh_token",
    "SHEET_ID": "tradezen_sheet_id",
    "DRIVE_FOLDER_ID": "tradezen_drive_folder_id",
    "SETTINGS": "tradezen_settings",
    "SCHEMA_VERSION": "tradezen_schema_version",
}
SCHEMA_VERSION = 1

# Trades without a tag carry no tagId; older rows used this sentinel instead
NO_TAG_ID = "none"

DEFAULT_SETTINGS = {
    "currency": "$",
    "startingBalance": 0,
    "privacyMode": False,
}

PRIVACY_MASK = "****"
COLOR_PROFIT = "#10b981"  # Green
COLOR_LOSS = "#ef4444"    # Red
COLOR_NEUTRAL = "#94a3b8"  # Slate

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


@dataclass
class AppConfig:
    """Runtime configuration resolved from the environment."""

    data_dir: Path = DEFAULT_DATA_DIR
    client_id: str = ""
    client_secret: str = ""
    log_level: str = "INFO"

    @property
    def state_file(self) -> Path:
        return self.data_dir / LOCAL_STATE_FILE


def load_config() -> AppConfig:
    """Build an AppConfig from TRADEZEN_* / GOOGLE_* environment variables."""
    data_dir = os.environ.get("TRADEZEN_DATA_DIR")
    return AppConfig(
        data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
        client_id=os.environ.get("GOOGLE_CLIENT_ID", ""),
        client_secret=os.environ.get("GOOGLE_CLIENT_SECRET", ""),
        log_level=os.environ.get("TRADEZEN_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic stderr handler. Call once from the host process."""
    name = (level or os.environ.get("TRADEZEN_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

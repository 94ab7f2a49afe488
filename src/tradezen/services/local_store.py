"""Local persisted state: a JSON key-value file with schema migrations.

Holds what must survive a restart on this device: the cached access token,
the spreadsheet and Drive folder ids, and the last known settings.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from tradezen.config.constants import SCHEMA_VERSION, STORAGE_KEYS

log = logging.getLogger(__name__)

# Settings keys written by pre-versioned builds
_LEGACY_SETTING_KEYS = {
    "starting_balance": "startingBalance",
    "privacy_mode": "privacyMode",
}


def migrate_state(data: Dict[str, Any]) -> Dict[str, Any]:
    """Bring a loaded state dict up to SCHEMA_VERSION. Modifies data in place and returns it."""
    version = data.get(STORAGE_KEYS["SCHEMA_VERSION"], 0)
    if version < 1:
        settings = data.get(STORAGE_KEYS["SETTINGS"])
        if isinstance(settings, dict):
            for old, new in _LEGACY_SETTING_KEYS.items():
                if old in settings:
                    settings.setdefault(new, settings.pop(old))
    data[STORAGE_KEYS["SCHEMA_VERSION"]] = SCHEMA_VERSION
    return data


class MemoryStore:
    """In-memory key-value state with the LocalStore interface."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = migrate_state(dict(initial or {}))

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._data)

    def _flush(self) -> None:
        pass


class LocalStore(MemoryStore):
    """Key-value state persisted to a JSON file after every mutation."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        super().__init__(self.load())

    def load(self) -> Dict[str, Any]:
        """Read the state file. Returns an empty dict on a missing or unreadable file."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            log.warning("Ignoring unreadable state file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            log.warning("Ignoring malformed state file %s", self.path)
            return {}
        return data

    def _flush(self) -> None:
        """Write state to disk. Raises on I/O error."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=4, default=str)
        os.replace(tmp, self.path)

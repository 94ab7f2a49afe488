"""Tests for the settings synchronizer: load-once, optimistic updates, failure handling."""

import asyncio

from tradezen.config.constants import DEFAULT_SETTINGS, STORAGE_KEYS
from tradezen.services.settings_sync import SettingsSynchronizer


def test_defaults_before_load(remote, store) -> None:
    sync = SettingsSynchronizer(remote, store)
    assert sync.settings == DEFAULT_SETTINGS
    assert sync.loaded is False


def test_load_merges_remote_over_defaults(remote, store) -> None:
    """Remote values are coerced by shape and win per key; missing keys keep defaults."""
    remote.sheets["Settings"] = [["currency", "€"], ["privacyMode", "true"], ["riskPerTrade", "1.5"]]
    sync = SettingsSynchronizer(remote, store)

    settings = asyncio.run(sync.load())
    assert settings["currency"] == "€"
    assert settings["privacyMode"] is True
    assert settings["riskPerTrade"] == 1.5
    assert settings["startingBalance"] == DEFAULT_SETTINGS["startingBalance"]
    assert sync.loaded
    assert store.get(STORAGE_KEYS["SETTINGS"])["currency"] == "€"


def test_load_fetches_once(remote, store) -> None:
    """Repeated and concurrent loads share a single remote fetch."""
    sync = SettingsSynchronizer(remote, store)

    async def run():
        await asyncio.gather(sync.load(), sync.load())
        await sync.load()

    asyncio.run(run())
    assert [c[0] for c in remote.calls] == ["get_rows"]


def test_load_failure_keeps_cached_settings_and_retries(remote, store) -> None:
    store.set(STORAGE_KEYS["SETTINGS"], {"currency": "£"})
    remote.fail = True
    sync = SettingsSynchronizer(remote, store)

    settings = asyncio.run(sync.load())
    assert settings["currency"] == "£"
    assert not sync.loaded

    remote.fail = False
    remote.sheets["Settings"] = [["currency", "¥"]]
    assert asyncio.run(sync.load())["currency"] == "¥"


def test_load_without_spreadsheet_uses_defaults(remote, store) -> None:
    remote.spreadsheet_id = None
    sync = SettingsSynchronizer(remote, store)
    assert asyncio.run(sync.load()) == DEFAULT_SETTINGS
    assert remote.calls == []
    assert not sync.loaded


def test_load_after_spreadsheet_attached_fetches_remote(remote, store) -> None:
    """Settings read before the sheet is known must not later overwrite remote values."""
    remote.sheets["Settings"] = [["currency", "$"], ["startingBalance", "5000"], ["privacyMode", "false"]]
    remote.spreadsheet_id = None
    sync = SettingsSynchronizer(remote, store)

    async def run():
        await sync.load()
        remote.spreadsheet_id = "sheet-1"
        await sync.load()
        return await sync.set_option("privacyMode", True)

    assert asyncio.run(run()) is True
    assert sync.get("startingBalance") == 5000
    assert ["startingBalance", "5000"] in remote.sheets["Settings"]
    assert ["privacyMode", "true"] in remote.sheets["Settings"]


def test_update_without_loaded_settings_is_local_only(remote, store) -> None:
    """A change made while the remote is unreadable is kept locally, not written over the sheet."""
    remote.sheets["Settings"] = [["startingBalance", "5000"]]
    remote.fail = True
    sync = SettingsSynchronizer(remote, store)

    async def run():
        return await sync.set_option("currency", "€")

    assert asyncio.run(run()) is False
    assert sync.currency == "€"
    assert store.get(STORAGE_KEYS["SETTINGS"])["currency"] == "€"
    assert [c[0] for c in remote.calls] == ["get_rows"]
    assert remote.sheets["Settings"] == [["startingBalance", "5000"]]


def test_update_is_visible_before_remote_write(remote, store) -> None:
    """update() changes in-memory settings synchronously, then writes the full object."""
    sync = SettingsSynchronizer(remote, store)

    async def run():
        await sync.load()
        task = sync.update({"currency": "€"})
        seen_immediately = sync.currency
        ok = await task
        return seen_immediately, ok

    seen, ok = asyncio.run(run())
    assert seen == "€"
    assert ok is True
    assert ["currency", "€"] in remote.sheets["Settings"]
    assert ["privacyMode", "false"] in remote.sheets["Settings"]
    assert store.get(STORAGE_KEYS["SETTINGS"])["currency"] == "€"


def test_update_failure_does_not_roll_back(remote, store) -> None:
    sync = SettingsSynchronizer(remote, store)

    async def run():
        await sync.load()
        remote.fail = True
        return await sync.set_option("startingBalance", 2500)

    ok = asyncio.run(run())
    assert ok is False
    assert sync.get("startingBalance") == 2500
    assert store.get(STORAGE_KEYS["SETTINGS"])["startingBalance"] == 2500


def test_update_before_load_survives_load(remote, store) -> None:
    """A local change made while settings were still loading is not overwritten by the fetch."""
    remote.sheets["Settings"] = [["currency", "€"], ["startingBalance", "1000"]]
    sync = SettingsSynchronizer(remote, store)

    async def run():
        task = sync.set_option("currency", "$")
        await task
        await sync.flush()

    asyncio.run(run())
    assert sync.currency == "$"
    assert sync.get("startingBalance") == 1000
    assert ["startingBalance", "1000"] in remote.sheets["Settings"]


def test_toggle_privacy(remote, store) -> None:
    sync = SettingsSynchronizer(remote, store)

    async def run():
        await sync.load()
        await sync.toggle_privacy()

    asyncio.run(run())
    assert sync.privacy_mode is True

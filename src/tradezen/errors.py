"""Error taxonomy shared by the session, remote client and synchronizers."""

from __future__ import annotations


class JournalError(Exception):
    """Base class for all TradeZen errors."""


class AuthDenied(JournalError):
    """The user rejected consent, or a silent renewal was refused."""


class Unauthenticated(JournalError):
    """A remote call was attempted without a valid access credential."""


class RemoteUnavailable(JournalError):
    """Network or service failure talking to the remote store."""


class NotFound(JournalError):
    """A referenced remote resource (sheet, folder, row) is missing."""

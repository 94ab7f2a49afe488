"""Session manager: access-token lifecycle with silent background renewal.

A single asyncio event loop drives everything. The only background work is
the renewal timer, armed with ``loop.call_later`` and always cancelled
before being re-armed, so at most one renewal is ever pending.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tradezen.config.constants import RENEWAL_FRACTION, STORAGE_KEYS, TOKEN_LIFETIME_SECONDS
from tradezen.errors import AuthDenied, Unauthenticated
from tradezen.services.credentials import CredentialProvider

log = logging.getLogger(__name__)


class SessionManager:
    """Keeps a valid access token available to the remote-store client."""

    def __init__(
        self,
        provider: CredentialProvider,
        store: Any,
        token_lifetime: float = TOKEN_LIFETIME_SECONDS,
        on_signed_out: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self.token_lifetime = token_lifetime
        self.on_signed_out = on_signed_out
        self.initialized = False
        self._token: Optional[str] = None
        self._init_task: Optional[asyncio.Task] = None
        self._renewal: Optional[asyncio.TimerHandle] = None
        self._renewal_task: Optional[asyncio.Task] = None
        # Bumped on sign-out so a renewal already in flight cannot resurrect the session
        self._generation = 0

    @property
    def access_token(self) -> Optional[str]:
        return self._token

    @property
    def renewal_pending(self) -> bool:
        return self._renewal is not None

    @property
    def renewal_delay(self) -> float:
        """Seconds from issue to renewal: 5/6 of the token lifetime."""
        return self.token_lifetime * RENEWAL_FRACTION

    def is_signed_in(self) -> bool:
        return bool(self._token or self.store.get(STORAGE_KEYS["AUTH_TOKEN"]))

    async def initialize(self) -> None:
        """Load the provider once; concurrent callers await the same load."""
        if self.initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._load())
        try:
            await self._init_task
        except Exception:
            self._init_task = None
            raise

    async def _load(self) -> None:
        await asyncio.to_thread(self.provider.load)
        self.initialized = True
        log.debug("Credential provider loaded")

    async def sign_in(self) -> str:
        """
        Return an access token, prompting for consent only if none is cached.

        A cached token is reused without checking it; renewal is scheduled
        either way. Raises AuthDenied if the user refuses consent.
        """
        await self.initialize()
        cached = self._token or self.store.get(STORAGE_KEYS["AUTH_TOKEN"])
        if cached:
            self._token = cached
            self.schedule_renewal()
            log.info("Reusing cached access token")
            return cached

        token = await asyncio.to_thread(self.provider.request_token, False)
        self._accept(token)
        log.info("Signed in")
        return token

    def schedule_renewal(self) -> None:
        """Arm the one-shot renewal timer, replacing any pending one. Needs a running loop."""
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._renewal = loop.call_later(self.renewal_delay, self._on_renewal_due)
        log.debug("Token renewal scheduled in %.0f seconds", self.renewal_delay)

    def _on_renewal_due(self) -> None:
        self._renewal = None
        self._renewal_task = asyncio.get_running_loop().create_task(self._renew_in_background())

    async def _renew_in_background(self) -> None:
        try:
            await self.renew()
        except AuthDenied:
            # renew() already signed out and notified on_signed_out
            log.warning("Background token renewal failed; sign-in required")

    async def renew(self) -> str:
        """
        Silently fetch a new token and re-arm the timer.

        Any failure ends the session: the manager signs out, calls
        ``on_signed_out`` and raises AuthDenied so the caller restarts sign-in.
        """
        generation = self._generation
        try:
            token = await asyncio.to_thread(self.provider.request_token, True)
        except Exception as exc:
            log.error("Token refresh failed: %s", exc)
            self.sign_out()
            if self.on_signed_out is not None:
                self.on_signed_out(exc)
            if isinstance(exc, AuthDenied):
                raise
            raise AuthDenied(f"token renewal failed: {exc}") from exc

        if generation != self._generation:
            raise AuthDenied("signed out while renewing")
        self._accept(token)
        log.info("Token refreshed successfully")
        return token

    async def validate(self, probe: Callable[[], Awaitable[Any]]) -> None:
        """Run a cheap remote call; if the cached token is rejected, renew once."""
        try:
            await probe()
        except Unauthenticated:
            log.info("Cached token rejected by probe, renewing")
            await self.renew()

    def sign_out(self) -> None:
        """Drop the access token and the persisted refresh token. Spreadsheet and folder ids are kept.

        The next sign-in therefore asks for consent again.
        """
        self._cancel_timer()
        self._generation += 1
        self._token = None
        self.store.remove(STORAGE_KEYS["AUTH_TOKEN"])
        self.store.remove(STORAGE_KEYS["REFRESH_TOKEN"])
        log.info("Signed out")

    def close(self) -> None:
        """Shutdown teardown: cancel timers and in-flight renewal, keep the cached token."""
        self._cancel_timer()
        task = self._renewal_task
        if task is not None and not task.done():
            task.cancel()
        self._renewal_task = None

    def _accept(self, token: str) -> None:
        self._token = token
        self.store.set(STORAGE_KEYS["AUTH_TOKEN"], token)
        self.schedule_renewal()

    def _cancel_timer(self) -> None:
        if self._renewal is not None:
            self._renewal.cancel()
            self._renewal = None

"""Credential providers: obtain Google OAuth access tokens with or without user consent."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol
from urllib.parse import urlencode

import requests

from tradezen.config.constants import (
    GOOGLE_AUTH_URL,
    GOOGLE_SCOPES,
    GOOGLE_TOKEN_URL,
    HTTP_TIMEOUT,
    OOB_REDIRECT_URI,
    STORAGE_KEYS,
)
from tradezen.errors import AuthDenied

log = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    """What the session manager needs from a token issuer."""

    def load(self) -> None:
        """Prepare the provider; called once before the first token request."""

    def request_token(self, silent: bool) -> str:
        """Return a fresh access token or raise AuthDenied.

        silent=True must not involve the user.
        """


class GoogleOAuthProvider:
    """
    OAuth 2.0 authorization-code client for Google APIs.

    Interactive requests hand the consent URL to ``prompt_consent`` (which
    opens a browser, prints it, ...) and expect the authorization code back.
    Silent requests use the refresh token obtained during consent. When a
    ``store`` is given the refresh token is kept there, so silent renewal
    still works after a restart.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        prompt_consent: Callable[[str], Optional[str]],
        redirect_uri: str = OOB_REDIRECT_URI,
        scopes: str = GOOGLE_SCOPES,
        http: Optional[requests.Session] = None,
        store: Any = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.prompt_consent = prompt_consent
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.http = http
        self.store = store
        self._refresh_token: Optional[str] = None

    @property
    def refresh_token(self) -> Optional[str]:
        if self.store is not None:
            return self.store.get(STORAGE_KEYS["REFRESH_TOKEN"])
        return self._refresh_token

    @refresh_token.setter
    def refresh_token(self, value: Optional[str]) -> None:
        self._refresh_token = value
        if self.store is not None:
            self.store.set(STORAGE_KEYS["REFRESH_TOKEN"], value)

    def load(self) -> None:
        if not self.client_id:
            raise AuthDenied("GOOGLE_CLIENT_ID is not configured")
        if self.http is None:
            self.http = requests.Session()

    def consent_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scopes,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def request_token(self, silent: bool) -> str:
        if silent:
            if not self.refresh_token:
                raise AuthDenied("no refresh token; consent required")
            payload = {"grant_type": "refresh_token", "refresh_token": self.refresh_token}
        else:
            code = self.prompt_consent(self.consent_url())
            if not code:
                raise AuthDenied("consent was not granted")
            payload = {"grant_type": "authorization_code", "code": code, "redirect_uri": self.redirect_uri}
        payload.update({"client_id": self.client_id, "client_secret": self.client_secret})
        return self._exchange(payload)

    def _exchange(self, payload: dict) -> str:
        http = self.http or requests.Session()
        try:
            resp = http.post(GOOGLE_TOKEN_URL, data=payload, timeout=HTTP_TIMEOUT)
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            log.error("Token request failed: %s", exc)
            raise AuthDenied(f"token request failed: {exc}") from exc
        if resp.status_code >= 400 or "error" in data or "access_token" not in data:
            raise AuthDenied(f"token request refused: {data.get('error', resp.status_code)}")
        if data.get("refresh_token"):
            self.refresh_token = data["refresh_token"]
        return data["access_token"]

"""Tests for the Google OAuth provider: grants, refusals and refresh-token persistence."""

import asyncio

import pytest
import requests

from tradezen.config.constants import STORAGE_KEYS
from tradezen.errors import AuthDenied
from tradezen.services.credentials import GoogleOAuthProvider
from tradezen.services.local_store import LocalStore
from tradezen.services.session import SessionManager


class TokenResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload


class TokenHttp:
    """Answers token-endpoint POSTs from a queue and records the form bodies."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.posted = []

    def post(self, url, data=None, timeout=None):
        self.posted.append(data)
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


def _provider(http, store=None, code="code-1") -> GoogleOAuthProvider:
    provider = GoogleOAuthProvider("cid", "secret", prompt_consent=lambda url: code, http=http, store=store)
    provider.load()
    return provider


def test_consent_exchanges_code_and_keeps_refresh_token(store) -> None:
    http = TokenHttp(TokenResponse({"access_token": "a1", "refresh_token": "r1"}))
    provider = _provider(http, store)
    assert provider.request_token(False) == "a1"
    assert http.posted[0]["grant_type"] == "authorization_code"
    assert http.posted[0]["code"] == "code-1"
    assert store.get(STORAGE_KEYS["REFRESH_TOKEN"]) == "r1"


def test_silent_renewal_after_restart(tmp_path) -> None:
    """A new process reading the same state file can renew without consent."""
    path = tmp_path / "state.json"
    first = _provider(TokenHttp(TokenResponse({"access_token": "a1", "refresh_token": "r1"})), LocalStore(path))
    first.request_token(False)

    http = TokenHttp(TokenResponse({"access_token": "a2"}))
    restarted = _provider(http, LocalStore(path), code=None)
    assert restarted.request_token(True) == "a2"
    assert http.posted[0]["grant_type"] == "refresh_token"
    assert http.posted[0]["refresh_token"] == "r1"
    assert restarted.refresh_token == "r1"


def test_restarted_session_renews_cached_token(tmp_path) -> None:
    """The renewal due after a restart succeeds instead of signing the user out."""
    path = tmp_path / "state.json"
    seed = LocalStore(path)
    seed.set(STORAGE_KEYS["AUTH_TOKEN"], "a1")
    seed.set(STORAGE_KEYS["REFRESH_TOKEN"], "r1")

    store = LocalStore(path)
    provider = GoogleOAuthProvider(
        "cid", "secret", prompt_consent=lambda url: None, http=TokenHttp(TokenResponse({"access_token": "a2"})), store=store
    )
    seen = []
    mgr = SessionManager(provider, store, on_signed_out=seen.append)

    async def run():
        assert await mgr.sign_in() == "a1"
        token = await mgr.renew()
        mgr.close()
        return token

    assert asyncio.run(run()) == "a2"
    assert seen == []
    assert store.get(STORAGE_KEYS["AUTH_TOKEN"]) == "a2"


def test_silent_without_refresh_token_is_denied(store) -> None:
    http = TokenHttp()
    with pytest.raises(AuthDenied):
        _provider(http, store).request_token(True)
    assert http.posted == []


def test_refused_consent() -> None:
    with pytest.raises(AuthDenied):
        _provider(TokenHttp(), code=None).request_token(False)


@pytest.mark.parametrize(
    "response",
    [
        TokenResponse({"error": "invalid_grant"}, status_code=400),
        TokenResponse({"token_type": "Bearer"}),
        requests.ConnectionError("offline"),
    ],
)
def test_token_endpoint_failures_are_denied(store, response) -> None:
    store.set(STORAGE_KEYS["REFRESH_TOKEN"], "r1")
    with pytest.raises(AuthDenied):
        _provider(TokenHttp(response), store).request_token(True)


def test_load_requires_client_id() -> None:
    with pytest.raises(AuthDenied):
        GoogleOAuthProvider("", "secret", prompt_consent=lambda url: None).load()


def test_consent_url_asks_for_offline_access() -> None:
    url = GoogleOAuthProvider("cid", "secret", prompt_consent=lambda url: None).consent_url()
    assert "access_type=offline" in url
    assert "client_id=cid" in url

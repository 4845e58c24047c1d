"""Tests for credential injection."""

import threading
import time
from unittest import mock

import pytest
import requests

from lakedash.auth import credentials as credentials_module
from lakedash.auth.context import identity_context, token_from_headers
from lakedash.auth.credentials import (
    AccessToken,
    ClientCredentialsCredential,
    PassThroughCredential,
    StaticTokenCredential,
    TokenStorage,
    build_credential,
)
from lakedash.errors import AuthError
from lakedash.models.settings import AuthMethod, DatasourceSettings


class FakeResponse:
    def __init__(self, payload: dict, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> dict:
        return self.payload


@pytest.fixture
def token_endpoint(monkeypatch: pytest.MonkeyPatch) -> mock.Mock:
    post = mock.Mock(return_value=FakeResponse({"access_token": "abc", "token_type": "bearer", "expires_in": 3600}))
    monkeypatch.setattr(credentials_module.requests, "post", post)
    return post


class TestStaticToken:
    def test_sets_bearer(self):
        """Static token becomes a bearer header."""
        assert StaticTokenCredential("dapi123").headers() == {"Authorization": "Bearer dapi123"}

    def test_empty_token_fails(self):
        """An empty token is an auth error, not an empty header."""
        with pytest.raises(AuthError):
            StaticTokenCredential("").headers()

    def test_credentials_provider_protocol(self):
        """Calling the credential returns a header factory."""
        credential = StaticTokenCredential("dapi123")
        header_factory = credential()
        assert header_factory() == {"Authorization": "Bearer dapi123"}
        assert credential.auth_type() == "pat"


class TestClientCredentials:
    def test_exchange(self, token_endpoint: mock.Mock):
        """Exchanges id/secret for a token with the client-credentials grant."""
        credential = ClientCredentialsCredential("id", "secret", "https://idp/token", ["a", "b"])
        assert credential.headers() == {"Authorization": "Bearer abc"}

        args, kwargs = token_endpoint.call_args
        assert args == ("https://idp/token",)
        assert kwargs["data"] == {"grant_type": "client_credentials", "scope": "a b"}
        assert kwargs["auth"] == ("id", "secret")

    def test_token_cached(self, token_endpoint: mock.Mock):
        """A valid token is reused across requests."""
        credential = ClientCredentialsCredential("id", "secret", "https://idp/token")
        credential.headers()
        credential.headers()
        assert token_endpoint.call_count == 1

    def test_expired_token_refreshed(self, token_endpoint: mock.Mock):
        """Tokens inside the expiry leeway are exchanged again."""
        token_endpoint.return_value = FakeResponse({"access_token": "short", "expires_in": 5})
        credential = ClientCredentialsCredential("id", "secret", "https://idp/token")
        credential.headers()
        credential.headers()
        assert token_endpoint.call_count == 2

    def test_transport_failure(self, monkeypatch: pytest.MonkeyPatch):
        """A failed exchange surfaces as AuthError."""
        post = mock.Mock(side_effect=requests.ConnectionError("no route"))
        monkeypatch.setattr(credentials_module.requests, "post", post)
        credential = ClientCredentialsCredential("id", "secret", "https://idp/token")
        with pytest.raises(AuthError, match="no route"):
            credential.headers()

    def test_http_error(self, token_endpoint: mock.Mock):
        """A 401 from the token endpoint is an AuthError."""
        token_endpoint.return_value = FakeResponse({}, status_code=401)
        credential = ClientCredentialsCredential("id", "secret", "https://idp/token")
        with pytest.raises(AuthError):
            credential.headers()

    def test_missing_access_token(self, token_endpoint: mock.Mock):
        """A response without access_token is rejected."""
        token_endpoint.return_value = FakeResponse({"token_type": "bearer"})
        credential = ClientCredentialsCredential("id", "secret", "https://idp/token")
        with pytest.raises(AuthError, match="access_token"):
            credential.headers()

    def test_one_exchange_in_flight(self, monkeypatch: pytest.MonkeyPatch):
        """Concurrent first requests share a single exchange."""

        def slow_post(*args, **kwargs):
            time.sleep(0.05)
            return FakeResponse({"access_token": "abc", "expires_in": 3600})

        post = mock.Mock(side_effect=slow_post)
        monkeypatch.setattr(credentials_module.requests, "post", post)
        credential = ClientCredentialsCredential("id", "secret", "https://idp/token")

        results = []
        threads = [threading.Thread(target=lambda: results.append(credential.headers())) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert post.call_count == 1
        assert results == [{"Authorization": "Bearer abc"}] * 8


class TestAccessToken:
    def test_never_expires_without_expiry(self):
        """No expires_in means no expiry."""
        assert not AccessToken("abc").expired()

    def test_header_value_normalizes_scheme(self):
        """Lowercase bearer is normalized."""
        assert AccessToken("abc", token_type="bearer").header_value == "Bearer abc"


class TestTokenStorage:
    def test_update_and_get(self):
        """Later updates win."""
        storage = TokenStorage()
        storage.update("tok1")
        storage.update("tok2")
        assert storage.get() == "tok2"

    def test_empty_update_ignored(self):
        """An empty update never clobbers a stored token."""
        storage = TokenStorage()
        storage.update("tok1")
        storage.update("")
        assert storage.get() == "tok1"

    def test_concurrent_access(self):
        """Readers always see a whole token."""
        storage = TokenStorage("tok0")
        seen = []

        def writer(n: int) -> None:
            storage.update(f"tok{n}")

        def reader() -> None:
            seen.append(storage.get())

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(1, 20)]
        threads += [threading.Thread(target=reader) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(value.startswith("tok") for value in seen)


class TestPassThrough:
    def test_uses_call_context(self):
        """The caller's token is forwarded."""
        credential = PassThroughCredential()
        with identity_context("Bearer user-token"):
            assert credential.headers() == {"Authorization": "Bearer user-token"}

    def test_bare_token_gets_scheme(self):
        """A token without scheme is sent as bearer."""
        credential = PassThroughCredential()
        with identity_context("user-token"):
            assert credential.headers() == {"Authorization": "Bearer user-token"}

    def test_falls_back_to_storage(self):
        """Without call identity the last seen token is used."""
        credential = PassThroughCredential()
        with identity_context("Bearer first"):
            credential.headers()
        assert credential.headers() == {"Authorization": "Bearer first"}

    def test_storage_follows_newest_token(self):
        """A different call token replaces the stored one."""
        storage = TokenStorage("Bearer old")
        credential = PassThroughCredential(storage)
        with identity_context("Bearer new"):
            credential.headers()
        assert storage.get() == "Bearer new"

    def test_missing_everywhere(self):
        """No call identity and nothing stored is an auth error."""
        with pytest.raises(AuthError, match="missing"):
            PassThroughCredential().headers()

    def test_header_lookup_case_insensitive(self):
        """Identity header lookup ignores case."""
        assert token_from_headers({"authorization": "Bearer x"}) == "Bearer x"
        assert token_from_headers({"X-Other": "y"}) is None
        assert token_from_headers(None) is None


class TestBuildCredential:
    def test_dsn(self):
        """dsn maps to a static token."""
        settings = DatasourceSettings(hostname="h", path="p", token="t")
        assert isinstance(build_credential(settings), StaticTokenCredential)

    def test_client_credentials(self):
        """oauth2_client_credentials uses the configured token url and scopes."""
        settings = DatasourceSettings(
            hostname="h",
            path="p",
            authentication_method=AuthMethod.OAUTH2_CLIENT_CREDENTIALS,
            client_id="id",
            client_secret="secret",
            external_credentials_url="https://idp/token",
            oauth_scopes="a, b",
        )
        credential = build_credential(settings)
        assert isinstance(credential, ClientCredentialsCredential)
        assert credential.token_url == "https://idp/token"
        assert credential.scopes == ["a", "b"]

    def test_m2m(self):
        """m2m exchanges against the workspace's own token endpoint."""
        settings = DatasourceSettings(
            hostname="https://adb-1.azuredatabricks.net/",
            path="p",
            authentication_method="m2m",
            client_id="id",
            client_secret="secret",
        )
        credential = build_credential(settings)
        assert credential.token_url == "https://adb-1.azuredatabricks.net/oidc/v1/token"
        assert credential.scopes == ["all-apis"]

    @pytest.mark.parametrize("method", ["oauth2_pass_through", "azure_entra_pass_thru"])
    def test_pass_through(self, method: str):
        """Both pass-through flavours forward the caller's token."""
        settings = DatasourceSettings(hostname="h", path="p", authentication_method=method)
        assert isinstance(build_credential(settings), PassThroughCredential)


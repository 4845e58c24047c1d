"""Credential variants that attach identity to outgoing engine requests.

every credential here is called once per physical request the driver makes,
retries included - not once per dashboard query. that is what keeps a retried
request authenticated the same way as the first attempt.

a Credential also doubles as a databricks-sql-connector `credentials_provider`:
calling it returns a header factory, and the driver calls that factory for
every http request it sends.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass

import requests

from lakedash.auth.context import get_pass_through_token
from lakedash.errors import AuthError, ConfigError
from lakedash.models.settings import AuthMethod, DatasourceSettings

logger = logging.getLogger(__name__)

# refresh a little before the server says the token dies
EXPIRY_LEEWAY_SECONDS = 10.0
TOKEN_EXCHANGE_TIMEOUT_SECONDS = 60.0
M2M_SCOPES = ["all-apis"]


class Credential(ABC):
    """Attaches an authorization credential to an outgoing request."""

    AUTH_TYPE = "lakedash"

    @abstractmethod
    def authenticate(self, headers: MutableMapping[str, str]) -> None:
        """Set the Authorization header in place. Raises AuthError on failure."""

    def headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        self.authenticate(headers)
        return headers

    # --- databricks-sql-connector credentials_provider protocol ---

    def auth_type(self) -> str:
        return self.AUTH_TYPE

    def __call__(self) -> Callable[[], dict[str, str]]:
        return self.headers


class StaticTokenCredential(Credential):
    """Fixed personal access token."""

    AUTH_TYPE = "pat"

    def __init__(self, token: str) -> None:
        self._token = token

    def authenticate(self, headers: MutableMapping[str, str]) -> None:
        if not self._token:
            raise AuthError("Access token is empty")
        headers["Authorization"] = f"Bearer {self._token}"


@dataclass
class AccessToken:
    access_token: str
    token_type: str = "Bearer"
    expires_at: float | None = None  # time.monotonic() based, None = never

    def expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.monotonic() if now is None else now
        return now >= self.expires_at - EXPIRY_LEEWAY_SECONDS

    @property
    def header_value(self) -> str:
        # servers love returning "bearer" - normalize like every oauth client does
        token_type = "Bearer" if self.token_type.lower() == "bearer" else self.token_type
        return f"{token_type} {self.access_token}"


class ClientCredentialsTokenSource:
    """Caches a client-credentials token and re-exchanges it once expired."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        scopes: list[str] | None = None,
        timeout: float = TOKEN_EXCHANGE_TIMEOUT_SECONDS,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.scopes = list(scopes or [])
        self.timeout = timeout
        self._token: AccessToken | None = None

    def token(self) -> AccessToken:
        if self._token is None or self._token.expired():
            self._token = self._exchange()
        return self._token

    def _exchange(self) -> AccessToken:
        data = {"grant_type": "client_credentials"}
        if self.scopes:
            data["scope"] = " ".join(self.scopes)

        try:
            response = requests.post(
                self.token_url,
                data=data,
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("token fetching failed: %s", exc)
            raise AuthError(f"Client credentials token exchange failed: {exc}") from exc

        access_token = payload.get("access_token")
        if not access_token:
            raise AuthError("Token endpoint response did not include an access_token")

        expires_in = payload.get("expires_in")
        expires_at = time.monotonic() + float(expires_in) if expires_in else None
        logger.debug("token fetched successfully")
        return AccessToken(
            access_token=access_token,
            token_type=payload.get("token_type") or "Bearer",
            expires_at=expires_at,
        )


class ClientCredentialsCredential(Credential):
    """OAuth2 client-credentials exchange with a lazily created token source.

    one lock covers both creating the source and asking it for a token, so at
    most one exchange is ever in flight per datasource.
    """

    AUTH_TYPE = "oauth2-client-credentials"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        scopes: list[str] | None = None,
        timeout: float = TOKEN_EXCHANGE_TIMEOUT_SECONDS,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self.token_url = token_url
        self.scopes = list(scopes or [])
        self.timeout = timeout
        self._lock = threading.Lock()
        self._token_source: ClientCredentialsTokenSource | None = None

    def authenticate(self, headers: MutableMapping[str, str]) -> None:
        with self._lock:
            if self._token_source is None:
                logger.debug("token fetching started")
                self._token_source = ClientCredentialsTokenSource(
                    self.client_id,
                    self._client_secret,
                    self.token_url,
                    self.scopes,
                    timeout=self.timeout,
                )
            token = self._token_source.token()
        headers["Authorization"] = token.header_value


class _ReadWriteLock:
    """Many readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class TokenStorage:
    """Last pass-through token seen on a datasource.

    requests that carry no identity of their own (driver retries, background
    checks) fall back to this. empty updates are ignored so a good token is
    never clobbered by a request that simply had none.
    """

    def __init__(self, initial_token: str = "") -> None:
        self._lock = _ReadWriteLock()
        self._token = initial_token

    def get(self) -> str:
        with self._lock.read():
            return self._token

    def update(self, token: str) -> None:
        if not token:
            return
        with self._lock.write():
            self._token = token


class PassThroughCredential(Credential):
    """Forwards the caller's own token to the engine."""

    AUTH_TYPE = "oauth-pass-through"

    def __init__(self, storage: TokenStorage | None = None) -> None:
        self.storage = storage if storage is not None else TokenStorage()

    def authenticate(self, headers: MutableMapping[str, str]) -> None:
        token = get_pass_through_token()
        if not token:
            token = self.storage.get()
            if not token:
                raise AuthError("OAuth pass-through token is missing")
        elif token != self.storage.get():
            self.storage.update(token)
            logger.debug("Updating OAuth pass-through token")

        headers["Authorization"] = _as_bearer(token)


def _as_bearer(token: str) -> str:
    # the inbound Authorization header usually already has its scheme
    if " " in token.strip():
        return token
    return f"Bearer {token}"


def _workspace_token_url(hostname: str) -> str:
    host = hostname.removeprefix("https://").removeprefix("http://").rstrip("/")
    return f"https://{host}/oidc/v1/token"


def build_credential(settings: DatasourceSettings) -> Credential:
    """Pick the credential variant for a datasource's auth method."""
    method = settings.authentication_method

    if method == AuthMethod.DSN:
        return StaticTokenCredential(settings.token)
    if method == AuthMethod.OAUTH2_CLIENT_CREDENTIALS:
        return ClientCredentialsCredential(
            settings.client_id,
            settings.client_secret,
            settings.external_credentials_url,
            settings.scopes,
        )
    if method == AuthMethod.M2M:
        return ClientCredentialsCredential(
            settings.client_id,
            settings.client_secret,
            _workspace_token_url(settings.hostname),
            settings.scopes or M2M_SCOPES,
        )
    if method.is_pass_through:
        return PassThroughCredential()

    raise ConfigError(f"Unsupported authentication method: {method}")

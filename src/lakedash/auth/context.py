"""Call-scoped identity for pass-through authentication.

the inbound identity header is stashed in a ContextVar before the query path
starts, so the credential can find it later without threading it through
every call. worker threads only see it if the caller copies the context in.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token

IDENTITY_HEADER = "Authorization"

_pass_through_token: ContextVar[str | None] = ContextVar(
    "lakedash_pass_through_token", default=None
)


def get_pass_through_token() -> str | None:
    """Return the identity token of the current call, if any."""
    return _pass_through_token.get()


def set_pass_through_token(token: str | None) -> Token[str | None]:
    """Set the call-scoped identity token."""
    return _pass_through_token.set(token)


def reset_pass_through_token(token: Token[str | None]) -> None:
    """Restore the previous call-scoped identity token."""
    _pass_through_token.reset(token)


@contextmanager
def identity_context(token: str | None) -> Iterator[None]:
    """Run a block with `token` as the call-scoped identity."""
    reset_token = set_pass_through_token(token)
    try:
        yield
    finally:
        reset_pass_through_token(reset_token)


def token_from_headers(headers: Mapping[str, str] | None) -> str | None:
    """Pull the identity header out of inbound request headers (case-insensitive)."""
    if not headers:
        return None
    wanted = IDENTITY_HEADER.lower()
    for name, value in headers.items():
        if name.lower() == wanted and value:
            return value
    return None

"""Credential injection for engine requests."""

from lakedash.auth.context import get_pass_through_token, identity_context, token_from_headers
from lakedash.auth.credentials import (
    ClientCredentialsCredential,
    Credential,
    PassThroughCredential,
    StaticTokenCredential,
    TokenStorage,
    build_credential,
)

__all__ = [
    "ClientCredentialsCredential",
    "Credential",
    "PassThroughCredential",
    "StaticTokenCredential",
    "TokenStorage",
    "build_credential",
    "get_pass_through_token",
    "identity_context",
    "token_from_headers",
]

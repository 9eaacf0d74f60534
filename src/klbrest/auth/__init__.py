"""Authentication for klbrest.

Two credential kinds are supported, selected through a closed
:class:`AuthMethod` union held by each
:class:`~klbrest.client.context.RestContext`:

- :class:`Token` -- OAuth2 bearer token with single-flight renewal.
- :class:`ApiKey` -- key identifier plus Ed25519 request signing.

Typical usage::

    from klbrest.auth import ApiKey, Token

    token = Token.create("access", "refresh", "client-id", expires_in=3600)
    key = ApiKey("key-12345", "<base64url secret>")
"""

from klbrest.auth.apikey import ApiKey
from klbrest.auth.base import AuthKind, AuthMethod, AuthResult
from klbrest.auth.token import Token, TokenSnapshot, TokenState

__all__ = [
    "ApiKey",
    "AuthKind",
    "AuthMethod",
    "AuthResult",
    "Token",
    "TokenSnapshot",
    "TokenState",
]

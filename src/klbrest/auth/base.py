"""Auth method selection and the credential container it produces.

This module defines the two foundational types of the auth subsystem:

- :class:`AuthMethod` -- a closed tagged union over *no auth*, an OAuth2
  :class:`~klbrest.auth.token.Token`, or an
  :class:`~klbrest.auth.apikey.ApiKey`. A
  :class:`~klbrest.client.context.RestContext` holds exactly one and
  switches on :attr:`AuthMethod.kind` to decide how to attach credentials.
- :class:`AuthResult` -- a plain container for the HTTP headers and query
  parameters an auth method contributes to one outgoing request.

The union is closed: there are exactly three kinds and the request engine
handles each one explicitly.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from klbrest.auth.apikey import ApiKey
    from klbrest.auth.token import Token


class AuthKind(str, enum.Enum):
    """Tag of an :class:`AuthMethod`."""

    NONE = "none"
    TOKEN = "token"
    API_KEY = "api_key"


@dataclass(frozen=True)
class AuthMethod:
    """Exactly one of: no auth, a bearer :class:`Token`, or an :class:`ApiKey`.

    Build instances with :meth:`none`, :meth:`from_token` or
    :meth:`from_api_key`; the payload matching :attr:`kind` is the only one
    set.

    Example::

        method = AuthMethod.from_token(token)
        assert method.kind is AuthKind.TOKEN
    """

    kind: AuthKind = AuthKind.NONE
    token: Optional[Token] = None
    api_key: Optional[ApiKey] = None

    def __post_init__(self) -> None:
        expected = {
            AuthKind.NONE: (False, False),
            AuthKind.TOKEN: (True, False),
            AuthKind.API_KEY: (False, True),
        }[self.kind]
        if (self.token is not None, self.api_key is not None) != expected:
            raise ValueError(f"inconsistent payload for auth kind '{self.kind.value}'")

    @classmethod
    def none(cls) -> AuthMethod:
        return cls()

    @classmethod
    def from_token(cls, token: Token) -> AuthMethod:
        return cls(kind=AuthKind.TOKEN, token=token)

    @classmethod
    def from_api_key(cls, api_key: ApiKey) -> AuthMethod:
        return cls(kind=AuthKind.API_KEY, api_key=api_key)


class AuthResult:
    """Container for authentication artifacts to inject into one HTTP request.

    Args:
        headers: HTTP headers to add (e.g. ``{"Authorization": "Bearer ..."}``).
        params: Query-string parameters to add (e.g. the ``_key``/``_sign``
            set produced by API-key signing).

    Example::

        result = AuthResult(headers={"Authorization": "Bearer tok123"})
        assert result.headers["Authorization"] == "Bearer tok123"
    """

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ):
        self.headers = headers or {}
        self.params = params or {}

"""klbrest -- client for REST APIs that wrap responses in a standard envelope.

Every call returns either the decoded ``data`` of a ``success`` envelope or
raises a :class:`~klbrest.exceptions.RestError` subclass. Requests can be
authenticated with an OAuth2 bearer :class:`Token` (renewed automatically,
once, when it expires) or an :class:`ApiKey` that signs each request with
Ed25519.

Typical usage::

    from klbrest import RestContext, Token

    token = Token.create("access", "refresh", "client-id", expires_in=3600)
    with RestContext().with_token(token) as ctx:
        user = ctx.apply("User/@", "GET", target=dict)

Modules:
    client: Request engine and response envelope parser.
    auth: Token lifecycle and API-key signing.
    models: Pydantic models for config and token grants.
    value: Typed, path-addressable JSON tree.
    timestamp: Microsecond-precision framework time.
    exceptions: Error taxonomy.
    output: Diagnostics on stderr.
"""

__version__ = "0.1.0"

from klbrest.auth import ApiKey, AuthKind, AuthMethod, Token, TokenState  # noqa: E402
from klbrest.client import ResponseEnvelope, RestContext, ResultKind, apply, do_request  # noqa: E402
from klbrest.config import config_from_url  # noqa: E402
from klbrest.exceptions import (  # noqa: E402
    ApiError,
    AuthError,
    HttpError,
    InvalidKeyError,
    LoginRequiredError,
    NetworkError,
    ParseError,
    RedirectError,
    RestError,
    TimeoutError_,
)
from klbrest.models import HTTPMethod, RestConfig, TokenGrant  # noqa: E402
from klbrest.timestamp import Time  # noqa: E402
from klbrest.value import Value, ValueKind  # noqa: E402

__all__ = [
    "ApiError",
    "ApiKey",
    "AuthError",
    "AuthKind",
    "AuthMethod",
    "HTTPMethod",
    "HttpError",
    "InvalidKeyError",
    "LoginRequiredError",
    "NetworkError",
    "ParseError",
    "RedirectError",
    "ResponseEnvelope",
    "RestConfig",
    "RestContext",
    "RestError",
    "ResultKind",
    "Time",
    "TimeoutError_",
    "Token",
    "TokenGrant",
    "TokenState",
    "Value",
    "ValueKind",
    "apply",
    "config_from_url",
    "do_request",
]

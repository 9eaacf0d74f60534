"""Pydantic models shared across klbrest modules.

* :class:`RestConfig` -- immutable connection settings for a
  :class:`~klbrest.client.context.RestContext`.
* :class:`HTTPMethod` -- the fixed verb set and how each verb carries
  its parameters.
* :class:`TokenGrant` -- the payload returned by the framework's OAuth2
  token endpoint on renewal.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Connection config ---


class RestConfig(BaseModel):
    """Connection settings, built once and shared read-only.

    Example::

        RestConfig(scheme="http", host="localhost:8080", debug=True)

    See Also:
        :func:`klbrest.config.config_from_url` to build one from a URL.
    """

    model_config = ConfigDict(frozen=True)

    scheme: str = Field(default="https", description="URL scheme: http or https")
    host: str = Field(default="www.atonline.com", description="API host, optionally with port")
    base_path: str = Field(
        default="_special/rest", description="Path prefix of the REST endpoints"
    )
    debug: bool = Field(default=False, description="Trace every request on stderr")
    timeout: float = Field(default=300.0, gt=0, description="Request timeout in seconds")
    connect_timeout: float = Field(
        default=10.0, gt=0, description="Connection timeout in seconds"
    )
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")
    max_connections: int = Field(
        default=50, gt=0, description="Keep-alive connections kept in the pool"
    )
    token_grace: float = Field(
        default=30.0,
        ge=0,
        description="Seconds before expiry at which a token is renewed",
    )

    @field_validator("scheme")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        value = value.lower()
        if value not in ("http", "https"):
            raise ValueError(f"unsupported scheme '{value}': must be 'http' or 'https'")
        return value

    @field_validator("host")
    @classmethod
    def _check_host(cls, value: str) -> str:
        if not value or "/" in value:
            raise ValueError(f"invalid host '{value}'")
        return value

    @field_validator("base_path")
    @classmethod
    def _strip_base_path(cls, value: str) -> str:
        return value.strip("/")

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}"

    def url_for(self, path: str) -> str:
        """Return the absolute URL of endpoint *path*."""
        path = path.lstrip("/")
        if self.base_path:
            return f"{self.base_url}/{self.base_path}/{path}"
        return f"{self.base_url}/{path}"


# --- Verbs ---


class HTTPMethod(str, enum.Enum):
    """HTTP verbs accepted by :meth:`~klbrest.client.context.RestContext.do_request`."""

    GET = "GET"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    DELETE = "DELETE"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"

    @property
    def params_in_query(self) -> bool:
        """Read-style verbs send their params in the query string."""
        return self in (HTTPMethod.GET, HTTPMethod.HEAD, HTTPMethod.OPTIONS, HTTPMethod.DELETE)

    @classmethod
    def parse(cls, method: str) -> HTTPMethod:
        try:
            return cls(method.upper())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"unsupported HTTP method '{method}'; expected one of {allowed}") from None


# --- OAuth2 ---


class TokenGrant(BaseModel):
    """Successful response of the ``OAuth2:token`` endpoint.

    ``refresh_token`` is only present when the server rotates it.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: int = Field(default=3600, description="Lifetime in seconds")

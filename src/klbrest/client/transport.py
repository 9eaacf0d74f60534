"""Pooled :class:`httpx.Client` construction.

One client -- one connection pool -- backs a family of
:class:`~klbrest.client.context.RestContext` objects. Timeouts come from
:class:`~klbrest.models.RestConfig` and apply per request.
"""

from __future__ import annotations

import httpx

from klbrest import __version__
from klbrest.models import RestConfig

USER_AGENT = f"klbrest/{__version__}"


def create_http_client(config: RestConfig) -> httpx.Client:
    """Create the pooled HTTP client for *config*.

    Redirects are not followed: the framework reports them in the
    envelope, and HTTP-level ones surface as
    :class:`~klbrest.exceptions.HttpError`.
    """
    return httpx.Client(
        timeout=httpx.Timeout(config.timeout, connect=config.connect_timeout),
        limits=httpx.Limits(
            max_connections=None,
            max_keepalive_connections=config.max_connections,
        ),
        verify=config.verify_ssl,
        follow_redirects=False,
        headers={"User-Agent": USER_AGENT},
    )

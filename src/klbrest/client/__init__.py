"""HTTP client layer for klbrest.

Provides the request engine and the pieces it is built from:

    :class:`RestContext` -- blocking, thread-safe client backed by a pooled
    :class:`httpx.Client`, with auth injection and renew-then-retry.
    :class:`ResponseEnvelope` -- parsed framework response envelope.
    :func:`create_http_client` -- pooled transport factory.

Example::

    from klbrest.client import RestContext

    with RestContext() as ctx:
        envelope = ctx.do_request("Misc/Debug:fixedString", "GET")
"""

from klbrest.client.context import RestContext, apply, do_request
from klbrest.client.response import ResponseEnvelope, ResultKind
from klbrest.client.transport import create_http_client

__all__ = [
    "RestContext",
    "ResponseEnvelope",
    "ResultKind",
    "apply",
    "create_http_client",
    "do_request",
]

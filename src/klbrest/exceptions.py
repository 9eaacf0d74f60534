"""Exception hierarchy for klbrest.

All exceptions inherit from :class:`RestError`. The set is closed: every
failure the request engine can report maps onto exactly one of the
subclasses below, and underlying causes (``httpx`` errors, base64 errors,
pydantic validation errors) are chained with ``raise ... from ...`` so
that tracebacks keep the full story.

Subclass hierarchy::

    RestError
    +-- NetworkError        transport failure (DNS, refused, TLS)
    +-- HttpError           unexpected non-2xx status
    +-- TimeoutError_       request exceeded the configured timeout
    +-- ApiError            envelope with ``result == "error"``
    +-- RedirectError       envelope with ``result == "redirect"``
    |   +-- LoginRequiredError
    +-- AuthError           token renewal failed
    +-- InvalidKeyError     malformed API-key material
    +-- ParseError          envelope or payload shape mismatch
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional, Sequence, Union

if TYPE_CHECKING:
    from klbrest.client.response import ResponseEnvelope

PathSegment = Union[str, int]


class RestError(Exception):
    """Base exception for all klbrest errors.

    Args:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NetworkError(RestError):
    """Raised on transport-level failures (connection refused, DNS, TLS).

    The originating :mod:`httpx` exception is available as ``__cause__``.
    """


class HttpError(RestError):
    """Raised when the server answers with a non-2xx status that is not a
    recognised token-expiry signal and whose body is not an error or redirect
    envelope.

    Args:
        status: The HTTP status code.
        body: The raw response body, decoded leniently as text.
        envelope: The parsed envelope when the body was a ``success`` envelope
            sent with a non-2xx status.
    """

    def __init__(
        self,
        status: int,
        body: str,
        envelope: Optional[ResponseEnvelope] = None,
    ) -> None:
        snippet = body[:200] if body else ""
        message = f"HTTP error {status}: {snippet}" if snippet else f"HTTP error {status}"
        super().__init__(message)
        self.status = status
        self.body = body
        self.envelope = envelope


class TimeoutError_(RestError):
    """Raised when a request exceeds the configured timeout.

    Named with a trailing underscore to avoid shadowing the built-in
    ``TimeoutError``.
    """


class ApiError(RestError):
    """Raised when the server reports a logical error in the envelope.

    Per-field validation messages are kept in ``fields`` in the order the
    server sent them so callers can attribute failures to their inputs.

    Args:
        message: The envelope's ``error`` text.
        fields: Ordered mapping of field name to message.
        code: Optional numeric error code from the envelope.
        extra: Optional machine-readable detail (e.g. ``"token_expired"``).
        request_id: The ``X-Request-Id`` of the failing response.
        envelope: The full parsed envelope.
    """

    def __init__(
        self,
        message: str,
        fields: Optional[Mapping[str, str]] = None,
        code: Optional[int] = None,
        extra: Optional[str] = None,
        request_id: Optional[str] = None,
        envelope: Optional[ResponseEnvelope] = None,
    ) -> None:
        super().__init__(f"REST API error: {message}")
        self.message = message
        self.fields: dict[str, str] = dict(fields or {})
        self.code = code
        self.extra = extra
        self.request_id = request_id
        self.envelope = envelope

    @property
    def status_code(self) -> Optional[int]:
        return self.code

    def is_permission_denied(self) -> bool:
        return self.code == 403

    def is_not_found(self) -> bool:
        return self.code == 404


class RedirectError(RestError):
    """Raised when the envelope asks the caller to go elsewhere.

    Redirect envelopes are never a success.

    Args:
        location: Target URL from the envelope.
        code: Optional HTTP-style redirect code suggested by the server.
        envelope: The full parsed envelope.
    """

    def __init__(
        self,
        location: str,
        code: Optional[int] = None,
        envelope: Optional[ResponseEnvelope] = None,
    ) -> None:
        super().__init__(f"redirect to {location}")
        self.location = location
        self.code = code
        self.envelope = envelope


class LoginRequiredError(RedirectError):
    """Raised for redirects caused by the framework's login exception."""

    def __init__(
        self,
        location: str,
        code: Optional[int] = None,
        envelope: Optional[ResponseEnvelope] = None,
    ) -> None:
        super().__init__(location, code=code, envelope=envelope)
        self.message = f"login required (redirect to {location})"
        self.args = (self.message,)


class AuthError(RestError):
    """Raised when the OAuth2 token cannot be renewed."""


class InvalidKeyError(RestError):
    """Raised for malformed API-key material (bad base64, wrong length)."""


class ParseError(RestError):
    """Raised when an envelope or its payload does not have the expected shape.

    Args:
        reason: What was wrong.
        path: Location of the offending node, as a sequence of object keys
            and array indices. Empty for top-level problems.
    """

    def __init__(self, reason: str, path: Sequence[PathSegment] = ()) -> None:
        self.reason = reason
        self.path: tuple[PathSegment, ...] = tuple(path)
        if self.path:
            where = "/".join(str(p) for p in self.path)
            message = f"parse error at '{where}': {reason}"
        else:
            message = f"parse error: {reason}"
        super().__init__(message)


def describe(exc: BaseException) -> str:
    """Render *exc* and its chained causes as one line for diagnostics."""
    parts: list[str] = []
    current: Optional[BaseException] = exc
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        parts.append(str(current) or type(current).__name__)
        current = current.__cause__
    return " <- ".join(parts)

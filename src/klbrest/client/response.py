"""Response envelope parser.

Every framework response is a JSON object of the form::

    {"result": "success" | "error" | "redirect",
     "data": <any>,                       # success payload
     "error": "...", "error_fields": {},  # error details
     "code": 404, "extra": "...", "token": "...",
     "redirect": "https://...",           # or "redirect_url"
     "exception": "...", "redirect_code": 302,
     "time": <encoded time>, "paging": {}, "job": {}, "access": {}}

:meth:`ResponseEnvelope.parse` validates that shape and
:meth:`ResponseEnvelope.raise_for_result` turns non-success envelopes into
:class:`~klbrest.exceptions.ApiError` /
:class:`~klbrest.exceptions.RedirectError`. The ``data`` subtree is kept as
a :class:`~klbrest.value.Value` tree and decoded into caller types on
demand with :meth:`ResponseEnvelope.decode_data`.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from pydantic import PydanticUserError, TypeAdapter, ValidationError

from klbrest.exceptions import (
    ApiError,
    LoginRequiredError,
    ParseError,
    RedirectError,
)
from klbrest.timestamp import Time
from klbrest.value import Path, Value

#: ``exception`` value the framework sends when a redirect means "log in first".
LOGIN_EXCEPTION = "Exception\\Login"

_META_KEYS = ("error", "code", "extra", "token", "paging", "job", "time", "access", "exception")


class ResultKind(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class ResponseEnvelope:
    """One parsed response envelope.

    ``result`` decides which optional fields are meaningful: ``data`` for
    success, ``error``/``error_fields``/``code`` for error, and
    ``redirect_location``/``redirect_code``/``exception`` for redirect.
    ``time_raw`` keeps the server's encoding of ``time`` so
    :meth:`to_dict` reproduces it.
    """

    result: ResultKind
    data: Optional[Value] = None
    error: Optional[str] = None
    error_fields: Optional[Mapping[str, str]] = None
    code: Optional[int] = None
    extra: Optional[str] = None
    token: Optional[str] = None
    redirect_location: Optional[str] = None
    redirect_code: Optional[int] = None
    exception: Optional[str] = None
    time: Optional[Time] = None
    time_raw: Any = field(default=None, repr=False, compare=False)
    paging: Optional[Value] = None
    job: Optional[Value] = None
    access: Optional[Value] = None
    request_id: Optional[str] = field(default=None, compare=False)
    status_code: Optional[int] = field(default=None, compare=False)

    # ------------------------------------------------------------------ #
    # Parsing
    # ------------------------------------------------------------------ #

    @classmethod
    def parse(
        cls,
        raw: Union[bytes, str],
        request_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> ResponseEnvelope:
        """Decode a raw response body into an envelope.

        Args:
            raw: The response body.
            request_id: ``X-Request-Id`` of the HTTP response, if any.
            status_code: HTTP status of the HTTP response, if known.

        Raises:
            ParseError: If the body is not a well-formed envelope.
        """
        try:
            obj = json.loads(raw)
        except RecursionError as exc:
            raise ParseError("response body is nested too deeply") from exc
        except (ValueError, UnicodeDecodeError) as exc:
            raise ParseError(f"response body is not valid JSON: {exc}") from exc
        if not isinstance(obj, dict):
            raise ParseError(f"response envelope must be an object, got {type(obj).__name__}")
        return cls.from_dict(obj, request_id=request_id, status_code=status_code)

    @classmethod
    def from_dict(
        cls,
        obj: Mapping[str, Any],
        request_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> ResponseEnvelope:
        raw_result = obj.get("result")
        if raw_result is None:
            raise ParseError("envelope has no 'result' field", ("result",))
        try:
            result = ResultKind(raw_result)
        except ValueError:
            raise ParseError(f"unrecognized result {raw_result!r}", ("result",)) from None

        time_raw = obj.get("time")
        envelope_time: Optional[Time] = None
        if time_raw is not None:
            try:
                envelope_time = Time.decode(time_raw)
            except ParseError as exc:
                raise ParseError(exc.reason, ("time",) + exc.path) from exc

        redirect_location = _opt_str(obj, "redirect")
        if redirect_location is None:
            redirect_location = _opt_str(obj, "redirect_url")
        if result is ResultKind.REDIRECT and not redirect_location:
            raise ParseError("redirect envelope has no location", ("redirect",))

        return cls(
            result=result,
            data=_opt_value(obj, "data"),
            error=_opt_str(obj, "error"),
            error_fields=_error_fields(obj.get("error_fields")),
            code=_opt_int(obj, "code"),
            extra=_opt_str(obj, "extra"),
            token=_opt_str(obj, "token"),
            redirect_location=redirect_location,
            redirect_code=_opt_int(obj, "redirect_code"),
            exception=_opt_str(obj, "exception"),
            time=envelope_time,
            time_raw=time_raw,
            paging=_opt_value(obj, "paging"),
            job=_opt_value(obj, "job"),
            access=_opt_value(obj, "access"),
            request_id=request_id,
            status_code=status_code,
        )

    # ------------------------------------------------------------------ #
    # Interpretation
    # ------------------------------------------------------------------ #

    @property
    def is_success(self) -> bool:
        return self.result is ResultKind.SUCCESS

    @property
    def is_token_expired(self) -> bool:
        """Whether the server rejected the bearer token as expired."""
        return self.token == "invalid_request_token" and self.extra == "token_expired"

    def to_error(self) -> Union[ApiError, RedirectError, None]:
        """Return the taxonomy error this envelope stands for, or None on success."""
        if self.result is ResultKind.ERROR:
            return ApiError(
                self.error or "unknown error",
                fields=self.error_fields,
                code=self.code,
                extra=self.extra,
                request_id=self.request_id,
                envelope=self,
            )
        if self.result is ResultKind.REDIRECT:
            assert self.redirect_location is not None  # enforced by from_dict
            error_cls = LoginRequiredError if self.exception == LOGIN_EXCEPTION else RedirectError
            return error_cls(self.redirect_location, code=self.redirect_code, envelope=self)
        return None

    def raise_for_result(self) -> ResponseEnvelope:
        """Raise the matching taxonomy error unless this is a success envelope."""
        error = self.to_error()
        if error is not None:
            raise error
        return self

    # ------------------------------------------------------------------ #
    # Data access
    # ------------------------------------------------------------------ #

    def get(self, path: Path) -> Optional[Value]:
        """Navigate ``data`` by *path*; see :meth:`klbrest.value.Value.get`."""
        if self.data is None:
            return None
        return self.data.get(path)

    def get_string(self, path: Path) -> Optional[str]:
        node = self.get(path)
        return node.as_str() if node is not None else None

    def meta(self, key: str) -> Optional[Value]:
        """Look up ``@``-prefixed envelope metadata, or a data path otherwise.

        ``meta("@code")`` returns the envelope's ``code``;
        ``meta("user/name")`` is the same as ``get("user/name")``.
        """
        if not key.startswith("@"):
            return self.get(key)
        name = key[1:]
        if name not in _META_KEYS:
            return None
        if name == "time":
            return Value.from_json(self.time_raw) if self.time_raw is not None else None
        value = getattr(self, name)
        if value is None or isinstance(value, Value):
            return value
        return Value.from_json(value)

    def decode_data(self, target: Any) -> Any:
        """Convert ``data`` into *target* (a pydantic model, dataclass,
        ``TypedDict``, builtin or generic alias).

        Validation is strict: ``"42"`` does not become ``42`` and ``"yes"``
        does not become ``True``. ``Time`` fields still accept every wire
        form. On Python < 3.12 a ``TypedDict`` target must come from
        ``typing_extensions``.

        Raises:
            ParseError: If ``data`` does not fit *target*; ``path`` locates the
                first mismatch.
            TypeError: If *target* is not a type pydantic can validate.
        """
        raw = self.data.dumps() if self.data is not None else "null"
        try:
            return TypeAdapter(target).validate_json(raw, strict=True)
        except PydanticUserError as exc:
            raise TypeError(f"cannot decode response data into {target!r}: {exc}") from exc
        except ValidationError as exc:
            first = exc.errors()[0]
            path = tuple(seg for seg in first.get("loc", ()) if isinstance(seg, (str, int)))
            raise ParseError(f"{first.get('msg', 'invalid value')}", path) from exc

    def to_dict(self) -> dict[str, Any]:
        """Rebuild the envelope as a wire-format dict."""
        out: dict[str, Any] = {"result": self.result.value}
        if self.data is not None:
            out["data"] = self.data.to_python()
        for name in ("error", "code", "extra", "token", "exception", "redirect_code"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        if self.error_fields is not None:
            out["error_fields"] = dict(self.error_fields)
        if self.redirect_location is not None:
            out["redirect"] = self.redirect_location
        if self.time_raw is not None:
            out["time"] = self.time_raw
        for name in ("paging", "job", "access"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value.to_python()
        return out


def _opt_str(obj: Mapping[str, Any], key: str) -> Optional[str]:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ParseError(f"expected string, got {type(value).__name__}", (key,))
    return value


def _opt_int(obj: Mapping[str, Any], key: str) -> Optional[int]:
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"expected integer, got {type(value).__name__}", (key,))
    return value


def _opt_value(obj: Mapping[str, Any], key: str) -> Optional[Value]:
    if key not in obj:
        return None
    try:
        return Value.from_json(obj[key])
    except ParseError as exc:
        raise ParseError(exc.reason, (key,) + exc.path) from exc


def _error_fields(raw: Any) -> Optional[Mapping[str, str]]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ParseError(f"expected object, got {type(raw).__name__}", ("error_fields",))
    fields: dict[str, str] = {}
    for name, message in raw.items():
        if not isinstance(message, str):
            raise ParseError(
                f"expected string message, got {type(message).__name__}",
                ("error_fields", name),
            )
        fields[name] = message
    return MappingProxyType(fields)

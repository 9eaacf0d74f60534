"""Microsecond-precision UTC instant with the framework's wire encodings.

The framework reports instants in two shapes:

* a scalar -- the decimal string of the total number of microseconds since
  the Unix epoch (the ``full`` field), which is the lossless canonical form;
* an object -- ``{"unix": 1597242491, "us": 747497, "tz": "UTC",
  "iso": "...", "full": "1597242491747497", "unixms": "1597242491747"}``.

:class:`Time` decodes either shape and encodes to both. Arithmetic is done
on integers only, so encode/decode round-trips are exact.
"""

from __future__ import annotations

import time as _time
from datetime import datetime, timedelta, timezone
from functools import total_ordering
from typing import Any, Mapping, Union

from pydantic_core import core_schema

from klbrest.exceptions import ParseError

_MICROS = 1_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@total_ordering
class Time:
    """An instant as ``(seconds, microseconds)`` since the Unix epoch, UTC.

    ``microseconds`` is always normalised into ``[0, 999999]``; overflow is
    carried into ``seconds`` (negative values borrow from it), so equal
    instants compare equal however they were built.

    Example::

        Time(10, 1_500_000) == Time(11, 500_000)
        Time.decode("1597242491747497").usec == 747497
    """

    __slots__ = ("_seconds", "_micros")

    def __init__(self, seconds: int, microseconds: int = 0) -> None:
        extra, micros = divmod(int(microseconds), _MICROS)
        self._seconds = int(seconds) + extra
        self._micros = micros

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def from_micros(cls, total: int) -> Time:
        return cls(0, total)

    @classmethod
    def from_datetime(cls, dt: datetime) -> Time:
        """Build from a :class:`~datetime.datetime`; naive values are taken as UTC."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delta = dt - _EPOCH
        return cls(delta.days * 86400 + delta.seconds, delta.microseconds)

    @classmethod
    def now(cls) -> Time:
        return cls.from_micros(_time.time_ns() // 1000)

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def seconds(self) -> int:
        return self._seconds

    @property
    def microseconds(self) -> int:
        return self._micros

    # Short aliases matching the framework's field names.
    unix = seconds
    usec = microseconds

    @property
    def unix_micro(self) -> int:
        return self._seconds * _MICROS + self._micros

    @property
    def unix_milli(self) -> int:
        return self.unix_micro // 1000

    def to_datetime(self) -> datetime:
        return _EPOCH + timedelta(seconds=self._seconds, microseconds=self._micros)

    def iso(self) -> str:
        return self.to_datetime().strftime("%Y-%m-%d %H:%M:%S")

    def add_seconds(self, seconds: float) -> Time:
        """Return a new instant shifted by *seconds* (may be fractional or negative)."""
        return Time.from_micros(self.unix_micro + round(seconds * _MICROS))

    # ------------------------------------------------------------------ #
    # Wire encodings
    # ------------------------------------------------------------------ #

    def encode(self) -> str:
        """Return the scalar ``full`` encoding (total microseconds as a string)."""
        return str(self.unix_micro)

    def to_json(self) -> dict[str, Any]:
        """Return the framework's object encoding."""
        return {
            "unix": self._seconds,
            "us": self._micros,
            "tz": "UTC",
            "iso": self.iso(),
            "full": self.encode(),
            "unixms": str(self.unix_milli),
        }

    @classmethod
    def decode(cls, value: Union[str, int, Mapping[str, Any], Time]) -> Time:
        """Decode either wire shape.

        Accepts the scalar microsecond count (``str`` of digits or ``int``)
        or the object form, where ``unix``/``us`` win over ``full``. Scalar
        strings must be canonical: no leading zeros and no ``-0``.

        Raises:
            ParseError: If *value* is neither shape.
        """
        if isinstance(value, Time):
            return value
        if isinstance(value, bool):
            raise ParseError(f"expected encoded time, got {value!r}")
        if isinstance(value, int):
            return cls.from_micros(value)
        if isinstance(value, str):
            return cls.from_micros(_parse_micros(value))
        if isinstance(value, Mapping):
            unix = value.get("unix")
            if unix is not None:
                us = value.get("us", 0)
                if not _is_int(unix) or not _is_int(us):
                    raise ParseError("'unix' and 'us' must be integers", ("unix",))
                return cls(unix, us)
            full = value.get("full")
            if isinstance(full, str):
                return cls.from_micros(_parse_micros(full))
            raise ParseError("time object has neither 'unix' nor 'full'")
        raise ParseError(f"expected encoded time, got {type(value).__name__}")

    # ------------------------------------------------------------------ #
    # Pydantic integration
    # ------------------------------------------------------------------ #

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: Any) -> core_schema.CoreSchema:
        def validate(value: Any) -> Time:
            try:
                return cls.decode(value)
            except ParseError as exc:
                raise ValueError(exc.reason) from exc

        return core_schema.no_info_plain_validator_function(
            validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda t: t.to_json()
            ),
        )

    # ------------------------------------------------------------------ #
    # Comparison
    # ------------------------------------------------------------------ #

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Time):
            return NotImplemented
        return self.unix_micro == other.unix_micro

    def __lt__(self, other: Time) -> bool:
        if not isinstance(other, Time):
            return NotImplemented
        return self.unix_micro < other.unix_micro

    def __hash__(self) -> int:
        return hash(self.unix_micro)

    def __repr__(self) -> str:
        return f"Time({self._seconds}, {self._micros})"

    def __str__(self) -> str:
        return f"{self.iso()}.{self._micros:06d} UTC"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_micros(text: str) -> int:
    """Parse the canonical decimal form only, so that re-encoding gives *text* back."""
    body = text[1:] if text.startswith("-") else text
    if not (body.isascii() and body.isdigit()):
        raise ParseError(f"invalid encoded time {text!r}")
    if (len(body) > 1 and body.startswith("0")) or text == "-0":
        raise ParseError(f"non-canonical encoded time {text!r}")
    return int(text)

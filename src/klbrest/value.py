"""Typed, path-addressable tree for decoded JSON payloads.

Every response's ``data`` subtree is held as a :class:`Value` -- an explicit
tagged variant over null, bool, number, string, array and object. Navigation
with :meth:`Value.get` is speculative: it returns ``None`` as soon as a
segment is missing or the node has the wrong kind, and never raises.

Example::

    tree = Value.from_json({"a": {"b": [0, 1, 2]}})
    tree.get(["a", "b", 2]).as_int()   # 2
    tree.get("a/b/2").as_int()         # 2, slash-separated form
    tree.get(["a", "z"])               # None
"""

from __future__ import annotations

import enum
import json
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

from klbrest.exceptions import ParseError

Segment = Union[str, int]
Path = Union[str, Sequence[Segment]]


class ValueKind(str, enum.Enum):
    """Tag of a :class:`Value` node."""

    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


class Value:
    """One immutable node of a JSON-like tree.

    Arrays hold a ``tuple`` of child nodes; objects hold a read-only mapping
    that preserves key order. Build trees with :meth:`from_json` or
    :meth:`parse` rather than calling the constructor directly.
    """

    __slots__ = ("_kind", "_payload")

    def __init__(self, kind: ValueKind, payload: Any = None) -> None:
        self._kind = kind
        self._payload = payload

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def from_json(cls, obj: Any) -> Value:
        """Convert a decoded JSON object (``json.loads`` output) into a tree.

        Raises:
            ParseError: If *obj* contains something JSON cannot represent.
                Trees nested deeper than the interpreter can recurse are
                rejected the same way.
        """
        try:
            return _build(obj, ())
        except RecursionError as exc:
            raise ParseError("value is nested too deeply") from exc

    @classmethod
    def parse(cls, text: Union[str, bytes]) -> Value:
        try:
            obj = json.loads(text)
        except RecursionError as exc:
            raise ParseError("JSON is nested too deeply") from exc
        except (ValueError, UnicodeDecodeError) as exc:
            raise ParseError(f"invalid JSON: {exc}") from exc
        return cls.from_json(obj)

    @classmethod
    def null(cls) -> Value:
        return _NULL

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def kind(self) -> ValueKind:
        return self._kind

    @property
    def is_null(self) -> bool:
        return self._kind is ValueKind.NULL

    def as_bool(self) -> Optional[bool]:
        return self._payload if self._kind is ValueKind.BOOL else None

    def as_int(self) -> Optional[int]:
        if self._kind is not ValueKind.NUMBER:
            return None
        if isinstance(self._payload, float):
            return int(self._payload) if self._payload.is_integer() else None
        return self._payload

    def as_float(self) -> Optional[float]:
        return float(self._payload) if self._kind is ValueKind.NUMBER else None

    def as_str(self) -> Optional[str]:
        return self._payload if self._kind is ValueKind.STRING else None

    def as_list(self) -> Optional[tuple[Value, ...]]:
        return self._payload if self._kind is ValueKind.ARRAY else None

    def as_dict(self) -> Optional[Mapping[str, Value]]:
        return self._payload if self._kind is ValueKind.OBJECT else None

    # ------------------------------------------------------------------ #
    # Navigation
    # ------------------------------------------------------------------ #

    def get(self, path: Path) -> Optional[Value]:
        """Walk *path* from this node.

        *path* is a sequence of segments -- ``str`` keys for objects and
        ``int`` indices for arrays -- or a slash-separated string where
        numeric segments index arrays. An empty path returns this node.

        Returns:
            The node at *path*, or ``None`` if any segment is absent or
            does not fit the node it is applied to.
        """
        node: Value = self
        for segment in _segments(path):
            child = node._child(segment)
            if child is None:
                return None
            node = child
        return node

    def get_string(self, path: Path) -> Optional[str]:
        node = self.get(path)
        return node.as_str() if node is not None else None

    def _child(self, segment: Segment) -> Optional[Value]:
        if self._kind is ValueKind.OBJECT:
            if not isinstance(segment, str):
                return None
            return self._payload.get(segment)
        if self._kind is ValueKind.ARRAY:
            index = _as_index(segment)
            if index is None or index >= len(self._payload):
                return None
            return self._payload[index]
        return None

    # ------------------------------------------------------------------ #
    # Conversion
    # ------------------------------------------------------------------ #

    def to_python(self) -> Any:
        """Return plain ``dict``/``list``/scalar objects for this subtree."""
        if self._kind is ValueKind.ARRAY:
            return [item.to_python() for item in self._payload]
        if self._kind is ValueKind.OBJECT:
            return {key: item.to_python() for key, item in self._payload.items()}
        return self._payload

    def dumps(self) -> str:
        return json.dumps(self.to_python(), ensure_ascii=False, separators=(",", ":"))

    # ------------------------------------------------------------------ #
    # Container protocol
    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        if self._kind in (ValueKind.ARRAY, ValueKind.OBJECT):
            return len(self._payload)
        raise TypeError(f"{self._kind.value} value has no length")

    def __iter__(self) -> Iterator[Any]:
        if self._kind in (ValueKind.ARRAY, ValueKind.OBJECT):
            return iter(self._payload)
        raise TypeError(f"{self._kind.value} value is not iterable")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self._kind is other._kind and self._payload == other._payload

    def __hash__(self) -> int:
        if self._kind is ValueKind.OBJECT:
            return hash((self._kind, tuple(self._payload.items())))
        return hash((self._kind, self._payload))

    def __repr__(self) -> str:
        return f"Value({self._kind.value}, {self.dumps()})"


_NULL = Value(ValueKind.NULL)


def _build(obj: Any, path: tuple[Segment, ...]) -> Value:
    if obj is None:
        return _NULL
    if isinstance(obj, Value):
        return obj
    # bool before int: bool is an int subclass
    if isinstance(obj, bool):
        return Value(ValueKind.BOOL, obj)
    if isinstance(obj, (int, float)):
        return Value(ValueKind.NUMBER, obj)
    if isinstance(obj, str):
        return Value(ValueKind.STRING, obj)
    if isinstance(obj, (list, tuple)):
        return Value(
            ValueKind.ARRAY,
            tuple(_build(item, path + (i,)) for i, item in enumerate(obj)),
        )
    if isinstance(obj, Mapping):
        items: dict[str, Value] = {}
        for key, item in obj.items():
            if not isinstance(key, str):
                raise ParseError(f"object key {key!r} is not a string", path)
            items[key] = _build(item, path + (key,))
        return Value(ValueKind.OBJECT, MappingProxyType(items))
    raise ParseError(f"unsupported value of type {type(obj).__name__}", path)


def _segments(path: Path) -> Sequence[Segment]:
    if isinstance(path, str):
        return [part for part in path.split("/") if part]
    return path


def _as_index(segment: Segment) -> Optional[int]:
    if isinstance(segment, bool):
        return None
    if isinstance(segment, int):
        return segment if segment >= 0 else None
    if isinstance(segment, str) and segment.isascii() and segment.isdigit():
        return int(segment)
    return None

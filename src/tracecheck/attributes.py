"""
Typed attribute values and attribute maps.

Span, resource and event attributes arrive from the collector as OTLP
``AnyValue`` messages. They are held here as a tagged union so that the
filter queries of the inspector compare values by type as well as by value:
``True`` never matches ``1``, and ``"1.1"`` never matches ``1.1``.

Example:
    >>> from tracecheck.attributes import Attributes, AttributeValue
    >>>
    >>> attrs = Attributes.of({"http.flavor": "1.1", "http.status_code": 200})
    >>> attrs.matches("http.flavor", "1.1")
    True
    >>> attrs.matches("http.status_code", "200")
    False
    >>> AttributeValue.of(200) == AttributeValue.of(200.0)
    True
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeAlias

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

# =============================================================================
# Well-known attribute keys
# =============================================================================

ATTR_HTTP_TARGET = "http.target"
"""Request target (path and query) seen by a server span."""

ATTR_HTTP_URL = "http.url"
"""Full URL requested by a client span."""

ATTR_HTTP_ROUTE = "http.route"
"""Matched route template of a server span."""

ATTR_HTTP_FLAVOR = "http.flavor"
"""HTTP protocol version, e.g. ``"1.1"``."""

ATTR_TELEMETRY_AUTO_VERSION = "telemetry.auto.version"
"""Resource attribute carrying the version of the instrumentation agent."""

ATTR_OS_TYPE = "os.type"
"""Resource attribute carrying the operating system type (``linux``, ``windows``)."""

ATTR_SERVICE_NAME = "service.name"
"""Resource attribute carrying the logical service name."""

ATTR_EXCEPTION_MESSAGE = "exception.message"
"""Event attribute carrying the message of a recorded exception."""

ATTR_EXCEPTION_TYPE = "exception.type"
"""Event attribute carrying the type of a recorded exception."""


class AttributeType(Enum):
    """Tag of an AttributeValue, mirroring the OTLP ``AnyValue`` oneof."""

    STRING = "string"
    BOOL = "bool"
    INT = "int"
    DOUBLE = "double"
    BYTES = "bytes"
    ARRAY = "array"


_NUMERIC = frozenset({AttributeType.INT, AttributeType.DOUBLE})

# OTLP AnyValue oneof field -> tag
_OTLP_FIELDS: dict[str, AttributeType] = {
    "string_value": AttributeType.STRING,
    "bool_value": AttributeType.BOOL,
    "int_value": AttributeType.INT,
    "double_value": AttributeType.DOUBLE,
    "bytes_value": AttributeType.BYTES,
}

Scalar: TypeAlias = str | bool | int | float | bytes


@dataclass(frozen=True, eq=False, slots=True)
class AttributeValue:
    """
    A single attribute value together with its type tag.

    Equality is typed. Values of different tags are never equal, except
    INT and DOUBLE which compare numerically. Plain Python values are
    converted with ``AttributeValue.of`` before comparison, so
    ``AttributeValue.of("x") == "x"`` holds.

    Attributes:
        type: The AttributeType tag
        value: The Python value; a tuple of AttributeValue for ARRAY
    """

    type: AttributeType
    value: Scalar | tuple[AttributeValue, ...]

    @classmethod
    def of(cls, value: Any) -> AttributeValue:
        """
        Wrap a plain Python value.

        Raises:
            TypeError: If the value has no attribute representation
        """
        if isinstance(value, AttributeValue):
            return value
        # bool is a subclass of int and must be checked first
        if isinstance(value, bool):
            return cls(AttributeType.BOOL, value)
        if isinstance(value, int):
            return cls(AttributeType.INT, value)
        if isinstance(value, float):
            return cls(AttributeType.DOUBLE, value)
        if isinstance(value, str):
            return cls(AttributeType.STRING, value)
        if isinstance(value, bytes | bytearray):
            return cls(AttributeType.BYTES, bytes(value))
        if isinstance(value, list | tuple):
            return cls(AttributeType.ARRAY, tuple(cls.of(item) for item in value))
        raise TypeError(f"Unsupported attribute value type: {type(value).__name__}")

    @classmethod
    def from_otlp(cls, any_value: Any) -> AttributeValue | None:
        """
        Convert an OTLP ``AnyValue`` protobuf message.

        Returns:
            The converted value, or None for an empty value or a kvlist,
            which has no place in a flat attribute map.
        """
        which = any_value.WhichOneof("value")
        if which is None or which == "kvlist_value":
            return None
        if which == "array_value":
            items = (cls.from_otlp(item) for item in any_value.array_value.values)
            return cls(AttributeType.ARRAY, tuple(item for item in items if item is not None))
        return cls(_OTLP_FIELDS[which], getattr(any_value, which))

    @property
    def is_numeric(self) -> bool:
        return self.type in _NUMERIC

    def to_python(self) -> Any:
        """Return the untagged Python value (lists for arrays)."""
        if self.type is AttributeType.ARRAY:
            return [item.to_python() for item in self.value]  # type: ignore[union-attr]
        return self.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AttributeValue):
            try:
                other = AttributeValue.of(other)
            except TypeError:
                return NotImplemented
        if self.is_numeric and other.is_numeric:
            return self.value == other.value
        return self.type is other.type and self.value == other.value

    def __hash__(self) -> int:
        if self.is_numeric:
            return hash(self.value)
        return hash((self.type, self.value))

    def __repr__(self) -> str:
        return f"{self.type.value}:{self.to_python()!r}"


class Attributes(Mapping[str, AttributeValue]):
    """
    Immutable mapping of attribute key to AttributeValue.

    Example:
        >>> attrs = Attributes.of({"os.type": "linux"})
        >>> attrs["os.type"]
        string:'linux'
        >>> attrs.matches("os.type", "windows")
        False
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, AttributeValue] | None = None) -> None:
        self._items: dict[str, AttributeValue] = dict(items or {})

    @classmethod
    def of(cls, mapping: Mapping[str, Any] | None) -> Attributes:
        """
        Build from a mapping of plain Python values.

        Keys whose value is None are dropped.

        Raises:
            TypeError: If a value has no attribute representation
        """
        if isinstance(mapping, Attributes):
            return mapping
        if not mapping:
            return EMPTY_ATTRIBUTES
        return cls(
            {str(key): AttributeValue.of(value) for key, value in mapping.items() if value is not None}
        )

    @classmethod
    def from_otlp(cls, key_values: Any) -> Attributes:
        """Build from a repeated OTLP ``KeyValue`` field."""
        items: dict[str, AttributeValue] = {}
        for key_value in key_values:
            value = AttributeValue.from_otlp(key_value.value)
            if value is not None:
                items[key_value.key] = value
        return cls(items) if items else EMPTY_ATTRIBUTES

    def matches(self, key: str, value: Any) -> bool:
        """
        Check whether ``key`` is present with a value typed-equal to ``value``.

        Raises:
            TypeError: If ``value`` has no attribute representation
        """
        actual = self._items.get(key)
        if actual is None:
            return False
        return actual == AttributeValue.of(value)

    def to_python(self) -> dict[str, Any]:
        """Return a plain dict with untagged values."""
        return {key: value.to_python() for key, value in self._items.items()}

    @classmethod
    def _validate(cls, value: Any) -> Attributes:
        if value is not None and not isinstance(value, Mapping):
            raise ValueError(f"attributes must be a mapping, got {type(value).__name__}")
        try:
            return cls.of(value)
        except TypeError as exc:
            raise ValueError(str(exc)) from exc

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda attrs: attrs.to_python()
            ),
        )

    def __getitem__(self, key: str) -> AttributeValue:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __hash__(self) -> int:
        return hash(frozenset(self._items.items()))

    def __repr__(self) -> str:
        return f"Attributes({self._items!r})"


EMPTY_ATTRIBUTES = Attributes()


__all__ = [
    "AttributeType",
    "AttributeValue",
    "Attributes",
    "EMPTY_ATTRIBUTES",
    "ATTR_HTTP_TARGET",
    "ATTR_HTTP_URL",
    "ATTR_HTTP_ROUTE",
    "ATTR_HTTP_FLAVOR",
    "ATTR_TELEMETRY_AUTO_VERSION",
    "ATTR_OS_TYPE",
    "ATTR_SERVICE_NAME",
    "ATTR_EXCEPTION_MESSAGE",
    "ATTR_EXCEPTION_TYPE",
]

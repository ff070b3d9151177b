"""Element type descriptors for sampled values.

Each descriptor mirrors a catalogue entry of the host engine: an ``oid``, a
``width`` in bytes (``-1`` for variable length) and whether the host passes the
value by value (fits inside a single 8-byte slot) or by reference.  The
descriptor also owns the codec used when a value crosses a flattening boundary.
"""
from __future__ import annotations

import math
import numbers
import struct
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from .errors import ConfigurationError

VARIABLE_WIDTH = -1
DATUM_BYTES = 8

_ARRAY_COUNT = struct.Struct(">I")


@dataclass(frozen=True)
class ElementType:
    oid: int
    name: str
    width: int
    by_value: bool
    kind: str
    fmt: Optional[str] = None
    item: Optional[str] = None

    @property
    def is_variable(self) -> bool:
        return self.width == VARIABLE_WIDTH

    @property
    def is_array(self) -> bool:
        return self.kind == "array"

    @property
    def item_type(self) -> "ElementType":
        if self.item is None:
            raise ConfigurationError(f"{self.name} is not an array type")
        return _BY_NAME[self.item]

    # ------------------------------ coercion -------------------------------
    def coerce(self, value: Any) -> Any:
        """Normalise ``value`` to the canonical Python form stored in a reservoir.

        The canonical form is what a flatten/unflatten round trip reproduces, so
        float4 values are rounded to single precision here rather than on the
        wire.
        """
        if value is None:
            raise ConfigurationError(f"null values cannot be sampled as {self.name}")
        kind = self.kind
        if kind == "bool":
            if not isinstance(value, bool):
                raise ConfigurationError(f"{self.name} expects bool, got {type(value).__name__}")
            return value
        if kind == "int":
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise ConfigurationError(f"{self.name} expects an integer, got {type(value).__name__}")
            iv = int(value)
            bits = self.width * 8
            if not -(1 << (bits - 1)) <= iv < (1 << (bits - 1)):
                raise ConfigurationError(f"{iv} does not fit in {self.name}")
            return iv
        if kind == "float":
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ConfigurationError(f"{self.name} expects a real number, got {type(value).__name__}")
            fv = float(value)
            if self.width == 4 and math.isfinite(fv):
                try:
                    fv = struct.unpack(">f", struct.pack(">f", fv))[0]
                except OverflowError:
                    raise ConfigurationError(f"{fv!r} does not fit in {self.name}") from None
            return fv
        if kind == "uuid":
            if isinstance(value, uuid.UUID):
                return value
            if isinstance(value, (bytes, bytearray)) and len(value) == 16:
                return uuid.UUID(bytes=bytes(value))
            if isinstance(value, str):
                try:
                    return uuid.UUID(value)
                except ValueError:
                    raise ConfigurationError(f"{value!r} is not a valid uuid") from None
            raise ConfigurationError(f"uuid expects UUID, 16 bytes or str, got {type(value).__name__}")
        if kind == "text":
            if not isinstance(value, str):
                raise ConfigurationError(f"text expects str, got {type(value).__name__}")
            return value
        if kind == "bytea":
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise ConfigurationError(f"bytea expects bytes, got {type(value).__name__}")
            return bytes(value)
        if kind == "array":
            if isinstance(value, (str, bytes, bytearray)):
                raise ConfigurationError(f"{self.name} expects a sequence of numbers")
            try:
                items = list(value)
            except TypeError:
                raise ConfigurationError(
                    f"{self.name} expects a sequence, got {type(value).__name__}"
                ) from None
            item_type = self.item_type
            return tuple(item_type.coerce(v) for v in items)
        raise ConfigurationError(f"unsupported element type {self.name}")

    # --------------------------- by-value datums ---------------------------
    def to_datum(self, value: Any) -> int:
        """Pack a pass-by-value element into the unsigned bits of one slot."""
        if not self.by_value:
            raise ConfigurationError(f"{self.name} is passed by reference")
        if self.kind == "bool":
            return 1 if value else 0
        raw = struct.pack(">" + self.fmt, value)  # type: ignore[operator]
        return int.from_bytes(raw, "big")

    def from_datum(self, datum: int) -> Any:
        if not self.by_value:
            raise ConfigurationError(f"{self.name} is passed by reference")
        if self.kind == "bool":
            return datum != 0
        if datum >> (self.width * 8):
            raise ConfigurationError(f"slot value wider than {self.name}")
        raw = datum.to_bytes(self.width, "big")
        return struct.unpack(">" + self.fmt, raw)[0]  # type: ignore[operator]

    # ------------------------- by-reference payloads -----------------------
    def to_bytes(self, value: Any) -> bytes:
        """Serialise a pass-by-reference element for the data region."""
        kind = self.kind
        if kind == "uuid":
            return value.bytes
        if kind == "text":
            return value.encode("utf-8")
        if kind == "bytea":
            return bytes(value)
        if kind == "array":
            item_fmt = self.item_type.fmt
            return _ARRAY_COUNT.pack(len(value)) + struct.pack(">" + item_fmt * len(value), *value)  # type: ignore[operator]
        raise ConfigurationError(f"{self.name} is passed by value")

    def from_bytes(self, raw: bytes) -> Any:
        kind = self.kind
        if kind == "uuid":
            if len(raw) != 16:
                raise ConfigurationError(f"uuid payload must be 16 bytes, got {len(raw)}")
            return uuid.UUID(bytes=bytes(raw))
        if kind == "text":
            try:
                return bytes(raw).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ConfigurationError(f"text payload is not valid UTF-8: {exc}") from None
        if kind == "bytea":
            return bytes(raw)
        if kind == "array":
            if len(raw) < _ARRAY_COUNT.size:
                raise ConfigurationError(f"{self.name} payload shorter than its count prefix")
            (count,) = _ARRAY_COUNT.unpack_from(raw, 0)
            item = self.item_type
            expected = _ARRAY_COUNT.size + count * item.width
            if len(raw) != expected:
                raise ConfigurationError(
                    f"{self.name} payload holds {len(raw)} bytes, expected {expected} for {count} items"
                )
            return struct.unpack_from(">" + item.fmt * count, raw, _ARRAY_COUNT.size)  # type: ignore[operator]
        raise ConfigurationError(f"{self.name} is passed by value")


BOOL = ElementType(16, "bool", 1, True, "bool")
INT2 = ElementType(21, "int2", 2, True, "int", "h")
INT4 = ElementType(23, "int4", 4, True, "int", "i")
INT8 = ElementType(20, "int8", 8, True, "int", "q")
FLOAT4 = ElementType(700, "float4", 4, True, "float", "f")
FLOAT8 = ElementType(701, "float8", 8, True, "float", "d")
UUID = ElementType(2950, "uuid", 16, False, "uuid")
TEXT = ElementType(25, "text", VARIABLE_WIDTH, False, "text")
BYTEA = ElementType(17, "bytea", VARIABLE_WIDTH, False, "bytea")
INT4_ARRAY = ElementType(1007, "int4[]", VARIABLE_WIDTH, False, "array", item="int4")
INT8_ARRAY = ElementType(1016, "int8[]", VARIABLE_WIDTH, False, "array", item="int8")
FLOAT8_ARRAY = ElementType(1022, "float8[]", VARIABLE_WIDTH, False, "array", item="float8")

_ALL: Tuple[ElementType, ...] = (
    BOOL, INT2, INT4, INT8, FLOAT4, FLOAT8, UUID, TEXT, BYTEA,
    INT4_ARRAY, INT8_ARRAY, FLOAT8_ARRAY,
)
_BY_NAME: Dict[str, ElementType] = {t.name: t for t in _ALL}
_BY_OID: Dict[int, ElementType] = {t.oid: t for t in _ALL}
_ALIASES = {
    "boolean": "bool",
    "smallint": "int2",
    "integer": "int4",
    "int": "int4",
    "bigint": "int8",
    "real": "float4",
    "double precision": "float8",
    "float": "float8",
    "integer[]": "int4[]",
    "bigint[]": "int8[]",
    "double precision[]": "float8[]",
}

TypeSpec = Union[ElementType, str, int]


def lookup(spec: TypeSpec) -> ElementType:
    """Resolve a descriptor, a type name (or common alias) or an oid."""
    if isinstance(spec, ElementType):
        return spec
    if isinstance(spec, bool):
        raise ConfigurationError(f"unsupported element type {spec!r}")
    if isinstance(spec, int):
        try:
            return _BY_OID[spec]
        except KeyError:
            raise ConfigurationError(f"unsupported element type oid {spec}") from None
    if isinstance(spec, str):
        key = spec.strip().lower()
        key = _ALIASES.get(key, key)
        try:
            return _BY_NAME[key]
        except KeyError:
            raise ConfigurationError(f"unsupported element type {spec!r}") from None
    raise ConfigurationError(f"cannot resolve element type from {type(spec).__name__}")


def infer(value: Any) -> ElementType:
    """Pick the descriptor a bare Python value maps to when none is declared."""
    if isinstance(value, bool):
        return BOOL
    if isinstance(value, numbers.Integral):
        return INT8
    if isinstance(value, numbers.Real):
        return FLOAT8
    if isinstance(value, str):
        return TEXT
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BYTEA
    if isinstance(value, uuid.UUID):
        return UUID
    raise ConfigurationError(f"no element type for values of type {type(value).__name__}")

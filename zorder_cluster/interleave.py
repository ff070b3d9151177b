"""Z-order (Morton) keys for multi-dimensional records.

Every coordinate is first mapped to an unsigned integer whose natural order
matches the order of the original values:

==========  =====  ==========================================================
type        bits   mapping
==========  =====  ==========================================================
bool        8      ``False -> 0``, ``True -> 1``
int2/4/8    16-64  two's complement with the sign bit flipped (``v + 2**(w-1)``)
float4/8    32/64  IEEE bits; non-negative values get the sign bit set,
                   negative values are bitwise inverted; ``-0.0`` maps as
                   ``0.0``; NaN and infinities are rejected
text        64     first 8 UTF-8 bytes, zero padded, big-endian
bytea       64     first 8 bytes, zero padded, big-endian
uuid        128    the 16 bytes as a big-endian integer
==========  =====  ==========================================================

The mapped value is then aligned to ``per_dimension_bits``: wider values keep
only their top bits, narrower ones are shifted left.  Bits are emitted most
significant first, round-robin across the dimensions in declaration order, so
the first dimension owns the top bit of every group.
"""
from __future__ import annotations

import math
import struct
from functools import lru_cache
from typing import Any, Optional, Sequence, Tuple

from . import elements as _elements
from .errors import ConfigurationError

_MAPPED_BITS = {
    "bool": lambda t: 8,
    "int": lambda t: t.width * 8,
    "float": lambda t: t.width * 8,
    "text": lambda t: 64,
    "bytea": lambda t: 64,
    "uuid": lambda t: 128,
}
_MAX_DIMENSION_BITS = 128


def mapped_width(element_type: _elements.TypeSpec) -> int:
    """Bits produced by :func:`to_ordered_unsigned` for ``element_type``."""
    etype = _elements.lookup(element_type)
    try:
        return _MAPPED_BITS[etype.kind](etype)
    except KeyError:
        raise ConfigurationError(f"{etype.name} cannot be used as a Z-order dimension") from None


def to_ordered_unsigned(value: Any, element_type: _elements.TypeSpec) -> int:
    """Map ``value`` into an unsigned domain that preserves its order."""
    etype = _elements.lookup(element_type)
    v = etype.coerce(value)
    kind = etype.kind
    if kind == "bool":
        return 1 if v else 0
    if kind == "int":
        return v + (1 << (etype.width * 8 - 1))
    if kind == "float":
        if not math.isfinite(v):
            raise ConfigurationError(f"Z-order coordinates must be finite, got {v!r}")
        if v == 0.0:
            v = 0.0
        bits = etype.width * 8
        fmt, ufmt = (">f", ">I") if etype.width == 4 else (">d", ">Q")
        raw = struct.unpack(ufmt, struct.pack(fmt, v))[0]
        sign = 1 << (bits - 1)
        if raw & sign:
            return ~raw & ((1 << bits) - 1)
        return raw | sign
    if kind in ("text", "bytea"):
        raw = v.encode("utf-8") if kind == "text" else v
        return int.from_bytes(raw[:8].ljust(8, b"\x00"), "big")
    if kind == "uuid":
        return v.int
    raise ConfigurationError(f"{etype.name} cannot be used as a Z-order dimension")


@lru_cache(maxsize=None)
def _spread_table(dims: int) -> Tuple[int, ...]:
    # bit k of a byte moves to bit k * dims
    table = []
    for byte in range(256):
        out = 0
        for k in range(8):
            if byte >> k & 1:
                out |= 1 << (k * dims)
        table.append(out)
    return tuple(table)


def _spread(value: int, dims: int, table: Tuple[int, ...]) -> int:
    out = 0
    shift = 0
    step = 8 * dims
    while value:
        out |= table[value & 0xFF] << shift
        value >>= 8
        shift += step
    return out


class ZOrderKeyBuilder:
    """Precomputed layout for keys over a fixed list of dimension types."""

    __slots__ = ("_types", "_widths", "_bits", "_table")

    def __init__(self, dimension_types: Sequence[_elements.TypeSpec], per_dimension_bits: Optional[int] = None):
        resolved = tuple(_elements.lookup(t) for t in dimension_types)
        if not resolved:
            raise ConfigurationError("a Z-order key needs at least one dimension")
        widths = tuple(mapped_width(t) for t in resolved)
        if per_dimension_bits is None:
            per_dimension_bits = max(widths)
        if isinstance(per_dimension_bits, bool) or not isinstance(per_dimension_bits, int):
            raise ConfigurationError("per_dimension_bits must be an integer")
        if not 1 <= per_dimension_bits <= _MAX_DIMENSION_BITS:
            raise ConfigurationError(
                f"per_dimension_bits must be in [1, {_MAX_DIMENSION_BITS}], got {per_dimension_bits}"
            )
        self._types = resolved
        self._widths = widths
        self._bits = per_dimension_bits
        self._table = _spread_table(len(resolved))

    @property
    def dimension_types(self) -> Tuple[_elements.ElementType, ...]:
        return self._types

    @property
    def dimensions(self) -> int:
        return len(self._types)

    @property
    def per_dimension_bits(self) -> int:
        return self._bits

    @property
    def key_bits(self) -> int:
        return len(self._types) * self._bits

    def bucket(self, coords: Sequence[Any]) -> Tuple[int, ...]:
        """Mapped coordinates aligned to ``per_dimension_bits``."""
        if len(coords) != len(self._types):
            raise ConfigurationError(f"expected {len(self._types)} coordinates, got {len(coords)}")
        bits = self._bits
        out = []
        for value, etype, width in zip(coords, self._types, self._widths):
            u = to_ordered_unsigned(value, etype)
            if width > bits:
                u >>= width - bits
            elif width < bits:
                u <<= bits - width
            out.append(u)
        return tuple(out)

    def key(self, coords: Sequence[Any]) -> int:
        dims = len(self._types)
        key = 0
        for d, u in enumerate(self.bucket(coords)):
            key |= _spread(u, dims, self._table) << (dims - 1 - d)
        return key

    __call__ = key

    def __repr__(self) -> str:
        names = ", ".join(t.name for t in self._types)
        return f"ZOrderKeyBuilder([{names}], per_dimension_bits={self._bits})"


@lru_cache(maxsize=256)
def _builder(type_names: Tuple[str, ...], per_dimension_bits: Optional[int]) -> ZOrderKeyBuilder:
    return ZOrderKeyBuilder(type_names, per_dimension_bits)


def interleave(
    coords: Sequence[Any],
    types: Optional[Sequence[_elements.TypeSpec]] = None,
    per_dimension_bits: Optional[int] = None,
) -> int:
    """Z-order key of ``coords``.  Types default to what each value looks like."""
    if types is None:
        types = [_elements.infer(v) for v in coords]
    names = tuple(_elements.lookup(t).name for t in types)
    return _builder(names, per_dimension_bits).key(coords)


def deinterleave(key: int, dimensions: int, per_dimension_bits: int) -> Tuple[int, ...]:
    """Split a key back into its per-dimension bucketed coordinates."""
    if dimensions < 1 or per_dimension_bits < 1:
        raise ConfigurationError("dimensions and per_dimension_bits must be positive")
    if key < 0 or key >> (dimensions * per_dimension_bits):
        raise ConfigurationError(f"key does not fit in {dimensions * per_dimension_bits} bits")
    out = [0] * dimensions
    pos = dimensions * per_dimension_bits - 1
    for b in range(per_dimension_bits - 1, -1, -1):
        for d in range(dimensions):
            if key >> pos & 1:
                out[d] |= 1 << b
            pos -= 1
    return tuple(out)

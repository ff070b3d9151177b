"""Position-independent encoding of a reservoir for transport between workers.

A live :class:`~zorder_cluster.reservoir.Reservoir` keeps its sampled values as
Python objects.  Before a worker hands its sample to the coordinator the
reservoir is flattened into one contiguous block:

  magic 'ZRS1' (4B), total_size(uint32), data_len(uint32), sample_size(uint32),
  partition_num(uint32), input_size(uint64), rng_seed(uint64),
  element_type(uint32 oid), typlen(int16), typbyval(uint8), is_flattened(uint8),
  4 pad bytes,
  then data_len slots of uint64, then the data region.

Pass-by-value elements live inline in their slot.  Every other element is
appended to the data region (``uint32 length + bytes`` for variable-width types,
raw bytes for fixed-width ones) and its slot holds the byte offset from the start
of the data region.  No slot ever holds an address, so the block can be copied
anywhere and reinterpreted.

All integers are big-endian.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any, List, Union

from . import elements as _elements
from .errors import CapacityError, ConfigurationError, CorruptionError
from .reservoir import MAX_SAMPLE_SIZE, Reservoir, describe

SERIAL_FORMAT_MAGIC = b"ZRS1"
SERIAL_FORMAT_VERSION = 1

_HEADER = struct.Struct(">4sIIIIQQIhBB4x")
_SLOT = struct.Struct(">Q")
_LENGTH = struct.Struct(">I")

HEADER_SIZE = _HEADER.size
SLOT_SIZE = _SLOT.size
_MAX_BLOCK_SIZE = 0xFFFFFFFF


@dataclass(frozen=True)
class InlineSlot:
    """Slot holding the bits of a pass-by-value element."""

    datum: int


@dataclass(frozen=True)
class OffsetSlot:
    """Slot holding a byte offset into the data region."""

    offset: int


Slot = Union[InlineSlot, OffsetSlot]


class _BlockBuilder:
    """Append-only construction of the slot array and the trailing data region."""

    def __init__(self) -> None:
        self.slots: List[int] = []
        self.data = bytearray()

    def add_inline(self, datum: int) -> None:
        self.slots.append(datum)

    def add_payload(self, payload: bytes, variable: bool) -> None:
        self.slots.append(len(self.data))
        if variable:
            self.data += _LENGTH.pack(len(payload))
        self.data += payload

    def finish(self, state: Any) -> bytes:
        etype = state.element_type
        total = HEADER_SIZE + SLOT_SIZE * len(self.slots) + len(self.data)
        if total > _MAX_BLOCK_SIZE:
            raise CapacityError(f"flattened reservoir of {total} bytes exceeds the addressable block size")
        out = bytearray()
        out += _HEADER.pack(
            SERIAL_FORMAT_MAGIC,
            total,
            len(self.slots),
            state.capacity,
            state.partition_num,
            state.count_seen,
            getattr(state, "rng_seed", Reservoir._DEFAULT_SEED),
            etype.oid,
            etype.width,
            1 if etype.by_value else 0,
            1,
        )
        for s in self.slots:
            out += _SLOT.pack(s)
        out += self.data
        return bytes(out)


class FlattenedReservoir:
    """
    Immutable, relocatable view over a flattened block.

    Exposes the same read surface as :class:`Reservoir` (``capacity``,
    ``count_seen``, ``partition_num``, ``element_type``, ``len()``,
    ``element(n)``, ``values()``) so combiners do not care which form they get.
    The block is fully validated on construction; slots are resolved lazily.
    """

    __slots__ = (
        "_buf", "_count", "_capacity", "_partition_num", "_seen",
        "_type", "_data_base", "_rng_seed",
    )

    def __init__(self, block: Union[bytes, bytearray, memoryview]):
        buf = bytes(block)
        if len(buf) < HEADER_SIZE:
            raise CorruptionError(f"block of {len(buf)} bytes is shorter than the {HEADER_SIZE}-byte header")
        (magic, total, count, capacity, partition_num, seen, seed,
         oid, typlen, byval, flattened) = _HEADER.unpack_from(buf, 0)
        if magic != SERIAL_FORMAT_MAGIC:
            raise CorruptionError(
                "Unsupported serialization header. This reader only understands "
                f"{SERIAL_FORMAT_MAGIC!r}."
            )
        if total != len(buf):
            raise CorruptionError(f"header declares {total} bytes but the block holds {len(buf)}")
        if flattened != 1:
            raise CorruptionError("block is not marked as flattened; it cannot carry in-memory references")
        if byval not in (0, 1):
            raise CorruptionError(f"invalid pass-by-value flag {byval}")

        etype = _elements.lookup(oid)
        if typlen != etype.width or bool(byval) != etype.by_value:
            raise ConfigurationError(
                f"header describes oid {oid} as typlen={typlen} byval={bool(byval)}, "
                f"expected typlen={etype.width} byval={etype.by_value}"
            )
        if not 1 <= capacity <= MAX_SAMPLE_SIZE:
            raise CorruptionError(f"sample size {capacity} out of range")
        if partition_num < 1:
            raise CorruptionError(f"partition count {partition_num} out of range")
        if count > capacity or count > seen:
            raise CorruptionError(
                f"{count} elements cannot come from a sample of {capacity} over {seen} inputs"
            )

        data_base = HEADER_SIZE + SLOT_SIZE * count
        if data_base > total:
            raise CorruptionError(f"slot array of {count} entries overruns the {total}-byte block")

        self._buf = buf
        self._count = count
        self._capacity = capacity
        self._partition_num = partition_num
        self._seen = seen
        self._type = etype
        self._data_base = data_base
        self._rng_seed = seed
        self._validate_slots()

    def _validate_slots(self) -> None:
        etype = self._type
        region = len(self._buf) - self._data_base
        if etype.by_value:
            if region:
                raise ConfigurationError(f"{etype.name} block carries a {region}-byte data region")
            limit = 1 << (etype.width * 8)
            for n in range(self._count):
                if self._raw_slot(n) >= limit:
                    raise CorruptionError(f"slot {n} holds a value wider than {etype.name}")
            return
        if not etype.is_variable and region != etype.width * self._count:
            raise ConfigurationError(
                f"data region of {region} bytes does not match {self._count} x {etype.width}-byte values"
            )
        for n in range(self._count):
            off = self._raw_slot(n)
            if etype.is_variable:
                if off + _LENGTH.size > region:
                    raise CorruptionError(f"slot {n} offset {off} outside the {region}-byte data region")
                (length,) = _LENGTH.unpack_from(self._buf, self._data_base + off)
                if off + _LENGTH.size + length > region:
                    raise CorruptionError(f"slot {n} value of {length} bytes runs past the data region")
            elif off + etype.width > region:
                raise CorruptionError(f"slot {n} offset {off} outside the {region}-byte data region")

    def _raw_slot(self, n: int) -> int:
        return _SLOT.unpack_from(self._buf, HEADER_SIZE + SLOT_SIZE * n)[0]

    # ------------------------------- Public API --------------------------------
    def slot(self, n: int) -> Slot:
        if not 0 <= n < self._count:
            raise IndexError(f"slot {n} out of range")
        raw = self._raw_slot(n)
        return InlineSlot(raw) if self._type.by_value else OffsetSlot(raw)

    def resolve(self, slot: Slot) -> Any:
        """The one place a slot is turned back into a value."""
        etype = self._type
        if isinstance(slot, InlineSlot):
            return etype.from_datum(slot.datum)
        start = self._data_base + slot.offset
        if etype.is_variable:
            (length,) = _LENGTH.unpack_from(self._buf, start)
            start += _LENGTH.size
        else:
            length = etype.width
        return etype.from_bytes(self._buf[start:start + length])

    def element(self, n: int) -> Any:
        return self.resolve(self.slot(n))

    def values(self) -> List[Any]:
        return [self.element(n) for n in range(self._count)]

    def __len__(self) -> int:
        return self._count

    def size(self) -> int:
        return self._seen

    @property
    def total_size(self) -> int:
        return len(self._buf)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def count_seen(self) -> int:
        return self._seen

    @property
    def partition_num(self) -> int:
        return self._partition_num

    @property
    def rng_seed(self) -> int:
        """Seed of the reservoir this block was flattened from."""
        return self._rng_seed

    @property
    def element_type(self) -> _elements.ElementType:
        return self._type

    @property
    def is_flattened(self) -> bool:
        return True

    @property
    def data_region(self) -> bytes:
        return self._buf[self._data_base:]

    def describe(self, limit: int = 8) -> str:
        return describe(self, limit)

    def to_bytes(self) -> bytes:
        return self._buf

    @classmethod
    def from_bytes(cls, b: Union[bytes, bytearray, memoryview]) -> "FlattenedReservoir":
        return cls(b)

    def to_hex(self) -> str:
        return "\\x" + self._buf.hex()

    @classmethod
    def from_hex(cls, text: str) -> "FlattenedReservoir":
        body = text.strip()
        if body[:2] in ("\\x", "0x"):
            body = body[2:]
        try:
            raw = bytes.fromhex(body)
        except ValueError as exc:
            raise CorruptionError(f"invalid hex encoding: {exc}") from None
        return cls(raw)

    def unflatten(self) -> Reservoir:
        return unflatten(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlattenedReservoir):
            return NotImplemented
        return self._buf == other._buf

    def __hash__(self) -> int:
        return hash(self._buf)

    def __repr__(self) -> str:
        return (
            f"FlattenedReservoir(total_size={len(self._buf)}, elements={self._count}, "
            f"count_seen={self._seen}, element_type={self._type.name!r})"
        )


def flatten(state: Any) -> FlattenedReservoir:
    """Encode a reservoir into a relocatable block.  Flattened input is returned as is."""
    if isinstance(state, FlattenedReservoir):
        return state
    etype = state.element_type
    builder = _BlockBuilder()
    for value in state.values():
        if etype.by_value:
            builder.add_inline(etype.to_datum(value))
        else:
            builder.add_payload(etype.to_bytes(value), etype.is_variable)
    block = builder.finish(state)
    return FlattenedReservoir(block)


def unflatten(flat: Union[FlattenedReservoir, bytes, bytearray, memoryview]) -> Reservoir:
    """Materialise a flattened block back into a live :class:`Reservoir`."""
    if not isinstance(flat, FlattenedReservoir):
        flat = FlattenedReservoir(flat)
    return Reservoir._from_parts(
        flat.capacity,
        flat.element_type,
        flat.partition_num,
        flat.count_seen,
        flat.values(),
        rng_seed=flat.rng_seed,
    )


def element_at(state: Any, n: int) -> Any:
    """Element ``n`` of either representation."""
    if state.is_flattened:
        return state.resolve(state.slot(n))
    return state.element(n)

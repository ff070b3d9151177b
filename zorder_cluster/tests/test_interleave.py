"""Tests for order-preserving mappings and bit interleaving."""
from __future__ import annotations

import random
import uuid

import pytest

from zorder_cluster import ConfigurationError, ZOrderKeyBuilder, deinterleave, interleave, to_ordered_unsigned
from zorder_cluster.interleave import mapped_width


def _int2_bucket(top4: int, low: int = 0) -> int:
    """An int2 whose sign-flipped value has ``top4`` as its leading nibble."""
    return -32768 + (top4 << 12) + low


def test_known_bit_pattern() -> None:
    builder = ZOrderKeyBuilder(["int2", "int2"], per_dimension_bits=4)
    key = builder.key((_int2_bucket(0b1010), _int2_bucket(0b0110)))
    # x3 y3 x2 y2 x1 y1 x0 y0 = 10 01 11 00
    assert key == 0b10011100
    assert deinterleave(key, 2, 4) == (0b1010, 0b0110)
    assert builder.key_bits == 8


def test_truncation_buckets_wide_values() -> None:
    builder = ZOrderKeyBuilder(["int2", "int2"], per_dimension_bits=4)
    base = builder.key((_int2_bucket(3), _int2_bucket(12)))
    for low in (1, 100, 4095):
        assert builder.key((_int2_bucket(3, low), _int2_bucket(12, low))) == base
    assert builder.key((_int2_bucket(4), _int2_bucket(12))) != base


def test_narrow_values_are_left_aligned() -> None:
    builder = ZOrderKeyBuilder(["int2"], per_dimension_bits=32)
    assert builder.key((0,)) == 0x8000 << 16
    assert builder.bucket((-32768,)) == (0,)


def test_default_budget_is_widest_mapped_width() -> None:
    assert ZOrderKeyBuilder(["int2", "int8"]).per_dimension_bits == 64
    assert ZOrderKeyBuilder(["float4"]).key_bits == 32
    assert ZOrderKeyBuilder(["uuid", "text"]).key_bits == 256


def test_single_dimension_key_is_the_mapped_value() -> None:
    for v in (-7, 0, 9, 2**62):
        assert interleave([v]) == to_ordered_unsigned(v, "int8")


@pytest.mark.parametrize(
    "element_type, values",
    [
        ("int2", [-32768, -5, -1, 0, 1, 32767]),
        ("int4", [-(2**31), -1, 0, 2**31 - 1]),
        ("int8", [-(2**63), -(2**40), 0, 3, 2**63 - 1]),
        ("float4", [-3.0e38, -1.0, -1e-30, 0.0, 1e-30, 0.5, 3.0e38]),
        ("float8", [-1e308, -2.5, -5e-324, 0.0, 5e-324, 1.0, 1e308]),
        ("bool", [False, True]),
        ("text", ["", "a", "ab", "b", "zz"]),
        ("bytea", [b"", b"\x00\x01", b"\x01", b"\xff"]),
        ("uuid", [uuid.UUID(int=0), uuid.UUID(int=7), uuid.UUID(int=2**128 - 1)]),
    ],
)
def test_mapping_preserves_order(element_type: str, values: list) -> None:
    mapped = [to_ordered_unsigned(v, element_type) for v in values]
    assert mapped == sorted(mapped)
    assert len(set(mapped)) == len(mapped)
    width = mapped_width(element_type)
    assert all(0 <= m < (1 << width) for m in mapped)


def test_negative_zero_maps_like_zero() -> None:
    assert to_ordered_unsigned(-0.0, "float8") == to_ordered_unsigned(0.0, "float8")


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_coordinates_rejected(bad: float) -> None:
    with pytest.raises(ConfigurationError):
        interleave([1.0, bad])


def test_unsupported_dimension_types_rejected() -> None:
    with pytest.raises(ConfigurationError):
        ZOrderKeyBuilder(["float8[]"])
    with pytest.raises(ConfigurationError):
        ZOrderKeyBuilder([])
    with pytest.raises(ConfigurationError):
        ZOrderKeyBuilder(["int8"], per_dimension_bits=0)
    with pytest.raises(ConfigurationError):
        interleave([object()])


def test_coordinate_count_must_match() -> None:
    builder = ZOrderKeyBuilder(["int8", "int8"])
    with pytest.raises(ConfigurationError):
        builder.key((1, 2, 3))


def test_determinism_and_inference() -> None:
    coords = (12.5, -3, "key", True)
    assert interleave(coords) == interleave(list(coords))
    explicit = interleave(coords, types=["float8", "int8", "text", "bool"])
    assert interleave(coords) == explicit


def test_monotone_in_each_dimension() -> None:
    rng = random.Random(5)
    builder = ZOrderKeyBuilder(["float8", "int4", "float8"], per_dimension_bits=20)
    for _ in range(500):
        point = [rng.uniform(-1e3, 1e3), rng.randrange(-1000, 1000), rng.uniform(0, 1)]
        d = rng.randrange(3)
        bigger = list(point)
        bigger[d] = point[d] + (abs(point[d]) + 1) * rng.random() if d != 1 else point[d] + rng.randrange(50)
        assert builder.key(point) <= builder.key(bigger)


def test_deinterleave_validates_key_width() -> None:
    with pytest.raises(ConfigurationError):
        deinterleave(1 << 8, 2, 4)
    with pytest.raises(ConfigurationError):
        deinterleave(-1, 2, 4)

"""Tests for boundary extraction and partition assignment."""
from __future__ import annotations

import pytest

from zorder_cluster import (
    BoundaryList,
    CapacityError,
    ConfigurationError,
    Reservoir,
    ZOrderKeyBuilder,
    assign,
    extract_boundaries,
    flatten,
    partition_sizes,
)


@pytest.mark.parametrize(
    "key, expected",
    [(5, 0), (10, 0), (15, 1), (20, 1), (29, 2), (30, 2), (31, 3), (99, 3)],
)
def test_assignment_below_exact_between_and_above(key: int, expected: int) -> None:
    boundaries = BoundaryList([10, 20, 30])
    assert boundaries.partition_num == 4
    assert assign(key, boundaries) == expected
    assert boundaries.assign(key) == expected
    assert assign(key, [10, 20, 30]) == expected


def test_repeated_boundaries_pick_first_partition() -> None:
    boundaries = BoundaryList([10, 10, 10, 40])
    assert boundaries.assign(10) == 0
    assert boundaries.assign(11) == 3
    assert boundaries.assign(41) == 4


def test_single_partition_has_no_boundaries() -> None:
    boundaries = BoundaryList([], partition_num=1)
    assert len(boundaries) == 0
    assert boundaries.assign(123) == 0


def test_boundaries_must_be_sorted_and_sized() -> None:
    with pytest.raises(ConfigurationError):
        BoundaryList([3, 2, 1])
    with pytest.raises(ConfigurationError):
        BoundaryList([1, 2], partition_num=5)
    with pytest.raises(CapacityError):
        BoundaryList([], partition_num=0)


def test_extract_equi_depth_cut_points() -> None:
    keys = list(range(100, 0, -1))
    boundaries = extract_boundaries(keys, 4)
    assert list(boundaries) == [25, 50, 75]
    assert partition_sizes(range(1, 101), boundaries) == [25, 25, 25, 25]


def test_extract_with_fewer_keys_than_partitions() -> None:
    boundaries = extract_boundaries([7, 3], 4)
    assert list(boundaries) == [3, 3, 3]
    assert boundaries.assign(3) == 0
    assert boundaries.assign(5) == 3
    assert boundaries.assign(8) == 3


def test_extract_from_empty_sample_fails() -> None:
    with pytest.raises(ValueError):
        extract_boundaries([], 4)


def test_from_sample_reads_flattened_points() -> None:
    r = Reservoir(40, "int8[]", partition_num=2)
    r.extend((i, i) for i in range(40))
    builder = ZOrderKeyBuilder(["int8", "int8"])
    live = BoundaryList.from_sample(r, builder)
    moved = BoundaryList.from_sample(flatten(r), builder)
    assert live == moved
    assert len(live) == 1
    assert live[0] == builder.key((19, 19))


def test_from_sample_scalar_elements() -> None:
    r = Reservoir(10, "int4", partition_num=2)
    r.extend(range(10))
    boundaries = BoundaryList.from_sample(r, ZOrderKeyBuilder(["int4"]))
    assert boundaries.assign(ZOrderKeyBuilder(["int4"]).key((4,))) == 0
    assert boundaries.assign(ZOrderKeyBuilder(["int4"]).key((5,))) == 1

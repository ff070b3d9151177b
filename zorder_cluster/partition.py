"""Boundary extraction from a merged sample and per-record partition lookup."""
from __future__ import annotations

import logging
from bisect import bisect_left
from typing import Any, Iterable, List, Optional, Tuple

from .errors import ConfigurationError, check_size
from .interleave import ZOrderKeyBuilder
from .reservoir import MAX_SAMPLE_SIZE

logger = logging.getLogger(__name__)


class BoundaryList:
    """
    ``partition_num - 1`` sorted upper bounds over interleaved keys.

    Partition ``i`` holds the keys ``k`` with ``boundaries[i-1] < k <= boundaries[i]``;
    the last partition takes everything above the last boundary.  Repeated
    boundaries are allowed: a key equal to a repeated boundary goes to the first
    partition whose bound admits it, leaving the others empty.
    """

    __slots__ = ("_keys", "_partition_num")

    def __init__(self, keys: Iterable[int], partition_num: Optional[int] = None):
        ks = tuple(int(k) for k in keys)
        if any(ks[i] > ks[i + 1] for i in range(len(ks) - 1)):
            raise ConfigurationError("boundary keys must be non-decreasing")
        if partition_num is None:
            partition_num = len(ks) + 1
        check_size("partition_num", partition_num, MAX_SAMPLE_SIZE)
        if len(ks) != partition_num - 1:
            raise ConfigurationError(
                f"{partition_num} partitions need {partition_num - 1} boundaries, got {len(ks)}"
            )
        self._keys = ks
        self._partition_num = partition_num

    @classmethod
    def from_keys(cls, sample_keys: Iterable[int], partition_num: int) -> "BoundaryList":
        """Cut a sample of keys into ``partition_num`` equal-count ranges."""
        check_size("partition_num", partition_num, MAX_SAMPLE_SIZE)
        ordered = sorted(int(k) for k in sample_keys)
        n = len(ordered)
        if n == 0:
            raise ValueError("empty sample")
        cuts = [ordered[max(0, (i * n) // partition_num - 1)] for i in range(1, partition_num)]
        logger.debug("derived %d boundaries from %d sampled keys", len(cuts), n)
        return cls(cuts, partition_num)

    @classmethod
    def from_sample(
        cls,
        state: Any,
        builder: ZOrderKeyBuilder,
        partition_num: Optional[int] = None,
    ) -> "BoundaryList":
        """Interleave every point of a live or flattened reservoir and cut it.

        Array element types hold a whole point per element; scalar types are
        treated as one-dimensional points.
        """
        if partition_num is None:
            partition_num = state.partition_num
        etype = state.element_type
        if etype.is_array:
            keys = [builder.key(point) for point in state.values()]
        else:
            keys = [builder.key((value,)) for value in state.values()]
        return cls.from_keys(keys, partition_num)

    @property
    def keys(self) -> Tuple[int, ...]:
        return self._keys

    @property
    def partition_num(self) -> int:
        return self._partition_num

    def assign(self, key: int) -> int:
        return bisect_left(self._keys, key)

    __call__ = assign

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self):
        return iter(self._keys)

    def __getitem__(self, i: int) -> int:
        return self._keys[i]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoundaryList):
            return NotImplemented
        return self._keys == other._keys and self._partition_num == other._partition_num

    def __hash__(self) -> int:
        return hash((self._keys, self._partition_num))

    def __repr__(self) -> str:
        return f"BoundaryList(partition_num={self._partition_num}, keys={list(self._keys)!r})"


def extract_boundaries(sample_keys: Iterable[int], partition_num: int) -> BoundaryList:
    return BoundaryList.from_keys(sample_keys, partition_num)


def assign(key: int, boundaries: Any) -> int:
    """Index of the first boundary ``>= key``, or ``len(boundaries)`` past the end.

    ``boundaries`` may be a :class:`BoundaryList` or any sorted sequence of keys.
    """
    if isinstance(boundaries, BoundaryList):
        return bisect_left(boundaries._keys, key)
    return bisect_left(boundaries, key)


def partition_sizes(keys: Iterable[int], boundaries: BoundaryList) -> List[int]:
    counts = [0] * boundaries.partition_num
    for k in keys:
        counts[boundaries.assign(k)] += 1
    return counts

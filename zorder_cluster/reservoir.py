# Bounded reservoir sampling for Z-order boundary estimation.
# - Single-writer online insertion (Vitter's algorithm R)
# - Deterministic RNG per reservoir (seed + salt mixer for merges)
# - Weighted merge of partial reservoirs from parallel workers
# Python 3.9+

from __future__ import annotations

import logging
import random
from functools import reduce
from typing import Any, Iterable, List, Optional, Sequence

from . import elements as _elements
from .errors import CapacityError, ConfigurationError, check_size

logger = logging.getLogger(__name__)

SAMPLE_HINT = 60                # samples collected per eventual partition
MAX_SAMPLE_SIZE = 1_000_000     # largest addressable reservoir
_SEED_MASK = 0xFFFFFFFFFFFFFFFF


class Reservoir:
    """
    Fixed-capacity uniform sample of a stream whose length is unknown up front.

    Every record observed so far is in the sample with probability
    ``capacity / count_seen``.  A reservoir is owned by exactly one worker and
    mutated only through :meth:`insert`; once the worker is done it is flattened
    (see :mod:`zorder_cluster.flatten`) and combined with its peers.

    Public API:
      insert(x), extend(xs), size(), values(), element(n), describe(),
      for_partitions(partition_num, element_type), combine(a, b)
    """

    _DEFAULT_SEED: int = 0xA5B357

    # 64-bit odd constant (golden ratio scaled) used to derive merge RNGs from
    # the inputs' seeds and stream counts.
    _SALT_MIX64: int = 0x9E3779B185EBCA87

    __slots__ = ("_elements", "_capacity", "_count", "_partition_num", "_type", "_rng", "_rng_seed")

    def __init__(
        self,
        capacity: int,
        element_type: _elements.TypeSpec,
        partition_num: int = 1,
        rng_seed: int = _DEFAULT_SEED,
    ):
        self._capacity = check_size("capacity", capacity, MAX_SAMPLE_SIZE)
        self._partition_num = check_size("partition_num", partition_num, MAX_SAMPLE_SIZE)
        self._type = _elements.lookup(element_type)
        self._elements: List[Any] = []
        self._count = 0
        self._rng_seed = int(rng_seed) & _SEED_MASK
        self._rng = random.Random(self._rng_seed)

    @classmethod
    def for_partitions(
        cls,
        partition_num: int,
        element_type: _elements.TypeSpec,
        sample_hint: int = SAMPLE_HINT,
        rng_seed: int = _DEFAULT_SEED,
    ) -> "Reservoir":
        """Size the reservoir as ``sample_hint`` samples per partition."""
        check_size("partition_num", partition_num, MAX_SAMPLE_SIZE)
        check_size("sample_hint", sample_hint, MAX_SAMPLE_SIZE)
        capacity = sample_hint * partition_num
        if capacity > MAX_SAMPLE_SIZE:
            raise CapacityError(
                f"{partition_num} partitions x {sample_hint} samples = {capacity} "
                f"exceeds the maximum sample size of {MAX_SAMPLE_SIZE}"
            )
        return cls(capacity, element_type, partition_num=partition_num, rng_seed=rng_seed)

    @classmethod
    def _from_parts(
        cls,
        capacity: int,
        element_type: _elements.ElementType,
        partition_num: int,
        count_seen: int,
        elements: List[Any],
        rng_seed: int = _DEFAULT_SEED,
    ) -> "Reservoir":
        self = cls(capacity, element_type, partition_num=partition_num, rng_seed=rng_seed)
        self._count = int(count_seen)
        self._elements = elements
        return self

    # ------------------------------- Public API --------------------------------
    def insert(self, value: Any) -> None:
        """Observe one record."""
        v = self._type.coerce(value)
        self._count += 1
        if len(self._elements) < self._capacity:
            self._elements.append(v)
            return
        j = self._rng.randrange(self._count)
        if j < self._capacity:
            self._elements[j] = v

    def extend(self, values: Iterable[Any]) -> None:
        for v in values:
            self.insert(v)

    def size(self) -> int:
        return self._count

    def values(self) -> List[Any]:
        return list(self._elements)

    def element(self, n: int) -> Any:
        return self._elements[n]

    def __len__(self) -> int:
        return len(self._elements)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def count_seen(self) -> int:
        return self._count

    @property
    def partition_num(self) -> int:
        return self._partition_num

    @property
    def element_type(self) -> _elements.ElementType:
        return self._type

    @property
    def rng_seed(self) -> int:
        return self._rng_seed

    @property
    def is_flattened(self) -> bool:
        return False

    def describe(self, limit: int = 8) -> str:
        return describe(self, limit)

    def __repr__(self) -> str:
        return (
            f"Reservoir(capacity={self._capacity}, count_seen={self._count}, "
            f"partition_num={self._partition_num}, element_type={self._type.name!r})"
        )


def describe(state: Any, limit: int = 8) -> str:
    """Human readable dump of a live or flattened reservoir."""
    shown = [repr(state.element(i)) for i in range(min(limit, len(state)))]
    if len(state) > limit:
        shown.append("...")
    return "\n".join(
        [
            f"flattened: {state.is_flattened}",
            f"element type: {state.element_type.name} (oid {state.element_type.oid})",
            f"partitions: {state.partition_num}",
            f"sample size: {state.capacity}",
            f"input size: {state.count_seen}",
            f"elements ({len(state)}): [{', '.join(shown)}]",
        ]
    )


# ---------------------------------- Merging -----------------------------------
def _merge_rng(a: Any, b: Any) -> random.Random:
    lo, hi = sorted(
        (
            getattr(a, "rng_seed", Reservoir._DEFAULT_SEED),
            getattr(b, "rng_seed", Reservoir._DEFAULT_SEED),
        )
    )
    salt = (a.count_seen + b.count_seen + len(a) + len(b)) & 0xFFFFFFFFFFFF
    mix = ((lo * Reservoir._SALT_MIX64 + hi) * Reservoir._SALT_MIX64 + salt) & _SEED_MASK
    return random.Random(mix)


def _draw_share(rng: random.Random, weight_a: int, weight_b: int, slots: int) -> int:
    """Number of ``slots`` owed to the first input when ``slots`` positions are
    drawn without replacement from ``weight_a + weight_b`` stream positions."""
    taken = 0
    rem_a, rem_b = weight_a, weight_b
    for _ in range(slots):
        if rng.randrange(rem_a + rem_b) < rem_a:
            taken += 1
            rem_a -= 1
        else:
            rem_b -= 1
    return taken


def _supported_size(capacity: int, total: int, *states: Any) -> int:
    """Largest result size every input can fill at the rate ``size / total``."""
    size = capacity
    for s in states:
        if s.count_seen:
            size = min(size, len(s) * total // s.count_seen)
    return size


def _split(rng: random.Random, size: int, a: Any, b: Any) -> int:
    seen_a, seen_b = a.count_seen, b.count_seen
    if size <= len(a) and size <= len(b):
        return _draw_share(rng, seen_a, seen_b, size)
    # An input cannot cover every hypergeometric outcome; round the
    # proportional share instead, so E[share] / seen stays size / total.
    base, rem = divmod(size * seen_a, seen_a + seen_b)
    return base + (1 if rng.randrange(seen_a + seen_b) < rem else 0)


def combine(
    a: Any,
    b: Any,
    rng: Optional[random.Random] = None,
    capacity: Optional[int] = None,
) -> Reservoir:
    """
    Combine two partial reservoirs (live or flattened) into a new one.

    The result has ``count_seen = a.count_seen + b.count_seen`` and a target
    capacity of ``max(a.capacity, b.capacity)`` unless ``capacity`` is given.
    When the combined stream fits in the target both samples are concatenated.
    Otherwise the result holds ``size`` elements, where ``size`` is the target
    shrunk to what both inputs can supply at the common rate
    ``size / count_seen``.  The number of elements taken from each input
    follows the hypergeometric law of drawing ``size`` positions from the
    combined stream, or its proportional share when an input is too small
    for that law, and each input contributes a uniform subset of its own
    sample.  Every record of either stream is therefore retained with
    probability ``size / count_seen``, and the result's capacity is ``size``.
    """
    if a.element_type != b.element_type:
        raise ConfigurationError(
            f"cannot combine reservoirs of {a.element_type.name} and {b.element_type.name}"
        )
    if capacity is None:
        capacity = max(a.capacity, b.capacity)
    else:
        capacity = check_size("capacity", capacity, MAX_SAMPLE_SIZE)
    partition_num = max(a.partition_num, b.partition_num)
    total = a.count_seen + b.count_seen
    if rng is None:
        rng = _merge_rng(a, b)
    left, right = a.values(), b.values()

    if total <= capacity:
        elements = left + right
    else:
        capacity = _supported_size(capacity, total, a, b)
        take_a = _split(rng, capacity, a, b)
        take_b = capacity - take_a
        elements = rng.sample(left, take_a) + rng.sample(right, take_b)
        logger.debug(
            "combined %d/%d seen into %d slots (%d + %d)",
            a.count_seen, b.count_seen, capacity, take_a, take_b,
        )

    seed = rng.getrandbits(64)
    return Reservoir._from_parts(capacity, a.element_type, partition_num, total, elements, rng_seed=seed)


def combine_all(states: Iterable[Any], capacity: Optional[int] = None) -> Reservoir:
    """Left fold of :func:`combine` over any number of partial reservoirs."""
    items = list(states)
    if not items:
        raise ValueError("combine_all needs at least one reservoir")
    if len(items) == 1:
        return _materialize(items[0])
    return reduce(lambda a, b: combine(a, b, capacity=capacity), items)


def combine_tree(states: Sequence[Any], capacity: Optional[int] = None) -> Reservoir:
    """Balanced pairwise reduction, the shape a multi-level coordinator uses."""
    level = list(states)
    if not level:
        raise ValueError("combine_tree needs at least one reservoir")
    if len(level) == 1:
        return _materialize(level[0])
    while len(level) > 1:
        nxt = [combine(level[i], level[i + 1], capacity=capacity) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2:
            nxt.append(level[-1])
        level = nxt
    return level[0]


def _materialize(state: Any) -> Reservoir:
    if isinstance(state, Reservoir):
        return state
    return Reservoir._from_parts(
        state.capacity,
        state.element_type,
        state.partition_num,
        state.count_seen,
        state.values(),
        rng_seed=getattr(state, "rng_seed", Reservoir._DEFAULT_SEED),
    )

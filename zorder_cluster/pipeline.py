"""Orchestration of one clustering epoch across parallel workers.

An epoch moves through ``COLLECTING -> MERGING -> BOUNDARY_READY -> ASSIGNING``
and never goes back; a new table-write epoch needs a new
:class:`ClusteringEpoch`.  Workers own their reservoirs exclusively and only
hand over immutable flattened blocks, so the coordinator never shares mutable
state with them.
"""
from __future__ import annotations

import enum
import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from . import elements as _elements
from .errors import ConfigurationError, StateError
from .flatten import FlattenedReservoir, flatten
from .interleave import ZOrderKeyBuilder
from .partition import BoundaryList
from .reservoir import MAX_SAMPLE_SIZE, SAMPLE_HINT, Reservoir, combine_tree

logger = logging.getLogger(__name__)

_ARRAY_FOR = {
    "int2": _elements.INT4_ARRAY,
    "int4": _elements.INT4_ARRAY,
    "int8": _elements.INT8_ARRAY,
    "float4": _elements.FLOAT8_ARRAY,
    "float8": _elements.FLOAT8_ARRAY,
}


@dataclass(frozen=True)
class ClusteringConfig:
    partition_num: int
    dimension_types: Tuple[str, ...] = ("float8", "float8")
    sample_hint: int = SAMPLE_HINT
    per_dimension_bits: Optional[int] = None
    rng_seed: int = Reservoir._DEFAULT_SEED
    _builder: ZOrderKeyBuilder = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        names = tuple(_elements.lookup(t).name for t in self.dimension_types)
        object.__setattr__(self, "dimension_types", names)
        # Fails early on sizes that cannot be sampled.
        Reservoir.for_partitions(self.partition_num, self._sample_type(names), self.sample_hint)
        object.__setattr__(self, "_builder", ZOrderKeyBuilder(names, self.per_dimension_bits))

    @staticmethod
    def _sample_type(names: Tuple[str, ...]) -> _elements.ElementType:
        if len(names) == 1:
            return _elements.lookup(names[0])
        arrays = {_ARRAY_FOR.get(n) for n in names}
        if None in arrays or len(arrays) != 1:
            raise ConfigurationError(
                f"multi-dimensional samples need dimensions of one numeric family, got {list(names)}"
            )
        return arrays.pop()

    @property
    def element_type(self) -> _elements.ElementType:
        """Type of one sampled record: a scalar, or an array holding a point."""
        return self._sample_type(self.dimension_types)

    @property
    def capacity(self) -> int:
        return self.sample_hint * self.partition_num

    @property
    def key_builder(self) -> ZOrderKeyBuilder:
        return self._builder


class EpochState(enum.Enum):
    COLLECTING = "collecting"
    MERGING = "merging"
    BOUNDARY_READY = "boundary_ready"
    ASSIGNING = "assigning"


class ClusteringEpoch:
    """Host-facing driver for one epoch: sample, merge, cut, assign."""

    _SALT_MIX64: int = Reservoir._SALT_MIX64

    def __init__(self, config: ClusteringConfig):
        self._config = config
        self._state = EpochState.COLLECTING
        self._workers = 0
        self._parts: List[FlattenedReservoir] = []
        self._sample: Optional[Reservoir] = None
        self._boundaries: Optional[BoundaryList] = None

    @property
    def config(self) -> ClusteringConfig:
        return self._config

    @property
    def state(self) -> EpochState:
        return self._state

    @property
    def sample(self) -> Reservoir:
        if self._sample is None:
            raise StateError("no merged sample before finalize()")
        return self._sample

    @property
    def boundaries(self) -> BoundaryList:
        if self._boundaries is None:
            raise StateError("boundaries are not fixed yet")
        return self._boundaries

    def _transition(self, new: EpochState) -> None:
        if new is not self._state:
            logger.debug("epoch %s -> %s", self._state.value, new.value)
            self._state = new

    def reserve_worker_seed(self) -> int:
        """Distinct RNG seed for the next worker of this epoch.

        Workers may still be started while earlier ones are being submitted;
        only a fixed boundary list closes the epoch to new samples.
        """
        if self._state not in (EpochState.COLLECTING, EpochState.MERGING):
            raise StateError(f"cannot start workers once {self._state.value}")
        self._workers += 1
        return (self._config.rng_seed * self._SALT_MIX64 + self._workers) & 0xFFFFFFFFFFFFFFFF

    def new_worker(self) -> Reservoir:
        cfg = self._config
        return Reservoir.for_partitions(
            cfg.partition_num, cfg.element_type, cfg.sample_hint, rng_seed=self.reserve_worker_seed()
        )

    def submit(self, part: Union[Reservoir, FlattenedReservoir, bytes, bytearray]) -> FlattenedReservoir:
        """Hand one worker's finished sample to the coordinator."""
        if self._state not in (EpochState.COLLECTING, EpochState.MERGING):
            raise StateError(f"cannot accept samples once {self._state.value}")
        if isinstance(part, (bytes, bytearray, memoryview)):
            flat = FlattenedReservoir(part)
        else:
            flat = flatten(part)
        if flat.element_type != self._config.element_type:
            raise ConfigurationError(
                f"sample of {flat.element_type.name} does not match {self._config.element_type.name}"
            )
        self._parts.append(flat)
        self._transition(EpochState.MERGING)
        return flat

    def finalize(self) -> BoundaryList:
        if self._state is not EpochState.MERGING:
            raise StateError(f"finalize() needs submitted samples; epoch is {self._state.value}")
        # Room for every sampled element that reached the coordinator; combine
        # shrinks it when the shards are too unequal to fill it uniformly.
        capacity = min(MAX_SAMPLE_SIZE, sum(p.capacity for p in self._parts))
        sample = combine_tree(self._parts, capacity=capacity)
        boundaries = BoundaryList.from_sample(sample, self._config.key_builder, self._config.partition_num)
        logger.debug(
            "fixed %d boundaries from %d samples over %d records",
            len(boundaries), len(sample), sample.count_seen,
        )
        self._sample = sample
        self._boundaries = boundaries
        self._parts = []
        self._transition(EpochState.BOUNDARY_READY)
        return boundaries

    def key(self, coords: Sequence[Any]) -> int:
        return self._config.key_builder.key(coords)

    def assign_key(self, key: int) -> int:
        if self._boundaries is None:
            raise StateError(f"cannot assign partitions while {self._state.value}")
        self._transition(EpochState.ASSIGNING)
        return self._boundaries.assign(key)

    def assign(self, coords: Sequence[Any]) -> int:
        """Partition index for one record's coordinates."""
        return self.assign_key(self.key(coords))


def sample_shard(records: Iterable[Any], config: ClusteringConfig, rng_seed: int) -> bytes:
    """Worker body: stream one shard through a private reservoir and flatten it."""
    reservoir = Reservoir.for_partitions(
        config.partition_num, config.element_type, config.sample_hint, rng_seed=rng_seed
    )
    reservoir.extend(records)
    return flatten(reservoir).to_bytes()


def sample_in_parallel(
    shards: Sequence[Iterable[Any]],
    config: ClusteringConfig,
    executor: Union[str, Executor] = "thread",
    max_workers: Optional[int] = None,
) -> ClusteringEpoch:
    """Sample every shard on its own worker, merge, and return a finalized epoch.

    ``executor`` is ``"thread"``, ``"process"`` or an existing
    :class:`concurrent.futures.Executor`.  Shards must be picklable for
    process pools.
    """
    epoch = ClusteringEpoch(config)
    seeds = [epoch.reserve_worker_seed() for _ in shards]

    if isinstance(executor, Executor):
        _run_workers(executor, shards, config, seeds, epoch)
    elif executor == "thread":
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            _run_workers(pool, shards, config, seeds, epoch)
    elif executor == "process":
        with ProcessPoolExecutor(max_workers=max_workers) as pool:
            _run_workers(pool, shards, config, seeds, epoch)
    else:
        raise ConfigurationError(f"unknown executor {executor!r}")

    epoch.finalize()
    return epoch


def _run_workers(
    pool: Executor,
    shards: Sequence[Iterable[Any]],
    config: ClusteringConfig,
    seeds: List[int],
    epoch: ClusteringEpoch,
) -> None:
    futures = [pool.submit(sample_shard, shard, config, seed) for shard, seed in zip(shards, seeds)]
    try:
        for fut in futures:
            epoch.submit(fut.result())
    except BaseException:
        for fut in futures:
            fut.cancel()
        raise

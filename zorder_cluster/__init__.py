"""zorder_cluster package public API."""
from ._metadata import __version__
from .errors import CapacityError, ConfigurationError, CorruptionError, StateError, ZOrderError
from .flatten import FlattenedReservoir, InlineSlot, OffsetSlot, element_at, flatten, unflatten
from .interleave import ZOrderKeyBuilder, deinterleave, interleave, to_ordered_unsigned
from .partition import BoundaryList, assign, extract_boundaries, partition_sizes
from .pipeline import ClusteringConfig, ClusteringEpoch, EpochState, sample_in_parallel
from .reservoir import MAX_SAMPLE_SIZE, SAMPLE_HINT, Reservoir, combine, combine_all, combine_tree

__all__ = [
    "BoundaryList",
    "CapacityError",
    "ClusteringConfig",
    "ClusteringEpoch",
    "ConfigurationError",
    "CorruptionError",
    "EpochState",
    "FlattenedReservoir",
    "InlineSlot",
    "MAX_SAMPLE_SIZE",
    "OffsetSlot",
    "Reservoir",
    "SAMPLE_HINT",
    "StateError",
    "ZOrderError",
    "ZOrderKeyBuilder",
    "__version__",
    "assign",
    "combine",
    "combine_all",
    "combine_tree",
    "deinterleave",
    "element_at",
    "extract_boundaries",
    "flatten",
    "interleave",
    "partition_sizes",
    "sample_in_parallel",
    "to_ordered_unsigned",
    "unflatten",
]

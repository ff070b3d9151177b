"""Pytest micro-benchmarks for sampling, interleaving and assignment."""

from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("numpy")
import numpy as np

from zorder_cluster import BoundaryList, Reservoir, ZOrderKeyBuilder, combine_tree, flatten

OUTPUT_DIR = Path("bench_out/pytest")
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

pytestmark = pytest.mark.benchmark


def _generate_points(dist: str, size: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    if dist == "uniform":
        return rng.uniform(0.0, 1000.0, (size, 2))
    if dist == "normal":
        return rng.normal(500.0, 100.0, (size, 2))
    raise ValueError(f"Unsupported distribution for pytest benchmarks: {dist}")


@pytest.mark.parametrize("distribution", ["uniform", "normal"])
@pytest.mark.parametrize("N", [int(1e4), int(1e5)])
@pytest.mark.parametrize("partition_num", [4, 16])
def test_insert_throughput(distribution: str, N: int, partition_num: int, benchmark) -> None:
    data = _generate_points(distribution, N, seed=42).tolist()

    def build() -> Reservoir:
        r = Reservoir.for_partitions(partition_num, "float8[]", rng_seed=42)
        r.extend(data)
        return r

    r = benchmark(build)
    assert len(r) == min(N, r.capacity)


@pytest.mark.parametrize("shards", [2, 8])
def test_flatten_and_combine(shards: int, benchmark) -> None:
    data = _generate_points("uniform", 40_000, seed=7)
    parts = []
    for i, chunk in enumerate(np.array_split(data, shards)):
        r = Reservoir.for_partitions(16, "float8[]", rng_seed=i)
        r.extend(chunk.tolist())
        parts.append(r)

    def merge() -> Reservoir:
        return combine_tree([flatten(p) for p in parts])

    merged = benchmark(merge)
    assert merged.count_seen == 40_000


@pytest.mark.parametrize("partition_num", [4, 64])
def test_interleave_and_assign(partition_num: int, benchmark) -> None:
    data = _generate_points("uniform", 20_000, seed=3).tolist()
    builder = ZOrderKeyBuilder(["float8", "float8"])
    boundaries = BoundaryList.from_keys((builder.key(p) for p in data[:2_000]), partition_num)

    def route() -> list:
        counts = [0] * partition_num
        for p in data:
            counts[boundaries.assign(builder.key(p))] += 1
        return counts

    counts = benchmark(route)
    assert sum(counts) == len(data)
    expected = len(data) / partition_num
    assert max(counts) <= 2.0 * expected

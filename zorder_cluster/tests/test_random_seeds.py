"""Regression tests that exercise sampling under multiple RNG seeds."""

from __future__ import annotations

import random
import statistics

import pytest

from zorder_cluster import Reservoir, combine, extract_boundaries, flatten, interleave


@pytest.mark.parametrize("seed", [3, 17, 221, 1987, 4096])
def test_sample_mean_tracks_stream_mean(seed: int) -> None:
    rng = random.Random(seed)
    stream = [rng.gauss(0.0, 1.0) for _ in range(8_000)]

    r = Reservoir(400, "float8", rng_seed=seed)
    r.extend(stream)

    approx = statistics.fmean(r.values())
    exact = statistics.fmean(stream)
    print(f"seed={seed}: sample mean={approx:.6f}, stream mean={exact:.6f}")
    assert abs(approx - exact) <= 0.25


@pytest.mark.parametrize("seed", [5, 55, 555])
def test_boundaries_approximate_true_quantiles(seed: int) -> None:
    rng = random.Random(seed)
    stream = [rng.randrange(1_000_000) for _ in range(20_000)]
    r = Reservoir.for_partitions(4, "int8", rng_seed=seed)
    r.extend(stream)

    keys = [interleave([v]) for v in r.values()]
    boundaries = extract_boundaries(keys, 4)
    ordered = sorted(interleave([v]) for v in stream)
    for i, b in enumerate(boundaries, start=1):
        rank = sum(1 for k in ordered if k <= b) / len(ordered)
        assert abs(rank - i / 4) <= 0.1


def test_deterministic_sample_for_fixed_seed() -> None:
    seed = 123_456
    rng = random.Random(seed)
    payload = [rng.uniform(-5.0, 5.0) for _ in range(5_000)]

    a = Reservoir(200, "float8", rng_seed=seed)
    b = Reservoir(200, "float8", rng_seed=seed)
    for value in payload:
        a.insert(value)
        b.insert(value)

    print(f"deterministic sampling: block size={flatten(a).total_size}, elements={len(a)}")

    assert a.values() == b.values()
    assert flatten(a).to_bytes() == flatten(b).to_bytes()


def test_deterministic_combine() -> None:
    a = Reservoir(50, "int8", rng_seed=1)
    b = Reservoir(50, "int8", rng_seed=2)
    a.extend(range(1_000))
    b.extend(range(1_000, 3_000))
    first = combine(flatten(a), flatten(b))
    second = combine(a, b)
    assert first.values() == second.values()
    assert first.rng_seed == second.rng_seed

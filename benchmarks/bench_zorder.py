#!/usr/bin/env python3
"""Benchmark runner for the local zorder_cluster implementation."""

from __future__ import annotations

import argparse
import hashlib
import math
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd

from zorder_cluster import ClusteringConfig, ClusteringEpoch, flatten


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--outdir", default="bench_out", help="Directory for benchmark CSV outputs")
    parser.add_argument("--seed", type=int, default=42, help="Base RNG seed for reproducibility")
    parser.add_argument("--Ns", nargs="+", default=["2e4", "1e5"], help="Population sizes to benchmark")
    parser.add_argument(
        "--partitions", nargs="+", default=["4", "16", "64"], help="Partition counts to benchmark"
    )
    parser.add_argument(
        "--distributions",
        nargs="+",
        default=["uniform", "normal", "clustered"],
        help="Synthetic 2-D point distributions to sample",
    )
    parser.add_argument("--workers", type=int, default=4, help="Number of sampling workers per run")
    parser.add_argument("--sample-hint", type=int, default=60, help="Samples collected per partition")
    return parser.parse_args()


def _to_int_list(values: Iterable[str]) -> List[int]:
    return [int(float(v)) for v in values]


def _hash_seed(seed: int, *parts: object) -> int:
    material = "::".join(str(p) for p in (seed,) + parts)
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return int(digest[:16], 16)


def _uniform(rng: np.random.Generator, size: int) -> np.ndarray:
    return rng.uniform(0.0, 1000.0, (size, 2))


def _normal(rng: np.random.Generator, size: int) -> np.ndarray:
    return rng.normal(500.0, 120.0, (size, 2))


def _clustered(rng: np.random.Generator, size: int) -> np.ndarray:
    centres = rng.uniform(0.0, 1000.0, (8, 2))
    picks = rng.integers(0, len(centres), size)
    return centres[picks] + rng.normal(0.0, 15.0, (size, 2))


DATA_GENERATORS: Dict[str, Callable[[np.random.Generator, int], np.ndarray]] = {
    "uniform": _uniform,
    "normal": _normal,
    "clustered": _clustered,
}


def _validate_distributions(names: Sequence[str]) -> None:
    unknown = sorted(set(names) - DATA_GENERATORS.keys())
    if unknown:
        raise ValueError(f"Unknown distributions requested: {', '.join(unknown)}")


def main() -> None:
    args = _parse_args()

    Ns = _to_int_list(args.Ns)
    partition_counts = _to_int_list(args.partitions)
    _validate_distributions(args.distributions)

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    throughput_records: List[Dict[str, object]] = []
    merge_records: List[Dict[str, object]] = []
    balance_records: List[Dict[str, object]] = []
    latency_records: List[Dict[str, object]] = []

    for dist in args.distributions:
        for N in Ns:
            data_rng = np.random.default_rng(_hash_seed(args.seed, dist, N))
            data = DATA_GENERATORS[dist](data_rng, N)
            points = data.tolist()
            shards = [chunk.tolist() for chunk in np.array_split(data, args.workers)]

            for partition_num in partition_counts:
                config = ClusteringConfig(
                    partition_num=partition_num, sample_hint=args.sample_hint, rng_seed=args.seed
                )
                epoch = ClusteringEpoch(config)

                start = time.perf_counter()
                workers = []
                for shard in shards:
                    worker = epoch.new_worker()
                    worker.extend(shard)
                    workers.append(worker)
                insert_elapsed = time.perf_counter() - start
                throughput_records.append(
                    {
                        "distribution": dist,
                        "N": int(N),
                        "partitions": int(partition_num),
                        "insert_time_s": insert_elapsed,
                        "inserts_per_sec": (N / insert_elapsed) if insert_elapsed > 0 else math.inf,
                    }
                )

                merge_start = time.perf_counter()
                blocks = [flatten(w).to_bytes() for w in workers]
                for block in blocks:
                    epoch.submit(block)
                boundaries = epoch.finalize()
                merge_elapsed = time.perf_counter() - merge_start
                merge_records.append(
                    {
                        "distribution": dist,
                        "N": int(N),
                        "partitions": int(partition_num),
                        "workers": int(args.workers),
                        "block_bytes": int(sum(len(b) for b in blocks)),
                        "merge_time_s": merge_elapsed,
                    }
                )

                counts = np.zeros(partition_num, dtype=np.int64)
                assign_start = time.perf_counter()
                for p in points:
                    counts[epoch.assign(p)] += 1
                assign_elapsed = time.perf_counter() - assign_start
                latency_records.append(
                    {
                        "distribution": dist,
                        "N": int(N),
                        "partitions": int(partition_num),
                        "latency_us": assign_elapsed / N * 1e6,
                    }
                )

                ideal = N / partition_num
                balance_records.append(
                    {
                        "distribution": dist,
                        "N": int(N),
                        "partitions": int(partition_num),
                        "boundaries": len(boundaries),
                        "max_over_ideal": float(counts.max() / ideal),
                        "min_over_ideal": float(counts.min() / ideal),
                    }
                )

    throughput_path = outdir / "insert_throughput.csv"
    merge_path = outdir / "merge.csv"
    balance_path = outdir / "balance.csv"
    latency_path = outdir / "assign_latency.csv"

    pd.DataFrame.from_records(throughput_records).to_csv(throughput_path, index=False)
    pd.DataFrame.from_records(merge_records).to_csv(merge_path, index=False)
    pd.DataFrame.from_records(balance_records).to_csv(balance_path, index=False)
    pd.DataFrame.from_records(latency_records).to_csv(latency_path, index=False)

    print("Benchmark artifacts written to:")
    print(f"  {throughput_path}")
    print(f"  {merge_path}")
    print(f"  {balance_path}")
    print(f"  {latency_path}")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Validate benchmark outputs against regression thresholds.

Run after ``benchmarks/bench_zorder.py``. It reads the CSV outputs from
``bench_out`` (or a supplied directory) and enforces conservative balance and
performance targets so regressions surface early.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, List, Tuple

import pandas as pd


# Equi-depth boundaries come from a sample of ``sample_hint`` keys per
# partition, so a partition may legitimately run somewhat over its share.
BALANCE_MAX_OVER_IDEAL = 1.6
INSERT_MIN_PER_SEC = 20_000
ASSIGN_LATENCY_MAX_US = 200.0
MERGE_TIME_MAX_S = 2.0


def _load_csv(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Expected benchmark artifact missing: {path}")
    return pd.read_csv(path)


def _check_balance(df: pd.DataFrame) -> Tuple[bool, Dict[str, float]]:
    worst = df.groupby(["distribution"])["max_over_ideal"].max().to_dict()
    overall = float(df["max_over_ideal"].max()) if not df.empty else 0.0
    worst.setdefault("overall", overall)
    return overall <= BALANCE_MAX_OVER_IDEAL, worst


def _check_throughput(df: pd.DataFrame) -> Tuple[bool, float]:
    minimum = float(df["inserts_per_sec"].min()) if not df.empty else float("inf")
    return minimum >= INSERT_MIN_PER_SEC, minimum


def _check_latency(df: pd.DataFrame) -> Tuple[bool, float]:
    if df.empty:
        return True, 0.0
    p95 = float(df["latency_us"].quantile(0.95))
    return p95 <= ASSIGN_LATENCY_MAX_US, p95


def _check_merge(df: pd.DataFrame) -> Tuple[bool, float]:
    if df.empty:
        return True, 0.0
    maximum = float(df["merge_time_s"].max())
    return maximum <= MERGE_TIME_MAX_S, maximum


def _summarise(results: Dict[str, Dict[str, object]]) -> str:
    lines: List[str] = ["# Benchmark validation summary", ""]
    lines.append("| Check | Threshold | Observed | Status |")
    lines.append("| --- | --- | --- | --- |")
    for name, payload in results.items():
        status = "PASS" if payload["ok"] else "FAIL"
        lines.append(f"| {name} | {payload['threshold']} | {payload['observed']} | {status} |")
    lines.append("")
    lines.append("```json")
    lines.append(json.dumps(results, indent=2, sort_keys=True))
    lines.append("```")
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("outdir", nargs="?", default="bench_out", help="Directory containing benchmark CSVs")
    parser.add_argument("--summary", default="bench_summary.md", help="Filename for the generated markdown summary")
    args = parser.parse_args()

    outdir = Path(args.outdir)
    balance = _load_csv(outdir / "balance.csv")
    throughput = _load_csv(outdir / "insert_throughput.csv")
    latency = _load_csv(outdir / "assign_latency.csv")
    merge = _load_csv(outdir / "merge.csv")

    summary: Dict[str, Dict[str, object]] = {}

    balance_ok, balance_obs = _check_balance(balance)
    summary["Partition balance"] = {
        "threshold": f"largest partition <= {BALANCE_MAX_OVER_IDEAL} x ideal",
        "observed": {dist: round(value, 4) for dist, value in balance_obs.items()},
        "ok": balance_ok,
    }

    throughput_ok, throughput_obs = _check_throughput(throughput)
    summary["Insert throughput"] = {
        "threshold": f">= {INSERT_MIN_PER_SEC} inserts/sec",
        "observed": round(throughput_obs, 2),
        "ok": throughput_ok,
    }

    latency_ok, latency_obs = _check_latency(latency)
    summary["Interleave + assign latency p95"] = {
        "threshold": f"<= {ASSIGN_LATENCY_MAX_US} µs",
        "observed": round(latency_obs, 2),
        "ok": latency_ok,
    }

    merge_ok, merge_obs = _check_merge(merge)
    summary["Flatten + merge time"] = {
        "threshold": f"<= {MERGE_TIME_MAX_S} s",
        "observed": round(merge_obs, 3),
        "ok": merge_ok,
    }

    summary_path = outdir / args.summary
    summary_path.write_text(_summarise(summary), encoding="utf-8")

    print(summary_path.read_text(encoding="utf-8"))

    if not all(item["ok"] for item in summary.values()):
        raise SystemExit("Benchmark regression detected; see summary above.")


if __name__ == "__main__":
    main()

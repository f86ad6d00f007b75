"""Whole-benchmark read-modify-write operations.

Each helper holds the benchmark's writer lock for the whole cycle and
returns the refreshed search strings for the metadata store.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping, Sequence

from gamebench_data.errors import IndexOutOfRange, LastRunDeletion
from gamebench_data.records.runs import Run, validate_per_run_lines
from gamebench_data.records.search import SearchMetadata, extract_search_metadata
from gamebench_data.records.specs import truncate_spec
from gamebench_data.storage.store import BenchmarkStore

logger = logging.getLogger(__name__)


def commit_benchmark(store: BenchmarkStore, benchmark_id: int, runs: Sequence[Run]) -> SearchMetadata:
    """Validate and store `runs` as the full content of a benchmark.

    Raises:
        TooManyLines: A run exceeds the per-run line limit. Nothing is written.
    """
    runs = list(runs)
    validate_per_run_lines(runs)
    with store.lock(benchmark_id):
        store.store(benchmark_id, runs)
    return extract_search_metadata(runs)


def add_runs(store: BenchmarkStore, benchmark_id: int, new_runs: Sequence[Run]) -> SearchMetadata:
    """Append runs to an existing benchmark."""
    new_runs = list(new_runs)
    validate_per_run_lines(new_runs)
    with store.lock(benchmark_id):
        runs = store.load(benchmark_id)
        runs.extend(new_runs)
        store.store(benchmark_id, runs)
    logger.info("Added %d run(s) to benchmark %d", len(new_runs), benchmark_id)
    return extract_search_metadata(runs)


def delete_run(store: BenchmarkStore, benchmark_id: int, idx: int) -> SearchMetadata:
    """Remove run `idx`; later runs shift down by one.

    Raises:
        IndexOutOfRange: `idx` is outside `[0, run_count)`.
        LastRunDeletion: The benchmark has a single run; delete the
            benchmark instead.
    """
    with store.lock(benchmark_id):
        runs = store.load(benchmark_id)
        if not 0 <= idx < len(runs):
            raise IndexOutOfRange(
                f"run index {idx} out of range (benchmark has {len(runs)} runs)",
                benchmark_id=benchmark_id,
            )
        if len(runs) == 1:
            raise LastRunDeletion(
                "cannot delete the last run of a benchmark, delete the benchmark instead",
                benchmark_id=benchmark_id,
            )
        del runs[idx]
        store.store(benchmark_id, runs)
    logger.info("Deleted run %d of benchmark %d", idx, benchmark_id)
    return extract_search_metadata(runs)


def rename_runs(store: BenchmarkStore, benchmark_id: int, labels: Mapping[int, str]) -> SearchMetadata:
    """Relabel runs by index. Labels longer than 100 characters are truncated.

    Raises:
        IndexOutOfRange: Any index is outside `[0, run_count)`. Nothing is written.
    """
    with store.lock(benchmark_id):
        runs = store.load(benchmark_id)
        for idx in labels:
            if not 0 <= idx < len(runs):
                raise IndexOutOfRange(
                    f"run index {idx} out of range (benchmark has {len(runs)} runs)",
                    benchmark_id=benchmark_id,
                )
        for idx, label in labels.items():
            runs[idx] = dataclasses.replace(runs[idx], label=truncate_spec(label.strip()))
        store.store(benchmark_id, runs)
    return extract_search_metadata(runs)

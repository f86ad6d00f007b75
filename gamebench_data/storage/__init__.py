"""Benchmark persistence: binary run files, sidecars, edits and migration."""

from gamebench_data.storage.codec import RunStream, decode_run, encode_run, write_benchmark
from gamebench_data.storage.edits import add_runs, commit_benchmark, delete_run, rename_runs
from gamebench_data.storage.migration import MigrationReport, migrate_storage
from gamebench_data.storage.sidecar import BenchmarkMetadata
from gamebench_data.storage.store import BenchmarkStore, check_benchmark_id

__all__ = [
    "BenchmarkMetadata",
    "BenchmarkStore",
    "MigrationReport",
    "RunStream",
    "add_runs",
    "check_benchmark_id",
    "commit_benchmark",
    "decode_run",
    "delete_run",
    "encode_run",
    "migrate_storage",
    "rename_runs",
    "write_benchmark",
]

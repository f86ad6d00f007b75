"""Gaming benchmark data engine: capture ingest, storage, statistics and export."""

from gamebench_data.config import EngineConfig
from gamebench_data.errors import BenchmarkDataError
from gamebench_data.export import BufferSink, FileSink, export_zip, stream_json, stream_stats_json
from gamebench_data.modeling import MetricStats, PreCalculatedRun, precompute
from gamebench_data.raw import Dialect, detect_dialect, ingest, ingest_files
from gamebench_data.records import Run, SearchMetadata, extract_search_metadata, validate_per_run_lines
from gamebench_data.storage import (
    BenchmarkMetadata,
    BenchmarkStore,
    add_runs,
    commit_benchmark,
    delete_run,
    migrate_storage,
    rename_runs,
)

__all__ = [
    "BenchmarkDataError",
    "BenchmarkMetadata",
    "BenchmarkStore",
    "BufferSink",
    "Dialect",
    "EngineConfig",
    "FileSink",
    "MetricStats",
    "PreCalculatedRun",
    "Run",
    "SearchMetadata",
    "add_runs",
    "commit_benchmark",
    "delete_run",
    "detect_dialect",
    "export_zip",
    "extract_search_metadata",
    "ingest",
    "ingest_files",
    "migrate_storage",
    "precompute",
    "rename_runs",
    "stream_json",
    "stream_stats_json",
    "validate_per_run_lines",
]

__version__ = "0.1.0"

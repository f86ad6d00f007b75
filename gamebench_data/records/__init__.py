"""Benchmark run records and helpers over them."""

from gamebench_data.records.runs import (
    JSON_KEYS,
    SERIES_FIELDS,
    SPEC_FIELDS,
    Run,
    count_total_data_lines,
    runs_table,
    validate_per_run_lines,
)
from gamebench_data.records.search import SearchMetadata, extract_search_metadata
from gamebench_data.records.specs import format_bytes, ram_to_kilobytes, truncate_spec

__all__ = [
    "JSON_KEYS",
    "SERIES_FIELDS",
    "SPEC_FIELDS",
    "Run",
    "SearchMetadata",
    "count_total_data_lines",
    "extract_search_metadata",
    "format_bytes",
    "ram_to_kilobytes",
    "runs_table",
    "truncate_spec",
    "validate_per_run_lines",
]

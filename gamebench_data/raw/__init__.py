"""Profiler capture parsers."""

from gamebench_data.raw.capture_parser import COLUMN_SYNONYMS, count_lines, ingest, ingest_files
from gamebench_data.raw.dialect import Dialect, detect_dialect

__all__ = [
    "COLUMN_SYNONYMS",
    "Dialect",
    "count_lines",
    "detect_dialect",
    "ingest",
    "ingest_files",
]

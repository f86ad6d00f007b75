"""Streaming exporters: JSON responses and CSV archives."""

from gamebench_data.export.archive import (
    export_zip,
    format_number,
    sanitize_filename,
    write_run_csv,
    zip_headers,
)
from gamebench_data.export.json_stream import (
    JSON_HEADERS,
    runs_to_json,
    stream_json,
    stream_stats_json,
)
from gamebench_data.export.sink import BufferSink, FileSink, ResponseSink

__all__ = [
    "JSON_HEADERS",
    "BufferSink",
    "FileSink",
    "ResponseSink",
    "export_zip",
    "format_number",
    "runs_to_json",
    "sanitize_filename",
    "stream_json",
    "stream_stats_json",
    "write_run_csv",
    "zip_headers",
]

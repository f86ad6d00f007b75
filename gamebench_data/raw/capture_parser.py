"""Two-pass parser for profiler captures.

The first pass only counts lines so that the second pass can allocate every
numeric series once, with a capacity that is never exceeded.
"""

from __future__ import annotations

import contextlib
import logging
import math
import os
import shutil
import tempfile
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import BinaryIO

import numpy as np

from gamebench_data.errors import (
    BenchmarkDataError,
    EmptyCapture,
    InvalidSpecs,
    ReadError,
    UnsupportedFormat,
)
from gamebench_data.raw.dialect import Dialect, detect_dialect, normalize_first_line
from gamebench_data.records.runs import SERIES_FIELDS, Run
from gamebench_data.records.specs import format_bytes, truncate_spec

logger = logging.getLogger(__name__)

CaptureSource = str | os.PathLike[str] | BinaryIO

_READ_CHUNK = 1 << 20
_SPOOL_MAX_SIZE = 16 << 20
_PRECISION = 100_000

# Column name (as written by either profiler) -> Run series field.
COLUMN_SYNONYMS: dict[str, str] = {
    "fps": "fps",
    "Framerate": "fps",
    "frametime": "frame_time",
    "Frametime": "frame_time",
    "cpu_load": "cpu_load",
    "CPU usage": "cpu_load",
    "gpu_load": "gpu_load",
    "GPU usage": "gpu_load",
    "cpu_temp": "cpu_temp",
    "CPU temperature": "cpu_temp",
    "cpu_power": "cpu_power",
    "gpu_temp": "gpu_temp",
    "GPU temperature": "gpu_temp",
    "gpu_core_clock": "gpu_core_clock",
    "Core clock": "gpu_core_clock",
    "gpu_mem_clock": "gpu_mem_clock",
    "Memory clock": "gpu_mem_clock",
    "gpu_vram_used": "gpu_vram_used",
    "Memory usage": "gpu_vram_used",
    "gpu_power": "gpu_power",
    "Power": "gpu_power",
    "ram_used": "ram_used",
    "RAM usage": "ram_used",
    "swap_used": "swap_used",
}


def _round_precision(value: float) -> float:
    scaled = value * _PRECISION
    return math.copysign(math.floor(abs(scaled) + 0.5), scaled) / _PRECISION


def _half_clock(value: float) -> float:
    return _round_precision(value / 2)


def _kilo_to_mega(value: float) -> float:
    return _round_precision(value / 1024)


# Windows monitor logs report DDR clock and sizes in a different unit.
_WINDOWS_TRANSFORMS: dict[str, Callable[[float], float]] = {
    "gpu_mem_clock": _half_clock,
    "gpu_vram_used": _kilo_to_mega,
    "ram_used": _kilo_to_mega,
}


def parse_float(token: str) -> float | None:
    """Parse a numeric cell, returning None for anything that is not a finite number."""
    token = token.strip()
    if not token or "_" in token:
        return None
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


@contextlib.contextmanager
def _open_source(source: CaptureSource) -> Iterator[BinaryIO]:
    """Yield a seekable binary handle positioned at the start of the capture."""
    if isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as fh:
            yield fh
        return
    if source.seekable():
        source.seek(0)
        yield source
        return
    # Uploads arriving as a one-shot stream are spooled so they can be read twice.
    with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE) as spool:
        shutil.copyfileobj(source, spool, _READ_CHUNK)
        spool.seek(0)
        yield spool  # type: ignore[misc]


def count_lines(fh: BinaryIO) -> int:
    """Count lines in a binary stream, including an unterminated last line."""
    total = 0
    last = b""
    for chunk in iter(lambda: fh.read(_READ_CHUNK), b""):
        total += chunk.count(b"\n")
        last = chunk[-1:]
    if last and last != b"\n":
        total += 1
    return total


def _decoded_lines(fh: BinaryIO) -> Iterator[str]:
    for raw in fh:
        yield raw.decode("utf-8", errors="replace").rstrip("\r\n")


def _parse_specs(line: str, dialect: Dialect) -> dict[str, str]:
    record = line.split(",")
    if dialect is Dialect.WINDOWS_MONITOR:
        if len(record) < 3:
            raise InvalidSpecs("invalid specs line format")
        return {"spec_os": "Windows", "spec_gpu": truncate_spec(record[2].strip())}

    positions = {
        0: "spec_os",
        1: "spec_cpu",
        2: "spec_gpu",
        3: "spec_ram",
        4: "spec_kernel",
        6: "spec_scheduler",
    }
    specs: dict[str, str] = {}
    for i, value in enumerate(record):
        name = positions.get(i)
        if name is None:
            continue
        value = value.strip()
        if name == "spec_ram" and value.isascii() and value.isdigit():
            specs[name] = format_bytes(int(value) * 1024)
        else:
            specs[name] = truncate_spec(value)
    return specs


def _parse_capture(fh: BinaryIO, total_lines: int) -> tuple[Dialect, dict[str, object]]:
    lines = _decoded_lines(fh)

    first = next(lines, None)
    if first is None:
        raise UnsupportedFormat("file is empty or failed to read first line")
    dialect = detect_dialect(first)
    if dialect is None:
        shown = normalize_first_line(first)[:50]
        raise UnsupportedFormat(
            "unsupported file format (expected Linux overlay CSV or Windows "
            f"hardware monitor log, got: '{shown}...')"
        )
    logger.debug("Detected %s capture (%d lines)", dialect.value, total_lines)

    specs_line = next(lines, None)
    if specs_line is None:
        raise InvalidSpecs("unexpected end of file while reading specs line")
    fields: dict[str, object] = dict(_parse_specs(specs_line, dialect))

    header_line = next(lines, None)
    if header_line is None:
        raise ReadError("unexpected end of file while reading header line")
    header = [name.strip() for name in header_line.split(",")]
    consumed = 3

    if dialect is Dialect.WINDOWS_MONITOR:
        for i in range(len(header)):
            if next(lines, None) is None:
                raise ReadError(
                    "unexpected end of file while skipping header rows "
                    f"(expected {len(header)} lines, got {i})"
                )
        consumed += len(header)

    transforms = _WINDOWS_TRANSFORMS if dialect is Dialect.WINDOWS_MONITOR else {}
    columns: list[tuple[int, str, Callable[[float], float] | None]] = []
    for pos, name in enumerate(header):
        field_name = COLUMN_SYNONYMS.get(name)
        if field_name is not None:
            columns.append((pos, field_name, transforms.get(field_name)))

    # A series fed by k header columns receives at most k samples per data line.
    remaining = max(total_lines - consumed, 0)
    width: dict[str, int] = {}
    for _, field_name, _ in columns:
        width[field_name] = width.get(field_name, 0) + 1
    buffers = {name: np.empty(remaining * k, dtype=np.float64) for name, k in width.items()}
    counts = dict.fromkeys(width, 0)

    for line in lines:
        record = line.split(",")
        n_fields = len(record)
        for pos, field_name, transform in columns:
            if pos >= n_fields:
                break
            value = parse_float(record[pos])
            if value is None:
                continue
            if transform is not None:
                value = transform(value)
            buffers[field_name][counts[field_name]] = value
            counts[field_name] += 1

    if not any(counts.values()):
        raise EmptyCapture("no valid benchmark data found in file (all data columns are empty)")

    for name in SERIES_FIELDS:
        if name in buffers:
            fields[name] = buffers[name][: counts[name]].copy()
    return dialect, fields


def ingest(source: CaptureSource, filename: str | None = None) -> Run:
    """Parse one profiler capture into a `Run`.

    Args:
        source: Path to the capture, or a binary file object (seekable or
            not) positioned at its start.
        filename: Upload file name used for the run label and in error
            messages. Defaults to the path's name.

    Returns:
        The parsed run, labelled with the file name minus the dialect suffix.

    Raises:
        UnsupportedFormat: The first line matches no known dialect.
        InvalidSpecs: The specs line is missing or too short.
        EmptyCapture: No numeric sample was parsed.
        ReadError: I/O failure or a capture truncated inside its headers.
    """
    if filename is None:
        if isinstance(source, (str, os.PathLike)):
            filename = Path(source).name
        else:
            filename = Path(getattr(source, "name", "") or "").name

    try:
        with _open_source(source) as fh:
            total_lines = count_lines(fh)
            fh.seek(0)
            dialect, fields = _parse_capture(fh, total_lines)
    except BenchmarkDataError as e:
        e.filename = filename
        raise
    except OSError as e:
        raise ReadError(f"failed to read capture: {e}", filename=filename) from e

    label = filename.removesuffix(dialect.suffix)
    return Run(label=label, **fields)  # type: ignore[arg-type]


def ingest_files(paths: Iterable[str | os.PathLike[str]]) -> list[Run]:
    """Parse several captures in order, stopping at the first failure."""
    runs = [ingest(path) for path in paths]
    logger.info("Parsed %d capture(s)", len(runs))
    return runs

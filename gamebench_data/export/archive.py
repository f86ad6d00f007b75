"""ZIP export of a benchmark as Linux overlay CSV files, one per run.

The CSVs can be uploaded again and parse back into equal runs.
"""

from __future__ import annotations

import csv
import gc
import io
import logging
import zipfile
from typing import TextIO

import numpy as np

from gamebench_data.config import GC_HINT_EVERY_EXPORT
from gamebench_data.errors import EmptyBenchmark, SinkClosed
from gamebench_data.export.sink import ResponseSink
from gamebench_data.raw.dialect import LINUX_OVERLAY_FIRST_LINE
from gamebench_data.records.runs import SERIES_FIELDS, Run
from gamebench_data.records.specs import ram_to_kilobytes
from gamebench_data.storage.store import BenchmarkStore

logger = logging.getLogger(__name__)

SPEC_HEADER = LINUX_OVERLAY_FIRST_LINE.split(",")
DATA_HEADER = [
    "fps",
    "frametime",
    "cpu_load",
    "gpu_load",
    "cpu_temp",
    "cpu_power",
    "gpu_temp",
    "gpu_core_clock",
    "gpu_mem_clock",
    "gpu_vram_used",
    "gpu_power",
    "ram_used",
    "swap_used",
]

_RESERVED = str.maketrans({c: "_" for c in '/\\:*?"<>| '})


def zip_headers(benchmark_id: int) -> dict[str, str]:
    return {
        "Content-Type": "application/zip",
        "Content-Disposition": f'attachment; filename="benchmark_{benchmark_id}.zip"',
    }


def sanitize_filename(name: str) -> str:
    """Make a run label safe as an archive member name."""
    sanitized = name.strip().translate(_RESERVED)
    return sanitized or "benchmark"


def format_number(value: float) -> str:
    """Shortest round-tripping decimal form, without exponent or trailing zeros."""
    return np.format_float_positional(value, trim="-")


def write_run_csv(run: Run, fh: TextIO) -> None:
    """Write one run in the Linux overlay CSV layout."""
    writer = csv.writer(fh, lineterminator="\n")
    writer.writerow(SPEC_HEADER)
    writer.writerow(
        [
            run.spec_os,
            run.spec_cpu,
            run.spec_gpu,
            ram_to_kilobytes(run.spec_ram),
            run.spec_kernel,
            "",
            run.spec_scheduler,
        ]
    )
    writer.writerow(DATA_HEADER)
    columns = [getattr(run, name) for name in SERIES_FIELDS]
    for i in range(run.data_length):
        writer.writerow([format_number(col[i]) if i < len(col) else "" for col in columns])


class _SinkWriter(io.RawIOBase):
    """Unseekable file object feeding a sink; writes after a disconnect are dropped."""

    def __init__(self, sink: ResponseSink) -> None:
        super().__init__()
        self._sink = sink
        self.aborted = False

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:  # type: ignore[override]
        n = len(data)
        if self.aborted:
            return n
        try:
            self._sink.write(bytes(data))
        except SinkClosed:
            self.aborted = True
            raise
        return n


def export_zip(store: BenchmarkStore, benchmark_id: int, sink: ResponseSink) -> None:
    """Stream a ZIP holding one CSV per run to `sink`.

    Raises:
        NotFound: The benchmark does not exist.
        EmptyBenchmark: The benchmark holds no runs. Nothing is sent.
        ReadError: The data cannot be decoded.
    """
    with store.open_stream(benchmark_id) as stream:
        if stream.run_count == 0:
            raise EmptyBenchmark("no benchmark data to export", benchmark_id=benchmark_id)
        sink.start(200, zip_headers(benchmark_id))
        out = _SinkWriter(sink)
        try:
            with zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for i, run in enumerate(stream):
                    name = sanitize_filename(run.label) + ".csv"
                    with zf.open(name, "w") as member:
                        text = io.TextIOWrapper(member, encoding="utf-8", newline="")
                        write_run_csv(run, text)
                        text.flush()
                        text.detach()
                    if (i + 1) % GC_HINT_EVERY_EXPORT == 0:
                        gc.collect(0)
        except SinkClosed:
            logger.info("Client went away while exporting benchmark %d", benchmark_id)
            return
    logger.info("Exported benchmark %d (%d runs)", benchmark_id, stream.run_count)

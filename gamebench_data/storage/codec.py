"""Binary benchmark encoding: msgpack values inside a single zstd frame.

A current-format file holds a header map followed by `run_count` run maps:

    {"version": 2, "run_count": n}  {run 0}  {run 1}  ...

Legacy (version 1) files hold one msgpack array of run maps, optionally
preceded by a `{"version": 1}` header. Runs are maps keyed by `Run` field
names; numeric series are little-endian float64 byte strings. Unknown keys
are ignored and missing keys decode as empty, so optional fields can be
added without a version bump.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, BinaryIO

import msgpack
import numpy as np
import zstandard as zstd

from gamebench_data.config import STORAGE_FORMAT_VERSION, WRITE_BUFFER_SIZE, ZSTD_THREADS
from gamebench_data.errors import NotFound, ReadError, UnsupportedVersion
from gamebench_data.records.runs import SERIES_FIELDS, SPEC_FIELDS, Run

logger = logging.getLogger(__name__)

LEGACY_FORMAT_VERSION = 1
ZSTD_LEVEL = 3

_SERIES_DTYPE = np.dtype("<f8")
_MAX_BUFFER_SIZE = 128 << 20


def encode_run(run: Run) -> dict[str, Any]:
    """Map a run to its msgpack-ready representation."""
    out: dict[str, Any] = {"label": run.label}
    for name in SPEC_FIELDS:
        out[name] = getattr(run, name)
    for name in SERIES_FIELDS:
        out[name] = getattr(run, name).astype(_SERIES_DTYPE, copy=False).tobytes()
    return out


def decode_run(obj: Any) -> Run:
    """Inverse of `encode_run`.

    Raises:
        ValueError: If `obj` is not a run map or a series is malformed.
    """
    if not isinstance(obj, dict):
        raise ValueError(f"expected a run map, got {type(obj).__name__}")
    fields: dict[str, Any] = {"label": str(obj.get("label") or "")}
    for name in SPEC_FIELDS:
        fields[name] = str(obj.get(name) or "")
    for name in SERIES_FIELDS:
        raw = obj.get(name)
        if raw is None:
            continue
        if isinstance(raw, bytes):
            fields[name] = np.frombuffer(raw, dtype=_SERIES_DTYPE)
        else:
            fields[name] = np.asarray(raw, dtype=np.float64)
    return Run(**fields)


def write_benchmark(fh: BinaryIO, runs: Iterable[Run], run_count: int) -> None:
    """Write header and runs to `fh` as one zstd frame.

    `fh` is left open. The frame is finished before returning.
    """
    packer = msgpack.Packer(use_bin_type=True)
    cctx = zstd.ZstdCompressor(level=ZSTD_LEVEL, threads=ZSTD_THREADS)
    with cctx.stream_writer(fh, closefd=False, write_size=WRITE_BUFFER_SIZE) as writer:
        writer.write(packer.pack({"version": STORAGE_FORMAT_VERSION, "run_count": run_count}))
        written = 0
        for run in runs:
            writer.write(packer.pack(encode_run(run)))
            written += 1
    if written != run_count:
        raise ValueError(f"header announced {run_count} runs but {written} were written")


class RunStream:
    """Sequential reader over a stored benchmark.

    Opening decodes the header only; runs are decoded one at a time while
    iterating. Legacy files are decoded whole on open.

    Attributes:
        path: Benchmark data file.
        benchmark_id: Benchmark the file belongs to, for error context.
        version: Storage format version found in the file.
        run_count: Number of runs in the file.
    """

    def __init__(self, path: str | Path, benchmark_id: int | None = None) -> None:
        self.path = Path(path)
        self.benchmark_id = benchmark_id
        try:
            self._fh = open(self.path, "rb", buffering=WRITE_BUFFER_SIZE)
        except FileNotFoundError as e:
            raise NotFound("benchmark data not found", benchmark_id=benchmark_id) from e
        except OSError as e:
            raise ReadError(f"failed to open benchmark data: {e}", benchmark_id=benchmark_id) from e
        self._consumed = 0
        self._legacy_runs: list[Any] | None = None
        try:
            self._open_frame()
            self._read_header()
        except BaseException:
            self.close()
            raise

    def _open_frame(self) -> None:
        self._reader = zstd.ZstdDecompressor().stream_reader(self._fh, closefd=False)
        self._unpacker = msgpack.Unpacker(
            self._reader, raw=False, max_buffer_size=_MAX_BUFFER_SIZE
        )

    def _read_header(self) -> None:
        try:
            first = self._next_value()
        except ReadError:
            # Not a header; retry as a bare legacy array from the top.
            logger.debug("Header decode failed for %s, retrying as legacy", self.path)
            self._fh.seek(0)
            self._open_frame()
            first = self._next_value()

        if isinstance(first, list):
            self._set_legacy(first)
            return
        if not isinstance(first, dict):
            raise ReadError(
                f"unrecognized leading value of type {type(first).__name__}",
                benchmark_id=self.benchmark_id,
            )
        version = first.get("version")
        if version == LEGACY_FORMAT_VERSION:
            runs = self._next_value()
            if not isinstance(runs, list):
                raise ReadError("legacy payload is not a run array", benchmark_id=self.benchmark_id)
            self._set_legacy(runs)
            return
        if version != STORAGE_FORMAT_VERSION:
            raise UnsupportedVersion(
                f"unsupported storage format version {version!r}",
                benchmark_id=self.benchmark_id,
            )
        self.version = STORAGE_FORMAT_VERSION
        self.run_count = int(first.get("run_count", 0))

    def _set_legacy(self, runs: list[Any]) -> None:
        logger.debug("Reading %s as legacy format (%d runs)", self.path, len(runs))
        self.version = LEGACY_FORMAT_VERSION
        self.run_count = len(runs)
        self._legacy_runs = runs

    def _next_value(self) -> Any:
        try:
            return self._unpacker.unpack()
        except msgpack.OutOfData as e:
            raise ReadError("unexpected end of benchmark data", benchmark_id=self.benchmark_id) from e
        except (msgpack.UnpackException, ValueError, zstd.ZstdError, OSError) as e:
            raise ReadError(f"failed to decode benchmark data: {e}", benchmark_id=self.benchmark_id) from e

    def _decode(self, obj: Any) -> Run:
        try:
            return decode_run(obj)
        except ValueError as e:
            raise ReadError(f"malformed run: {e}", benchmark_id=self.benchmark_id) from e

    @property
    def legacy(self) -> bool:
        return self._legacy_runs is not None

    def skip(self, count: int = 1) -> None:
        """Decode and discard the next `count` runs."""
        for _ in range(count):
            if self._consumed >= self.run_count:
                raise ReadError("no more runs to skip", benchmark_id=self.benchmark_id)
            if self._legacy_runs is None:
                try:
                    self._unpacker.skip()
                except msgpack.OutOfData as e:
                    raise ReadError(
                        "unexpected end of benchmark data", benchmark_id=self.benchmark_id
                    ) from e
                except (msgpack.UnpackException, ValueError, zstd.ZstdError, OSError) as e:
                    raise ReadError(
                        f"failed to decode benchmark data: {e}", benchmark_id=self.benchmark_id
                    ) from e
            self._consumed += 1

    def read_run(self) -> Run:
        """Decode the next run."""
        if self._consumed >= self.run_count:
            raise ReadError("no more runs in benchmark", benchmark_id=self.benchmark_id)
        if self._legacy_runs is not None:
            obj = self._legacy_runs[self._consumed]
            self._legacy_runs[self._consumed] = None
        else:
            obj = self._next_value()
        self._consumed += 1
        return self._decode(obj)

    def __iter__(self) -> Iterator[Run]:
        while self._consumed < self.run_count:
            yield self.read_run()

    def close(self) -> None:
        reader = getattr(self, "_reader", None)
        if reader is not None:
            reader.close()
        self._fh.close()

    def __enter__(self) -> RunStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

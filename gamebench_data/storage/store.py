"""Per-benchmark file store under `{data_dir}/benchmarks/`."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import BinaryIO

import msgpack
import zstandard as zstd

from gamebench_data.config import WRITE_BUFFER_SIZE, EngineConfig
from gamebench_data.errors import IndexOutOfRange, NotFound, ReadError, WriteError
from gamebench_data.records.runs import Run
from gamebench_data.storage.codec import RunStream, write_benchmark
from gamebench_data.storage.sidecar import BenchmarkMetadata, encode_metadata, read_metadata

logger = logging.getLogger(__name__)

MAX_BENCHMARK_ID = 2**32 - 1


def check_benchmark_id(benchmark_id: int) -> int:
    """Return `benchmark_id` if it is an unsigned 32-bit integer.

    Raises:
        ValueError: Otherwise.
    """
    if isinstance(benchmark_id, bool) or not isinstance(benchmark_id, int):
        raise ValueError(f"Benchmark id must be an int, got {type(benchmark_id).__name__}")
    if not 0 <= benchmark_id <= MAX_BENCHMARK_ID:
        raise ValueError(f"Benchmark id out of range: {benchmark_id}")
    return benchmark_id


def _atomic_write(dest: Path, write: Callable[[BinaryIO], object]) -> None:
    fd, name = tempfile.mkstemp(dir=dest.parent, prefix=dest.name + ".tmp-")
    tmp = Path(name)
    try:
        with open(fd, "wb", buffering=WRITE_BUFFER_SIZE) as fh:
            write(fh)
            fh.flush()
        os.replace(tmp, dest)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


class BenchmarkStore:
    """Reads and writes benchmark data files and their sidecars.

    Writers for the same benchmark id are serialized through `lock(id)`;
    readers never lock. Files are replaced atomically, so a reader sees
    either the previous or the new content.

    Attributes:
        config: Engine configuration; files live in `config.benchmarks_dir`.
    """

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def directory(self) -> Path:
        return self.config.benchmarks_dir

    def data_path(self, benchmark_id: int) -> Path:
        return self.directory / f"{check_benchmark_id(benchmark_id)}.bin"

    def meta_path(self, benchmark_id: int) -> Path:
        return self.directory / f"{check_benchmark_id(benchmark_id)}.meta"

    def lock(self, benchmark_id: int) -> threading.RLock:
        """Re-entrant writer lock for one benchmark id."""
        check_benchmark_id(benchmark_id)
        with self._locks_guard:
            lock = self._locks.get(benchmark_id)
            if lock is None:
                lock = self._locks[benchmark_id] = threading.RLock()
            return lock

    def exists(self, benchmark_id: int) -> bool:
        return self.data_path(benchmark_id).is_file()

    def store(self, benchmark_id: int, runs: Sequence[Run]) -> None:
        """Persist `runs` as the full content of a benchmark, then its sidecar.

        Raises:
            WriteError: If the data file or the sidecar cannot be written. A
                sidecar failure leaves the new data file in place.
        """
        path = self.data_path(benchmark_id)
        with self.lock(benchmark_id):
            try:
                _atomic_write(path, lambda fh: write_benchmark(fh, runs, len(runs)))
            except (OSError, zstd.ZstdError) as e:
                raise WriteError(f"failed to write benchmark data: {e}", benchmark_id=benchmark_id) from e
            meta = BenchmarkMetadata(run_count=len(runs), run_labels=[r.label for r in runs])
            try:
                self._write_metadata(benchmark_id, meta)
            except OSError as e:
                raise WriteError(f"failed to write metadata sidecar: {e}", benchmark_id=benchmark_id) from e
        logger.info("Stored benchmark %d (%d runs)", benchmark_id, len(runs))

    def _write_metadata(self, benchmark_id: int, meta: BenchmarkMetadata) -> None:
        payload = encode_metadata(meta)
        _atomic_write(self.meta_path(benchmark_id), lambda fh: fh.write(payload))

    def open_stream(self, benchmark_id: int) -> RunStream:
        """Open a benchmark for sequential reading. Close the result when done.

        Raises:
            NotFound: The data file does not exist.
            ReadError: The header cannot be decoded.
            UnsupportedVersion: The header has an unknown version.
        """
        return RunStream(self.data_path(benchmark_id), benchmark_id=benchmark_id)

    def iter_runs(self, benchmark_id: int) -> Iterator[Run]:
        """Yield runs one at a time without retaining earlier ones."""
        with self.open_stream(benchmark_id) as stream:
            yield from stream

    def load(self, benchmark_id: int) -> list[Run]:
        """Read every run of a benchmark."""
        with self.open_stream(benchmark_id) as stream:
            return list(stream)

    def for_each_run(self, benchmark_id: int, visitor: Callable[[int, Run], None]) -> int:
        """Call `visitor(index, run)` for each run in order and return the run count."""
        with self.open_stream(benchmark_id) as stream:
            for i, run in enumerate(stream):
                visitor(i, run)
            return stream.run_count

    def load_run(self, benchmark_id: int, idx: int) -> Run:
        """Read a single run without decoding the ones after it.

        Raises:
            ReadError: The file is in the legacy format, which has no
                per-run access.
            IndexOutOfRange: `idx` is outside `[0, run_count)`.
        """
        with self.open_stream(benchmark_id) as stream:
            if stream.legacy:
                raise ReadError(
                    "single-run access is not supported for the legacy format",
                    benchmark_id=benchmark_id,
                )
            if not 0 <= idx < stream.run_count:
                raise IndexOutOfRange(
                    f"run index {idx} out of range (benchmark has {stream.run_count} runs)",
                    benchmark_id=benchmark_id,
                )
            stream.skip(idx)
            return stream.read_run()

    def format_version(self, benchmark_id: int) -> int:
        """Storage format version of the benchmark's data file."""
        with self.open_stream(benchmark_id) as stream:
            return stream.version

    def metadata(self, benchmark_id: int) -> BenchmarkMetadata:
        """Run count and labels, from the sidecar or rebuilt from the data file.

        A rebuilt sidecar is persisted for next time; failing to persist is
        logged and otherwise ignored.
        """
        meta = self._read_sidecar(benchmark_id)
        if meta is not None:
            return meta

        # store() writes data and sidecar under the same lock.
        with self.lock(benchmark_id):
            meta = self._read_sidecar(benchmark_id, quiet=True)
            if meta is not None:
                return meta
            labels = [run.label for run in self.iter_runs(benchmark_id)]
            meta = BenchmarkMetadata(run_count=len(labels), run_labels=labels)
            try:
                self._write_metadata(benchmark_id, meta)
            except OSError:
                logger.warning("Failed to persist rebuilt sidecar for benchmark %d", benchmark_id, exc_info=True)
        return meta

    def _read_sidecar(self, benchmark_id: int, quiet: bool = False) -> BenchmarkMetadata | None:
        try:
            return read_metadata(self.meta_path(benchmark_id))
        except FileNotFoundError:
            logger.debug("No sidecar for benchmark %d, rebuilding", benchmark_id)
        except (OSError, ValueError, msgpack.UnpackException):
            if not quiet:
                logger.warning("Unreadable sidecar for benchmark %d, rebuilding", benchmark_id, exc_info=True)
        return None

    def delete(self, benchmark_id: int) -> None:
        """Remove a benchmark's data file and, if present, its sidecar.

        Raises:
            NotFound: The data file does not exist.
            WriteError: A file could not be removed.
        """
        with self.lock(benchmark_id):
            try:
                self.data_path(benchmark_id).unlink()
            except FileNotFoundError as e:
                raise NotFound("benchmark data not found", benchmark_id=benchmark_id) from e
            except OSError as e:
                raise WriteError(f"failed to delete benchmark data: {e}", benchmark_id=benchmark_id) from e
            try:
                self.meta_path(benchmark_id).unlink(missing_ok=True)
            except OSError:
                logger.warning("Failed to remove sidecar for benchmark %d", benchmark_id, exc_info=True)
        logger.info("Deleted benchmark %d", benchmark_id)

    def benchmark_ids(self) -> list[int]:
        """Ids of all benchmarks with a data file, ascending."""
        ids: list[int] = []
        for path in self.directory.glob("*.bin"):
            if path.stem.isdigit():
                ids.append(int(path.stem))
        return sorted(ids)

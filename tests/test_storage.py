from __future__ import annotations

import os
import threading
from pathlib import Path

import msgpack
import numpy as np
import pytest
import zstandard as zstd

import gamebench_data.storage.store as store_module
from gamebench_data.config import EngineConfig
from gamebench_data.errors import (
    IndexOutOfRange,
    LastRunDeletion,
    NotFound,
    ReadError,
    TooManyLines,
    UnsupportedVersion,
    WriteError,
)
from gamebench_data.records import Run
from gamebench_data.storage import (
    BenchmarkStore,
    add_runs,
    check_benchmark_id,
    commit_benchmark,
    delete_run,
    encode_run,
    migrate_storage,
    rename_runs,
)
from gamebench_data.storage.store import _atomic_write


def _make_store(tmp_path: Path) -> BenchmarkStore:
    return BenchmarkStore(EngineConfig(data_dir=tmp_path / "data").init())


def _make_runs(*labels: str) -> list[Run]:
    runs = []
    for i, label in enumerate(labels):
        runs.append(
            Run(
                label=label,
                spec_os="Linux",
                spec_gpu=f"GPU {i}",
                spec_ram="16 GB",
                fps=np.linspace(50, 70, 100 + i),
                frame_time=[16.67, 16.81, 16.34],
                ram_used=[0.1 * i],
            )
        )
    return runs


def _write_zstd(path: Path, payload: bytes) -> None:
    path.write_bytes(zstd.ZstdCompressor().compress(payload))


def _write_legacy(path: Path, runs: list[Run], *, with_header: bool = False) -> None:
    packer = msgpack.Packer(use_bin_type=True)
    payload = b""
    if with_header:
        payload += packer.pack({"version": 1})
    payload += packer.pack([encode_run(r) for r in runs])
    _write_zstd(path, payload)


def test_store_and_load_round_trip(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    runs = _make_runs("a", "b", "c")
    store.store(7, runs)

    assert store.data_path(7).is_file()
    assert store.meta_path(7).is_file()
    assert store.load(7) == runs
    assert store.format_version(7) == 2
    assert not list(store.directory.glob("*.tmp-*"))


def test_store_empty_benchmark(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    store.store(1, [])
    assert store.load(1) == []
    assert store.metadata(1).run_count == 0


def test_load_missing_benchmark(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    with pytest.raises(NotFound) as excinfo:
        store.load(42)
    assert excinfo.value.benchmark_id == 42
    assert str(excinfo.value).startswith("benchmark 42:")


def test_benchmark_id_range(tmp_path: Path) -> None:
    assert check_benchmark_id(0) == 0
    assert check_benchmark_id(2**32 - 1) == 2**32 - 1
    for bad in (-1, 2**32, True, "3"):
        with pytest.raises(ValueError):
            check_benchmark_id(bad)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        _make_store(tmp_path).load(-3)


def test_streaming_read_yields_in_order(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    runs = _make_runs("a", "b", "c", "d")
    store.store(3, runs)

    seen: list[tuple[int, str]] = []
    count = store.for_each_run(3, lambda i, run: seen.append((i, run.label)))
    assert count == 4
    assert seen == [(0, "a"), (1, "b"), (2, "c"), (3, "d")]
    assert [r.label for r in store.iter_runs(3)] == ["a", "b", "c", "d"]


def test_load_run(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    runs = _make_runs("a", "b", "c")
    store.store(5, runs)

    assert store.load_run(5, 1).label == "b"
    assert store.load_run(5, 1) == runs[1]
    assert store.load_run(5, 2) == runs[2]
    with pytest.raises(IndexOutOfRange):
        store.load_run(5, 3)
    with pytest.raises(IndexOutOfRange):
        store.load_run(5, -1)


def test_legacy_format_loads_like_current(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    runs = _make_runs("x", "y")
    _write_legacy(store.data_path(9), runs)
    _write_legacy(store.data_path(10), runs, with_header=True)

    for benchmark_id in (9, 10):
        assert store.format_version(benchmark_id) == 1
        assert store.load(benchmark_id) == runs
        assert [r.label for r in store.iter_runs(benchmark_id)] == ["x", "y"]
        with pytest.raises(ReadError, match="legacy"):
            store.load_run(benchmark_id, 0)


def test_legacy_runs_with_list_series(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    payload = msgpack.packb([{"label": "old", "fps": [1.0, 2.0], "unknown_field": 3}], use_bin_type=True)
    _write_zstd(store.data_path(11), payload)

    (run,) = store.load(11)
    assert run.label == "old"
    np.testing.assert_array_equal(run.fps, [1.0, 2.0])
    assert run.spec_os == ""


def test_unsupported_version(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    _write_zstd(store.data_path(4), msgpack.packb({"version": 3, "run_count": 0}))
    with pytest.raises(UnsupportedVersion):
        store.load(4)


def test_corrupt_and_truncated_files(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    store.data_path(1).write_bytes(b"not zstd at all")
    with pytest.raises(ReadError):
        store.load(1)

    store.data_path(2).write_bytes(b"")
    with pytest.raises(ReadError):
        store.load(2)

    # Header announces more runs than the file holds.
    packer = msgpack.Packer(use_bin_type=True)
    payload = packer.pack({"version": 2, "run_count": 3}) + packer.pack(encode_run(_make_runs("a")[0]))
    _write_zstd(store.data_path(3), payload)
    with pytest.raises(ReadError):
        store.load(3)
    assert store.load_run(3, 0).label == "a"


def test_metadata_sidecar(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    runs = _make_runs("a", "b")
    store.store(8, runs)

    meta = store.metadata(8)
    assert meta.run_count == len(store.load(8))
    assert meta.run_labels == [r.label for r in store.load(8)]


def test_metadata_rebuilt_when_sidecar_missing_or_corrupt(tmp_path: Path, caplog) -> None:
    store = _make_store(tmp_path)
    store.store(8, _make_runs("a", "b"))

    store.meta_path(8).unlink()
    meta = store.metadata(8)
    assert meta.run_labels == ["a", "b"]
    assert store.meta_path(8).is_file()

    store.meta_path(8).write_bytes(b"\xc1\xc1\xc1")
    with caplog.at_level("WARNING"):
        meta = store.metadata(8)
    assert meta.run_count == 2
    assert "Unreadable sidecar" in caplog.text


def test_metadata_rebuild_persist_failure_is_swallowed(tmp_path: Path, monkeypatch) -> None:
    store = _make_store(tmp_path)
    store.store(8, _make_runs("a"))
    store.meta_path(8).unlink()

    def _fail(*args, **kwargs):
        raise PermissionError("read-only")

    monkeypatch.setattr(store, "_write_metadata", _fail)
    assert store.metadata(8).run_labels == ["a"]


def test_delete(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    store.store(6, _make_runs("a"))
    store.delete(6)
    assert not store.data_path(6).exists()
    assert not store.meta_path(6).exists()
    with pytest.raises(NotFound):
        store.delete(6)

    # A missing sidecar is not an error.
    store.store(6, _make_runs("a"))
    store.meta_path(6).unlink()
    store.delete(6)
    assert store.benchmark_ids() == []


def test_benchmark_ids(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    for benchmark_id in (12, 3, 7):
        store.store(benchmark_id, _make_runs("a"))
    (store.directory / "notes.bin").write_bytes(b"")
    assert store.benchmark_ids() == [3, 7, 12]


def test_lock_is_per_id_and_reentrant(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    assert store.lock(1) is store.lock(1)
    assert store.lock(1) is not store.lock(2)
    with store.lock(1):
        # store() takes the same lock again.
        store.store(1, _make_runs("a"))


def test_commit_benchmark(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    search = commit_benchmark(store, 1, _make_runs("a", "b", "a"))
    assert search.labels == "a, b"
    assert "Linux" in search.specs
    assert store.metadata(1).run_count == 3


def test_commit_rejects_oversized_run(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    big = Run(label="big", fps=np.zeros(500_001))
    with pytest.raises(TooManyLines):
        commit_benchmark(store, 1, [big])
    assert not store.exists(1)


def test_add_runs(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    store.store(1, _make_runs("a"))
    search = add_runs(store, 1, _make_runs("b", "c"))
    assert search.labels == "a, b, c"
    assert store.metadata(1).run_labels == ["a", "b", "c"]


def test_delete_run_renumbers(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    runs = _make_runs("a", "b", "c")
    store.store(1, runs)

    search = delete_run(store, 1, 1)
    assert search.labels == "a, c"
    assert store.load(1) == [runs[0], runs[2]]
    assert store.load_run(1, 1).label == "c"
    with pytest.raises(IndexOutOfRange):
        delete_run(store, 1, 2)


def test_cannot_delete_last_run(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    store.store(1, _make_runs("only"))
    assert store.metadata(1).run_count == 1

    with pytest.raises(LastRunDeletion):
        delete_run(store, 1, 0)
    assert store.load(1)[0].label == "only"


def test_rename_runs(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    store.store(1, _make_runs("a", "b"))
    search = rename_runs(store, 1, {1: "  renamed  ", 0: "first"})
    assert search.labels == "first, renamed"
    assert store.metadata(1).run_labels == ["first", "renamed"]

    with pytest.raises(IndexOutOfRange):
        rename_runs(store, 1, {0: "x", 5: "y"})
    assert store.metadata(1).run_labels == ["first", "renamed"]


def test_migrate_storage(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    runs = _make_runs("a", "b")
    _write_legacy(store.data_path(1), runs)
    store.store(2, runs)
    (store.directory / "backup.bin").write_bytes(b"")
    store.data_path(3).write_bytes(b"garbage")

    report = migrate_storage(store.config, store)
    assert report.found == 4
    assert report.migrated == 1
    assert report.skipped == 2
    assert report.failed == 1
    assert not report.ok

    assert store.format_version(1) == 2
    assert store.load(1) == runs
    assert store.metadata(1).run_labels == ["a", "b"]


def test_migrate_storage_without_directory(tmp_path: Path) -> None:
    report = migrate_storage(EngineConfig(data_dir=tmp_path / "missing"))
    assert report.found == 0
    assert report.ok


def test_init_creates_directory_with_mode(tmp_path: Path) -> None:
    config = EngineConfig(data_dir=tmp_path / "fresh").init()
    assert config.benchmarks_dir.is_dir()
    if os.name == "posix":
        mode = config.benchmarks_dir.stat().st_mode & 0o777
        assert mode & ~0o750 == 0


def test_metadata_rebuild_does_not_clobber_concurrent_store(tmp_path: Path, monkeypatch) -> None:
    store = _make_store(tmp_path)
    store.store(1, _make_runs("old"))
    store.meta_path(1).unlink()

    writer = threading.Thread(target=store.store, args=(1, _make_runs("new1", "new2")))
    stale_iter_runs = store.iter_runs

    def _iter_runs_racing_writer(benchmark_id: int):
        runs = list(stale_iter_runs(benchmark_id))
        writer.start()
        # The writer must wait for the rebuild to finish.
        writer.join(timeout=0.5)
        assert writer.is_alive()
        yield from runs

    monkeypatch.setattr(store, "iter_runs", _iter_runs_racing_writer)
    assert store.metadata(1).run_labels == ["old"]
    writer.join()
    monkeypatch.undo()

    assert store.metadata(1).run_labels == ["new1", "new2"]
    assert [r.label for r in store.load(1)] == ["new1", "new2"]


def test_atomic_write_temp_files_do_not_collide(tmp_path: Path) -> None:
    dest = tmp_path / "1.bin"

    def _outer(fh) -> None:
        fh.write(b"outer")
        _atomic_write(dest, lambda inner: inner.write(b"inner"))

    _atomic_write(dest, _outer)
    assert dest.read_bytes() == b"outer"
    assert [p.name for p in tmp_path.iterdir()] == ["1.bin"]


def test_store_wraps_compression_errors(tmp_path: Path, monkeypatch) -> None:
    store = _make_store(tmp_path)

    def _broken_writer(*args, **kwargs):
        raise zstd.ZstdError("compression failed")

    monkeypatch.setattr(store_module, "write_benchmark", _broken_writer)
    with pytest.raises(WriteError, match="compression failed"):
        store.store(1, _make_runs("a"))
    assert not store.exists(1)
    assert not list(store.directory.glob("*.tmp-*"))

"""Streaming JSON responses, one run in memory at a time."""

from __future__ import annotations

import gc
import json
import logging
from collections.abc import Callable, Iterable
from typing import Any

from gamebench_data.config import GC_HINT_EVERY_JSON
from gamebench_data.errors import SinkClosed
from gamebench_data.export.sink import ResponseSink
from gamebench_data.modeling.stats import precompute_run
from gamebench_data.records.runs import Run
from gamebench_data.storage.store import BenchmarkStore

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json; charset=utf-8"}


def _dumps(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def runs_to_json(runs: Iterable[Run]) -> bytes:
    """Whole-value compact JSON of a run list, newline-terminated."""
    return _dumps([run.to_json_dict() for run in runs]) + b"\n"


def _stream_array(
    store: BenchmarkStore,
    benchmark_id: int,
    sink: ResponseSink,
    encode: Callable[[Run], Any],
) -> None:
    with store.open_stream(benchmark_id) as stream:
        sink.start(200, JSON_HEADERS)
        try:
            if stream.legacy:
                sink.write(_dumps([encode(run) for run in stream]) + b"\n")
                return
            sink.write(b"[")
            for i, run in enumerate(stream):
                if i:
                    sink.write(b",")
                sink.write(_dumps(encode(run)))
                del run
                if (i + 1) % GC_HINT_EVERY_JSON == 0:
                    gc.collect(0)
            sink.write(b"]\n")
        except SinkClosed:
            logger.info("Client went away while streaming benchmark %d", benchmark_id)


def stream_json(store: BenchmarkStore, benchmark_id: int, sink: ResponseSink) -> None:
    """Stream a benchmark's runs as a JSON array.

    The output is byte-identical to `runs_to_json(store.load(benchmark_id))`.
    Lookup and header errors are raised before `sink.start` is called.

    Raises:
        NotFound: The benchmark does not exist.
        ReadError: The data cannot be decoded.
    """
    _stream_array(store, benchmark_id, sink, Run.to_json_dict)


def stream_stats_json(store: BenchmarkStore, benchmark_id: int, sink: ResponseSink) -> None:
    """Stream chart-ready statistics (`PreCalculatedRun.to_dict`) for each run."""
    _stream_array(store, benchmark_id, sink, lambda run: precompute_run(run).to_dict())

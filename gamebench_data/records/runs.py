"""Benchmark run records: one profiler capture per `Run`."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from gamebench_data.config import MAX_PER_RUN_LINES
from gamebench_data.errors import TooManyLines

logger = logging.getLogger(__name__)

SPEC_FIELDS: tuple[str, ...] = (
    "spec_os",
    "spec_cpu",
    "spec_gpu",
    "spec_ram",
    "spec_kernel",
    "spec_scheduler",
)

# Also the column order of exported captures.
SERIES_FIELDS: tuple[str, ...] = (
    "fps",
    "frame_time",
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
)

JSON_KEYS: dict[str, str] = {
    "label": "Label",
    "spec_os": "SpecOS",
    "spec_cpu": "SpecCPU",
    "spec_gpu": "SpecGPU",
    "spec_ram": "SpecRAM",
    "spec_kernel": "SpecLinuxKernel",
    "spec_scheduler": "SpecLinuxScheduler",
    "fps": "DataFPS",
    "frame_time": "DataFrameTime",
    "cpu_load": "DataCPULoad",
    "gpu_load": "DataGPULoad",
    "cpu_temp": "DataCPUTemp",
    "cpu_power": "DataCPUPower",
    "gpu_temp": "DataGPUTemp",
    "gpu_core_clock": "DataGPUCoreClock",
    "gpu_mem_clock": "DataGPUMemClock",
    "gpu_vram_used": "DataGPUVRAMUsed",
    "gpu_power": "DataGPUPower",
    "ram_used": "DataRAMUsed",
    "swap_used": "DataSwapUsed",
}


def _empty_series() -> np.ndarray:
    return np.empty(0, dtype=np.float64)


@dataclass(frozen=True, eq=False)
class Run:
    """A single benchmark run (one profiler capture).

    Series are index-aligned within a run but may differ in length.

    Attributes:
        label: Free-form run identifier, usually the upload file stem.
        spec_os: Operating system.
        spec_cpu: CPU model.
        spec_gpu: GPU model.
        spec_ram: Total RAM, human-readable (e.g. ``"16 GB"``).
        spec_kernel: Linux kernel (Linux overlay captures only).
        spec_scheduler: CPU scheduler (Linux overlay captures only).
        fps: Frames per second.
        frame_time: Frame time in milliseconds.
        cpu_load: CPU load in percent.
        gpu_load: GPU load in percent.
        cpu_temp: CPU temperature.
        cpu_power: CPU power draw.
        gpu_temp: GPU temperature.
        gpu_core_clock: GPU core clock.
        gpu_mem_clock: GPU memory clock.
        gpu_vram_used: GPU VRAM in use.
        gpu_power: GPU power draw.
        ram_used: System RAM in use.
        swap_used: Swap in use.
    """

    label: str = ""
    spec_os: str = ""
    spec_cpu: str = ""
    spec_gpu: str = ""
    spec_ram: str = ""
    spec_kernel: str = ""
    spec_scheduler: str = ""
    fps: np.ndarray = field(default_factory=_empty_series)
    frame_time: np.ndarray = field(default_factory=_empty_series)
    cpu_load: np.ndarray = field(default_factory=_empty_series)
    gpu_load: np.ndarray = field(default_factory=_empty_series)
    cpu_temp: np.ndarray = field(default_factory=_empty_series)
    cpu_power: np.ndarray = field(default_factory=_empty_series)
    gpu_temp: np.ndarray = field(default_factory=_empty_series)
    gpu_core_clock: np.ndarray = field(default_factory=_empty_series)
    gpu_mem_clock: np.ndarray = field(default_factory=_empty_series)
    gpu_vram_used: np.ndarray = field(default_factory=_empty_series)
    gpu_power: np.ndarray = field(default_factory=_empty_series)
    ram_used: np.ndarray = field(default_factory=_empty_series)
    swap_used: np.ndarray = field(default_factory=_empty_series)

    def __post_init__(self) -> None:
        for name in SERIES_FIELDS:
            arr = np.asarray(getattr(self, name), dtype=np.float64)
            if arr.ndim != 1:
                raise ValueError(f"Series {name!r} must be one-dimensional, got shape {arr.shape}")
            object.__setattr__(self, name, arr)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Run):
            return NotImplemented
        if self.label != other.label:
            return False
        if any(getattr(self, f) != getattr(other, f) for f in SPEC_FIELDS):
            return False
        return all(np.array_equal(getattr(self, f), getattr(other, f)) for f in SERIES_FIELDS)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Run(label={self.label!r}, data_points={self.data_length})"

    def series(self) -> dict[str, np.ndarray]:
        """Map of series field name to its samples, in export column order."""
        return {name: getattr(self, name) for name in SERIES_FIELDS}

    @property
    def data_length(self) -> int:
        """Longest series length (the run's line count)."""
        return max(len(getattr(self, name)) for name in SERIES_FIELDS)

    @property
    def has_samples(self) -> bool:
        return self.data_length > 0

    def trimmed_view(self, start: int, end: int) -> Run:
        """Return a view with every series cut to the inclusive range `[start, end]`.

        A negative `start` counts as 0 and `end <= 0` means "to the end".
        Series shorter than `end` are cut at their own length; an empty
        range yields empty series. The view shares memory with this run.
        """
        start = max(int(start), 0)
        cut: dict[str, np.ndarray] = {}
        for name in SERIES_FIELDS:
            arr = getattr(self, name)
            n = len(arr)
            last = n - 1 if end <= 0 else int(end)
            stop = min(last + 1, n)
            cut[name] = arr[start:stop] if start < stop else arr[:0]
        return dataclasses.replace(self, **cut)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with the wire keys used by web clients."""
        out: dict[str, Any] = {JSON_KEYS["label"]: self.label}
        for name in SPEC_FIELDS:
            out[JSON_KEYS[name]] = getattr(self, name)
        for name in SERIES_FIELDS:
            out[JSON_KEYS[name]] = getattr(self, name).tolist()
        return out


def count_total_data_lines(runs: Iterable[Run]) -> int:
    """Sum of per-run line counts across a benchmark."""
    return sum(r.data_length for r in runs)


def validate_per_run_lines(runs: Sequence[Run], limit: int = MAX_PER_RUN_LINES) -> None:
    """Reject any run with more than `limit` data lines.

    Raises:
        TooManyLines: For the first offending run.
    """
    for i, run in enumerate(runs):
        n = run.data_length
        if n > limit:
            name = run.label or f"run #{i + 1}"
            raise TooManyLines(
                f"{name} has {n} data points, which exceeds the maximum allowed {limit} per run"
            )


def runs_table(runs: Iterable[Run]) -> pd.DataFrame:
    """Overview table with one row per run (specs and per-series counts)."""
    rows: list[dict[str, Any]] = []
    for i, run in enumerate(runs):
        row: dict[str, Any] = {"run_index": i, "label": run.label}
        for name in SPEC_FIELDS:
            row[name] = getattr(run, name)
        row["data_points"] = run.data_length
        for name in SERIES_FIELDS:
            row[f"{name}_count"] = len(getattr(run, name))
        rows.append(row)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows)

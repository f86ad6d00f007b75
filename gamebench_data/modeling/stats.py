"""Per-metric summary statistics used by the benchmark charts.

Two percentile methods are supported:

- `"linear"`: linear interpolation between closest ranks.
- `"overlay"`: the floor-based method of the Linux in-game overlay, which
  picks an existing sample and counts from the top of the sorted data.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from gamebench_data.config import DOWNSAMPLE_THRESHOLD
from gamebench_data.modeling.lttb import downsample_lttb, indexed_series
from gamebench_data.records.runs import Run

logger = logging.getLogger(__name__)

QUANTILE_METHODS = ("linear", "overlay")

# Chart metric key -> Run series field.
METRIC_FIELDS: dict[str, str] = {
    "FPS": "fps",
    "FrameTime": "frame_time",
    "CPULoad": "cpu_load",
    "GPULoad": "gpu_load",
    "CPUTemp": "cpu_temp",
    "CPUPower": "cpu_power",
    "GPUTemp": "gpu_temp",
    "GPUCoreClock": "gpu_core_clock",
    "GPUMemClock": "gpu_mem_clock",
    "GPUVRAMUsed": "gpu_vram_used",
    "GPUPower": "gpu_power",
    "RAMUsed": "ram_used",
    "SwapUsed": "swap_used",
}


def _check_method(method: str) -> None:
    if method not in QUANTILE_METHODS:
        raise ValueError(f"Unknown quantile method {method!r}, expected one of {QUANTILE_METHODS}")


def _round2(value: float) -> float:
    """Round to two decimals, halves away from zero."""
    value = float(value)
    return math.copysign(math.floor(abs(value) * 100 + 0.5), value) / 100 + 0.0


def _round_half_away(values: np.ndarray) -> np.ndarray:
    return np.where(values >= 0, np.floor(values + 0.5), np.ceil(values - 0.5))


def percentile(sorted_values: np.ndarray, p: float, method: str = "linear") -> float:
    """Percentile `p` (0-100) of already-sorted data.

    Returns 0.0 for empty data.

    Raises:
        ValueError: If `method` is not one of `QUANTILE_METHODS`.
    """
    _check_method(method)
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if method == "linear":
        return float(np.percentile(sorted_values, p, method="linear"))
    idx_desc = math.floor((100 - p) / 100 * n - 1)
    idx = min(max(n - 1 - idx_desc, 0), n - 1)
    return float(sorted_values[idx])


def density(values: np.ndarray, low: float, high: float) -> list[list[int]]:
    """Histogram of integer-rounded samples within `[low, high]`.

    Returns:
        Ascending `[value, occurrences]` pairs.
    """
    values = np.asarray(values, dtype=np.float64)
    kept = values[(values >= low) & (values <= high)]
    if len(kept) == 0:
        return []
    keys, counts = np.unique(_round_half_away(kept), return_counts=True)
    return [[int(k), int(c)] for k, c in zip(keys, counts)]


@dataclass(frozen=True)
class MetricStats:
    """Summary of one metric series, rounded to two decimals.

    Attributes:
        min: Smallest sample.
        max: Largest sample.
        avg: Arithmetic mean.
        median: 50th percentile.
        p01: 1st percentile.
        p97: 97th percentile.
        stddev: Sample standard deviation.
        variance: Sample variance (divisor `n - 1`, 0 for a single sample).
        count: Number of samples.
        density: Ascending `[value, occurrences]` pairs over `[p01, p97]`.
    """

    min: float
    max: float
    avg: float
    median: float
    p01: float
    p97: float
    stddev: float
    variance: float
    count: int
    density: list[list[int]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
            "median": self.median,
            "p01": self.p01,
            "p97": self.p97,
            "stddev": self.stddev,
            "variance": self.variance,
            "count": self.count,
            "density": [list(pair) for pair in self.density],
        }


def _sample_variance(values: np.ndarray) -> float:
    if len(values) <= 1:
        return 0.0
    return float(np.var(values, ddof=1))


def compute_metric_stats(values: np.ndarray, method: str = "linear") -> MetricStats | None:
    """Summarize one series. Returns None for an empty series."""
    _check_method(method)
    data = np.asarray(values, dtype=np.float64)
    if len(data) == 0:
        return None
    ordered = np.sort(data)
    p01 = percentile(ordered, 1, method)
    p97 = percentile(ordered, 97, method)
    variance = _sample_variance(data)
    return MetricStats(
        min=_round2(ordered[0]),
        max=_round2(ordered[-1]),
        avg=_round2(data.mean()),
        median=_round2(percentile(ordered, 50, method)),
        p01=_round2(p01),
        p97=_round2(p97),
        stddev=_round2(math.sqrt(variance)),
        variance=_round2(variance),
        count=len(data),
        density=density(data, p01, p97),
    )


def _inverse(ms: float) -> float:
    return 1000 / ms if ms > 0 else 0.0


def compute_fps_from_frametime(frame_time: np.ndarray, method: str = "linear") -> MetricStats | None:
    """Derive FPS statistics from frame times in milliseconds.

    Percentiles are inverted (the 97th FPS percentile comes from the 3rd
    frame-time percentile, the 1st from the 99th). Min, max and percentiles
    skip zero frame times; average FPS comes from the mean frame time.
    Median, spread and density use per-sample FPS, with 0 for zero frame
    times.

    Returns None for an empty series.
    """
    _check_method(method)
    ft = np.asarray(frame_time, dtype=np.float64)
    n = len(ft)
    if n == 0:
        return None
    ordered_ft = np.sort(ft[ft > 0])
    if len(ordered_ft) == 0:
        # All frames are zero: every FPS figure is 0.
        ordered_ft = np.zeros(1)
    fps_p97 = _inverse(percentile(ordered_ft, 3, method))
    fps_p01 = _inverse(percentile(ordered_ft, 99, method))

    safe_ft = np.where(ft > 0, ft, 1.0)
    fps = np.where(ft > 0, 1000 / safe_ft, 0.0)
    variance = _sample_variance(fps)
    return MetricStats(
        min=_round2(_inverse(ordered_ft[-1])),
        max=_round2(_inverse(ordered_ft[0])),
        avg=_round2(_inverse(ft.mean())),
        median=_round2(percentile(np.sort(fps), 50, method)),
        p01=_round2(fps_p01),
        p97=_round2(fps_p97),
        stddev=_round2(math.sqrt(variance)),
        variance=_round2(variance),
        count=n,
        density=density(fps, fps_p01, fps_p97),
    )


@dataclass(frozen=True)
class PreCalculatedRun:
    """Chart-ready data for one run.

    Attributes:
        label: Run label.
        spec_os: Operating system.
        spec_cpu: CPU model.
        spec_gpu: GPU model.
        spec_ram: Total RAM.
        spec_kernel: Linux kernel, if any.
        spec_scheduler: CPU scheduler, if any.
        total_data_points: FPS sample count, or frame-time count without FPS.
        series: Metric key -> downsampled `(k, 2)` array of `[index, value]`.
        stats: Metric key -> linear-method statistics.
        stats_overlay: Metric key -> overlay-method statistics.
    """

    label: str
    spec_os: str
    spec_cpu: str
    spec_gpu: str
    spec_ram: str
    spec_kernel: str
    spec_scheduler: str
    total_data_points: int
    series: dict[str, np.ndarray]
    stats: dict[str, MetricStats]
    stats_overlay: dict[str, MetricStats]

    def stats_for(self, method: str) -> dict[str, MetricStats]:
        _check_method(method)
        return self.stats if method == "linear" else self.stats_overlay

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "label": self.label,
            "specOS": self.spec_os,
            "specCPU": self.spec_cpu,
            "specGPU": self.spec_gpu,
            "specRAM": self.spec_ram,
        }
        if self.spec_kernel:
            out["specLinuxKernel"] = self.spec_kernel
        if self.spec_scheduler:
            out["specLinuxScheduler"] = self.spec_scheduler
        out["totalDataPoints"] = self.total_data_points
        out["series"] = {key: points.tolist() for key, points in self.series.items()}
        out["stats"] = {key: s.to_dict() for key, s in self.stats.items()}
        out["statsMangoHud"] = {key: s.to_dict() for key, s in self.stats_overlay.items()}
        return out


def precompute_run(run: Run, threshold: int = DOWNSAMPLE_THRESHOLD) -> PreCalculatedRun:
    """Downsampled series and both statistics flavours for every present metric.

    With frame times present, FPS statistics are derived from them; the FPS
    series still shows the raw FPS samples when there are any.
    """
    series: dict[str, np.ndarray] = {}
    stats: dict[str, MetricStats] = {}
    stats_overlay: dict[str, MetricStats] = {}

    for key, name in METRIC_FIELDS.items():
        values = getattr(run, name)
        if len(values) == 0:
            continue
        series[key] = downsample_lttb(indexed_series(values), threshold)
        if key == "FPS" and len(run.frame_time) > 0:
            continue
        stats[key] = compute_metric_stats(values, "linear")
        stats_overlay[key] = compute_metric_stats(values, "overlay")

    if len(run.frame_time) > 0:
        stats["FPS"] = compute_fps_from_frametime(run.frame_time, "linear")
        stats_overlay["FPS"] = compute_fps_from_frametime(run.frame_time, "overlay")

    total = len(run.fps) or len(run.frame_time)
    return PreCalculatedRun(
        label=run.label,
        spec_os=run.spec_os,
        spec_cpu=run.spec_cpu,
        spec_gpu=run.spec_gpu,
        spec_ram=run.spec_ram,
        spec_kernel=run.spec_kernel,
        spec_scheduler=run.spec_scheduler,
        total_data_points=total,
        series=series,
        stats=stats,
        stats_overlay=stats_overlay,
    )


def precompute(runs: Iterable[Run], threshold: int = DOWNSAMPLE_THRESHOLD) -> list[PreCalculatedRun]:
    return [precompute_run(run, threshold) for run in runs]


def stats_table(precalculated: Sequence[PreCalculatedRun], method: str = "linear") -> pd.DataFrame:
    """Long-form statistics: one row per (run, metric).

    Columns: `run_index`, `label`, `metric`, then the `MetricStats` fields
    except `density`.
    """
    _check_method(method)
    rows: list[dict[str, Any]] = []
    for i, pre in enumerate(precalculated):
        for key in METRIC_FIELDS:
            s = pre.stats_for(method).get(key)
            if s is None:
                continue
            row = {"run_index": i, "label": pre.label, "metric": key}
            row.update(s.to_dict())
            del row["density"]
            rows.append(row)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows)

from __future__ import annotations

import math

import numpy as np
import pytest

from gamebench_data.modeling import (
    compute_fps_from_frametime,
    compute_metric_stats,
    downsample_lttb,
    indexed_series,
    percentile,
    precompute,
    precompute_run,
    stats_table,
)
from gamebench_data.records import Run


def test_quantile_methods_diverge() -> None:
    values = np.arange(1, 11, dtype=float)
    linear = compute_metric_stats(values, "linear")
    overlay = compute_metric_stats(values, "overlay")

    assert linear.p97 == pytest.approx(9.73)
    assert overlay.p97 == 10
    for s in (linear, overlay):
        assert s.min == 1
        assert s.max == 10
        assert s.avg == 5.5
        assert s.count == 10


@pytest.mark.parametrize("method", ["linear", "overlay"])
def test_percentile_extremes_are_min_and_max(method: str) -> None:
    rng = np.random.default_rng(0)
    for n in (1, 2, 7, 100):
        values = np.sort(rng.normal(100, 20, size=n))
        assert percentile(values, 0, method) == values[0]
        assert percentile(values, 100, method) == values[-1]


def test_percentile_rejects_unknown_method() -> None:
    with pytest.raises(ValueError, match="Unknown quantile method"):
        percentile(np.array([1.0]), 50, "nearest")
    assert percentile(np.array([]), 50) == 0.0


def test_metric_stats_spread_and_density() -> None:
    s = compute_metric_stats(np.array([1.0, 2.0, 2.4, 2.5, 3.0]))
    assert s.median == 2.4
    assert s.avg == 2.18
    assert s.variance == 0.56
    assert s.stddev == 0.75
    # p01 ~= 1.04 drops the 1.0 sample; 2.5 rounds away from zero.
    assert s.density == [[2, 2], [3, 1]]

    single = compute_metric_stats(np.array([42.0]))
    assert single.variance == 0
    assert single.stddev == 0
    assert single.density == [[42, 1]]

    assert compute_metric_stats(np.array([])) is None


def test_stats_round_half_away_from_zero() -> None:
    s = compute_metric_stats(np.array([-1.125, 1.125]))
    assert s.min == -1.13
    assert s.max == 1.13
    assert s.avg == 0.0
    assert math.copysign(1.0, s.avg) == 1.0
    assert compute_metric_stats(np.array([2.0 / 3.0])).min == 0.67


def test_fps_derived_from_frametime() -> None:
    s = compute_fps_from_frametime(np.array([10.0, 20.0, 10.0, 20.0, 10.0]))
    assert s.min == 50
    assert s.max == 100
    assert s.avg == pytest.approx(71.43)
    assert s.p97 >= s.p01
    assert s.count == 5
    assert compute_fps_from_frametime(np.array([])) is None


def test_fps_from_frametime_handles_zero_frames() -> None:
    s = compute_fps_from_frametime(np.array([0.0, 10.0, 20.0]), "overlay")
    assert s.max == 100
    assert s.min == 50
    assert s.count == 3

    all_zero = compute_fps_from_frametime(np.zeros(4))
    assert (all_zero.min, all_zero.max, all_zero.p01, all_zero.p97) == (0, 0, 0, 0)


@pytest.mark.parametrize("method", ["linear", "overlay"])
def test_fps_percentiles_ordered_with_many_zero_frames(method: str) -> None:
    s = compute_fps_from_frametime(np.array([0.0] * 10 + [10.0] * 90), method)
    assert s.p01 == 100
    assert s.p97 == 100
    assert s.p97 >= s.p01
    assert s.max >= s.min
    assert s.density == [[100, 90]]


@pytest.mark.parametrize("method", ["linear", "overlay"])
def test_fps_bounds_follow_frametime_extremes(method: str) -> None:
    rng = np.random.default_rng(1)
    ft = rng.uniform(5, 40, size=500)
    s = compute_fps_from_frametime(ft, method)
    assert s.min == pytest.approx(1000 / ft.max(), abs=0.005)
    assert s.max == pytest.approx(1000 / ft.min(), abs=0.005)
    assert s.p97 >= s.p01


def test_precompute_run_uses_frametime_for_fps_stats() -> None:
    run = Run(
        label="r",
        spec_os="Linux",
        fps=[55.0, 56.0, 57.0],
        frame_time=[10.0, 20.0, 10.0, 20.0, 10.0],
        gpu_load=np.arange(5000, dtype=float),
    )
    pre = precompute_run(run)
    assert pre.total_data_points == 3
    assert pre.stats["FPS"].max == 100
    assert pre.stats_overlay["FPS"].min == 50
    np.testing.assert_array_equal(pre.series["FPS"][:, 1], [55.0, 56.0, 57.0])
    assert len(pre.series["GPULoad"]) == 2000
    assert "CPULoad" not in pre.stats

    d = pre.to_dict()
    assert d["label"] == "r"
    assert d["specOS"] == "Linux"
    assert "specLinuxKernel" not in d
    assert d["totalDataPoints"] == 3
    assert d["series"]["FPS"] == [[0.0, 55.0], [1.0, 56.0], [2.0, 57.0]]
    assert set(d["stats"]["FrameTime"]) == {
        "min", "max", "avg", "median", "p01", "p97", "stddev", "variance", "count", "density"
    }
    assert set(d["statsMangoHud"]) == set(d["stats"])


def test_precompute_run_without_frametime() -> None:
    pre = precompute_run(Run(label="r", fps=[60.0, 30.0]))
    assert pre.total_data_points == 2
    assert pre.stats["FPS"].min == 30
    assert pre.stats["FPS"].max == 60
    assert list(pre.stats) == ["FPS"]


def test_stats_table() -> None:
    pre = precompute([Run(label="a", fps=[60.0, 61.0]), Run(label="b", cpu_load=[10.0])])
    df = stats_table(pre, "overlay")
    assert list(df["label"]) == ["a", "b"]
    assert list(df["metric"]) == ["FPS", "CPULoad"]
    assert "density" not in df.columns
    assert df.loc[0, "max"] == 61
    with pytest.raises(ValueError):
        stats_table(pre, "median-of-means")


def test_lttb_passthrough() -> None:
    points = indexed_series(np.array([3.0, 1.0, 2.0]))
    out = downsample_lttb(points, 10)
    np.testing.assert_array_equal(out, points)
    assert out is not points
    np.testing.assert_array_equal(downsample_lttb(points, 2), points)
    assert downsample_lttb(np.empty((0, 2)), 10).shape == (0, 2)


def test_lttb_keeps_endpoints_and_peaks() -> None:
    values = np.zeros(1000)
    values[500] = 100.0
    points = indexed_series(values)
    out = downsample_lttb(points, 50)

    assert len(out) <= 50
    np.testing.assert_array_equal(out[0], points[0])
    np.testing.assert_array_equal(out[-1], points[-1])
    assert 100.0 in out[:, 1]
    assert np.all(np.diff(out[:, 0]) > 0)


def test_lttb_idempotent_at_same_threshold() -> None:
    rng = np.random.default_rng(2)
    points = indexed_series(rng.normal(size=10_000))
    once = downsample_lttb(points, 300)
    twice = downsample_lttb(once, 300)
    assert len(twice) == len(once)
    np.testing.assert_array_equal(twice[0], once[0])
    np.testing.assert_array_equal(twice[-1], once[-1])


def test_lttb_rejects_bad_shape() -> None:
    with pytest.raises(ValueError):
        downsample_lttb(np.zeros((5, 3)), 2)

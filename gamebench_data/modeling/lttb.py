"""Largest-Triangle-Three-Buckets downsampling for chart series."""

from __future__ import annotations

import math

import numpy as np

from gamebench_data.config import DOWNSAMPLE_THRESHOLD


def indexed_series(values: np.ndarray) -> np.ndarray:
    """Pair each sample with its index: shape `(n, 2)` of `[i, values[i]]`."""
    values = np.asarray(values, dtype=np.float64)
    return np.column_stack((np.arange(len(values), dtype=np.float64), values))


def downsample_lttb(points: np.ndarray, threshold: int = DOWNSAMPLE_THRESHOLD) -> np.ndarray:
    """Reduce `points` to at most `threshold` points, preserving visual shape.

    The first and last points are always kept. The points in between are
    split into `threshold - 2` equal-width buckets and, per bucket, the point
    forming the largest triangle with the previously kept point and the mean
    of the next bucket is kept.

    Args:
        points: Array of shape `(n, 2)` with x in column 0 and y in column 1.
        threshold: Target number of points.

    Returns:
        A new `(k, 2)` array. When `n <= threshold` or `threshold <= 2` this
        is a copy of the input.
    """
    data = np.asarray(points, dtype=np.float64)
    n = len(data)
    if n == 0:
        return np.empty((0, 2), dtype=np.float64)
    if data.ndim != 2 or data.shape[1] != 2:
        raise ValueError(f"Expected points of shape (n, 2), got {data.shape}")
    if n <= threshold or threshold <= 2:
        return data.copy()

    bucket_size = (n - 2) / (threshold - 2)
    keep = [0]
    ax, ay = data[0]
    for i in range(threshold - 2):
        next_start = math.floor((i + 1) * bucket_size) + 1
        next_end = min(math.floor((i + 2) * bucket_size) + 1, n)
        if next_start >= next_end:
            continue
        avg_x, avg_y = data[next_start:next_end].mean(axis=0)

        start = math.floor(i * bucket_size) + 1
        end = min(math.floor((i + 1) * bucket_size) + 1, n)
        if start >= end:
            continue
        bucket = data[start:end]
        area = np.abs((ax - avg_x) * (bucket[:, 1] - ay) - (ax - bucket[:, 0]) * (avg_y - ay)) * 0.5
        j = start + int(np.argmax(area))
        keep.append(j)
        ax, ay = data[j]
    keep.append(n - 1)
    return data[keep]

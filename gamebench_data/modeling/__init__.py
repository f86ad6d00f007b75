"""Statistics and downsampling for benchmark charts."""

from gamebench_data.modeling.lttb import downsample_lttb, indexed_series
from gamebench_data.modeling.stats import (
    METRIC_FIELDS,
    QUANTILE_METHODS,
    MetricStats,
    PreCalculatedRun,
    compute_fps_from_frametime,
    compute_metric_stats,
    percentile,
    precompute,
    precompute_run,
    stats_table,
)

__all__ = [
    "METRIC_FIELDS",
    "QUANTILE_METHODS",
    "MetricStats",
    "PreCalculatedRun",
    "compute_fps_from_frametime",
    "compute_metric_stats",
    "downsample_lttb",
    "indexed_series",
    "percentile",
    "precompute",
    "precompute_run",
    "stats_table",
]

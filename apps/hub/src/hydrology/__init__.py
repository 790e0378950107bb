"""Pure rainfall and time-series calculations for Hidroweb telemetry."""

from .accumulation import Accumulation, AccumulationWindow, accumulate, group_24h_windows, parse_rain, rain_total
from .series_stats import extract_series, mean, median, mode, series_statistics, stddev, trend
from .timestamps import format_hidroweb, local_today, parse_local_timestamp

__all__ = [
    "Accumulation",
    "AccumulationWindow",
    "accumulate",
    "extract_series",
    "format_hidroweb",
    "group_24h_windows",
    "local_today",
    "mean",
    "median",
    "mode",
    "parse_local_timestamp",
    "parse_rain",
    "rain_total",
    "series_statistics",
    "stddev",
    "trend",
]

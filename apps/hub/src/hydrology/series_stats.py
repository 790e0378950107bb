"""Descriptive statistics for Hidroweb measurement series."""

from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from .accumulation import parse_rain

Predicate = Callable[[float], bool]


def to_number(value: Any) -> Optional[float]:
    # Level and flow readings use the same decimal conventions as rainfall.
    return parse_rain(value)


def extract_series(items: Iterable[Mapping[str, Any]], field: str) -> list[float]:
    """Return the parseable numeric values of ``field`` in record order."""

    return [v for v in (to_number(item.get(field)) for item in items) if v is not None]


def mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def median(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return round((ordered[mid - 1] + ordered[mid]) / 2, 2)


def stddev(values: Sequence[float]) -> Optional[float]:
    """Population standard deviation."""

    if not values:
        return None
    center = sum(values) / len(values)
    variance = sum((v - center) ** 2 for v in values) / len(values)
    return round(math.sqrt(variance), 2)


def maximum(values: Sequence[float]) -> Optional[float]:
    return max(values) if values else None


def minimum(values: Sequence[float]) -> Optional[float]:
    return min(values) if values else None


def mode(values: Sequence[float]) -> Optional[float]:
    """Most frequent value; ties go to the value that reached the top count first."""

    if not values:
        return None
    best: Optional[float] = None
    best_count = 0
    counts: dict[float, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
        if counts[value] > best_count:
            best, best_count = value, counts[value]
    return best


def percent_valid(items: Sequence[Mapping[str, Any]], field: str) -> Optional[float]:
    if not items:
        return None
    return round(len(extract_series(items, field)) / len(items) * 100, 2)


def trend(values: Sequence[float]) -> Optional[float]:
    """Least-squares slope of ``values`` against their index."""

    n = len(values)
    if n < 2:
        return None
    sum_x = (n - 1) * n / 2
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in enumerate(values))
    sum_x2 = (n - 1) * n * (2 * n - 1) / 6
    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return None
    return round((n * sum_xy - sum_x * sum_y) / denominator, 4)


def count_events(values: Iterable[float], predicate: Predicate) -> int:
    return sum(1 for v in values if predicate(v))


def longest_run(values: Iterable[float], predicate: Predicate) -> int:
    longest = current = 0
    for v in values:
        if predicate(v):
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def rain_events(values: Iterable[float]) -> int:
    return count_events(values, lambda v: v > 0)


def longest_wet_run(values: Iterable[float]) -> int:
    return longest_run(values, lambda v: v > 0)


def longest_dry_run(values: Iterable[float]) -> int:
    return longest_run(values, lambda v: v == 0)


def series_statistics(items: Sequence[Mapping[str, Any]], field: str) -> dict[str, Any]:
    values = extract_series(items, field)
    return {
        "media": mean(values),
        "mediana": median(values),
        "desvio_padrao": stddev(values),
        "maximo": maximum(values),
        "minimo": minimum(values),
        "moda": mode(values),
        "qtd_registros": len(values),
        "percentual_validos": percent_valid(items, field),
        "tendencia": trend(values),
    }


__all__ = [
    "count_events",
    "extract_series",
    "longest_dry_run",
    "longest_run",
    "longest_wet_run",
    "maximum",
    "mean",
    "median",
    "minimum",
    "mode",
    "percent_valid",
    "rain_events",
    "series_statistics",
    "stddev",
    "to_number",
    "trend",
]

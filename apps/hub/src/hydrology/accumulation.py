"""Rainfall accumulation over Hidroweb measurement records."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Final, Iterable, Literal, Mapping, Optional, Sequence

from .timestamps import format_hidroweb, parse_local_timestamp

DAY_SECONDS: Final[int] = 24 * 60 * 60
RAIN_FIELD: Final[str] = "Chuva_Adotada"
TIMESTAMP_FIELD: Final[str] = "Data_Hora_Medicao"
INVALID_DATE_FLAG: Final[str] = "DATA_INVALIDA"

WindowMode = Literal["RELATIVE", "CALENDAR"]


def parse_rain(value: Any) -> Optional[float]:
    """Parse a rainfall reading accepting either ``,`` or ``.`` as decimal mark."""

    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().replace(",", ".", 1)
    if "_" in text:
        return None
    try:
        numeric = float(text)
    except ValueError:
        return None
    if not math.isfinite(numeric):
        return None
    return numeric


def rain_total(records: Iterable[Mapping[str, Any]]) -> Optional[float]:
    """Sum every parseable rainfall value, rounded to two decimals."""

    values = [v for v in (parse_rain(r.get(RAIN_FIELD)) for r in records) if v is not None]
    if not values:
        return None
    return round(sum(values), 2)


def has_valid_rain(records: Iterable[Mapping[str, Any]]) -> bool:
    return any(parse_rain(r.get(RAIN_FIELD)) is not None for r in records)


@dataclass(slots=True)
class AccumulationWindow:
    reference: str
    total: Optional[float]
    count: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "data_hora_referencia": self.reference,
            "acumulado_chuva": self.total,
            "qtd_registros": self.count,
        }


@dataclass(slots=True)
class Accumulation:
    total: Optional[float]
    windows: Optional[list[AccumulationWindow]]

    def windows_payload(self) -> Optional[list[dict[str, Any]]]:
        if self.windows is None:
            return None
        return [window.to_payload() for window in self.windows]


def _timestamped(
    records: Sequence[Mapping[str, Any]], tz_offset_minutes: int
) -> list[tuple[float, Mapping[str, Any]]]:
    stamped: list[tuple[float, Mapping[str, Any]]] = []
    for record in records:
        if record.get("_observacao") == INVALID_DATE_FLAG:
            continue
        moment = parse_local_timestamp(record.get(TIMESTAMP_FIELD), tz_offset_minutes)
        if moment is None:
            continue
        stamped.append((moment.timestamp(), record))
    return stamped


def group_24h_windows(
    records: Sequence[Mapping[str, Any]],
    *,
    tz_offset_minutes: int = -180,
    mode: WindowMode = "RELATIVE",
) -> Optional[list[AccumulationWindow]]:
    """Bucket records into 24 hour windows.

    ``RELATIVE`` windows roll backwards from the most recent record and are
    returned newest first (bucket 0 ends at the latest timestamp).
    ``CALENDAR`` windows follow local midnights and are also returned newest
    first; each one is stamped with the following local midnight.

    Returns ``None`` when no window carries a rainfall value.
    """

    stamped = _timestamped(records, tz_offset_minutes)
    if not stamped:
        return None

    groups: dict[int, list[Mapping[str, Any]]] = {}
    if mode == "CALENDAR":
        shift = tz_offset_minutes * 60
        for ts, record in stamped:
            groups.setdefault(math.floor((ts + shift) / DAY_SECONDS), []).append(record)
        buckets = sorted(groups, reverse=True)

        def end_for(k: int) -> float:
            return (k + 1) * DAY_SECONDS - shift

    else:
        latest = max(ts for ts, _ in stamped)
        for ts, record in sorted(stamped, key=lambda item: item[0], reverse=True):
            groups.setdefault(math.floor((latest - ts) / DAY_SECONDS), []).append(record)
        buckets = sorted(groups)

        def end_for(k: int) -> float:
            return latest - k * DAY_SECONDS

    windows = [
        AccumulationWindow(
            reference=format_hidroweb(
                datetime.fromtimestamp(end_for(k), tz=timezone.utc), tz_offset_minutes
            ),
            total=rain_total(groups[k]),
            count=len(groups[k]),
        )
        for k in buckets
    ]
    if all(window.total is None for window in windows):
        return None
    return windows


def accumulate(
    records: Sequence[Mapping[str, Any]],
    *,
    tz_offset_minutes: int = -180,
    mode: WindowMode = "RELATIVE",
) -> Accumulation:
    return Accumulation(
        total=rain_total(records),
        windows=group_24h_windows(records, tz_offset_minutes=tz_offset_minutes, mode=mode),
    )


__all__ = [
    "Accumulation",
    "AccumulationWindow",
    "DAY_SECONDS",
    "accumulate",
    "group_24h_windows",
    "has_valid_rain",
    "parse_rain",
    "rain_total",
]

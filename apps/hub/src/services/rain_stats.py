from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from config import settings
from hydrology.accumulation import parse_rain
from hydrology.timestamps import local_today
from services.stations import StationDirectory, station_directory

logger = logging.getLogger("hidromonitor.hub.rain_stats")

STATS_DATE_FILTER = "DATA_LEITURA"
STATS_INTERVAL = "DIAS_14"
UNKNOWN_MUNICIPALITY = "DESCONHECIDO"
COVERAGE_FIELDS = (("chuva", "Chuva_Adotada"), ("cota", "Cota_Adotada"), ("vazao", "Vazao_Adotada"))


@dataclass(slots=True)
class StationDailyTotals:
    municipality: str
    per_day: dict[str, float] = field(default_factory=dict)


def _history_items(station: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    history = station.get("historico")
    if not isinstance(history, Mapping):
        return []
    return [item for item in history.get("items") or [] if isinstance(item, Mapping)]


def _day_of(item: Mapping[str, Any]) -> str:
    return str(item.get("Data_Hora_Medicao") or "")[:10]


def _municipality_name(station: Mapping[str, Any]) -> str:
    return str(station.get("Municipio_Nome") or "").strip()


def aggregate_station_totals(
    stations: Sequence[Mapping[str, Any]],
) -> tuple[dict[Any, StationDailyTotals], set[str]]:
    """Sum each station's rain per day, keyed on the timestamp's leading date."""

    totals: dict[Any, StationDailyTotals] = {}
    all_days: set[str] = set()
    for station in stations:
        per_day: dict[str, float] = {}
        for item in _history_items(station):
            value = parse_rain(item.get("Chuva_Adotada"))
            if value is None:
                continue
            day = _day_of(item)
            if not day:
                continue
            all_days.add(day)
            per_day[day] = per_day.get(day, 0.0) + value
        totals[station.get("codigo_Estacao")] = StationDailyTotals(
            municipality=station.get("Municipio_Nome") or UNKNOWN_MUNICIPALITY,
            per_day=per_day,
        )
    return totals, all_days


def pick_days(all_days: set[str], include_today: bool, days: Optional[int], today: str) -> list[str]:
    picked = sorted(all_days)
    if not include_today:
        picked = [day for day in picked if day < today]
    if days:
        picked = picked[-days:]
    return picked


def municipal_buckets(totals: Mapping[Any, StationDailyTotals], day: str) -> dict[str, list[float]]:
    buckets: dict[str, list[float]] = {}
    for info in totals.values():
        total = info.per_day.get(day)
        if total is None:
            continue
        buckets.setdefault(info.municipality, []).append(total)
    return buckets


def municipal_means(buckets: Mapping[str, Sequence[float]]) -> tuple[list[float], dict[str, dict[str, Any]]]:
    means: list[float] = []
    breakdown: dict[str, dict[str, Any]] = {}
    for municipality, values in buckets.items():
        accumulated = sum(values)
        municipal_mean = accumulated / len(values)
        means.append(municipal_mean)
        breakdown[municipality] = {
            "media_municipio": municipal_mean,
            "acumulado_chuva_municipio": accumulated,
            "estacoes_validas": len(values),
        }
    return means, breakdown


def state_mean(means: Sequence[float]) -> tuple[Optional[float], float, int]:
    """Unweighted mean of municipal means: ``(mean, sum, count)``."""

    accumulated = sum(means)
    count = len(means)
    return (accumulated / count if count else None), accumulated, count


def count_monitored_municipalities(stations: Sequence[Mapping[str, Any]]) -> int:
    return len({name for name in (_municipality_name(s) for s in stations) if name})


def summarize_municipal_rain_status(stations: Sequence[Mapping[str, Any]], day: str) -> dict[str, int]:
    state: dict[str, dict[str, Any]] = {}
    for station in stations:
        name = _municipality_name(station)
        if not name:
            continue
        entry = state.setdefault(name, {"rain_sum": 0.0, "has_rain": False, "has_any": False})
        for item in _history_items(station):
            if _day_of(item) != day:
                continue
            parsed = {key: parse_rain(item.get(field_name)) for key, field_name in COVERAGE_FIELDS}
            if any(value is not None for value in parsed.values()):
                entry["has_any"] = True
            if parsed["chuva"] is not None:
                entry["has_rain"] = True
                entry["rain_sum"] += parsed["chuva"]

    with_rain = without_rain = without_data = 0
    for entry in state.values():
        if not entry["has_any"]:
            without_data += 1
        elif entry["has_rain"] and entry["rain_sum"] > 0:
            with_rain += 1
        else:
            without_rain += 1
    return {
        "total_municipios_com_registro_de_chuva": with_rain,
        "total_municipios_sem_registro_de_chuva": without_rain,
        "total_municipios_sem_dados_validos": without_data,
    }


def summarize_station_coverage(stations: Sequence[Mapping[str, Any]], day: str) -> dict[str, int]:
    """Stations with at least one numeric value on ``day``, per variable (zero counts)."""

    counts = {key: 0 for key, _ in COVERAGE_FIELDS}
    for station in stations:
        items = [item for item in _history_items(station) if _day_of(item) == day]
        for key, field_name in COVERAGE_FIELDS:
            if any(parse_rain(item.get(field_name)) is not None for item in items):
                counts[key] += 1
    return {f"estacoes_com_dados_{key}": value for key, value in counts.items()}


def _percentage(count: int, total: int) -> float:
    return round(count / (total or 1) * 100, 2)


class RainStatsService:
    """State-level daily rainfall means built on top of the station directory."""

    def __init__(
        self,
        directory: Optional[StationDirectory] = None,
        *,
        today: Optional[Callable[[], str]] = None,
    ) -> None:
        self._directory = directory or station_directory
        self._today = today or (lambda: local_today(settings.ana_tz_offset_minutes))

    async def _fetch_stations(self, uf: str, date: str) -> list[dict[str, Any]]:
        logger.debug("Fetching stations with history for UF %s on %s", uf, date)
        data = await self._directory.get_stations_data(
            filters={"uf": uf},
            include_history=True,
            date_filter_type=STATS_DATE_FILTER,
            date=date,
            interval=STATS_INTERVAL,
        )
        return data["estacoes"]

    async def state_daily_municipal_means(
        self,
        uf: str,
        days: Optional[int],
        include_today: bool = True,
    ) -> dict[str, Any]:
        today = self._today()
        try:
            stations = await self._fetch_stations(uf, today)
        except Exception:
            logger.exception("Failed to fetch stations for daily means (UF %s)", uf)
            raise

        totals, all_days = aggregate_station_totals(stations)
        picked = pick_days(all_days, include_today, days, today)
        only_today = settings.ana_stats_municipios_only_today

        checked = len(stations)
        coverage = summarize_station_coverage(stations, today)
        summary: dict[str, Any] = {
            "total_estacoes_verificadas": checked,
            "total_municipios_monitorados": count_monitored_municipalities(stations),
            **summarize_municipal_rain_status(stations, today),
            **coverage,
        }
        for key, _ in COVERAGE_FIELDS:
            summary[f"porcentagem_estacoes_com_dados_{key}"] = _percentage(coverage[f"estacoes_com_dados_{key}"], checked)

        series: list[dict[str, Any]] = []
        for day in picked:
            means, breakdown = municipal_means(municipal_buckets(totals, day))
            average, accumulated, count = state_mean(means)
            point: dict[str, Any] = {
                "dia": day,
                "media": average,
                "municipios_validos": count,
                f"acumulado_uf_{uf}": accumulated,
            }
            if not only_today or day == today:
                point["municipios"] = breakdown
            series.append(point)

        logger.info("Daily municipal means for %s: %d days from %d stations", uf, len(series), checked)
        return {"dashboard_resumo": summary, "series": series}


rain_stats_service = RainStatsService()

__all__ = [
    "RainStatsService",
    "StationDailyTotals",
    "aggregate_station_totals",
    "count_monitored_municipalities",
    "municipal_buckets",
    "municipal_means",
    "pick_days",
    "rain_stats_service",
    "state_mean",
    "summarize_municipal_rain_status",
    "summarize_station_coverage",
]

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

import httpx

from config import settings
from hidroweb import HidrowebError, HistoryValidationError
from hydrology.accumulation import accumulate, has_valid_rain
from hydrology.series_stats import (
    extract_series,
    longest_dry_run,
    longest_wet_run,
    rain_events,
    series_statistics,
)
from hydrology.timestamps import INVALID_DATE_SENTINEL, local_today, parse_local_timestamp
from services.hidroweb_auth import TokenCache, token_cache

logger = logging.getLogger("hidromonitor.hub.hidroweb.history")

VALID_INTERVALS: tuple[str, ...] = (
    "MINUTO_15",
    "MINUTO_30",
    *(f"HORA_{hour}" for hour in range(1, 25)),
    "DIAS_2",
    "DIAS_7",
    "DIAS_14",
    "DIAS_21",
    "DIAS_30",
)
DEFAULT_INTERVAL = "HORA_24"
DATE_FILTER_TYPES: tuple[str, ...] = ("DATA_LEITURA", "DATA_ULTIMA_ATUALIZACAO")
FIELD_ORDER: tuple[str, ...] = (
    "Data_Hora_Medicao",
    "Data_Atualizacao",
    "Chuva_Adotada",
    "Cota_Adotada",
    "Vazao_Adotada",
)
STATUS_UPDATED = "Atualizada"
STATUS_OUTDATED = "Desatualizada"
STATUS_ERROR = "ERRO"
INVALID_DATE_FLAG = "DATA_INVALIDA"
FRESHNESS_WINDOW = timedelta(minutes=60)

_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def validate_history_params(
    station_code: Any,
    date_filter_type: Any,
    date: Any,
    interval: Any,
) -> None:
    if not station_code:
        raise HistoryValidationError("Código da estação é obrigatório")
    if date_filter_type not in DATE_FILTER_TYPES:
        raise HistoryValidationError(
            "Tipo de filtro de data inválido. Use: " + " ou ".join(DATE_FILTER_TYPES)
        )
    if not isinstance(date, str) or not _DATE_PATTERN.fullmatch(date):
        raise HistoryValidationError("Formato de data inválido. Use YYYY-MM-DD")
    if interval not in VALID_INTERVALS:
        raise HistoryValidationError(f"Intervalo inválido. Use um dos: {', '.join(VALID_INTERVALS)}")


def normalize_response(raw: Any) -> list[Any]:
    if isinstance(raw, dict) and isinstance(raw.get("items"), list):
        return list(raw["items"])
    if isinstance(raw, list):
        return list(raw)
    return [raw]


def filter_and_order_fields(record: Mapping[str, Any]) -> dict[str, Any]:
    return {key: record[key] for key in FIELD_ORDER if key in record}


def sort_by_measurement_date(
    items: Iterable[Mapping[str, Any]],
    *,
    tz_offset_minutes: Optional[int] = None,
) -> list[dict[str, Any]]:
    """Order records by measurement time, unparseable timestamps first.

    Records whose timestamp cannot be parsed are kept, flagged with
    ``_observacao`` and moved to a sentinel date so consumers still see them.
    """

    offset = settings.ana_tz_offset_minutes if tz_offset_minutes is None else tz_offset_minutes
    valid: list[tuple[datetime, dict[str, Any]]] = []
    invalid: list[dict[str, Any]] = []
    for item in items:
        moment = parse_local_timestamp(item.get("Data_Hora_Medicao"), offset)
        if moment is None:
            flagged = dict(item)
            flagged["_observacao"] = INVALID_DATE_FLAG
            flagged["_data_original"] = item.get("Data_Hora_Medicao")
            flagged["Data_Hora_Medicao"] = INVALID_DATE_SENTINEL
            invalid.append(flagged)
        else:
            valid.append((moment, dict(item)))
    valid.sort(key=lambda pair: pair[0])
    return invalid + [item for _, item in valid]


def station_status(
    items: Sequence[Mapping[str, Any]],
    date: str,
    *,
    now: Optional[datetime] = None,
    tz_offset_minutes: Optional[int] = None,
) -> str:
    if not items:
        return STATUS_OUTDATED
    offset = settings.ana_tz_offset_minutes if tz_offset_minutes is None else tz_offset_minutes
    current = now or datetime.now(timezone.utc)
    if date == local_today(offset, current):
        for item in items:
            moment = parse_local_timestamp(item.get("Data_Hora_Medicao"), offset)
            if moment is None:
                continue
            age = current - moment
            if timedelta(0) <= age <= FRESHNESS_WINDOW:
                return STATUS_UPDATED
        return STATUS_OUTDATED
    if any(str(item.get("Data_Hora_Medicao") or "").startswith(date) for item in items):
        return STATUS_UPDATED
    return STATUS_OUTDATED


def series_summary(items: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Descriptive statistics for rain, level and flow."""

    summary: dict[str, Any] = {}
    for suffix, field_name in (("chuva", "Chuva_Adotada"), ("cota", "Cota_Adotada"), ("vazao", "Vazao_Adotada")):
        stats = series_statistics(items, field_name)
        summary[f"media_{suffix}"] = stats["media"]
        summary[f"mediana_{suffix}"] = stats["mediana"]
        summary[f"desvio_padrao_{suffix}"] = stats["desvio_padrao"]
        summary[f"max_{suffix}"] = stats["maximo"]
        summary[f"min_{suffix}"] = stats["minimo"]
        summary[f"moda_{suffix}"] = stats["moda"]
        summary[f"qtd_registros_{suffix}"] = stats["qtd_registros"]
        summary[f"percentual_registros_validos_{suffix}"] = stats["percentual_validos"]
        summary[f"tendencia_{suffix}"] = stats["tendencia"]
    rain = extract_series(items, "Chuva_Adotada")
    summary["qtd_eventos_chuva"] = rain_events(rain)
    summary["seq_max_chuva"] = longest_wet_run(rain)
    summary["seq_max_sem_chuva"] = longest_dry_run(rain)
    return summary


class ErrorLogRegistry:
    """Remembers which error categories were already logged.

    Bounded: once ``max_size`` categories are known the oldest one is
    forgotten and may be logged again.
    """

    def __init__(self, max_size: int) -> None:
        self._max_size = max(1, max_size)
        self._seen: OrderedDict[str, None] = OrderedDict()

    def first_time(self, key: str) -> bool:
        if key in self._seen:
            return False
        self._seen[key] = None
        while len(self._seen) > self._max_size:
            self._seen.popitem(last=False)
        return True

    def clear(self) -> None:
        self._seen.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)


@dataclass(slots=True)
class HistoryResult:
    """Outcome of one station history fetch; either ok or an error."""

    station_code: Any
    status: str
    items: list[dict[str, Any]] = field(default_factory=list)
    message: Any = None
    total: Optional[float] = None
    windows: Optional[list[dict[str, Any]]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, station_code: Any, reason: str) -> "HistoryResult":
        return cls(station_code=station_code, status=STATUS_ERROR, error=reason)

    def to_payload(self) -> dict[str, Any]:
        if not self.ok:
            return {
                "status_estacao": STATUS_ERROR,
                "motivo_erro": self.error,
                "codigo_estacao": self.station_code,
                "items": [],
            }
        return {
            "message": self.message,
            "status_estacao": self.status,
            "acumulado_intervalo_completo": self.total,
            "acumulado_intervalos_24h": self.windows,
            "items": self.items,
        }


def _error_log_key(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"response:{exc.response.status_code}"
    if isinstance(exc, httpx.RequestError):
        return "no_response"
    if isinstance(exc, HidrowebError):
        return f"auth:{exc.code}"
    return f"config:{exc}"


class HistoryService:
    """Fetches and normalizes one station's telemetry series."""

    def __init__(self, tokens: Optional[TokenCache] = None) -> None:
        self._tokens = tokens or token_cache
        self._client: Optional[httpx.AsyncClient] = None
        self.error_log = ErrorLogRegistry(settings.ana_error_log_registry_size)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"User-Agent": settings.user_agent, "Accept": "application/json"}
            self._client = httpx.AsyncClient(headers=headers, timeout=settings.hidroweb_history_timeout)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_history(
        self,
        station_code: Any,
        date_filter_type: Any,
        date: Any,
        interval: Any,
    ) -> HistoryResult:
        try:
            validate_history_params(station_code, date_filter_type, date, interval)
            token = await self._tokens.authenticate()
            client = await self._get_client()
            params = {
                "Código da Estação": str(station_code),
                "Tipo Filtro Data": date_filter_type,
                "Data de Busca (yyyy-MM-dd)": date,
                "Range Intervalo de busca": interval,
            }
            response = await client.get(
                settings.hidroweb_history_url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            raw = response.json()
            return self._build_result(station_code, raw, date)
        except Exception as exc:  # noqa: BLE001 - one bad station must not abort a batch
            self._log_failure(station_code, exc)
            return HistoryResult.failure(station_code, str(exc) or type(exc).__name__)

    def _build_result(self, station_code: Any, raw: Any, date: str) -> HistoryResult:
        offset = settings.ana_tz_offset_minutes
        records = [filter_and_order_fields(r) for r in normalize_response(raw) if isinstance(r, Mapping)]
        items = sort_by_measurement_date(records, tz_offset_minutes=offset)
        total: Optional[float] = None
        windows: Optional[list[dict[str, Any]]] = None
        if has_valid_rain(items):
            accumulation = accumulate(items, tz_offset_minutes=offset, mode="RELATIVE")
            total = accumulation.total
            windows = accumulation.windows_payload()
        return HistoryResult(
            station_code=station_code,
            status=station_status(items, date, tz_offset_minutes=offset),
            items=items,
            message=raw.get("message") if isinstance(raw, dict) else None,
            total=total,
            windows=windows,
        )

    def _log_failure(self, station_code: Any, exc: Exception) -> None:
        key = _error_log_key(exc)
        if not self.error_log.first_time(key):
            logger.debug("Hidroweb history failed for station %s (%s)", station_code, key)
            return
        if isinstance(exc, httpx.HTTPStatusError):
            logger.error("Hidroweb history request failed with HTTP %s", exc.response.status_code, exc_info=exc)
        elif isinstance(exc, httpx.RequestError):
            logger.error("No response received from Hidroweb history endpoint", exc_info=exc)
        else:
            logger.error("Hidroweb history request could not be prepared: %s", exc, exc_info=exc)


history_service = HistoryService()

__all__ = [
    "DATE_FILTER_TYPES",
    "DEFAULT_INTERVAL",
    "ErrorLogRegistry",
    "FIELD_ORDER",
    "HistoryResult",
    "HistoryService",
    "VALID_INTERVALS",
    "filter_and_order_fields",
    "history_service",
    "normalize_response",
    "series_summary",
    "sort_by_measurement_date",
    "station_status",
    "validate_history_params",
]

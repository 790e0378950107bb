from __future__ import annotations

import asyncio
import json
import logging
import re
import unicodedata
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from config import settings
from hidroweb import StationQueryError
from hydrology.accumulation import parse_rain
from services.inflight import InFlightRegistry
from services.station_history import HistoryResult, HistoryService, history_service
from services.station_lists import StationLists, station_lists

logger = logging.getLogger("hidromonitor.hub.stations")

FIELD_MAPPING: dict[str, str] = {
    "codigoestacao": "codigo_Estacao",
    "Estacao_Nome": "Estacao_Nome",
    "Tipo_Estacao": "Tipo_Estacao",
    "Operando": "Operando",
    "Latitude": "Latitude",
    "Longitude": "Longitude",
    "Altitude": "Altitude",
    "Area_Drenagem": "Area_Drenagem",
    "Municipio_Nome": "Municipio_Nome",
    "UF_Estacao": "UF_Estacao",
    "Bacia_Nome": "Bacia_Nome",
    "Rio_Nome": "Rio_Nome",
}
FILTER_FIELDS: dict[str, str] = {
    "tipo": "Tipo_Estacao",
    "municipio": "Municipio_Nome",
    "uf": "UF_Estacao",
    "bacia": "Bacia_Nome",
    "rio": "Rio_Nome",
}
MEASURED_FIELDS = ("Chuva_Adotada", "Cota_Adotada", "Vazao_Adotada")

_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: Any) -> str:
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE.sub("", stripped).lower()


def matches(value: Any, expected: Any) -> bool:
    """Accent, case and whitespace insensitive equality."""

    if value is None or expected is None:
        return False
    return normalize_text(value) == normalize_text(expected)


def pick_fields(item: Mapping[str, Any]) -> dict[str, Any]:
    return {dest: item.get(src) for src, dest in FIELD_MAPPING.items()}


def apply_filters(filters: Mapping[str, Any], stations: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    result = list(stations)
    for param, field_name in FILTER_FIELDS.items():
        wanted = filters.get(param)
        if wanted:
            result = [station for station in result if matches(station.get(field_name), wanted)]
    return result


def _is_numeric(value: Any) -> bool:
    return parse_rain(value) is not None


def count_operating_with_data(stations: Sequence[Mapping[str, Any]]) -> int:
    """Operating stations with at least one numeric rain, level or flow value."""

    total = 0
    for station in stations:
        if str(station.get("Operando")) != "1":
            continue
        history = station.get("historico")
        items = (history.get("items") or []) if isinstance(history, Mapping) else []
        if any(_is_numeric(item.get(name)) for item in items for name in MEASURED_FIELDS):
            total += 1
    return total


class StationInventory:
    """Static station inventory read once from a bundled JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: Optional[list[dict[str, Any]]] = None

    def _read(self) -> list[dict[str, Any]]:
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            raw = raw.get("items", [])
        return [item for item in raw if isinstance(item, dict)] if isinstance(raw, list) else []

    async def load(self) -> list[dict[str, Any]]:
        if self._data is not None:
            return self._data
        try:
            data = await asyncio.to_thread(self._read)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.error("Failed to load station inventory %s: %s", self._path, exc)
            return []
        self._data = data
        logger.info("Loaded %d stations from %s", len(data), self._path)
        return data

    def invalidate(self) -> None:
        self._data = None


@dataclass(slots=True)
class HistoryCounters:
    consultadas: int = 0
    com_itens: int = 0
    com_registro_no_dia: int = 0
    com_erro: int = 0

    def record(self, result: HistoryResult, date: str) -> None:
        if not result.ok:
            self.com_erro += 1
            return
        self.consultadas += 1
        if result.items:
            self.com_itens += 1
        if any(str(item.get("Data_Hora_Medicao") or "")[:10] == date for item in result.items):
            self.com_registro_no_dia += 1


def _wants_history(flag: Any) -> bool:
    if isinstance(flag, bool):
        return flag
    return str(flag).strip().lower() == "true"


class StationDirectory:
    """Filters the inventory and fans out history fetches in bounded batches."""

    def __init__(
        self,
        *,
        inventory: Optional[StationInventory] = None,
        lists: Optional[StationLists] = None,
        history: Optional[HistoryService] = None,
        batch_size: Optional[int] = None,
        max_concurrent_batches: Optional[int] = None,
    ) -> None:
        self.inventory = inventory or StationInventory(settings.ana_inventory_path)
        self.lists = lists or station_lists
        self.history = history or history_service
        self.batch_size = batch_size or settings.ana_history_batch_size
        self.max_concurrent_batches = max_concurrent_batches or settings.ana_history_max_concurrent_batches
        self.in_flight: InFlightRegistry[dict[str, Any]] = InFlightRegistry()
        self.last_counters: Optional[HistoryCounters] = None

    async def get_stations_data(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        include_history: Any = False,
        date_filter_type: Optional[str] = None,
        date: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> dict[str, Any]:
        filters = dict(filters or {})
        wants_history = _wants_history(include_history)
        key = json.dumps(
            {
                "filters": filters,
                "incluirHistorico": wants_history,
                "tipoFiltroData": date_filter_type,
                "dataBusca": date,
                "intervalo": interval,
            },
            sort_keys=True,
            default=str,
        )
        return await self.in_flight.run(
            key,
            lambda: self._compute(filters, wants_history, date_filter_type, date, interval),
        )

    async def _compute(
        self,
        filters: Mapping[str, Any],
        wants_history: bool,
        date_filter_type: Optional[str],
        date: Optional[str],
        interval: Optional[str],
    ) -> dict[str, Any]:
        inventory = await self.inventory.load()
        operating = [item for item in inventory if matches(item.get("Operando"), "1")]
        black, white = await self.lists.load()

        filtered = apply_filters(filters, operating)
        stations = [
            pick_fields(item) for item in filtered if str(item.get("codigoestacao")) not in black
        ]
        whitelisted = [station for station in stations if str(station["codigo_Estacao"]) in white]

        counters = HistoryCounters()
        if wants_history:
            if not date_filter_type or not date or not interval:
                raise StationQueryError("Histórico: informe tipoFiltroData, dataBusca e intervalo")
            stations = await self._attach_histories(whitelisted, date_filter_type, date, interval, counters)
            self.last_counters = counters

        logger.info(
            "stations data: inventario=%d operantes=%d whitelist=%d filtradas=%d intersecao_whitelist=%d "
            "historico=%s data_busca=%s",
            len(inventory),
            len(operating),
            len(white),
            len(filtered),
            len(whitelisted),
            asdict(counters),
            date,
        )
        return {"estacoes": stations}

    async def _attach_histories(
        self,
        stations: list[dict[str, Any]],
        date_filter_type: str,
        date: str,
        interval: str,
        counters: HistoryCounters,
    ) -> list[dict[str, Any]]:
        batches = [stations[i : i + self.batch_size] for i in range(0, len(stations), self.batch_size)]
        semaphore = asyncio.Semaphore(self.max_concurrent_batches)

        async def fetch_one(station: dict[str, Any]) -> HistoryResult:
            code = station["codigo_Estacao"]
            try:
                return await self.history.get_history(code, date_filter_type, date, interval)
            except Exception as exc:  # noqa: BLE001 - never let one station fail the batch
                logger.error("History fetch failed for station %s: %s", code, exc)
                return HistoryResult.failure(code, str(exc))

        async def run_batch(batch: list[dict[str, Any]]) -> list[dict[str, Any]]:
            async with semaphore:
                logger.debug("Fetching history for batch of %d stations", len(batch))
                results = await asyncio.gather(*(fetch_one(station) for station in batch))
            for station, result in zip(batch, results):
                counters.record(result, date)
                station["historico"] = result.to_payload()
            return batch

        completed = await asyncio.gather(*(run_batch(batch) for batch in batches))
        return [station for batch in completed for station in batch]


station_directory = StationDirectory()

__all__ = [
    "FIELD_MAPPING",
    "FILTER_FIELDS",
    "HistoryCounters",
    "StationDirectory",
    "StationInventory",
    "apply_filters",
    "count_operating_with_data",
    "matches",
    "normalize_text",
    "pick_fields",
    "station_directory",
]

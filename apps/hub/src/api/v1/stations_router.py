from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from hidroweb import HistoryValidationError, StationQueryError
from services.station_history import DEFAULT_INTERVAL, history_service, series_summary, validate_history_params
from services.station_lists import station_lists
from services.stations import station_directory

logger = logging.getLogger("hidromonitor.hub.api.stations")

router = APIRouter(prefix="/estacoes", tags=["estacoes"])

VALID_QUERY_KEYS: tuple[str, ...] = (
    "codigo",
    "tipo",
    "municipio",
    "uf",
    "bacia",
    "rio",
    "incluirHistorico",
    "tipoFiltroData",
    "dataBusca",
    "intervalo",
)


class StationListsModel(BaseModel):
    whitelist: list[str] = Field(default_factory=list, description="Station codes included in history fan-out")
    blacklist: list[str] = Field(default_factory=list, description="Station codes excluded from every listing")


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"erro": message, **extra})


@router.get("/lista")
async def list_stations(
    request: Request,
    codigo: Optional[str] = Query(None),
    tipo: Optional[str] = Query(None),
    municipio: Optional[str] = Query(None),
    uf: Optional[str] = Query(None),
    bacia: Optional[str] = Query(None),
    rio: Optional[str] = Query(None),
    incluir_historico: Optional[str] = Query(None, alias="incluirHistorico"),
    tipo_filtro_data: Optional[str] = Query(None, alias="tipoFiltroData"),
    data_busca: Optional[str] = Query(None, alias="dataBusca"),
    intervalo: Optional[str] = Query(None),
):
    if any(key not in VALID_QUERY_KEYS for key in request.query_params.keys()):
        return _error(400, "Parâmetro inválido", parametros_validos=list(VALID_QUERY_KEYS))

    supplied = {"codigo": codigo, "tipo": tipo, "municipio": municipio, "uf": uf, "bacia": bacia, "rio": rio}
    filters = {key: value for key, value in supplied.items() if value is not None}
    try:
        data = await station_directory.get_stations_data(
            filters=filters,
            include_history=incluir_historico or False,
            date_filter_type=tipo_filtro_data,
            date=data_busca,
            interval=intervalo,
        )
    except StationQueryError as exc:
        return _error(400, str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to list stations")
        return _error(502, "Falha ao listar estações", detalhes=str(exc) or "Falha ao listar estações")

    stations = data["estacoes"]
    if codigo:
        for station in stations:
            if str(station.get("codigo_Estacao")) == str(codigo):
                return station
        return _error(404, "Estação não encontrada ou não está em operação")
    if filters and not stations:
        return _error(404, "Nenhuma estação encontrada para os filtros aplicados")
    return stations


@router.get("/listas", response_model=StationListsModel)
async def get_station_lists() -> StationListsModel:
    black, white = await station_lists.load()
    return StationListsModel(whitelist=sorted(white), blacklist=sorted(black))


@router.put("/listas", response_model=StationListsModel)
async def replace_station_lists(payload: StationListsModel) -> StationListsModel:
    black, white = await station_lists.save(payload.blacklist, payload.whitelist)
    return StationListsModel(whitelist=sorted(white), blacklist=sorted(black))


@router.get("/{codigo}/historico")
async def station_history(
    codigo: str,
    tipo_filtro_data: str = Query("DATA_LEITURA", alias="tipoFiltroData"),
    data_busca: str = Query(..., alias="dataBusca", description="Data de busca (YYYY-MM-DD)"),
    intervalo: str = Query(DEFAULT_INTERVAL),
):
    try:
        validate_history_params(codigo, tipo_filtro_data, data_busca, intervalo)
    except HistoryValidationError as exc:
        return _error(400, str(exc))

    result = await history_service.get_history(codigo, tipo_filtro_data, data_busca, intervalo)
    if not result.ok:
        return _error(502, "Falha ao consultar histórico", detalhes=result.error, codigo_estacao=codigo)

    payload = result.to_payload()
    payload["codigo_estacao"] = codigo
    payload["estatisticas"] = series_summary(result.items)
    return payload


__all__ = ["router", "VALID_QUERY_KEYS"]

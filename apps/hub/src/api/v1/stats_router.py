from __future__ import annotations

import logging

from fastapi import APIRouter, Path
from fastapi.responses import JSONResponse

from services.rain_stats import rain_stats_service

logger = logging.getLogger("hidromonitor.hub.api.stats")

router = APIRouter(prefix="/estatisticas", tags=["estatisticas"])


@router.get("/medias-diarias/{uf}/{dias}")
async def state_daily_averages(
    uf: str = Path(..., min_length=2, max_length=2, description="Sigla da UF"),
    dias: int = Path(..., ge=1, le=30, description="Quantidade de dias na série"),
):
    try:
        return await rain_stats_service.state_daily_municipal_means(uf.upper(), dias, include_today=True)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to compute daily means for %s", uf)
        return JSONResponse(status_code=502, content={"erro": "Falha ao calcular médias", "detalhes": str(exc)})


__all__ = ["router"]

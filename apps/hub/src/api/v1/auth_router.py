from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from hidroweb import AuthError, HidrowebError
from services.hidroweb_auth import token_cache

logger = logging.getLogger("hidromonitor.hub.api.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/")
async def token_status():
    """Token health-check; authenticates first when no valid token is cached."""

    try:
        stats = token_cache.token_stats()
        if not stats.has_valid_token:
            await token_cache.authenticate()
            stats = token_cache.token_stats()
    except HidrowebError as exc:
        logger.error("Hidroweb authentication check failed: %s", exc.message)
        return JSONResponse(status_code=exc.code, content=exc.to_payload())
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected failure during authentication check")
        error = AuthError.generic(exc)
        return JSONResponse(status_code=error.code, content=error.to_payload())

    payload = {
        "status": "success",
        "code": 200,
        "message": "Token successfully obtained!",
        "token": stats.token,
        "meta": stats.meta,
    }
    if stats.error:
        payload["error"] = stats.error
    return payload


__all__ = ["router"]

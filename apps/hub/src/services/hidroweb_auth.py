from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from config import settings
from hidroweb import AuthError, HidrowebError, TokenDecodeError, classify_auth_failure, decode_token_claims

logger = logging.getLogger("hidromonitor.hub.hidroweb.auth")

NEW_TOKEN_THRESHOLD_MS = 60 * 1000


def _isoformat_ms(epoch_ms: float) -> str:
    iso = datetime.fromtimestamp(epoch_ms / 1000.0, tz=timezone.utc).isoformat(timespec="milliseconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


@dataclass(slots=True)
class TokenStats:
    """Snapshot of the cached bearer token for the auth health-check."""

    has_valid_token: bool
    token: Optional[str]
    meta: dict[str, Any] = field(default_factory=dict)
    error: Optional[dict[str, str]] = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "hasValidToken": self.has_valid_token,
            "token": self.token,
            "meta": self.meta,
            "error": self.error,
        }


def _empty_meta() -> dict[str, Any]:
    return {"isTokenNew": False, "createdAt": None, "expiresAt": None, "expiresIn": None}


class TokenCache:
    """Single-slot bearer token cache with single-flight renewal.

    ``authenticate`` returns the cached token until it is within the expiry
    buffer. Concurrent callers that find the token stale share one refresh
    task; the task reference is stored before the first suspension point.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._value: Optional[str] = None
        self._expiration_ms: float = 0.0
        self._refresh_task: Optional[asyncio.Task[str]] = None
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def refreshing(self) -> bool:
        return self._refresh_task is not None

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _buffer_ms(self) -> float:
        return settings.hidroweb_token_expiry_buffer_seconds * 1000.0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"User-Agent": settings.user_agent})
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def invalidate(self) -> None:
        self._value = None
        self._expiration_ms = 0.0

    async def authenticate(self) -> str:
        if self._value and self._now_ms() < self._expiration_ms - self._buffer_ms():
            return self._value
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh())
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> str:
        started = time.perf_counter()
        try:
            username = settings.hidroweb_username
            password = settings.hidroweb_password
            if not username or not password:
                logger.error(
                    "Hidroweb credentials are not configured (username %s, password %s)",
                    "set" if username else "missing",
                    "set" if password else "missing",
                )
                raise AuthError.missing_credentials()

            logger.info("Requesting new Hidroweb token")
            client = await self._get_client()
            response = await client.get(
                settings.hidroweb_auth_url,
                headers={"Identificador": username, "Senha": password, "Accept": "*/*"},
                timeout=settings.hidroweb_auth_timeout,
            )
            response.raise_for_status()
            payload = response.json()
            items = payload.get("items") if isinstance(payload, dict) else None
            token = items.get("tokenautenticacao") if isinstance(items, dict) else None
            if not token:
                raise AuthError.missing_token()

            try:
                claims = decode_token_claims(token)
            except TokenDecodeError as exc:
                logger.error("Failed to decode Hidroweb token: %s", exc.to_payload())
                raise AuthError.invalid_token(exc.kind) from exc

            try:
                expiration_ms = float(claims.get("exp") or 0) * 1000.0
            except (TypeError, ValueError) as exc:
                raise AuthError.invalid_token("INVALID_EXP") from exc
            self._value = token
            self._expiration_ms = expiration_ms
            logger.info(
                "Hidroweb token obtained; expires in %d minutes",
                int((expiration_ms - self._now_ms()) // 60000),
            )
            return token
        except HidrowebError:
            raise
        except Exception as exc:
            raise classify_auth_failure(exc) from exc
        finally:
            self._refresh_task = None
            logger.debug("Hidroweb authentication took %.1f ms", (time.perf_counter() - started) * 1000.0)

    def cached_token(self) -> Optional[str]:
        if self._value and self._now_ms() < self._expiration_ms:
            return self._value
        return None

    def token_stats(self) -> TokenStats:
        token = self._value
        if not token:
            return TokenStats(has_valid_token=False, token=None, meta=_empty_meta())
        try:
            claims = decode_token_claims(token)
        except TokenDecodeError as exc:
            return TokenStats(has_valid_token=False, token=token, meta=_empty_meta(), error=exc.to_payload())

        now = self._now_ms()
        try:
            issued_ms = float(claims.get("iat") or 0) * 1000.0
            expires_ms = float(claims.get("exp") or 0) * 1000.0
        except (TypeError, ValueError) as exc:
            error = {"type": "INVALID_CLAIMS", "message": f"Token iat/exp must be numeric: {exc}"}
            return TokenStats(has_valid_token=False, token=token, meta=_empty_meta(), error=error)
        remaining = max(0, int((expires_ms - now) / 1000))
        expired = now >= expires_ms - self._buffer_ms()
        return TokenStats(
            has_valid_token=not expired,
            token=token,
            meta={
                "isTokenNew": (now - issued_ms) < NEW_TOKEN_THRESHOLD_MS,
                "createdAt": _isoformat_ms(issued_ms),
                "expiresAt": _isoformat_ms(expires_ms),
                "expiresIn": f"{remaining // 60}' {remaining % 60}''",
                "isExpired": expired,
            },
        )


token_cache = TokenCache()

__all__ = ["TokenCache", "TokenStats", "token_cache"]

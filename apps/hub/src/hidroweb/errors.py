"""Error taxonomy for the ANA Hidroweb integration."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from config import settings

API_NAME = "ANA HidroWeb"


class HidrowebError(RuntimeError):
    """Structured upstream failure with an HTTP-like status code."""

    error_type = "HidrowebError"

    def __init__(
        self,
        code: int,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        system_message: str | None = None,
        response_data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = {"api": API_NAME, **(details or {})}
        self.response_data = dict(response_data or {})
        if system_message:
            self.response_data["system_message"] = system_message

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.error_type,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "response_data": self.response_data,
        }


class AuthError(HidrowebError):
    error_type = "AuthError"

    @classmethod
    def invalid_credentials(cls, exc: Exception | None = None) -> "AuthError":
        return cls(
            401,
            "Identificador e/ou Senha Inválidos. Verifique!",
            details={
                "endpoint": settings.hidroweb_auth_url,
                "method": "GET",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            system_message=str(exc) if exc is not None else None,
            response_data={"status": "UNAUTHORIZED"},
        )

    @classmethod
    def missing_credentials(cls) -> "AuthError":
        return cls(500, "Credenciais Hidroweb não configuradas (HIDROWEB_USERNAME / HIDROWEB_PASSWORD)")

    @classmethod
    def missing_token(cls) -> "AuthError":
        return cls(500, "Token de autenticação não retornado pela API")

    @classmethod
    def invalid_token(cls, reason: str | None = None) -> "AuthError":
        details = {"reason": reason} if reason else None
        return cls(500, "Token de autenticação inválido", details=details)

    @classmethod
    def generic(cls, exc: Exception) -> "AuthError":
        return cls(500, "Falha no processo de autenticação", details={"originalError": str(exc)})


class UpstreamError(HidrowebError):
    error_type = "ApiError"

    @classmethod
    def timeout(cls) -> "UpstreamError":
        return cls(408, "Timeout ao conectar com o serviço ANA")

    @classmethod
    def unexpected(cls, exc: Exception) -> "UpstreamError":
        return cls(500, "Erro inesperado na comunicação com a API ANA", system_message=str(exc))


class TokenDecodeError(ValueError):
    """Raised when a bearer token cannot be decoded into claims."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"type": self.kind, "message": self.message}


class HistoryValidationError(ValueError):
    """Raised before any network call when history parameters are invalid."""


class StationQueryError(ValueError):
    """Raised when a station directory request is missing required parameters."""


def classify_auth_failure(exc: BaseException) -> HidrowebError:
    if isinstance(exc, HidrowebError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        if status_code == 401:
            return AuthError.invalid_credentials(exc)
        if status_code == 408:
            return UpstreamError.timeout()
        return UpstreamError.unexpected(exc)
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return UpstreamError.timeout()
    return AuthError.generic(exc if isinstance(exc, Exception) else Exception(str(exc)))


__all__ = [
    "AuthError",
    "HidrowebError",
    "HistoryValidationError",
    "StationQueryError",
    "TokenDecodeError",
    "UpstreamError",
    "classify_auth_failure",
]

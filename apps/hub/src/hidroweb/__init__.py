"""ANA Hidroweb error types and token helpers."""

from .errors import (
    AuthError,
    HidrowebError,
    HistoryValidationError,
    StationQueryError,
    TokenDecodeError,
    UpstreamError,
    classify_auth_failure,
)
from .token import decode_token_claims

__all__ = [
    "AuthError",
    "HidrowebError",
    "HistoryValidationError",
    "StationQueryError",
    "TokenDecodeError",
    "UpstreamError",
    "classify_auth_failure",
    "decode_token_claims",
]

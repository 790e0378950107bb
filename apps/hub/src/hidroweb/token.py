"""Helpers for the JWT-shaped bearer tokens issued by Hidroweb."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from .errors import TokenDecodeError


def decode_token_claims(token: Any) -> dict[str, Any]:
    """Return the claims (``iat``, ``exp``...) carried by a bearer token.

    The signature is not verified; Hidroweb is the only issuer and the claims
    are only used to schedule renewal.
    """

    if not isinstance(token, str):
        raise TokenDecodeError("INVALID_TOKEN_TYPE", f"Token must be a string, got {type(token).__name__}")
    parts = token.split(".")
    if len(parts) != 3:
        raise TokenDecodeError("MALFORMED_TOKEN", f"JWT must have 3 parts separated by dots, got {len(parts)}")
    try:
        decoded = _b64url_decode(parts[1])
        claims = json.loads(decoded.decode("utf-8"))
    except (binascii.Error, json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
        raise TokenDecodeError("DECODE_ERROR", str(exc)) from exc
    if not isinstance(claims, dict):
        raise TokenDecodeError("DECODE_ERROR", "Token payload is not a JSON object")
    return claims


def _b64url_decode(value: str) -> bytes:
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode(value + padding)


__all__ = ["decode_token_claims"]

"""Creation and inspection of JWT tokens."""

from __future__ import annotations

import base64
import binascii
import json
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import jwt

from pxc.signature import Signature

_SIGNING_METHODS = frozenset(
    {
        "HS256", "HS384", "HS512",
        "RS256", "RS384", "RS512",
        "ES256", "ES384", "ES512",
        "PS256", "PS384", "PS512",
        "EdDSA", "none",
    }
)


class TokenError(ValueError):
    """Raised when a token cannot be created, parsed or validated."""


@dataclass
class Claims:
    """Identity claims carried in a token."""

    issuer: str = ""
    subject: str = ""
    name: str = ""
    email: str = ""
    roles: list[str] | None = None
    groups: list[str] | None = None


@dataclass
class Options:
    """Options applied when creating a token."""

    expiration: int = 0
    issuer: str = ""


def token(claims: Claims, signature: Signature, options: Options) -> str:
    """Return a signed JWT holding the given claims."""
    payload: dict[str, Any] = {
        "sub": claims.subject,
        "iss": options.issuer,
        "email": claims.email,
        "name": claims.name,
        "roles": None if claims.roles is None else list(claims.roles),
        "iat": int(time.time()),
        "exp": options.expiration,
    }
    if claims.groups is not None:
        payload["groups"] = list(claims.groups)
    try:
        return jwt.encode(payload, signature.key, algorithm=signature.algorithm)
    except (jwt.PyJWTError, ValueError, TypeError) as exc:
        raise TokenError(str(exc)) from exc


def _decode_segment(segment: str) -> bytes:
    if "=" in segment:
        raise ValueError("illegal base64 data: padding is not allowed")
    padded = segment + "=" * (-len(segment) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as exc:
        raise ValueError(f"illegal base64 data: {exc}") from exc


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON value {name}")


def _load_json(data: bytes) -> Any:
    return json.loads(data, parse_constant=_reject_constant)


def _string_field(raw: dict, key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"claim {key!r} must be a string")
    return value


def _list_field(raw: dict, key: str) -> list[str] | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TypeError(f"claim {key!r} must be a list of strings")
    return value


def token_claims(rawtoken: str) -> Claims:
    """Return the claims of a raw JWT without verifying its signature."""
    parts = rawtoken.split(".")
    if len(parts) < 3:
        raise TokenError(f"Token is invalid: {rawtoken}")
    try:
        data = _decode_segment(parts[1])
    except ValueError as exc:
        raise TokenError(f"Failed to decode claims: {exc}") from exc
    try:
        raw = _load_json(data)
        if not isinstance(raw, dict):
            raise TypeError("claims must be a JSON object")
        return Claims(
            issuer=_string_field(raw, "iss"),
            subject=_string_field(raw, "sub"),
            name=_string_field(raw, "name"),
            email=_string_field(raw, "email"),
            roles=_list_field(raw, "roles"),
            groups=_list_field(raw, "groups"),
        )
    except (ValueError, TypeError) as exc:
        raise TokenError(
            f"Unable to get information from the claims in the token: {exc}"
        ) from exc


def token_issuer(rawtoken: str) -> str:
    """Return the issuer of a raw JWT."""
    claims = token_claims(rawtoken)
    if not claims.issuer:
        raise TokenError("Issuer was not specified in the token")
    return claims.issuer


def _decode_object(segment: str, what: str) -> dict:
    try:
        value = _load_json(_decode_segment(segment))
    except ValueError as exc:
        raise TokenError(f"could not decode {what}: {exc}") from exc
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TokenError(f"could not decode {what}: not a JSON object")
    return value


def _parse_unverified(rawtoken: str) -> dict:
    parts = rawtoken.split(".")
    if len(parts) != 3:
        raise TokenError("token contains an invalid number of segments")
    header = _decode_object(parts[0], "header")
    claims = _decode_object(parts[1], "claims")
    alg = header.get("alg")
    if not isinstance(alg, str):
        raise TokenError("signing method (alg) is unspecified.")
    if alg not in _SIGNING_METHODS:
        raise TokenError("signing method (alg) is unavailable.")
    return claims


def is_jwt_token(authstring: str) -> bool:
    """Return True if the string parses as a JWT."""
    try:
        _parse_unverified(authstring)
    except TokenError:
        return False
    return True


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _time_claim_ok(claims: dict, key: str, now: int) -> bool:
    if key not in claims:
        return True
    value = _numeric(claims[key])
    if value is None:
        return False
    if value == 0:
        return True
    seconds = math.trunc(value)
    if key == "exp":
        return now < seconds
    return now >= seconds


def validate_token(rawtoken: str) -> None:
    """Check the time claims of a raw JWT; raise TokenError if it is not valid."""
    claims = _parse_unverified(rawtoken)
    now = int(time.time())
    error = None
    if not _time_claim_ok(claims, "exp", now):
        error = "Token is expired"
    if not _time_claim_ok(claims, "iat", now):
        error = "Token used before issued"
    if not _time_claim_ok(claims, "nbf", now):
        error = "Token is not valid yet"
    if error is not None:
        raise TokenError(error)


def _claim_time(rawtoken: str, key: str) -> datetime:
    claims = _parse_unverified(rawtoken)
    value = _numeric(claims.get(key))
    if value is None:
        raise TokenError("Unable to get expiration time from token")
    try:
        return datetime.fromtimestamp(math.trunc(value), tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise TokenError("Unable to get expiration time from token") from exc


def get_expiration(rawtoken: str) -> datetime:
    """Return the expiration time of a raw JWT."""
    return _claim_time(rawtoken, "exp")


def get_issued_at_time(rawtoken: str) -> datetime:
    """Return the issued-at time of a raw JWT."""
    return _claim_time(rawtoken, "iat")
"""Signing keys and algorithms used to create tokens."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

HS256 = "HS256"
RS256 = "RS256"
ES256 = "ES256"


class SignatureError(ValueError):
    """Raised when a signing key cannot be read or parsed."""


@dataclass(frozen=True)
class Signature:
    """A signing algorithm name together with the key it signs with."""

    algorithm: str
    key: Any


def new_signature_shared_secret(secret: str) -> Signature:
    """Create an HMAC-SHA256 signature from a shared secret."""
    return Signature(algorithm=HS256, key=secret.encode())


def _read(filename: str | Path, kind: str) -> bytes:
    try:
        return Path(filename).read_bytes()
    except OSError as exc:
        raise SignatureError(f"Failed to read {kind} file: {exc}") from exc


def _load_private_key(pem: bytes | str, kind: str, expected: type) -> Any:
    if isinstance(pem, str):
        pem = pem.encode()
    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SignatureError(f"Failed to parse {kind} file: {exc}") from exc
    if not isinstance(key, expected):
        raise SignatureError(
            f"Failed to parse {kind} file: key is not a valid {kind} private key"
        )
    return key


def new_signature_rsa_from_file(filename: str | Path) -> Signature:
    """Create an RS256 signature from a PEM file holding an RSA private key."""
    return new_signature_rsa(_read(filename, "RSA"))


def new_signature_rsa(pem: bytes | str) -> Signature:
    """Create an RS256 signature from PEM data holding an RSA private key."""
    key = _load_private_key(pem, "RSA", rsa.RSAPrivateKey)
    return Signature(algorithm=RS256, key=key)


def new_signature_ecdsa_from_file(filename: str | Path) -> Signature:
    """Create an ES256 signature from a PEM file holding an EC private key."""
    return new_signature_ecdsa(_read(filename, "ECDSA"))


def new_signature_ecdsa(pem: bytes | str) -> Signature:
    """Create an ES256 signature from PEM data holding an EC private key."""
    key = _load_private_key(pem, "ECDSA", ec.EllipticCurvePrivateKey)
    return Signature(algorithm=ES256, key=key)
"""
Ed25519 key handling for checkpoint receipts.

Keys cross the boundary as PEM: PKCS8 for private keys, SPKI for public
keys. ``cryptography`` parses and emits the PEM framing; signing and
verification run on PyNaCl keys built from the raw 32-byte material.
"""
from __future__ import annotations

import base64
import hashlib
from typing import Optional, Tuple

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from halo_eli.errors import KeyFormatError


def normalize_pem(raw_pem: str) -> str:
    """Expand literal ``\\n`` escapes (PEM passed through env vars)."""
    return raw_pem.replace("\\n", "\n") if "\\n" in raw_pem else raw_pem


def _private_pem(signing_key: SigningKey) -> str:
    sk = Ed25519PrivateKey.from_private_bytes(bytes(signing_key))
    return sk.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def _public_pem(verify_key: VerifyKey) -> str:
    pk = Ed25519PublicKey.from_public_bytes(bytes(verify_key))
    return pk.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def generate_keypair_pem() -> Tuple[str, str]:
    """Return a fresh (private PKCS8 PEM, public SPKI PEM) pair."""
    sk = SigningKey.generate()
    return _private_pem(sk), _public_pem(sk.verify_key)


def load_signing_key(private_pem: str) -> SigningKey:
    """Parse a PKCS8 PEM Ed25519 private key."""
    try:
        key = serialization.load_pem_private_key(
            normalize_pem(private_pem).encode("utf-8"), password=None
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyFormatError(f"Cannot parse Ed25519 private key PEM: {exc}") from exc
    if not isinstance(key, Ed25519PrivateKey):
        raise KeyFormatError("Private key must be an Ed25519 key")
    raw = key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return SigningKey(raw)


def load_verify_key(public_pem: str) -> VerifyKey:
    """Parse an SPKI PEM Ed25519 public key."""
    try:
        key = serialization.load_pem_public_key(normalize_pem(public_pem).encode("utf-8"))
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyFormatError(f"Cannot parse Ed25519 public key PEM: {exc}") from exc
    if not isinstance(key, Ed25519PublicKey):
        raise KeyFormatError("Public key must be an Ed25519 key")
    raw = key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return VerifyKey(raw)


def derive_public_pem(private_pem: Optional[str]) -> Optional[str]:
    """Public SPKI PEM for *private_pem*, or None if it cannot be parsed."""
    if not private_pem:
        return None
    try:
        return _public_pem(load_signing_key(private_pem).verify_key)
    except KeyFormatError:
        return None


def sign_b64(private_pem: str, data: bytes) -> str:
    """Sign *data* and return the base64 detached signature."""
    signature = load_signing_key(private_pem).sign(data).signature
    return base64.b64encode(signature).decode("ascii")


def verify_b64(verify_key: VerifyKey, data: bytes, signature_b64: str) -> bool:
    """True iff *signature_b64* is a valid signature over *data*."""
    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (ValueError, TypeError):
        return False
    try:
        verify_key.verify(data, signature)
    except (BadSignatureError, ValueError, TypeError):
        return False
    return True


def public_key_fingerprint(public_pem: str) -> str:
    """SHA-256 over the raw 32-byte public key."""
    return hashlib.sha256(bytes(load_verify_key(public_pem))).hexdigest()


__all__ = [
    "normalize_pem",
    "generate_keypair_pem",
    "load_signing_key",
    "load_verify_key",
    "derive_public_pem",
    "sign_b64",
    "verify_b64",
    "public_key_fingerprint",
]

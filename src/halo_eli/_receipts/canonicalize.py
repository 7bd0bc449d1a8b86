"""
Canonicalization helpers for receipts and ledgers.

Every hash and signature in halo_eli is computed over the output of
``canonical_json``. Critical properties:

- Identical data -> identical text (always)
- No whitespace
- Sorted object keys, array order preserved
- Non-JSON values stringified instead of rejected

Usage:
    from halo_eli._receipts.canonicalize import canonical_json, sha256_hex

    content_hash = sha256_hex(canonical_json(transcript))
"""
from __future__ import annotations

import hashlib
from typing import Any, Union

from halo_eli._receipts.jcs import canonicalize_to_str

SIGNATURE_FIELDS = frozenset({"signature", "hmac", "receipt_signature", "signature_type"})


def canonical_json(obj: Any) -> str:
    """Return the canonical JSON text for *obj*."""
    return canonicalize_to_str(obj)


def to_jcs_bytes(obj: Any) -> bytes:
    """Return the canonical JSON for *obj* as UTF-8 bytes."""
    return canonical_json(obj).encode("utf-8")


def sha256_hex(data: Union[str, bytes]) -> str:
    """Hex SHA-256 of *data*; text is hashed as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def strip_signature_fields(value: Any) -> Any:
    """Recursively drop signature-bearing keys from dicts (and dicts in lists)."""
    if isinstance(value, list):
        return [strip_signature_fields(item) for item in value]
    if isinstance(value, dict):
        return {
            key: strip_signature_fields(item)
            for key, item in value.items()
            if key not in SIGNATURE_FIELDS
        }
    return value


def compute_payload_hash(obj: Any) -> str:
    """
    Hash of the canonical form of *obj* with signature fields removed.

    Signatures are attached after this hash is computed (detached signature
    pattern), so recomputing it over a signed object yields the same value.
    """
    if hasattr(obj, "model_dump"):
        obj = obj.model_dump(mode="json")
    return sha256_hex(canonical_json(strip_signature_fields(obj)))


__all__ = [
    "SIGNATURE_FIELDS",
    "canonical_json",
    "to_jcs_bytes",
    "sha256_hex",
    "strip_signature_fields",
    "compute_payload_hash",
]

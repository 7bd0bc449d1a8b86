"""
Receipt primitives shared by the HMAC receipts and the Ed25519 checkpoint.

Only canonicalization lives here; both signing schemes depend on it, and any
divergence in this package breaks every downstream verification.
"""

from halo_eli._receipts.canonicalize import (
    canonical_json,
    compute_payload_hash,
    sha256_hex,
    strip_signature_fields,
    to_jcs_bytes,
)

__all__: list[str] = [
    "canonical_json",
    "compute_payload_hash",
    "sha256_hex",
    "strip_signature_fields",
    "to_jcs_bytes",
]

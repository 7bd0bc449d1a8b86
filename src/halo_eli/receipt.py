"""
HALO receipt signer and verifier (simple HMAC form).

A receipt binds an id, a timestamp and the SHA-256 of the raw upstream
response together under an HMAC-SHA256 signature:

    signature = HMAC(key, "id|timestamp|responseHash")

Verification is offline and side-effect free: it recomputes the response
hash from the stored text, then the HMAC from the stored fields, and
compares in constant time.

Failure reasons are a closed set (REASON_*); callers match on them rather
than parsing free text.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from halo_eli._receipts.base import utc_iso
from halo_eli._receipts.canonicalize import sha256_hex
from halo_eli.config import get_config

logger = logging.getLogger("halo_eli.receipt")

RECEIPT_SCHEMA_VERSION = "1.0.0"

REASON_HASH_MISMATCH = "response hash mismatch - content may have been tampered"
REASON_SIGNATURE_LENGTH = "signature length mismatch"
REASON_SIGNATURE_MISMATCH = "signature mismatch - receipt may have been forged"

KeyLike = Union[str, bytes]


class Receipt(BaseModel):
    """Tamper-evident envelope for one upstream response."""

    model_config = ConfigDict(extra="allow")

    id: str
    timestamp: str
    responseHash: str
    signature: str
    response: str
    schema_version: str = Field(default=RECEIPT_SCHEMA_VERSION)


@dataclass
class ReceiptVerifyResult:
    valid: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"valid": self.valid}
        if self.reason is not None:
            d["reason"] = self.reason
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _key_bytes(key: Optional[KeyLike]) -> bytes:
    if key is None:
        key = get_config().signing_key
    return key.encode("utf-8") if isinstance(key, str) else bytes(key)


def signing_payload(receipt_id: str, timestamp: str, response_hash: str) -> str:
    return f"{receipt_id}|{timestamp}|{response_hash}"


def hmac_sha256_hex(key: KeyLike, payload: str) -> str:
    key_bytes = key.encode("utf-8") if isinstance(key, str) else bytes(key)
    return hmac.new(key_bytes, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def _as_fields(receipt: Union[Receipt, Dict[str, Any]]) -> Dict[str, str]:
    data = receipt.model_dump() if isinstance(receipt, Receipt) else dict(receipt)
    return {
        name: str(data.get(name) or "")
        for name in ("id", "timestamp", "responseHash", "signature", "response")
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def sign_response(response: str, key: Optional[KeyLike] = None) -> Receipt:
    """
    Produce a HALO receipt for an upstream LLM response.

    Args:
        response: Raw text returned by the LLM provider.
        key: HMAC secret. Defaults to the configured signing key
            (RECEIPT_SIGNING_KEY / HALO_SIGNING_KEY).
    """
    key_bytes = _key_bytes(key)
    receipt_id = str(uuid.uuid4())
    timestamp = utc_iso()
    response_hash = sha256_hex(response)
    signature = hmac_sha256_hex(
        key_bytes, signing_payload(receipt_id, timestamp, response_hash)
    )
    return Receipt(
        id=receipt_id,
        timestamp=timestamp,
        responseHash=response_hash,
        signature=signature,
        response=response,
        schema_version=RECEIPT_SCHEMA_VERSION,
    )


def verify_receipt(
    receipt: Union[Receipt, Dict[str, Any]],
    key: Optional[KeyLike] = None,
) -> ReceiptVerifyResult:
    """
    Verify a HALO receipt offline.

    Order of checks (fail fast):
      1. Response hash recomputed from ``response``
      2. Signature length (hex-decoded) equals the HMAC digest length
      3. Constant-time HMAC comparison
    """
    fields = _as_fields(receipt)

    expected_hash = sha256_hex(fields["response"])
    if expected_hash != fields["responseHash"]:
        logger.warning("receipt %s: response hash mismatch", fields["id"] or "(no id)")
        return ReceiptVerifyResult(valid=False, reason=REASON_HASH_MISMATCH)

    expected_sig = bytes.fromhex(hmac_sha256_hex(
        _key_bytes(key),
        signing_payload(fields["id"], fields["timestamp"], fields["responseHash"]),
    ))
    try:
        provided_sig = bytes.fromhex(fields["signature"])
    except ValueError:
        provided_sig = b""

    if len(provided_sig) != len(expected_sig):
        logger.warning("receipt %s: signature length mismatch", fields["id"] or "(no id)")
        return ReceiptVerifyResult(valid=False, reason=REASON_SIGNATURE_LENGTH)

    if not hmac.compare_digest(provided_sig, expected_sig):
        logger.warning("receipt %s: signature mismatch", fields["id"] or "(no id)")
        return ReceiptVerifyResult(valid=False, reason=REASON_SIGNATURE_MISMATCH)

    return ReceiptVerifyResult(valid=True)


__all__ = [
    "RECEIPT_SCHEMA_VERSION",
    "REASON_HASH_MISMATCH",
    "REASON_SIGNATURE_LENGTH",
    "REASON_SIGNATURE_MISMATCH",
    "Receipt",
    "ReceiptVerifyResult",
    "sign_response",
    "verify_receipt",
    "signing_payload",
    "hmac_sha256_hex",
]

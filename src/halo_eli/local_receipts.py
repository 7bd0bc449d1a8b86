"""
Built-in Ed25519 transcript receipts.

This is the default backend behind ``halo_eli.contract``. It signs a
canonical transcript and verifies the result:

    transcript_hash = sha256(canonical(transcript))
    signed_payload  = canonical({"id", "transcript_hash", "ts"})
    signature       = base64(Ed25519(signed_payload))

Verification always rechecks the transcript hash and the signed payload; the
signature is checked whenever a verify key is available (explicit argument,
``RECEIPT_VERIFY_KEY``, or derived from the configured signing key).
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

from halo_eli._receipts.base import utc_iso
from halo_eli._receipts.canonicalize import canonical_json, sha256_hex
from halo_eli.config import get_config
from halo_eli.errors import KeyFormatError
from halo_eli.keys import derive_public_pem, load_verify_key, public_key_fingerprint, sign_b64, verify_b64
from halo_eli.keystore import DEFAULT_SIGNER_ID, get_default_keystore

logger = logging.getLogger("halo_eli.local_receipts")

CONTRACT_VERSION = "1.0.0"
SIGNATURE_ALG = "Ed25519"


@dataclass
class TranscriptReceipt:
    id: str
    ts: str
    transcript_hash: str
    signature: str
    signature_alg: str
    public_key_id: str
    signed_payload: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptReceipt":
        return cls(
            id=str(data.get("id", "")),
            ts=str(data.get("ts", "")),
            transcript_hash=str(data.get("transcript_hash", "")),
            signature=str(data.get("signature", "")),
            signature_alg=str(data.get("signature_alg", "")),
            public_key_id=str(data.get("public_key_id", "")),
            signed_payload=str(data.get("signed_payload", "")),
        )


@dataclass
class TranscriptVerifyResult:
    ok: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"ok": self.ok}
        if self.errors:
            d["errors"] = list(self.errors)
        return d


def _resolve_signing_pem(signing_key_pem: Optional[str]) -> str:
    if signing_key_pem:
        return signing_key_pem
    configured = get_config().signing_key_pem
    if configured:
        return configured
    return get_default_keystore().ensure_key()


def _resolve_verify_pem(verify_key_pem: Optional[str]) -> Optional[str]:
    if verify_key_pem:
        return verify_key_pem
    config = get_config()
    if config.verify_key_pem:
        return config.verify_key_pem
    if config.signing_key_pem:
        return derive_public_pem(config.signing_key_pem)
    store = get_default_keystore()
    return store.public_pem() if store.has_key(DEFAULT_SIGNER_ID) else None


def signed_payload_for(receipt_id: str, ts: str, transcript_hash: str) -> str:
    return canonical_json({"id": receipt_id, "transcript_hash": transcript_hash, "ts": ts})


def sign_transcript(transcript: Any, *, signing_key_pem: Optional[str] = None) -> TranscriptReceipt:
    """Sign a transcript with Ed25519. Raises KeyFormatError on a bad key."""
    private_pem = _resolve_signing_pem(signing_key_pem)
    public_pem = derive_public_pem(private_pem)
    if public_pem is None:
        raise KeyFormatError("signing key is not an Ed25519 PKCS8 PEM")

    receipt_id = str(uuid.uuid4())
    ts = utc_iso()
    transcript_hash = sha256_hex(canonical_json(transcript))
    payload = signed_payload_for(receipt_id, ts, transcript_hash)

    return TranscriptReceipt(
        id=receipt_id,
        ts=ts,
        transcript_hash=transcript_hash,
        signature=sign_b64(private_pem, payload.encode("utf-8")),
        signature_alg=SIGNATURE_ALG,
        public_key_id=public_key_fingerprint(public_pem)[:16],
        signed_payload=payload,
    )


def verify_transcript_receipt(
    transcript: Any,
    receipt: Union[TranscriptReceipt, Dict[str, Any]],
    *,
    verify_key_pem: Optional[str] = None,
) -> TranscriptVerifyResult:
    """Check a transcript receipt; every failed check is listed in ``errors``."""
    if isinstance(receipt, dict):
        receipt = TranscriptReceipt.from_dict(receipt)

    errors: List[str] = []
    expected_hash = sha256_hex(canonical_json(transcript))
    if receipt.transcript_hash != expected_hash:
        errors.append("transcript_hash mismatch")

    expected_payload = signed_payload_for(receipt.id, receipt.ts, receipt.transcript_hash)
    if receipt.signed_payload != expected_payload:
        errors.append("signed_payload does not match receipt fields")

    if receipt.signature_alg != SIGNATURE_ALG:
        errors.append(f"unsupported signature_alg: {receipt.signature_alg}")

    public_pem = _resolve_verify_pem(verify_key_pem)
    if public_pem is not None:
        try:
            verify_key = load_verify_key(public_pem)
        except KeyFormatError as exc:
            errors.append(f"invalid verify key: {exc}")
        else:
            if not verify_b64(verify_key, receipt.signed_payload.encode("utf-8"), receipt.signature):
                errors.append("Ed25519 signature verification failed")
    else:
        logger.debug("no verify key configured; signature not checked")

    if errors:
        logger.warning("transcript receipt %s failed: %s", receipt.id, "; ".join(errors))
    return TranscriptVerifyResult(ok=not errors, errors=errors)


HALO_RECEIPTS_CONTRACT: Dict[str, Any] = {
    "sign_transcript": sign_transcript,
    "verify_transcript_receipt": verify_transcript_receipt,
    "contract_version": CONTRACT_VERSION,
}


__all__ = [
    "CONTRACT_VERSION",
    "SIGNATURE_ALG",
    "HALO_RECEIPTS_CONTRACT",
    "TranscriptReceipt",
    "TranscriptVerifyResult",
    "signed_payload_for",
    "sign_transcript",
    "verify_transcript_receipt",
]

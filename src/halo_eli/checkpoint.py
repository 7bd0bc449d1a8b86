"""
HALO checkpoint: master receipt + evidence pack.

A checkpoint splits one authenticated transcript into two objects linked by
a content hash:

  master_receipt.json   safe to share: hash, Ed25519 signature, metadata
  evidence_pack.json    sensitive: the transcript and ELI assertions

    content_hash = sha256(canonical(transcript))
    signature    = Ed25519(DOMAIN_PREFIX + canonical(envelope))
    envelope     = {receipt_version, receipt_id, content_hash, signature_scheme}

The domain prefix keeps a checkpoint signature from being replayed against
another protocol that signs similar-looking JSON.

A verifier holding only the master receipt and a public key can prove the
evidence pack was not altered. The master receipt must never carry
transcript content; ``assert_master_has_no_plaintext`` checks this
structurally, independent of hashing.
"""
from __future__ import annotations

import base64
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from halo_eli._receipts.base import utc_iso
from halo_eli._receipts.canonicalize import canonical_json, sha256_hex
from halo_eli.errors import KeyFormatError
from halo_eli.keys import derive_public_pem, load_signing_key, load_verify_key, verify_b64
from halo_eli.tagger import tag_response
from halo_eli.transcript import JsonRecord, as_record, as_string, extract_assistant_text

logger = logging.getLogger("halo_eli.checkpoint")

RECEIPT_VERSION = "halo.master.v1"
SIGNATURE_SCHEME = "ed25519"
DOMAIN_PREFIX = "HALO_MASTER_RECEIPT_V1|"
EVIDENCE_NOTES = "Sensitive evidence pack. Do not share externally without policy review."

DISALLOWED_MASTER_KEYS = frozenset({
    "transcript",
    "messages",
    "prompt",
    "completion",
    "response",
    "output_text",
    "raw_response",
})

# Offline verification failure reasons (closed set)
REASON_CONTENT_HASH_MISMATCH = "content_hash mismatch between master receipt and evidence transcript"
REASON_EVIDENCE_HASH_MISMATCH = "evidence_pack.content_hash mismatch with master receipt"
REASON_MISSING_VERIFY_KEY = "missing verify key (RECEIPT_VERIFY_KEY) for Ed25519 verification"
REASON_INVALID_VERIFY_KEY = "invalid verify key: not an Ed25519 SPKI PEM"
REASON_SIGNATURE_FAILED = "ed25519 signature verification failed"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class SourceFile(BaseModel):
    file: str
    sha256: str


class ValetSource(BaseModel):
    source_dir: str = ""
    files: List[SourceFile] = Field(default_factory=list)
    source_receipt_file: str = ""


class EliAssertion(BaseModel):
    assertion_type: str
    text: str
    sources: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None


class MasterVerification(BaseModel):
    derived_status: str = "PASS"
    verified_at: str = Field(default_factory=utc_iso)
    valet_hmac_strategy: str = "none"
    checks: List[str] = Field(default_factory=list)


class MasterReceipt(BaseModel):
    """Shareable proof metadata. ``verification`` is self-reported, never trusted."""

    receipt_version: str = RECEIPT_VERSION
    receipt_id: str
    content_hash: str
    signature_scheme: str = SIGNATURE_SCHEME
    signature: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    verification: MasterVerification = Field(default_factory=MasterVerification)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class EvidencePack(BaseModel):
    """Sensitive content backing a master receipt."""

    receipt_id: str
    content_hash: str
    valet_source: ValetSource = Field(default_factory=ValetSource)
    transcript: Dict[str, Any]
    eli_assertions: List[EliAssertion] = Field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        for assertion in data["eli_assertions"]:
            if assertion.get("confidence") is None:
                assertion.pop("confidence", None)
        if data.get("notes") is None:
            data.pop("notes", None)
        return data


@dataclass
class Checkpoint:
    master_receipt: MasterReceipt
    evidence_pack: EvidencePack


@dataclass
class CheckpointVerifyResult:
    ok: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"ok": self.ok}
        if self.reason is not None:
            d["reason"] = self.reason
        return d


@dataclass
class PlaintextCheck:
    ok: bool
    reason: str = "OK"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def content_hash_of(transcript: Any) -> str:
    """sha256 hex of the canonical transcript."""
    return sha256_hex(canonical_json(transcript))


def envelope_of(
    receipt_version: Any,
    receipt_id: Any,
    content_hash: Any,
    signature_scheme: Any,
) -> Dict[str, Any]:
    return {
        "receipt_version": receipt_version,
        "receipt_id": receipt_id,
        "content_hash": content_hash,
        "signature_scheme": signature_scheme,
    }


def signing_input(envelope: Dict[str, Any]) -> bytes:
    """Domain-separated bytes that the Ed25519 signature covers."""
    return (DOMAIN_PREFIX + canonical_json(envelope)).encode("utf-8")


def _as_dict(obj: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    return as_record(obj) or {}


def flip_hex_char(value: str) -> str:
    """Change the first hex character (0 -> 1, anything else -> 0)."""
    if not value:
        return "0"
    replacement = "1" if value[0].lower() == "0" else "0"
    return replacement + value[1:]


# ---------------------------------------------------------------------------
# Production
# ---------------------------------------------------------------------------

def derive_eli_assertions(transcript: JsonRecord) -> List[EliAssertion]:
    """Tag the assistant-authored part of *transcript* into assertions."""
    assistant_text = extract_assistant_text(transcript)
    if not assistant_text:
        return []
    ledger = tag_response(assistant_text)
    return [
        EliAssertion(
            assertion_type=claim.type,
            text=claim.text,
            sources=[json.dumps(list(span), separators=(",", ":")) for span in claim.span_refs],
        )
        for claim in ledger.claims
    ]


def create_master_receipt(
    transcript: JsonRecord,
    signing_key_pem: str,
    *,
    matched_hmac_strategy: str = "none",
    source_dir: str = "",
    source_receipt_file: str = "",
    source_files: Sequence[Dict[str, str]] = (),
    embed_public_key: bool = False,
) -> Checkpoint:
    """
    Produce a signed master receipt and its evidence pack.

    Raises:
        KeyFormatError: *signing_key_pem* is not an Ed25519 PKCS8 PEM.
    """
    signing_key = load_signing_key(signing_key_pem)
    content_hash = content_hash_of(transcript)
    receipt_id = str(uuid.uuid4())

    envelope = envelope_of(RECEIPT_VERSION, receipt_id, content_hash, SIGNATURE_SCHEME)
    signature = base64.b64encode(
        signing_key.sign(signing_input(envelope)).signature
    ).decode("ascii")

    now = utc_iso()
    metadata: Dict[str, Any] = {
        "source": "valet-ingest-bridge",
        "ingested_at": now,
        "source_dir": source_dir,
        "source_receipt_file": source_receipt_file,
    }
    if embed_public_key:
        metadata["public_key"] = derive_public_pem(signing_key_pem)

    master = MasterReceipt(
        receipt_version=RECEIPT_VERSION,
        receipt_id=receipt_id,
        content_hash=content_hash,
        signature_scheme=SIGNATURE_SCHEME,
        signature=signature,
        metadata=metadata,
        verification=MasterVerification(
            derived_status="PASS",
            verified_at=now,
            valet_hmac_strategy=matched_hmac_strategy,
            checks=[
                "valet_hmac_verified",
                "content_hash_computed",
                "ed25519_checkpoint_generated",
            ],
        ),
    )

    evidence = EvidencePack(
        receipt_id=receipt_id,
        content_hash=content_hash,
        valet_source=ValetSource(
            source_dir=source_dir,
            files=[SourceFile(**f) for f in source_files],
            source_receipt_file=source_receipt_file,
        ),
        transcript=transcript,
        eli_assertions=derive_eli_assertions(transcript),
        notes=EVIDENCE_NOTES,
    )

    logger.info("checkpoint %s created (content_hash=%s)", receipt_id, content_hash)
    return Checkpoint(master_receipt=master, evidence_pack=evidence)


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def assert_master_has_no_plaintext(master_receipt: Union[MasterReceipt, Dict[str, Any]]) -> PlaintextCheck:
    """Walk the whole master receipt tree; fail on the first disallowed key."""
    stack: List[Any] = [_as_dict(master_receipt)]
    while stack:
        current = stack.pop()
        if isinstance(current, list):
            stack.extend(current)
            continue
        if not isinstance(current, dict):
            continue
        for key, value in current.items():
            if key in DISALLOWED_MASTER_KEYS:
                return PlaintextCheck(
                    ok=False,
                    reason=f"Disallowed plaintext key found in master receipt: {key}",
                )
            stack.append(value)
    return PlaintextCheck(ok=True)


def verify_checkpoint_offline(
    master_receipt: Union[MasterReceipt, Dict[str, Any]],
    evidence_pack: Union[EvidencePack, Dict[str, Any]],
    *,
    verify_key_pem: Optional[str] = None,
    signing_key_pem: Optional[str] = None,
) -> CheckpointVerifyResult:
    """
    Verify a checkpoint without network access.

    1. sha256(canonical(evidence.transcript)) == master.content_hash
    2. evidence.content_hash == master.content_hash
    3. Ed25519 signature over the reconstructed envelope, using the first
       available of: *verify_key_pem*, the key derived from
       *signing_key_pem*, ``master.metadata.public_key``.
    """
    master = _as_dict(master_receipt)
    evidence = _as_dict(evidence_pack)

    expected_hash = content_hash_of(evidence.get("transcript"))
    if expected_hash != master.get("content_hash"):
        logger.warning("checkpoint %s: %s", master.get("receipt_id"), REASON_CONTENT_HASH_MISMATCH)
        return CheckpointVerifyResult(ok=False, reason=REASON_CONTENT_HASH_MISMATCH)

    if evidence.get("content_hash") != master.get("content_hash"):
        logger.warning("checkpoint %s: %s", master.get("receipt_id"), REASON_EVIDENCE_HASH_MISMATCH)
        return CheckpointVerifyResult(ok=False, reason=REASON_EVIDENCE_HASH_MISMATCH)

    envelope = envelope_of(
        master.get("receipt_version"),
        master.get("receipt_id"),
        master.get("content_hash"),
        master.get("signature_scheme"),
    )

    public_pem = (
        verify_key_pem
        or derive_public_pem(signing_key_pem)
        or as_string((as_record(master.get("metadata")) or {}).get("public_key"))
    )
    if not public_pem:
        return CheckpointVerifyResult(ok=False, reason=REASON_MISSING_VERIFY_KEY)

    try:
        verify_key = load_verify_key(public_pem)
    except KeyFormatError:
        return CheckpointVerifyResult(ok=False, reason=REASON_INVALID_VERIFY_KEY)

    signature = master.get("signature")
    if not isinstance(signature, str) or not verify_b64(verify_key, signing_input(envelope), signature):
        logger.warning("checkpoint %s: %s", master.get("receipt_id"), REASON_SIGNATURE_FAILED)
        return CheckpointVerifyResult(ok=False, reason=REASON_SIGNATURE_FAILED)

    return CheckpointVerifyResult(ok=True)


def tampered_evidence(evidence_pack: EvidencePack) -> EvidencePack:
    """Deep copy of *evidence_pack* with a marker injected into its transcript."""
    clone = evidence_pack.model_copy(deep=True)
    clone.transcript = {**clone.transcript, "__tampered": True}
    return clone


def tampered_master(master_receipt: MasterReceipt) -> MasterReceipt:
    """Deep copy of *master_receipt* with one hex char of content_hash flipped."""
    clone = master_receipt.model_copy(deep=True)
    clone.content_hash = flip_hex_char(master_receipt.content_hash)
    return clone


__all__ = [
    "RECEIPT_VERSION",
    "SIGNATURE_SCHEME",
    "DOMAIN_PREFIX",
    "DISALLOWED_MASTER_KEYS",
    "REASON_CONTENT_HASH_MISMATCH",
    "REASON_EVIDENCE_HASH_MISMATCH",
    "REASON_MISSING_VERIFY_KEY",
    "REASON_INVALID_VERIFY_KEY",
    "REASON_SIGNATURE_FAILED",
    "SourceFile",
    "ValetSource",
    "EliAssertion",
    "MasterVerification",
    "MasterReceipt",
    "EvidencePack",
    "Checkpoint",
    "CheckpointVerifyResult",
    "PlaintextCheck",
    "content_hash_of",
    "envelope_of",
    "signing_input",
    "flip_hex_char",
    "derive_eli_assertions",
    "create_master_receipt",
    "assert_master_has_no_plaintext",
    "verify_checkpoint_offline",
    "tampered_evidence",
    "tampered_master",
]

"""
Checkpoint protocol: authenticate -> checkpoint -> no-plaintext -> verify.

One run turns an upstream receipt into a master receipt + evidence pack and
a structured report. Every phase is a named check; the run is PASS iff
every check passed. If upstream authentication fails, no checkpoint is
produced.

Checks, in order:
  valet_hmac_verification             upstream HMAC under some strategy
  content_hash_computed               canonical transcript hashed
  ed25519_checkpoint_generated        master receipt signed
  master_receipt_plaintext_check      no transcript keys in the master
  offline_verify                      hash agreement + Ed25519 signature
  acceptance_tampered_evidence_fails  self-test: altered transcript rejected
  acceptance_tampered_master_fails    self-test: altered content_hash rejected

The two acceptance checks guard against a verifier that always says "ok".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from halo_eli._receipts.base import utc_iso
from halo_eli.checkpoint import (
    EvidencePack,
    MasterReceipt,
    assert_master_has_no_plaintext,
    create_master_receipt,
    tampered_evidence,
    tampered_master,
    verify_checkpoint_offline,
)
from halo_eli.errors import KeyFormatError
from halo_eli.transcript import JsonRecord, normalize_to_transcript
from halo_eli.upstream_hmac import STRATEGY_NONE, verify_upstream_hmac

logger = logging.getLogger("halo_eli.protocol")

CHECK_HMAC = "valet_hmac_verification"
CHECK_CONTENT_HASH = "content_hash_computed"
CHECK_CHECKPOINT = "ed25519_checkpoint_generated"
CHECK_PLAINTEXT = "master_receipt_plaintext_check"
CHECK_OFFLINE_VERIFY = "offline_verify"
CHECK_TAMPERED_EVIDENCE = "acceptance_tampered_evidence_fails"
CHECK_TAMPERED_MASTER = "acceptance_tampered_master_fails"


@dataclass
class ProtocolCheck:
    name: str
    passed: bool
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "detail": self.detail}


@dataclass
class ProtocolReport:
    """Structured run report; ``status`` is derived from the checks."""

    checks: List[ProtocolCheck] = field(default_factory=list)
    matched_hmac_strategy: str = STRATEGY_NONE
    input_dir: str = ""
    output_dir: str = ""
    generated_at: str = field(default_factory=utc_iso)

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(c.passed for c in self.checks)

    @property
    def status(self) -> str:
        return "PASS" if self.passed else "FAIL"

    def check(self, name: str) -> Optional[ProtocolCheck]:
        for c in self.checks:
            if c.name == name:
                return c
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "generated_at": self.generated_at,
            "input_dir": self.input_dir,
            "output_dir": self.output_dir,
            "matched_hmac_strategy": self.matched_hmac_strategy,
            "checks": [c.to_dict() for c in self.checks],
        }


@dataclass
class ProtocolOutcome:
    report: ProtocolReport
    master_receipt: Optional[MasterReceipt] = None
    evidence_pack: Optional[EvidencePack] = None

    @property
    def passed(self) -> bool:
        return self.report.passed


def run_acceptance_checks(
    master_receipt: MasterReceipt,
    evidence_pack: EvidencePack,
    *,
    verify_key_pem: Optional[str] = None,
    signing_key_pem: Optional[str] = None,
) -> List[ProtocolCheck]:
    """Tamper clones of the checkpoint and confirm verification rejects both."""
    evidence_result = verify_checkpoint_offline(
        master_receipt,
        tampered_evidence(evidence_pack),
        verify_key_pem=verify_key_pem,
        signing_key_pem=signing_key_pem,
    )
    master_result = verify_checkpoint_offline(
        tampered_master(master_receipt),
        evidence_pack,
        verify_key_pem=verify_key_pem,
        signing_key_pem=signing_key_pem,
    )
    return [
        ProtocolCheck(
            name=CHECK_TAMPERED_EVIDENCE,
            passed=not evidence_result.ok,
            detail=(evidence_result.reason or "tampered evidence failed as expected")
            if not evidence_result.ok
            else "tampered evidence unexpectedly verified",
        ),
        ProtocolCheck(
            name=CHECK_TAMPERED_MASTER,
            passed=not master_result.ok,
            detail=(master_result.reason or "tampered master failed as expected")
            if not master_result.ok
            else "tampered master unexpectedly verified",
        ),
    ]


def run_checkpoint_protocol(
    receipt: JsonRecord,
    *,
    hmac_key: Union[str, bytes],
    signing_key_pem: str,
    verify_key_pem: Optional[str] = None,
    source_dir: str = "",
    source_receipt_file: str = "",
    source_files: Sequence[Dict[str, str]] = (),
    output_dir: str = "",
    embed_public_key: bool = False,
) -> ProtocolOutcome:
    """
    Run the full checkpoint protocol over one upstream receipt.

    Args:
        receipt: Upstream receipt JSON object (any known shape).
        hmac_key: Upstream producer's HMAC key.
        signing_key_pem: Ed25519 private key (PKCS8 PEM) for the checkpoint.
        verify_key_pem: Optional public key (SPKI PEM) for offline verify;
            derived from the signing key when omitted.
        source_dir / source_receipt_file / source_files: provenance recorded
            in the evidence pack.
        output_dir: Recorded in the report only; nothing is written here.
        embed_public_key: Put the public key in master metadata so the
            master receipt alone is enough to verify.

    Returns:
        ProtocolOutcome; master/evidence are None if no checkpoint was made.
    """
    report = ProtocolReport(input_dir=source_dir, output_dir=output_dir)

    hmac_result = verify_upstream_hmac(receipt, hmac_key)
    report.checks.append(ProtocolCheck(
        name=CHECK_HMAC,
        passed=hmac_result.ok,
        detail=f"Matched strategy: {hmac_result.strategy}"
        if hmac_result.ok
        else f"Failed: {hmac_result.reason or 'unknown'}",
    ))
    if not hmac_result.ok:
        logger.warning("upstream HMAC verification failed; no checkpoint produced")
        return ProtocolOutcome(report=report)
    report.matched_hmac_strategy = hmac_result.strategy

    transcript = normalize_to_transcript(receipt)
    try:
        checkpoint = create_master_receipt(
            transcript,
            signing_key_pem,
            matched_hmac_strategy=hmac_result.strategy,
            source_dir=source_dir,
            source_receipt_file=source_receipt_file,
            source_files=source_files,
            embed_public_key=embed_public_key,
        )
    except KeyFormatError as exc:
        report.checks.append(ProtocolCheck(name=CHECK_CHECKPOINT, passed=False, detail=str(exc)))
        return ProtocolOutcome(report=report)

    master = checkpoint.master_receipt
    evidence = checkpoint.evidence_pack

    report.checks.append(ProtocolCheck(
        name=CHECK_CONTENT_HASH, passed=True, detail=f"content_hash={master.content_hash}",
    ))
    report.checks.append(ProtocolCheck(
        name=CHECK_CHECKPOINT, passed=True, detail=f"receipt_id={master.receipt_id}",
    ))

    plaintext = assert_master_has_no_plaintext(master)
    report.checks.append(ProtocolCheck(
        name=CHECK_PLAINTEXT,
        passed=plaintext.ok,
        detail="No transcript/plaintext fields in master receipt." if plaintext.ok else plaintext.reason,
    ))

    verify_result = verify_checkpoint_offline(
        master, evidence, verify_key_pem=verify_key_pem, signing_key_pem=signing_key_pem,
    )
    report.checks.append(ProtocolCheck(
        name=CHECK_OFFLINE_VERIFY,
        passed=verify_result.ok,
        detail="Offline hash + Ed25519 verification passed."
        if verify_result.ok
        else verify_result.reason or "verification failed",
    ))

    report.checks.extend(run_acceptance_checks(
        master, evidence, verify_key_pem=verify_key_pem, signing_key_pem=signing_key_pem,
    ))

    logger.info("checkpoint protocol %s (receipt_id=%s)", report.status, master.receipt_id)
    return ProtocolOutcome(report=report, master_receipt=master, evidence_pack=evidence)


__all__ = [
    "CHECK_HMAC",
    "CHECK_CONTENT_HASH",
    "CHECK_CHECKPOINT",
    "CHECK_PLAINTEXT",
    "CHECK_OFFLINE_VERIFY",
    "CHECK_TAMPERED_EVIDENCE",
    "CHECK_TAMPERED_MASTER",
    "ProtocolCheck",
    "ProtocolReport",
    "ProtocolOutcome",
    "run_acceptance_checks",
    "run_checkpoint_protocol",
]

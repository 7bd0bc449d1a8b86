"""
Upstream HMAC authentication with multiple canonicalization strategies.

The upstream producer's exact signing convention is not controlled here, so
verification tries an ordered list of named strategies and accepts the
first whose recomputed HMAC matches the stored signature:

  1. canonical_transcript                  HMAC(canonical(normalized transcript))
  2. canonical_receipt_without_signatures  HMAC(canonical(receipt - signature fields))
  3. transcript_hash_field                 HMAC(receipt.transcript_hash), only
                                           when such a field is present

Hex comparison ignores case and whitespace and runs in constant time.
Each strategy is a standalone payload builder so it can be tested alone.
"""
from __future__ import annotations

import hmac
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from halo_eli._receipts.canonicalize import canonical_json, strip_signature_fields
from halo_eli.receipt import hmac_sha256_hex
from halo_eli.transcript import (
    JsonRecord,
    normalize_to_transcript,
    read_transcript_hash_field,
    read_upstream_signature,
)

logger = logging.getLogger("halo_eli.upstream_hmac")

STRATEGY_CANONICAL_TRANSCRIPT = "canonical_transcript"
STRATEGY_CANONICAL_RECEIPT = "canonical_receipt_without_signatures"
STRATEGY_TRANSCRIPT_HASH_FIELD = "transcript_hash_field"
STRATEGY_NONE = "none"

REASON_NO_SIGNATURE = "No Valet HMAC signature field found."
REASON_NO_MATCH = "No HMAC verification strategy matched this receipt signature."

_WHITESPACE = re.compile(r"\s+")


@dataclass
class HmacVerifyResult:
    ok: bool
    strategy: str = STRATEGY_NONE
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"ok": self.ok, "strategy": self.strategy}
        if self.reason is not None:
            d["reason"] = self.reason
        return d


# ---------------------------------------------------------------------------
# Strategy payload builders
#
# Each takes the raw receipt and returns the signed payload, or None when
# the strategy does not apply to this receipt.
# ---------------------------------------------------------------------------

def payload_canonical_transcript(receipt: JsonRecord) -> Optional[str]:
    return canonical_json(normalize_to_transcript(receipt))


def payload_canonical_receipt(receipt: JsonRecord) -> Optional[str]:
    return canonical_json(strip_signature_fields(receipt))


def payload_transcript_hash_field(receipt: JsonRecord) -> Optional[str]:
    return read_transcript_hash_field(receipt)


PayloadFn = Callable[[JsonRecord], Optional[str]]

HMAC_STRATEGIES: List[Tuple[str, PayloadFn]] = [
    (STRATEGY_CANONICAL_TRANSCRIPT, payload_canonical_transcript),
    (STRATEGY_CANONICAL_RECEIPT, payload_canonical_receipt),
    (STRATEGY_TRANSCRIPT_HASH_FIELD, payload_transcript_hash_field),
]


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def _normalize_hex(value: str) -> bytes:
    return _WHITESPACE.sub("", value).lower().encode("utf-8")


def signatures_match(provided: str, computed: str) -> bool:
    """Case- and whitespace-insensitive constant-time hex comparison."""
    return hmac.compare_digest(_normalize_hex(provided), _normalize_hex(computed))


def compute_strategy_hmac(strategy: str, receipt: JsonRecord, key: Union[str, bytes]) -> Optional[str]:
    """HMAC hex for one named strategy, or None if it does not apply."""
    for name, build in HMAC_STRATEGIES:
        if name == strategy:
            payload = build(receipt)
            return None if payload is None else hmac_sha256_hex(key, payload)
    raise ValueError(f"Unknown HMAC strategy: {strategy}")


def verify_upstream_hmac(receipt: JsonRecord, hmac_key: Union[str, bytes]) -> HmacVerifyResult:
    """
    Authenticate an upstream receipt against *hmac_key*.

    Returns the first matching strategy, or ``ok=False`` with a reason.
    Never raises for malformed receipts.
    """
    signature = read_upstream_signature(receipt)
    if not signature:
        logger.warning("upstream receipt carries no HMAC signature")
        return HmacVerifyResult(ok=False, reason=REASON_NO_SIGNATURE)

    for name, build in HMAC_STRATEGIES:
        payload = build(receipt)
        if payload is None:
            logger.debug("hmac strategy %s: not applicable", name)
            continue
        computed = hmac_sha256_hex(hmac_key, payload)
        if signatures_match(signature, computed):
            logger.debug("hmac strategy %s: matched", name)
            return HmacVerifyResult(ok=True, strategy=name)
        logger.debug("hmac strategy %s: no match", name)

    logger.warning("no HMAC strategy matched the upstream signature")
    return HmacVerifyResult(ok=False, reason=REASON_NO_MATCH)


__all__ = [
    "STRATEGY_CANONICAL_TRANSCRIPT",
    "STRATEGY_CANONICAL_RECEIPT",
    "STRATEGY_TRANSCRIPT_HASH_FIELD",
    "STRATEGY_NONE",
    "REASON_NO_SIGNATURE",
    "REASON_NO_MATCH",
    "HMAC_STRATEGIES",
    "HmacVerifyResult",
    "payload_canonical_transcript",
    "payload_canonical_receipt",
    "payload_transcript_hash_field",
    "compute_strategy_hmac",
    "signatures_match",
    "verify_upstream_hmac",
]

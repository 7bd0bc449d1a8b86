"""Tests for multi-strategy upstream HMAC authentication."""

from __future__ import annotations

import hashlib
import hmac

import pytest

from halo_eli._receipts.canonicalize import canonical_json
from halo_eli.transcript import normalize_to_transcript
from halo_eli.upstream_hmac import (
    REASON_NO_MATCH,
    REASON_NO_SIGNATURE,
    STRATEGY_CANONICAL_RECEIPT,
    STRATEGY_CANONICAL_TRANSCRIPT,
    STRATEGY_NONE,
    STRATEGY_TRANSCRIPT_HASH_FIELD,
    compute_strategy_hmac,
    signatures_match,
    verify_upstream_hmac,
)

KEY = "valet-hmac-key"


def _hmac(payload: str) -> str:
    return hmac.new(KEY.encode(), payload.encode(), hashlib.sha256).hexdigest()


def _base_receipt() -> dict:
    return {
        "model": "m-1",
        "created_at": "2025-01-01T00:00:00Z",
        "messages": [
            {"role": "user", "content": "Is the earth round?"},
            {"role": "assistant", "content": "The earth orbits the sun."},
        ],
    }


class TestStrategies:
    def test_canonical_transcript(self) -> None:
        receipt = _base_receipt()
        receipt["hmac"] = _hmac(canonical_json(normalize_to_transcript(receipt)))
        result = verify_upstream_hmac(receipt, KEY)
        assert result.ok is True
        assert result.strategy == STRATEGY_CANONICAL_TRANSCRIPT

    def test_canonical_receipt_without_signatures(self) -> None:
        receipt = _base_receipt()
        receipt["run_id"] = "r-42"
        receipt["signature_type"] = "hmac-sha256"
        receipt["signature"] = _hmac(canonical_json({k: v for k, v in receipt.items() if k != "signature_type"}))
        result = verify_upstream_hmac(receipt, KEY)
        assert result.ok is True
        assert result.strategy == STRATEGY_CANONICAL_RECEIPT

    def test_transcript_hash_field(self) -> None:
        receipt = _base_receipt()
        receipt["transcript_hash"] = "ab" * 32
        receipt["receipt_signature"] = _hmac("ab" * 32)
        result = verify_upstream_hmac(receipt, KEY)
        assert result.ok is True
        assert result.strategy == STRATEGY_TRANSCRIPT_HASH_FIELD

    def test_first_matching_strategy_wins(self) -> None:
        receipt = _base_receipt()
        receipt["verification"] = {"hmac": compute_strategy_hmac(STRATEGY_CANONICAL_TRANSCRIPT, receipt, KEY)}
        assert verify_upstream_hmac(receipt, KEY).strategy == STRATEGY_CANONICAL_TRANSCRIPT

    def test_signature_case_and_whitespace_insensitive(self) -> None:
        receipt = _base_receipt()
        sig = _hmac(canonical_json(normalize_to_transcript(receipt)))
        receipt["hmac"] = " " + sig.upper()[:32] + "\n" + sig.upper()[32:] + " "
        assert verify_upstream_hmac(receipt, KEY).ok


class TestFailures:
    def test_no_signature(self) -> None:
        result = verify_upstream_hmac(_base_receipt(), KEY)
        assert result.ok is False
        assert result.strategy == STRATEGY_NONE
        assert result.reason == REASON_NO_SIGNATURE

    def test_wrong_key(self) -> None:
        receipt = _base_receipt()
        receipt["hmac"] = _hmac(canonical_json(normalize_to_transcript(receipt)))
        result = verify_upstream_hmac(receipt, "other-key")
        assert result.ok is False
        assert result.reason == REASON_NO_MATCH
        assert result.to_dict() == {"ok": False, "strategy": STRATEGY_NONE, "reason": REASON_NO_MATCH}

    def test_tampered_content(self) -> None:
        receipt = _base_receipt()
        receipt["hmac"] = _hmac(canonical_json(normalize_to_transcript(receipt)))
        receipt["messages"][1]["content"] = "The sun orbits the earth."
        assert verify_upstream_hmac(receipt, KEY).reason == REASON_NO_MATCH

    def test_non_hmac_signature_type_ignored(self) -> None:
        receipt = _base_receipt()
        receipt["signature"] = _hmac(canonical_json(normalize_to_transcript(receipt)))
        receipt["signature_type"] = "ed25519"
        assert verify_upstream_hmac(receipt, KEY).reason == REASON_NO_SIGNATURE

    def test_transcript_hash_strategy_skipped_without_field(self) -> None:
        assert compute_strategy_hmac(STRATEGY_TRANSCRIPT_HASH_FIELD, _base_receipt(), KEY) is None

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError):
            compute_strategy_hmac("nope", _base_receipt(), KEY)


class TestSignaturesMatch:
    def test_match(self) -> None:
        assert signatures_match("AB cd", "abcd")
        assert not signatures_match("abce", "abcd")

"""Tests for the ELI semantic validator."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from halo_eli.claims import Claim, Ledger
from halo_eli.policy import EliPolicy
from halo_eli.tagger import tag_response
from halo_eli.validator import (
    FACT_WITHOUT_EVIDENCE,
    INFERENCE_LAUNDERING,
    INVALID_SPAN,
    INVALID_TYPE,
    MISSING_ID,
    NO_SPAN_REF,
    validate_ledger,
    validate_ledger_semantics,
)

SOURCE = "The earth orbits the sun. This implies gravity is real."


def _ledger(*claims: Dict[str, Any]) -> Dict[str, Any]:
    return {"tagged_at": "2025-01-01T00:00:00.000Z", "sentence_count": len(claims), "claims": list(claims)}


def _claim(**overrides: Any) -> Dict[str, Any]:
    claim = {"id": "c1", "type": "ASSERTION", "text": "x", "span_refs": [[0, 25]]}
    claim.update(overrides)
    return claim


def _rules(ledger: Any, source: str = SOURCE, **kwargs: Any) -> List[str]:
    return validate_ledger(ledger, source, **kwargs).rules()


class TestEndToEnd:
    def test_tagged_fact_and_inference_pass(self) -> None:
        ledger = tag_response(SOURCE)
        assert [c.type for c in ledger.claims] == ["FACT", "INFERENCE"]
        result = validate_ledger(ledger, SOURCE)
        assert result.passed is True
        assert result.violations == []

    def test_bare_so_is_inference_laundering(self) -> None:
        text = "So."
        ledger = tag_response(text)
        assert [c.type for c in ledger.claims] == ["INFERENCE"]
        result = validate_ledger(ledger, text)
        assert result.passed is False
        assert result.rules() == [INFERENCE_LAUNDERING]


class TestStructuralRules:
    def test_missing_id(self) -> None:
        assert _rules(_ledger(_claim(id="   "))) == [MISSING_ID]
        assert _rules(_ledger(_claim(id=None))) == [MISSING_ID]

    def test_invalid_type(self) -> None:
        assert _rules(_ledger(_claim(type="RUMOUR"))) == [INVALID_TYPE]

    def test_no_span_ref(self) -> None:
        assert _rules(_ledger(_claim(span_refs=[]))) == [NO_SPAN_REF]

    def test_invalid_span_variants(self) -> None:
        for span in ([-1, 5], [0, len(SOURCE) + 1], [5, 5], [6, 2], ["0", 5], [0], [True, 4]):
            assert _rules(_ledger(_claim(span_refs=[span]))) == [INVALID_SPAN], span

    def test_span_at_end_of_text_is_valid(self) -> None:
        assert _rules(_ledger(_claim(span_refs=[[26, len(SOURCE)]]))) == []

    def test_each_bad_span_reported(self) -> None:
        rules = _rules(_ledger(_claim(span_refs=[[0, 5], [-1, 2], [9, 1]])))
        assert rules == [INVALID_SPAN, INVALID_SPAN]

    def test_multiple_violations_on_one_claim(self) -> None:
        rules = _rules(_ledger(_claim(id="", type="NOPE", span_refs=[])))
        assert rules == [MISSING_ID, INVALID_TYPE, NO_SPAN_REF]

    def test_never_raises_on_garbage(self) -> None:
        assert validate_ledger({"claims": "nope"}, SOURCE).passed is True
        assert _rules(_ledger("not a claim")) == [MISSING_ID, INVALID_TYPE, NO_SPAN_REF]
        assert validate_ledger(None, SOURCE).passed is True  # type: ignore[arg-type]

    @pytest.mark.parametrize("bad_type", [["FACT"], {"k": 1}, 7, None])
    def test_non_string_type_is_invalid(self, bad_type: Any) -> None:
        assert _rules(_ledger(_claim(type=bad_type))) == [INVALID_TYPE]


class TestContentRules:
    def test_fact_without_evidence(self) -> None:
        ledger = _ledger(_claim(type="FACT", span_refs=[[0, 9]]))
        assert _rules(ledger) == [FACT_WITHOUT_EVIDENCE]

    def test_fact_evidence_is_trimmed(self) -> None:
        source = "     short     "
        ledger = _ledger(_claim(type="FACT", span_refs=[[0, len(source)]]))
        assert _rules(ledger, source) == [FACT_WITHOUT_EVIDENCE]

    def test_fact_threshold_is_configurable(self) -> None:
        ledger = _ledger(_claim(type="FACT", span_refs=[[0, 9]]))
        assert _rules(ledger, policy=EliPolicy(fact_min_evidence_chars=5)) == []

    def test_fact_threshold_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("ELI_FACT_MIN_EVIDENCE_CHARS", "30")
        ledger = _ledger(_claim(type="FACT", span_refs=[[0, 25]]))
        assert _rules(ledger) == [FACT_WITHOUT_EVIDENCE]

    def test_fact_uses_first_span_only(self) -> None:
        ledger = _ledger(_claim(type="FACT", span_refs=[[0, 25], [0, 3]]))
        assert _rules(ledger) == []

    def test_inference_with_hedge_passes(self) -> None:
        ledger = _ledger(_claim(type="INFERENCE", span_refs=[[26, len(SOURCE)]]))
        assert _rules(ledger) == []

    def test_inference_without_hedge_is_laundering(self) -> None:
        ledger = _ledger(_claim(type="INFERENCE", span_refs=[[0, 25]]))
        assert _rules(ledger) == [INFERENCE_LAUNDERING]

    def test_invalid_first_span_still_checks_content(self) -> None:
        ledger = _ledger(_claim(type="FACT", span_refs=[["a", "b"]]))
        assert _rules(ledger) == [INVALID_SPAN, FACT_WITHOUT_EVIDENCE]

    def test_accepts_claim_objects(self) -> None:
        ledger = Ledger(
            tagged_at="2025-01-01T00:00:00.000Z",
            sentence_count=1,
            claims=[Claim(id="c1", type="OPINION", text="x", span_refs=[[0, 25]])],
        )
        assert validate_ledger(ledger, SOURCE).passed is True


class TestSemanticReport:
    def test_violations_become_error_issues(self) -> None:
        report = validate_ledger_semantics(_ledger(_claim(type="BOGUS")), SOURCE)
        assert report.ok is False
        assert [(i.rule, i.severity) for i in report.issues] == [(INVALID_TYPE, "ERROR")]
        assert report.to_dict()["issues"][0]["claimId"] == "c1"

    def test_clean_ledger_is_ok(self) -> None:
        report = validate_ledger_semantics(tag_response(SOURCE), SOURCE)
        assert report.ok is True
        assert report.issues == []

"""
ELI semantic validator.

Runs epistemic-discipline rules over a tagged ledger and reports every
violation. Separated from the tagger by design:
  - Tagger: "what kind of statement is this?"
  - Validator: "does the statement's evidence support its kind?"

The validator never raises for a malformed ledger. Claims loaded from JSON
may be missing fields or carry garbage spans; each problem becomes a
violation so callers always get a result object.

Rules are registered in RULES in the order they are applied to each claim.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from halo_eli.claims import (
    VALID_TYPES,
    Claim,
    EpiType,
    Ledger,
    ValidationResult,
    ValidationViolation,
)
from halo_eli.policy import EliPolicy, default_policy

logger = logging.getLogger("halo_eli.validator")

MISSING_ID = "MISSING_ID"
INVALID_TYPE = "INVALID_TYPE"
NO_SPAN_REF = "NO_SPAN_REF"
INVALID_SPAN = "INVALID_SPAN"
FACT_WITHOUT_EVIDENCE = "FACT_WITHOUT_EVIDENCE"
INFERENCE_LAUNDERING = "INFERENCE_LAUNDERING"


# ---------------------------------------------------------------------------
# Claim view
# ---------------------------------------------------------------------------

@dataclass
class _ClaimView:
    """Tolerant read-only projection of a Claim or a raw claim dict."""

    id: Any
    type: Any
    span_refs: List[Any] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.id if isinstance(self.id, str) and self.id else "(missing)"


def _view(claim: Any) -> _ClaimView:
    if isinstance(claim, Claim):
        return _ClaimView(claim.id, claim.type, list(claim.span_refs or []))
    if isinstance(claim, dict):
        spans = claim.get("span_refs")
        return _ClaimView(
            claim.get("id"),
            claim.get("type"),
            list(spans) if isinstance(spans, (list, tuple)) else [],
        )
    return _ClaimView(None, None, [])


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _span_bounds(span: Any) -> Optional[tuple]:
    if isinstance(span, (list, tuple)) and len(span) == 2:
        return span[0], span[1]
    return None


def _first_span_text(view: _ClaimView, source_text: str) -> Optional[str]:
    """Source slice for the first span, or None when it is unusable."""
    if not view.span_refs:
        return None
    bounds = _span_bounds(view.span_refs[0])
    if bounds is None or not all(_is_number(b) for b in bounds):
        return None
    start, end = int(bounds[0]), int(bounds[1])
    return source_text[max(start, 0):max(end, 0)]


def _type_value(view: _ClaimView) -> Optional[str]:
    """The claim type as a string, or None for anything that is not one."""
    if isinstance(view.type, EpiType):
        return view.type.value
    return view.type if isinstance(view.type, str) else None


# ---------------------------------------------------------------------------
# Rules
#
# Each takes (view, source_text, policy) and returns a list of violations.
# ---------------------------------------------------------------------------

def rule_missing_id(view: _ClaimView, source_text: str, policy: EliPolicy) -> List[ValidationViolation]:
    if isinstance(view.id, str) and view.id.strip():
        return []
    return [ValidationViolation(view.label, MISSING_ID, "Claim is missing an id")]


def rule_invalid_type(view: _ClaimView, source_text: str, policy: EliPolicy) -> List[ValidationViolation]:
    if _type_value(view) in VALID_TYPES:
        return []
    return [ValidationViolation(view.label, INVALID_TYPE, f"Unknown type: {view.type}")]


def rule_span_refs(view: _ClaimView, source_text: str, policy: EliPolicy) -> List[ValidationViolation]:
    if not view.span_refs:
        return [ValidationViolation(view.label, NO_SPAN_REF, "Claim has no span_refs")]

    violations: List[ValidationViolation] = []
    length = len(source_text)
    for span in view.span_refs:
        bounds = _span_bounds(span)
        if bounds is None:
            violations.append(ValidationViolation(
                view.label, INVALID_SPAN,
                f"Span {span!r} is not a [start, end] pair",
            ))
            continue
        start, end = bounds
        if (
            not _is_number(start)
            or not _is_number(end)
            or start < 0
            or end > length
            or start >= end
        ):
            violations.append(ValidationViolation(
                view.label, INVALID_SPAN,
                f"Span [{start}, {end}] is out of bounds for source text of length {length}",
            ))
    return violations


def rule_fact_evidence(view: _ClaimView, source_text: str, policy: EliPolicy) -> List[ValidationViolation]:
    if _type_value(view) != EpiType.FACT.value or not view.span_refs:
        return []
    evidence = (_first_span_text(view, source_text) or "").strip()
    if len(evidence) >= policy.fact_min_evidence_chars:
        return []
    return [ValidationViolation(
        view.label, FACT_WITHOUT_EVIDENCE,
        f'FACT claim span resolves to trivially short text: "{evidence}"',
    )]


def rule_inference_laundering(view: _ClaimView, source_text: str, policy: EliPolicy) -> List[ValidationViolation]:
    if _type_value(view) != EpiType.INFERENCE.value or not view.span_refs:
        return []
    span_text = _first_span_text(view, source_text) or ""
    if policy.hedge_pattern.search(span_text):
        return []
    return [ValidationViolation(
        view.label, INFERENCE_LAUNDERING,
        "INFERENCE claim span contains no hedging language - possible inference laundering",
    )]


RuleFn = Callable[[_ClaimView, str, EliPolicy], List[ValidationViolation]]

RULES: Dict[str, RuleFn] = {
    MISSING_ID: rule_missing_id,
    INVALID_TYPE: rule_invalid_type,
    NO_SPAN_REF: rule_span_refs,
    FACT_WITHOUT_EVIDENCE: rule_fact_evidence,
    INFERENCE_LAUNDERING: rule_inference_laundering,
}


# ---------------------------------------------------------------------------
# Core validator
# ---------------------------------------------------------------------------

def _claims_of(ledger: Union[Ledger, Dict[str, Any]]) -> List[Any]:
    if isinstance(ledger, Ledger):
        return list(ledger.claims)
    if isinstance(ledger, dict) and isinstance(ledger.get("claims"), list):
        return list(ledger["claims"])
    return []


def validate_ledger(
    ledger: Union[Ledger, Dict[str, Any]],
    source_text: str,
    *,
    policy: Optional[EliPolicy] = None,
) -> ValidationResult:
    """
    Validate an ELI ledger against the semantic discipline rules.

    Args:
        ledger: Ledger (or its dict form) to validate.
        source_text: The original response text that was tagged.
        policy: Thresholds and hedge vocabulary (default: reference policy).

    Returns:
        ValidationResult; ``passed`` is True iff no rule fired.
    """
    policy = policy or default_policy()
    violations: List[ValidationViolation] = []

    for claim in _claims_of(ledger):
        view = _view(claim)
        for rule in RULES.values():
            violations.extend(rule(view, source_text, policy))

    if violations:
        logger.debug(
            "ledger failed validation: %s",
            ", ".join(sorted({v.rule for v in violations})),
        )
    return ValidationResult(passed=len(violations) == 0, violations=violations)


# ---------------------------------------------------------------------------
# Severity adapter
# ---------------------------------------------------------------------------

@dataclass
class EliIssue:
    """A validator violation with a severity attached."""

    claim_id: str
    rule: str
    detail: str
    severity: str = "ERROR"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claimId": self.claim_id,
            "rule": self.rule,
            "detail": self.detail,
            "severity": self.severity,
        }


@dataclass
class SemanticReport:
    """``ok`` is True when no ERROR-level issues are present."""

    ok: bool
    issues: List[EliIssue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "issues": [i.to_dict() for i in self.issues]}


def validate_ledger_semantics(
    ledger: Union[Ledger, Dict[str, Any]],
    source_text: str,
    *,
    policy: Optional[EliPolicy] = None,
) -> SemanticReport:
    """Run validate_ledger and map every violation to an ERROR issue."""
    result = validate_ledger(ledger, source_text, policy=policy)
    issues = [
        EliIssue(claim_id=v.claim_id, rule=v.rule, detail=v.detail)
        for v in result.violations
    ]
    return SemanticReport(
        ok=not any(i.severity == "ERROR" for i in issues),
        issues=issues,
    )


__all__ = [
    "MISSING_ID",
    "INVALID_TYPE",
    "NO_SPAN_REF",
    "INVALID_SPAN",
    "FACT_WITHOUT_EVIDENCE",
    "INFERENCE_LAUNDERING",
    "RULES",
    "validate_ledger",
    "validate_ledger_semantics",
    "EliIssue",
    "SemanticReport",
]

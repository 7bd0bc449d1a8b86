"""
ELI (Epistemic Ledger of Inferences) data types.

A ledger is the ordered list of claims tagged from one response. Each claim
carries an epistemic type and span references into the original text.

Span offsets are Python string indices (Unicode code points), half-open
``[start, end)``. The tagger produces them and the validator slices the
same ``str`` with them, so both sides agree on the unit.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence


class EpiType(str, Enum):
    FACT = "FACT"
    INFERENCE = "INFERENCE"
    ASSERTION = "ASSERTION"
    OPINION = "OPINION"


VALID_TYPES = frozenset(t.value for t in EpiType)


# ---------------------------------------------------------------------------
# Ledger types
# ---------------------------------------------------------------------------

@dataclass
class Claim:
    """One classified statement extracted from a response."""

    id: str
    type: str
    text: str
    span_refs: List[Sequence[int]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "text": self.text,
            "span_refs": [list(span) for span in self.span_refs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Claim":
        return cls(
            id=data.get("id", ""),
            type=data.get("type", ""),
            text=data.get("text", ""),
            span_refs=[list(span) for span in data.get("span_refs") or []],
        )


@dataclass
class Ledger:
    """Tagging result for one response; claims are in textual order."""

    tagged_at: str
    sentence_count: int
    claims: List[Claim] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tagged_at": self.tagged_at,
            "sentence_count": self.sentence_count,
            "claims": [c.to_dict() for c in self.claims],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ledger":
        return cls(
            tagged_at=data.get("tagged_at", ""),
            sentence_count=int(data.get("sentence_count", 0)),
            claims=[Claim.from_dict(c) for c in data.get("claims") or []],
        )


# ---------------------------------------------------------------------------
# Validation types
# ---------------------------------------------------------------------------

@dataclass
class ValidationViolation:
    """A single rule failure for one claim."""

    claim_id: str
    rule: str
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return {"claimId": self.claim_id, "rule": self.rule, "detail": self.detail}


@dataclass
class ValidationResult:
    """Aggregate validation result."""

    passed: bool
    violations: List[ValidationViolation] = field(default_factory=list)

    def rules(self) -> List[str]:
        return [v.rule for v in self.violations]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "violations": [v.to_dict() for v in self.violations],
        }


__all__ = [
    "EpiType",
    "VALID_TYPES",
    "Claim",
    "Ledger",
    "ValidationViolation",
    "ValidationResult",
]

"""
Heuristic policy for the ELI tagger and validator.

The classification cues and the evidence threshold are reference
heuristics, not ground truth, so they live in one frozen object that callers
can replace. ``EliPolicy()`` reads ``ELI_FACT_MIN_EVIDENCE_CHARS`` from the
environment; everything else defaults to the reference rule set.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Pattern, Tuple

# Ordered: opinion cues dominate inference cues, which dominate fact cues.
OPINION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(
        r"\b(I think|I believe|in my (view|opinion)|arguably|it (seems|appears) that)\b",
        re.IGNORECASE,
    ),
)

INFERENCE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(
        r"\b(therefore|thus|hence|it follows|consequently|suggests?|implies?|so)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(likely|probably|presumably|appears? to|seems? to|may|might|could)\b",
        re.IGNORECASE,
    ),
)

FACT_MARKERS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b(is|are|was|were|has|have|had)\b.*\."),
    # year reference
    re.compile(r"\b\d{4}\b"),
    # "The earth orbits the sun." -- determiner, noun phrase, inflected verb
    re.compile(
        r"^(the|a|an|this|these|those|that|its|their|our)\s+(\w+\s+){0,2}?\w+(s|ed)\b[^?!]*\.$",
        re.IGNORECASE,
    ),
)

HEDGE_PATTERN: Pattern[str] = re.compile(
    r"\b(therefore|thus|hence|consequently|suggests?|implies?|likely|probably"
    r"|may|might|could|appears?|seems?)\b",
    re.IGNORECASE,
)

SENTENCE_BOUNDARY: Pattern[str] = re.compile(r"(?<=[.!?])\s+")

DEFAULT_FACT_MIN_EVIDENCE_CHARS = 10


def _fact_min_evidence_chars() -> int:
    raw = os.environ.get("ELI_FACT_MIN_EVIDENCE_CHARS")
    if not raw:
        return DEFAULT_FACT_MIN_EVIDENCE_CHARS
    try:
        return max(0, int(raw))
    except ValueError:
        return DEFAULT_FACT_MIN_EVIDENCE_CHARS


@dataclass(frozen=True)
class EliPolicy:
    """Tagger cues and validator thresholds."""

    fact_min_evidence_chars: int = field(default_factory=_fact_min_evidence_chars)
    opinion_patterns: Tuple[Pattern[str], ...] = OPINION_PATTERNS
    inference_patterns: Tuple[Pattern[str], ...] = INFERENCE_PATTERNS
    fact_markers: Tuple[Pattern[str], ...] = FACT_MARKERS
    hedge_pattern: Pattern[str] = HEDGE_PATTERN
    sentence_boundary: Pattern[str] = SENTENCE_BOUNDARY


def default_policy() -> EliPolicy:
    return EliPolicy()


__all__ = [
    "EliPolicy",
    "default_policy",
    "DEFAULT_FACT_MIN_EVIDENCE_CHARS",
    "OPINION_PATTERNS",
    "INFERENCE_PATTERNS",
    "FACT_MARKERS",
    "HEDGE_PATTERN",
    "SENTENCE_BOUNDARY",
]

"""
ELI tagger: split a response into sentences and classify each one.

This is a reference heuristic, not an NLP system. It is deterministic apart
from claim ids and the ledger timestamp, and depends on nothing but ``re``.

Algorithm:
  1. Split on sentence terminators (``.``, ``!``, ``?``) followed by whitespace.
  2. Locate each trimmed sentence in the original text, searching from the
     end of the previous match (spans never overlap and always advance,
     even when a sentence repeats verbatim).
  3. Classify: OPINION cues, then INFERENCE cues, then FACT markers,
     otherwise ASSERTION.
"""
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from halo_eli._receipts.base import utc_iso
from halo_eli.claims import Claim, EpiType, Ledger
from halo_eli.policy import EliPolicy, default_policy

logger = logging.getLogger("halo_eli.tagger")


def split_sentences(text: str, policy: Optional[EliPolicy] = None) -> List[str]:
    """Non-empty trimmed sentence units of *text*."""
    policy = policy or default_policy()
    pieces = (piece.strip() for piece in policy.sentence_boundary.split(text))
    return [piece for piece in pieces if piece]


def classify_sentence(sentence: str, policy: Optional[EliPolicy] = None) -> EpiType:
    """Return the epistemic type of one sentence."""
    policy = policy or default_policy()
    if any(p.search(sentence) for p in policy.opinion_patterns):
        return EpiType.OPINION
    if any(p.search(sentence) for p in policy.inference_patterns):
        return EpiType.INFERENCE
    if any(p.search(sentence) for p in policy.fact_markers):
        return EpiType.FACT
    return EpiType.ASSERTION


def tag_response(response: str, *, policy: Optional[EliPolicy] = None) -> Ledger:
    """
    Tag an LLM response and produce an ELI ledger.

    Args:
        response: Raw text returned by the LLM provider.
        policy: Classification cues (default: reference heuristics).

    Returns:
        Ledger with one claim per sentence. Empty or whitespace-only input
        yields ``sentence_count == 0`` and no claims.
    """
    policy = policy or default_policy()
    sentences = split_sentences(response, policy)

    claims: List[Claim] = []
    cursor = 0
    for sentence in sentences:
        start = response.find(sentence, cursor)
        end = start + len(sentence)
        cursor = end
        claims.append(Claim(
            id=str(uuid.uuid4()),
            type=classify_sentence(sentence, policy).value,
            text=sentence,
            span_refs=[[start, end]],
        ))

    logger.debug("tagged %d sentences into %d claims", len(sentences), len(claims))
    return Ledger(
        tagged_at=utc_iso(),
        sentence_count=len(sentences),
        claims=claims,
    )


__all__ = ["tag_response", "split_sentences", "classify_sentence"]

"""Tests for the ELI tagger."""

from __future__ import annotations

import pytest

from halo_eli.claims import EpiType, Ledger
from halo_eli.policy import EliPolicy
from halo_eli.tagger import classify_sentence, split_sentences, tag_response


class TestSplitSentences:
    def test_splits_on_terminators(self) -> None:
        assert split_sentences("One. Two! Three? Four") == ["One.", "Two!", "Three?", "Four"]

    def test_terminator_without_space_does_not_split(self) -> None:
        assert split_sentences("Version 1.5 is out.") == ["Version 1.5 is out."]

    def test_blank_pieces_dropped(self) -> None:
        assert split_sentences("   ") == []
        assert split_sentences("") == []


class TestClassify:
    @pytest.mark.parametrize(
        "sentence, expected",
        [
            ("I think the model is wrong.", EpiType.OPINION),
            ("In my opinion this is likely fine.", EpiType.OPINION),
            ("Therefore the answer is four.", EpiType.INFERENCE),
            ("This may break older clients.", EpiType.INFERENCE),
            ("This implies gravity is real.", EpiType.INFERENCE),
            ("So.", EpiType.INFERENCE),
            ("Paris is the capital of France.", EpiType.FACT),
            ("The treaty dates from 1648", EpiType.FACT),
            ("The earth orbits the sun.", EpiType.FACT),
            ("Go home now", EpiType.ASSERTION),
        ],
    )
    def test_precedence(self, sentence: str, expected: EpiType) -> None:
        assert classify_sentence(sentence) is expected

    def test_custom_policy_patterns(self) -> None:
        policy = EliPolicy(opinion_patterns=(), inference_patterns=(), fact_markers=())
        assert classify_sentence("I think therefore I am.", policy) is EpiType.ASSERTION


class TestTagResponse:
    def test_empty_input(self) -> None:
        ledger = tag_response("")
        assert isinstance(ledger, Ledger)
        assert ledger.sentence_count == 0
        assert ledger.claims == []

    def test_whitespace_only_input(self) -> None:
        ledger = tag_response("  \n\t ")
        assert ledger.sentence_count == 0
        assert ledger.claims == []

    def test_spans_slice_back_to_sentences(self) -> None:
        text = "  The earth orbits the sun.   This implies gravity is real.  "
        ledger = tag_response(text)
        assert ledger.sentence_count == 2
        for claim in ledger.claims:
            start, end = claim.span_refs[0]
            assert text[start:end] == claim.text

    def test_repeated_sentence_spans_advance(self) -> None:
        text = "It rains. It rains. It rains."
        ledger = tag_response(text)
        spans = [tuple(c.span_refs[0]) for c in ledger.claims]
        assert spans == [(0, 9), (10, 19), (20, 29)]

    def test_ids_are_unique(self) -> None:
        ledger = tag_response("A is B. A is B. A is B.")
        ids = [c.id for c in ledger.claims]
        assert len(set(ids)) == 3
        assert all(ids)

    def test_types_are_enum_values(self) -> None:
        ledger = tag_response("The earth orbits the sun. This implies gravity is real.")
        assert [c.type for c in ledger.claims] == ["FACT", "INFERENCE"]

    def test_ledger_dict_round_trip(self) -> None:
        ledger = tag_response("The earth orbits the sun.")
        data = ledger.to_dict()
        assert set(data) == {"tagged_at", "sentence_count", "claims"}
        assert data["tagged_at"].endswith("Z")
        again = Ledger.from_dict(data)
        assert again.claims[0].span_refs == [[0, 25]]

    def test_code_point_offsets(self) -> None:
        text = "Café au lait is a drink. It is hot."
        ledger = tag_response(text)
        second = ledger.claims[1]
        start, end = second.span_refs[0]
        assert text[start:end] == "It is hot."


AWKWARD_INPUTS = [
    "a. a. a.",
    "Same thing. Same thing. Same thing.",
    "   Leading and trailing.   Spaces here.   ",
    "\n\nNewlines.\n\nEverywhere.\n",
    "Tabs\tinside.\tAnd between.",
    "...",
    "? ! .",
    "Wait... what?! Really.",
    "\U0001F680 Launch. \U0001F389 Done! \U0001F600",
    "Café is open. It is late.",
    "No terminator at all",
    "x",
]


class TestSpanInvariant:
    @pytest.mark.parametrize("text", AWKWARD_INPUTS)
    def test_spans_are_in_bounds_and_slice_back(self, text: str) -> None:
        ledger = tag_response(text)
        assert len(ledger.claims) == ledger.sentence_count > 0
        previous_end = 0
        for claim in ledger.claims:
            ((start, end),) = claim.span_refs
            assert 0 <= start < end <= len(text)
            assert start >= previous_end
            assert text[start:end] == claim.text
            previous_end = end

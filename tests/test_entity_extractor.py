"""Tests for candidate-name extraction from questions."""

from __future__ import annotations

import pytest
from conftest import paris_extraction

from docugraphrag.engine.entity_extractor import (
    CandidateNameExtractor,
    CandidateNames,
    _build_catalogue,
    _exact_match,
    _fuzzy_match,
    _normalize_query,
    extract_candidate_names,
)
from docugraphrag.graph.mutations import GraphMutation
from docugraphrag.models import Chunk, Document

KNOWN_NAMES = [
    "Paris",
    "France",
    "Berlin",
    "Germany",
    "Eiffel Tower",
    "New York",
    "New York City",
    "The",
]


@pytest.fixture
def catalogue() -> dict[str, str]:
    return _build_catalogue(KNOWN_NAMES)


class TestNormalizeQuery:
    """Tests for query normalisation."""

    def test_uppercase(self):
        assert _normalize_query("hello world") == "HELLO WORLD"

    def test_collapse_whitespace(self):
        assert _normalize_query("  hello   world  ") == "HELLO WORLD"


class TestBuildCatalogue:
    """Tests for the known-name catalogue."""

    def test_maps_to_stored_name(self, catalogue):
        assert catalogue["EIFFEL TOWER"] == "Eiffel Tower"

    def test_stop_words_excluded(self, catalogue):
        assert "THE" not in catalogue

    def test_short_names_excluded(self):
        assert _build_catalogue(["EU", "UN"]) == {}


class TestExactMatch:
    """Tests for exact word-boundary matching."""

    def test_single_name(self, catalogue):
        assert _exact_match("WHAT IS THE CAPITAL OF FRANCE?", catalogue) == ["FRANCE"]

    def test_two_names(self, catalogue):
        result = _exact_match("IS BERLIN IN GERMANY?", catalogue)
        assert set(result) == {"BERLIN", "GERMANY"}

    def test_longest_name_wins(self, catalogue):
        result = _exact_match("WHERE IS NEW YORK CITY?", catalogue)
        assert result == ["NEW YORK CITY"]

    def test_no_partial_word_match(self, catalogue):
        # "PARISIAN" should not match "PARIS"
        assert _exact_match("A PARISIAN CAFE", catalogue) == []


class TestFuzzyMatch:
    """Tests for fuzzy token matching."""

    def test_misspelled_name(self, catalogue):
        assert "FRANCE" in _fuzzy_match(["FRANCEE"], catalogue)

    def test_bigram_match(self, catalogue):
        assert "EIFFEL TOWER" in _fuzzy_match(["EIFFEL", "TOWR"], catalogue)

    def test_no_match_below_threshold(self, catalogue):
        assert _fuzzy_match(["XYZABC"], catalogue) == []

    def test_empty_catalogue(self):
        assert _fuzzy_match(["PARIS"], {}) == []


class TestExtractCandidateNames:
    """Tests for extract_candidate_names."""

    def test_returns_stored_casing(self):
        result = extract_candidate_names("What is the capital of france?", KNOWN_NAMES)
        assert result.names == ["France"]
        assert result.matched_known

    def test_fuzzy_fallback(self):
        result = extract_candidate_names("Tell me about Germny", KNOWN_NAMES)
        assert result.names == ["Germany"]

    def test_content_words_when_nothing_known(self):
        result = extract_candidate_names("Who founded the company?", KNOWN_NAMES)
        assert not result.matched_known
        assert result.names == ["founded", "company"]

    def test_deduplication(self):
        result = extract_candidate_names("Paris, paris, PARIS", KNOWN_NAMES)
        assert result.names == ["Paris"]

    def test_raw_query_preserved(self):
        q = "Where is Berlin?"
        assert extract_candidate_names(q, KNOWN_NAMES).raw_query == q

    def test_dataclass_empty(self):
        assert CandidateNames().is_empty()
        assert not CandidateNames(names=["Paris"]).is_empty()


class TestCandidateNameExtractor:
    """Tests for the store-backed extractor."""

    @pytest.mark.asyncio
    async def test_uses_in_scope_entity_names(self, store, embedder):
        await store.create_document(Document(id="doc-1"))
        mutation = GraphMutation.from_extraction(paris_extraction())
        await store.write_chunk(
            Chunk("doc-1", 0, "Paris is the capital of France.", has_entities=True), mutation
        )

        extractor = CandidateNameExtractor(store)
        names = await extractor.extract("Tell me about France", {"doc-1"})

        assert names == ["France"]
        assert store.calls["list_entity_names"] == 1

    @pytest.mark.asyncio
    async def test_out_of_scope_names_not_known(self, store):
        await store.create_document(Document(id="doc-1"))
        mutation = GraphMutation.from_extraction(paris_extraction())
        await store.write_chunk(Chunk("doc-1", 0, "Paris.", has_entities=True), mutation)

        extractor = CandidateNameExtractor(store)
        names = await extractor.extract("Tell me about France", {"doc-2"})

        # Falls back to content words
        assert names == ["france"]

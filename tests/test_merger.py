"""Tests for result fusion and ranking."""

from __future__ import annotations

import pytest

from docugraphrag.engine.merger import RetrievalWeights, merge, merge_signals
from docugraphrag.models import Entity, EvidenceItem, Relationship, Signal


def item(content: str, score: float, doc: str = "doc-1", **kwargs) -> EvidenceItem:
    return EvidenceItem(content=content, document_id=doc, score=score, **kwargs)


class TestRetrievalWeights:
    """Tests for RetrievalWeights."""

    def test_defaults(self) -> None:
        w = RetrievalWeights()
        assert (w.vector, w.lexical, w.graph) == (0.4, 0.3, 0.3)
        assert w.total == pytest.approx(1.0)

    def test_weight_lookup(self) -> None:
        w = RetrievalWeights(vector=0.5, lexical=0.25, graph=0.25)
        assert w.weight(Signal.VECTOR) == 0.5
        assert w.weight(Signal.GRAPH) == 0.25

    def test_from_settings(self) -> None:
        from docugraphrag.config import Settings

        w = RetrievalWeights.from_settings(
            Settings(vector_weight=0.6, lexical_weight=0.2, graph_weight=0.2)
        )
        assert w.vector == 0.6


class TestMerge:
    """Tests for merge / merge_signals."""

    def test_fusion_adds_weighted_scores(self) -> None:
        result = merge([item("A", 0.8)], [item("A", 0.5)], [])
        assert len(result) == 1
        assert result[0].score == pytest.approx(0.8 * 0.4 + 0.5 * 0.3)
        assert result[0].score == pytest.approx(0.47)

    def test_fused_score_beats_single_contributions(self) -> None:
        result = merge([item("A", 0.8)], [item("A", 0.5)], [])
        assert result[0].score > 0.8 * 0.4
        assert result[0].score > 0.5 * 0.3

    def test_signal_scores_keep_raw_values(self) -> None:
        result = merge([item("A", 0.8)], [item("A", 0.5)], [item("A", 1.0)])
        scores = result[0].signal_scores
        assert scores.vector == 0.8
        assert scores.lexical == 0.5
        assert scores.graph == 1.0

    def test_deduplicates_by_content(self) -> None:
        result = merge(
            [item("A", 0.9), item("B", 0.7)],
            [item("B", 0.6), item("C", 0.5)],
            [item("A", 1.0), item("C", 0.5)],
        )
        contents = [r.content for r in result]
        assert sorted(contents) == ["A", "B", "C"]
        assert len(contents) == len(set(contents))

    def test_sorted_non_increasing(self) -> None:
        result = merge(
            [item("A", 0.7), item("B", 0.9)],
            [item("C", 1.0)],
            [item("D", 0.2), item("B", 0.5)],
        )
        scores = [r.score for r in result]
        assert scores == sorted(scores, reverse=True)

    def test_ties_keep_first_seen_order(self) -> None:
        # 0.3 * 0.4 == 0.4 * 0.3: vector item was seen first
        result = merge([item("V", 0.3)], [item("L", 0.4)], [])
        assert [r.content for r in result] == ["V", "L"]

    def test_ties_within_signal_keep_order(self) -> None:
        result = merge([], [item("X", 0.5), item("Y", 0.5), item("Z", 0.5)], [])
        assert [r.content for r in result] == ["X", "Y", "Z"]

    def test_deterministic(self) -> None:
        args = ([item("A", 0.5), item("B", 0.5)], [item("C", 0.6)], [item("A", 0.1)])
        first = [r.content for r in merge(*args)]
        second = [r.content for r in merge(*args)]
        assert first == second

    def test_truncates_to_limit(self) -> None:
        vector = [item(f"chunk {i}", 1.0 - i / 10) for i in range(8)]
        assert len(merge(vector, [], [], limit=5)) == 5
        assert len(merge(vector, [], [], limit=3)) == 3

    def test_empty_inputs(self) -> None:
        assert merge([], [], []) == []

    def test_unions_entities_and_relationships(self) -> None:
        paris = Entity(text="Paris", type="LOCATION")
        france = Entity(text="France", type="LOCATION")
        rel = Relationship(
            source="Paris",
            source_type="LOCATION",
            target="France",
            target_type="LOCATION",
            type="LOCATED_IN",
        )
        result = merge(
            [item("A", 0.8, entities=[paris])],
            [],
            [item("A", 1.0, entities=[paris, france], relationships=[rel, rel])],
        )
        assert [e.text for e in result[0].entities] == ["Paris", "France"]
        assert len(result[0].relationships) == 1

    def test_does_not_mutate_inputs(self) -> None:
        source = item("A", 0.8)
        merge([source], [item("A", 0.5)], [])
        assert source.score == 0.8

    def test_missing_signals_contribute_nothing(self) -> None:
        result = merge_signals({Signal.LEXICAL: [item("A", 1.0)]}, RetrievalWeights())
        assert result[0].score == pytest.approx(0.3)
        assert result[0].signal_scores.vector == 0.0

    def test_mapping_order_does_not_change_ties(self) -> None:
        results = {Signal.GRAPH: [item("G", 0.4)], Signal.VECTOR: [item("V", 0.3)]}
        # 0.4 * 0.3 == 0.3 * 0.4: vector still ranks first
        merged = merge_signals(results, RetrievalWeights())
        assert [r.content for r in merged] == ["V", "G"]

    def test_weights_not_summing_to_one_still_merge(self) -> None:
        result = merge([item("A", 1.0)], [], [], weights=RetrievalWeights(1.0, 1.0, 1.0))
        assert result[0].score == pytest.approx(1.0)

    def test_repeated_content_counts_once_per_signal(self) -> None:
        """Same text from two documents in scope must not double a signal's weight."""
        result = merge(
            [item("X", 0.7, doc="doc-1"), item("X", 0.7, doc="doc-2"), item("Y", 0.8)],
            [item("Y", 0.5)],
            [],
        )
        assert [r.content for r in result] == ["Y", "X"]
        assert result[1].score == pytest.approx(0.7 * 0.4)

    def test_repeated_content_uses_best_score(self) -> None:
        result = merge([item("X", 0.3), item("X", 0.9), item("X", 0.5)], [], [])
        assert result[0].signal_scores.vector == 0.9
        assert result[0].score == pytest.approx(0.9 * 0.4)

    def test_score_is_weighted_sum_of_signal_scores(self) -> None:
        weights = RetrievalWeights()
        result = merge(
            [item("A", 0.6), item("A", 0.8)],
            [item("A", 0.5), item("A", 0.25)],
            [item("A", 1.0), item("A", 1.0)],
            weights=weights,
        )
        scores = result[0].signal_scores
        expected = sum(weights.weight(s) * scores.get(s) for s in Signal)
        assert result[0].score == pytest.approx(expected)

    def test_relationships_with_different_endpoint_types_kept(self) -> None:
        as_place = Relationship("Paris", "LOCATION", "France", "LOCATION", "PART_OF")
        as_person = Relationship("Paris", "PERSON", "France", "LOCATION", "PART_OF")
        result = merge(
            [item("A", 0.8, relationships=[as_place])],
            [],
            [item("A", 1.0, relationships=[as_place, as_person])],
        )
        assert result[0].relationships == [as_place, as_person]

"""Tests for KnowledgeIntegrator merging and validation."""

import math

import pytest

from associa_core.knowledge_integrator import (
    ConflictResolution,
    KnowledgeFact,
    KnowledgeIntegrator,
)


@pytest.fixture
def integrator(store):
    return KnowledgeIntegrator(store)


class TestAddKnowledge:
    def test_creates_edge_with_provenance(self, integrator, store):
        assert integrator.add_knowledge("A", "B", 0.5, "wiki") is True
        edge = store.get_edge("A", "B")
        assert edge.weight == pytest.approx(0.5)
        assert edge.metadata["source"] == "wiki"
        assert edge.metadata["strategy"] == "AVERAGE"

    def test_average(self, integrator, store):
        integrator.add_knowledge("A", "B", 0.5, "wiki", ConflictResolution.AVERAGE)
        assert integrator.add_knowledge("A", "B", 0.9, "wiki", ConflictResolution.AVERAGE)
        assert store.get_edge("A", "B").weight == pytest.approx(0.7)
        assert len(store.get_edges("A")) == 1

    @pytest.mark.parametrize("strategy,expected", [
        (ConflictResolution.KEEP_HIGHER, 0.6),
        (ConflictResolution.KEEP_LOWER, 0.2),
        (ConflictResolution.REPLACE, 0.2),
    ])
    def test_conflict_strategies(self, integrator, store, strategy, expected):
        integrator.add_knowledge("A", "B", 0.6)
        assert integrator.add_knowledge("A", "B", 0.2, "feed", strategy) is True
        edge = store.get_edge("A", "B")
        assert edge.weight == pytest.approx(expected)
        assert edge.metadata["source"] == "feed"

    def test_reject_keeps_existing(self, integrator, store):
        integrator.add_knowledge("A", "B", 0.5, "wiki")
        assert integrator.add_knowledge("A", "B", 0.9, "feed", ConflictResolution.REJECT) is False
        edge = store.get_edge("A", "B")
        assert edge.weight == pytest.approx(0.5)
        assert edge.metadata["source"] == "wiki"

    def test_reject_allows_new_edges(self, integrator, store):
        assert integrator.add_knowledge("A", "B", 0.4, strategy=ConflictResolution.REJECT)

    @pytest.mark.parametrize("source,target,weight", [
        (None, "B", 0.5),
        ("A", None, 0.5),
        ("", "B", 0.5),
        ("A", "   ", 0.5),
        ("A", "A", 0.5),
        ("A", "B", math.nan),
        ("A", "B", math.inf),
    ])
    def test_invalid_input_returns_false(self, integrator, store, source, target, weight):
        assert integrator.add_knowledge(source, target, weight) is False
        assert store.get_stats()["edge_count"] == 0

    @pytest.mark.parametrize("weight,expected", [(1.5, 1.0), (-0.2, 0.0)])
    def test_out_of_range_weight_clamped(self, integrator, store, weight, expected):
        assert integrator.add_knowledge("A", "B", weight) is True
        assert store.get_edge("A", "B").weight == pytest.approx(expected)


class TestBatch:
    def test_mixed_batch(self, integrator, store):
        facts = [
            ("a", "b", 0.4),
            KnowledgeFact("b", "c", 0.6),
            ("c", "c", 0.5),
            ("", "d", 0.5),
        ]
        assert integrator.add_knowledge_batch(facts, "import") == 2
        assert store.get_edge("b", "c").metadata["source"] == "import"

    def test_empty_batch(self, integrator):
        assert integrator.add_knowledge_batch([]) == 0


class TestRemoveAndUpdate:
    def test_remove(self, integrator, store):
        integrator.add_knowledge("A", "B", 0.5)
        assert integrator.remove_knowledge("A", "B") is True
        assert integrator.remove_knowledge("A", "B") is False
        assert store.get_edge("A", "B") is None

    def test_update_weight(self, integrator, store):
        integrator.add_knowledge("A", "B", 0.5)
        assert integrator.update_weight("A", "B", 0.25) is True
        assert store.get_edge("A", "B").weight == pytest.approx(0.25)

    def test_update_missing_edge(self, integrator):
        assert integrator.update_weight("A", "B", 0.25) is False


class TestValidateKnowledge:
    @pytest.mark.parametrize("source,target,weight", [
        ("X", "X", 0.5),
        ("", "Y", 0.5),
        ("X", "Y", 1.5),
        ("X", "Y", -0.1),
        (None, "Y", 0.5),
    ])
    def test_invalid(self, integrator, source, target, weight):
        assert integrator.validate_knowledge(source, target, weight) is False

    @pytest.mark.parametrize("weight", [0.0, 0.5, 1.0])
    def test_valid(self, integrator, weight):
        assert integrator.validate_knowledge("X", "Y", weight) is True

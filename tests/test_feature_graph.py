"""Tests for the feature store contract and its in-memory implementation."""

import gc
import hashlib
import json
import threading

import pytest

from feature_graph import (
    Feature,
    FeatureWeight,
    InMemoryFeatureStore,
    MemoryRecord,
    as_feature,
    as_features,
)


def _memory(inputs=("a",), outputs=("x", "y"), predicted="x"):
    return MemoryRecord(
        input_values=tuple(inputs),
        output_keys=tuple(outputs),
        policy=((0.6, 0.4),),
        predicted_feature=predicted,
        prediction=(0.6, 0.4),
    )


class TestFeature:
    def test_identity_is_value(self):
        assert Feature("sell", "action") == Feature("sell")
        assert hash(Feature("sell", "action")) == hash(Feature("sell"))

    def test_case_sensitive(self):
        assert Feature("Sell") != Feature("sell")

    def test_key_without_type(self):
        assert Feature("sell").key == hashlib.sha256(b"sell").hexdigest()

    def test_key_with_type(self):
        assert Feature("sell", "action").key == hashlib.sha256(b"sell|action").hexdigest()

    def test_as_feature_accepts_strings(self):
        assert as_feature("sell") == Feature("sell")
        assert as_features(["a", Feature("b")]) == [Feature("a"), Feature("b")]

    def test_as_feature_rejects_other_types(self):
        with pytest.raises(TypeError):
            as_feature(42)


class TestEdges:
    def test_single_canonical_edge(self, store):
        store.create_weighted_connection("a", "b", 0.3)
        store.create_weighted_connection("a", "b", 0.7)
        edges = store.get_edges("a")
        assert len(edges) == 1
        assert edges[0].weight == pytest.approx(0.7)

    def test_connection_creates_features(self, store):
        store.create_weighted_connection("a", "b", 0.3)
        assert store.find_by_value("a") == Feature("a")
        assert store.find_by_value("b") == Feature("b")

    def test_outgoing_insertion_order(self, store):
        for target in ("c", "a", "b"):
            store.create_weighted_connection("root", target, 0.5)
        assert [e.target for e in store.get_edges("root")] == ["c", "a", "b"]

    def test_returned_edges_are_copies(self, store):
        store.create_weighted_connection("a", "b", 0.3)
        edge = store.get_edge("a", "b")
        edge.weight = 0.99
        edge.metadata["source"] = "tamper"
        stored = store.get_edge("a", "b")
        assert stored.weight == pytest.approx(0.3)
        assert stored.metadata == {}

    def test_save_edge_requires_endpoints(self, store):
        with pytest.raises(ValueError):
            store.save_edge(FeatureWeight(source="", target="b", weight=0.1))

    def test_save_edge_stamps_last_updated(self, store):
        saved = store.save_edge(FeatureWeight(source="a", target="b", weight=0.1))
        assert saved.last_updated > 0

    def test_get_connected_features(self, store):
        store.create_weighted_connection("a", "b", 0.3)
        assert store.get_connected_features("a", "b") == [Feature("a")]
        assert store.get_connected_features("b", "a") == []

    def test_delete_edge(self, store):
        store.create_weighted_connection("a", "b", 0.3)
        edge = store.get_edge("a", "b")
        assert store.delete_edge(edge) is True
        assert store.delete_edge(edge) is False
        assert store.get_edges("a") == []
        assert store.get_edge("a", "b") is None

    def test_save_feature_keeps_existing(self, store):
        first = store.save_feature(Feature("a", "tag"))
        second = store.save_feature(Feature("a", "other"))
        assert second is first
        assert second.type == "tag"


class TestEdgeLock:
    def test_read_modify_write_is_serialized(self, store):
        store.create_weighted_connection("a", "b", 0.0)

        def bump():
            for _ in range(200):
                with store.edge_lock("a", "b"):
                    edge = store.get_edge("a", "b")
                    edge.weight += 1.0
                    store.save_edge(edge)

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get_edge("a", "b").weight == pytest.approx(1600.0)

    def test_unused_locks_are_released(self, store):
        with store.edge_lock("a", "b"):
            assert ("a", "b") in store._edge_locks
        gc.collect()
        assert ("a", "b") not in store._edge_locks

    def test_same_pair_shares_lock_while_held(self, store):
        with store.edge_lock("a", "b"):
            held = store._edge_locks[("a", "b")]
            assert held.locked()
            assert not held.acquire(blocking=False)


class TestMemories:
    def test_ids_are_assigned_incrementally(self, store):
        first = store.save_memory(_memory())
        second = store.save_memory(_memory())
        assert (first.memory_id, second.memory_id) == (1, 2)
        assert store.find_memory(2) == second

    def test_find_missing_memory(self, store):
        assert store.find_memory(99) is None

    def test_policy_matrix(self):
        assert _memory().policy_matrix().shape == (1, 2)


class TestPersistence:
    def test_save_and_load(self, store, tmp_path):
        store.create_weighted_connection("a", "b", 0.25)
        store.create_weighted_connection("a", "c", 0.75)
        store.save_memory(_memory())
        path = tmp_path / "state.json"
        store.save(str(path))

        data = json.loads(path.read_text())
        assert "a|b" in data["edges"]

        restored = InMemoryFeatureStore()
        restored.load(str(path))

        assert [e.target for e in restored.get_edges("a")] == ["b", "c"]
        assert restored.get_edge("a", "c").weight == pytest.approx(0.75)
        memory = restored.find_memory(1)
        assert memory.predicted_feature == "x"
        assert memory.created_at.tzinfo is not None
        assert restored.save_memory(_memory()).memory_id == 2

    def test_stats(self, stock_graph):
        stats = stock_graph.get_stats()
        assert stats["feature_count"] == 3
        assert stats["edge_count"] == 2
        assert stats["memory_count"] == 0
        assert stats["avg_edge_weight"] == pytest.approx(0.7)
        assert stats["max_edge_weight"] == pytest.approx(0.8)

"""
Associa Feature Graph - Weighted Feature Store

Storage contract and bundled in-memory implementation for the feature
graph every Associa component reads and writes.  Features are value
objects identified by their exact string value; edges are directed,
weighted associations between two features.

The reasoning, prediction, learning and generation layers never talk to
a concrete backend.  They receive a FeatureGraphStore through their
constructor, so a graph database adapter can replace the in-memory store
without touching the algorithms.

Identity notes:
    A feature's value is its identity (case-sensitive).  ``Feature.key``
    is the SHA-256 hex digest of the value, or of ``value|type`` when a
    type tag is present, for backends that want a fixed-size key.

Edge notes:
    There is exactly one canonical edge per (source, target) pair.
    create_weighted_connection() on an existing pair rewrites that edge;
    it never adds a parallel one.  Confidence edges live in [0.0, 1.0];
    learning-derived edges are unconstrained.

Concurrency notes:
    Internal dictionaries are guarded by a re-entrant lock.  Callers that
    read an edge, compute a new weight and write it back must hold
    ``edge_lock(source, target)`` for the whole read-modify-write so two
    writers on the same pair cannot lose an update.  Per-pair locks are
    held weakly and dropped once no caller is using them.

Serialization format notes:
    State is persisted as a single JSON document (features, edges,
    memory records, counters).  Edge keys are flattened from
    (source, target) tuples to "source|target" strings.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: Feature / FeatureWeight / MemoryRecord dataclasses, the
#         FeatureGraphStore interface, and InMemoryFeatureStore with JSON
#         persistence and per-edge write locks.
#   Why:  The core algorithms need a narrow, injectable store contract
#         instead of framework-wired repositories.
#   How:  Dict-based storage keyed by value and (source, target); an
#         adjacency index keeps outgoing edges in insertion order so
#         traversal order is deterministic.
# [2026-10-19] Per-pair edge locks are weakly referenced.
#   What: _edge_locks is a WeakValueDictionary.
#   Why:  A long-running store touched every pair it ever locked and
#         kept one lock per pair forever.
# -------------------
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
import weakref
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger("associa.feature_graph")

__version__ = "0.1.0"

SNAPSHOT_VERSION = "1.0.0"


class MemoryNotFoundError(LookupError):
    """Raised when a referenced memory record does not exist."""


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Feature:
    """A named unit of knowledge acting as a graph node.

    Equality and hashing use ``value`` only, so two features with the
    same value are the same node regardless of their type tag.

    Attributes:
        value: Exact string value (case-sensitive identity).
        type: Optional type tag folded into ``key``.
    """

    value: str
    type: str = field(default="", compare=False)

    @property
    def key(self) -> str:
        raw = f"{self.value}|{self.type}" if self.type else self.value
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def __str__(self) -> str:
        return self.value


FeatureLike = Union[Feature, str]


def as_feature(item: FeatureLike) -> Feature:
    """Accept either a Feature or a bare value string."""
    if isinstance(item, Feature):
        return item
    if isinstance(item, str):
        return Feature(item)
    raise TypeError(f"expected Feature or str, got {type(item).__name__}")


def as_features(items: Sequence[FeatureLike]) -> List[Feature]:
    return [as_feature(item) for item in items]


@dataclass
class FeatureWeight:
    """Directed, weighted association from one feature to another.

    Attributes:
        source: Value of the source feature (the "when I see this..." side).
        target: Value of the result feature.
        weight: Association strength.
        last_updated: Unix timestamp of the most recent write.
        metadata: Provenance and application-specific data.
    """

    source: str = ""
    target: str = ""
    weight: float = 0.0
    last_updated: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MemoryRecord:
    """Immutable snapshot of one served prediction.

    Consulted by the learner as "what the model believed" when the
    prediction was made.

    Attributes:
        input_values: Input feature values, in policy row order.
        output_keys: Candidate output values, in policy column order.
        policy: Full input x output weight matrix at prediction time.
        predicted_feature: Arg-max output value.
        prediction: Normalized per-candidate scores.
        memory_id: Store-assigned identifier (None until saved).
        created_at: UTC creation time.
    """

    input_values: Tuple[str, ...]
    output_keys: Tuple[str, ...]
    policy: Tuple[Tuple[float, ...], ...]
    predicted_feature: str
    prediction: Tuple[float, ...]
    memory_id: Optional[int] = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def policy_matrix(self) -> np.ndarray:
        return np.array(self.policy, dtype=float)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "created_at": self.created_at.isoformat(),
            "input_values": list(self.input_values),
            "output_keys": list(self.output_keys),
            "policy": [list(row) for row in self.policy],
            "predicted_feature": self.predicted_feature,
            "prediction": list(self.prediction),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryRecord":
        return cls(
            input_values=tuple(data["input_values"]),
            output_keys=tuple(data["output_keys"]),
            policy=tuple(tuple(float(v) for v in row) for row in data["policy"]),
            predicted_feature=data["predicted_feature"],
            prediction=tuple(float(v) for v in data["prediction"]),
            memory_id=data.get("memory_id"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


# ---------------------------------------------------------------------------
# Store Interface
# ---------------------------------------------------------------------------

class FeatureGraphStore(ABC):
    """Narrow storage contract consumed by the Associa core.

    Implementations guarantee value-keyed feature identity and a single
    canonical edge per (source, target) pair.  Objects returned from the
    store are snapshots: mutate them and hand them back via save_edge().
    """

    @abstractmethod
    def find_by_value(self, value: str) -> Optional[Feature]:
        """Look up a feature by its exact value."""
        ...

    @abstractmethod
    def get_connected_features(self, source: str, target: str) -> List[Feature]:
        """Source-side feature(s) already edged to ``target``; empty if none."""
        ...

    @abstractmethod
    def create_weighted_connection(
        self, source: str, target: str, weight: float,
    ) -> FeatureWeight:
        """Create (or rewrite) the canonical edge, creating features as needed."""
        ...

    @abstractmethod
    def get_edge(self, source: str, target: str) -> Optional[FeatureWeight]:
        ...

    @abstractmethod
    def get_edges(self, source: str) -> List[FeatureWeight]:
        """Outgoing edges of ``source`` in insertion order."""
        ...

    @abstractmethod
    def save_feature(self, feature: Feature) -> Feature:
        ...

    @abstractmethod
    def save_edge(self, edge: FeatureWeight) -> FeatureWeight:
        ...

    @abstractmethod
    def delete_edge(self, edge: FeatureWeight) -> bool:
        ...

    @abstractmethod
    def find_memory(self, memory_id: int) -> Optional[MemoryRecord]:
        ...

    @abstractmethod
    def save_memory(self, memory: MemoryRecord) -> MemoryRecord:
        """Persist a memory record, assigning ``memory_id`` if unset."""
        ...

    @abstractmethod
    def list_memories(self) -> List[MemoryRecord]:
        ...

    @abstractmethod
    def edge_lock(self, source: str, target: str):
        """Context manager serializing writers of one (source, target) edge."""
        ...


# ---------------------------------------------------------------------------
# In-Memory Store
# ---------------------------------------------------------------------------

class InMemoryFeatureStore(FeatureGraphStore):
    """Dict-backed feature graph with JSON persistence.

    Usage:
        store = InMemoryFeatureStore()
        store.create_weighted_connection("stock_price_drop", "sell", 0.8)
        store.get_edges("stock_price_drop")

        # Persist
        store.save("associa_state.json")
        store.load("associa_state.json")
    """

    def __init__(self) -> None:
        self.features: Dict[str, Feature] = {}
        self.edges: Dict[Tuple[str, str], FeatureWeight] = {}
        self.memories: Dict[int, MemoryRecord] = {}

        # source value -> target values, insertion ordered
        self._adjacency: Dict[str, List[str]] = {}

        self._lock = threading.RLock()
        # Entries vanish once no caller holds the lock object
        self._edge_locks: "weakref.WeakValueDictionary[Tuple[str, str], Any]" = (
            weakref.WeakValueDictionary()
        )
        self._memory_id_counter = 0

    # -------------------------------------------------------------------
    # Features
    # -------------------------------------------------------------------

    def find_by_value(self, value: str) -> Optional[Feature]:
        with self._lock:
            return self.features.get(value)

    def save_feature(self, feature: Feature) -> Feature:
        with self._lock:
            existing = self.features.get(feature.value)
            if existing is not None:
                return existing
            self.features[feature.value] = feature
            logger.debug("Created feature '%s'", feature.value)
            return feature

    # -------------------------------------------------------------------
    # Edges
    # -------------------------------------------------------------------

    def get_connected_features(self, source: str, target: str) -> List[Feature]:
        with self._lock:
            if (source, target) not in self.edges:
                return []
            return [self.features[source]]

    def create_weighted_connection(
        self, source: str, target: str, weight: float,
    ) -> FeatureWeight:
        with self._lock:
            existing = self.edges.get((source, target))
            if existing is not None:
                edge = replace(existing, weight=float(weight),
                               metadata=dict(existing.metadata))
            else:
                edge = FeatureWeight(source=source, target=target,
                                     weight=float(weight))
            return self.save_edge(edge)

    def get_edge(self, source: str, target: str) -> Optional[FeatureWeight]:
        with self._lock:
            edge = self.edges.get((source, target))
            return self._copy_edge(edge) if edge is not None else None

    def get_edges(self, source: str) -> List[FeatureWeight]:
        with self._lock:
            return [
                self._copy_edge(self.edges[(source, target)])
                for target in self._adjacency.get(source, [])
            ]

    def save_edge(self, edge: FeatureWeight) -> FeatureWeight:
        if not edge.source or not edge.target:
            raise ValueError("edge source and target must be non-empty")

        with self._lock:
            self.save_feature(Feature(edge.source))
            self.save_feature(Feature(edge.target))

            key = (edge.source, edge.target)
            stored = self._copy_edge(edge)
            stored.weight = float(stored.weight)
            stored.last_updated = time.time()

            if key not in self.edges:
                self._adjacency.setdefault(edge.source, []).append(edge.target)
            self.edges[key] = stored
            return self._copy_edge(stored)

    def delete_edge(self, edge: FeatureWeight) -> bool:
        key = (edge.source, edge.target)
        with self._lock:
            if key not in self.edges:
                return False
            del self.edges[key]
            self._adjacency[edge.source].remove(edge.target)
            return True

    @contextmanager
    def edge_lock(self, source: str, target: str) -> Iterator[None]:
        with self._lock:
            lock = self._edge_locks.get((source, target))
            if lock is None:
                lock = threading.Lock()
                self._edge_locks[(source, target)] = lock
        with lock:
            yield

    # -------------------------------------------------------------------
    # Memory Records
    # -------------------------------------------------------------------

    def find_memory(self, memory_id: int) -> Optional[MemoryRecord]:
        with self._lock:
            return self.memories.get(memory_id)

    def save_memory(self, memory: MemoryRecord) -> MemoryRecord:
        with self._lock:
            if memory.memory_id is None:
                self._memory_id_counter += 1
                memory = replace(memory, memory_id=self._memory_id_counter)
            else:
                self._memory_id_counter = max(self._memory_id_counter,
                                              memory.memory_id)
            self.memories[memory.memory_id] = memory
            return memory

    def list_memories(self) -> List[MemoryRecord]:
        with self._lock:
            return list(self.memories.values())

    # -------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------

    def save(self, filepath: str) -> None:
        """Save full state to a JSON file."""
        state = self._export_state()
        with open(filepath, "w") as f:
            json.dump(state, f, indent=2)
        logger.info("Feature graph saved to %s (%d features, %d edges, %d memories)",
                    filepath, len(self.features), len(self.edges),
                    len(self.memories))

    def load(self, filepath: str) -> None:
        """Replace all current state with the contents of a JSON file."""
        with open(filepath, "r") as f:
            state = json.load(f)
        self._import_state(state)
        logger.info("Feature graph loaded from %s (%d features, %d edges, %d memories)",
                    filepath, len(self.features), len(self.edges),
                    len(self.memories))

    def _export_state(self) -> Dict[str, Any]:
        with self._lock:
            edges_serialized = {
                f"{src}|{tgt}": asdict(edge)
                for (src, tgt), edge in self.edges.items()
            }
            return {
                "version": SNAPSHOT_VERSION,
                "timestamp": time.time(),
                "features": [
                    {"value": f.value, "type": f.type}
                    for f in self.features.values()
                ],
                "edges": edges_serialized,
                "memories": [m.to_dict() for m in self.memories.values()],
                "counters": {"memory_id_counter": self._memory_id_counter},
            }

    def _import_state(self, state: Dict[str, Any]) -> None:
        with self._lock:
            self.features = {}
            for data in state.get("features", []):
                feature = Feature(data["value"], data.get("type", ""))
                self.features[feature.value] = feature

            # Edge records carry their own endpoints; the flattened key
            # is not parsed.
            self.edges = {}
            self._adjacency = {}
            for edge_data in state.get("edges", {}).values():
                edge = FeatureWeight(**edge_data)
                self.edges[(edge.source, edge.target)] = edge
                self._adjacency.setdefault(edge.source, []).append(edge.target)
                self.features.setdefault(edge.source, Feature(edge.source))
                self.features.setdefault(edge.target, Feature(edge.target))

            self.memories = {}
            for mem_data in state.get("memories", []):
                memory = MemoryRecord.from_dict(mem_data)
                self.memories[memory.memory_id] = memory

            counters = state.get("counters", {})
            self._memory_id_counter = counters.get(
                "memory_id_counter", max(self.memories, default=0)
            )

    # -------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Current store statistics for logging and the CLI status view."""
        with self._lock:
            weights = [e.weight for e in self.edges.values()]
            return {
                "version": __version__,
                "feature_count": len(self.features),
                "edge_count": len(self.edges),
                "memory_count": len(self.memories),
                "avg_edge_weight": float(np.mean(weights)) if weights else 0.0,
                "max_edge_weight": float(np.max(weights)) if weights else 0.0,
            }

    @staticmethod
    def _copy_edge(edge: FeatureWeight) -> FeatureWeight:
        return replace(edge, metadata=dict(edge.metadata))

"""
Associa Core - Reasoning Engine

Confidence-bounded multi-hop traversal over the feature graph.

For every query feature that resolves in the store, reason() runs one
depth-first walk and returns it as a ReasoningPath:

  - The root is recorded first with the synthetic weight 1.0.
  - From the current feature, every outgoing edge with
    weight >= min_confidence whose target is not yet on the path is
    appended (with the edge weight) and explored while hop budget
    remains.
  - total_confidence is the mean of all recorded weights, root included.

Hop budget: the root consumes one hop.  max_hops=1 yields the root and
its direct neighbours, max_hops=2 adds neighbours of neighbours, and
max_hops=0 yields no paths at all.

Cycle guard: a per-call arena maps feature value -> generation stamp.
Each root gets a fresh generation, so "visited" is a single dict lookup
and nothing needs clearing between roots.  The arena is local to the
call, so concurrent reason() calls never share visited state.

Query features that do not resolve are skipped; reasoning degrades per
feature instead of failing the whole call.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: ReasoningPath dataclass and ReasoningEngine with reason(),
#         compute_attention_scores() and gather_relevant_features().
#   Why:  Query answering and generation context both start from the
#         graph neighbourhood of the query features.
#   How:  Recursive DFS bounded by max_hops with generation-stamped
#         visited marks instead of cloning a visited set per branch.
# -------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

import numpy as np

from feature_graph import Feature, FeatureGraphStore, FeatureLike, as_feature

logger = logging.getLogger("associa.reasoning")

ROOT_WEIGHT = 1.0


@dataclass
class ReasoningPath:
    """Ordered trace of one traversal.

    Attributes:
        features: Visited features, root first.
        weights: Weight recorded for each feature (1.0 for the root).
        steps: Human-readable label for each step.
        total_confidence: Mean of ``weights`` once computed.
        metadata: Caller-supplied annotations.
    """

    features: List[Feature] = field(default_factory=list)
    weights: List[float] = field(default_factory=list)
    steps: List[str] = field(default_factory=list)
    total_confidence: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_step(self, feature: Feature, weight: float, description: str) -> None:
        self.features.append(feature)
        self.weights.append(float(weight))
        self.steps.append(description)

    def compute_total_confidence(self) -> float:
        self.total_confidence = float(np.mean(self.weights)) if self.weights else 0.0
        return self.total_confidence

    @property
    def values(self) -> List[str]:
        return [f.value for f in self.features]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "features": self.values,
            "weights": [round(w, 4) for w in self.weights],
            "steps": list(self.steps),
            "total_confidence": round(self.total_confidence, 4),
            "metadata": dict(self.metadata),
        }


class ReasoningEngine:
    """Multi-hop reasoning over a FeatureGraphStore.

    Usage:
        engine = ReasoningEngine(store)
        paths = engine.reason(["stock_price_drop"], max_hops=2, min_confidence=0.1)
        paths[0].values             # ["stock_price_drop", "sell", "loss"]
        paths[0].total_confidence   # 0.8
    """

    def __init__(self, store: FeatureGraphStore):
        self._store = store

    def reason(
        self,
        query_features: Optional[Sequence[FeatureLike]],
        max_hops: int = 3,
        min_confidence: float = 0.1,
    ) -> List[ReasoningPath]:
        """Explore the graph from each query feature.

        Args:
            query_features: Starting features (Feature or value string).
            max_hops: Hop budget per root, the root included.
            min_confidence: Minimum edge weight to follow.

        Returns:
            One path per resolvable query feature, in query order.
        """
        paths: List[ReasoningPath] = []

        if not query_features:
            logger.warning("No query features provided for reasoning")
            return paths
        if max_hops <= 0:
            return paths

        visit_marks: Dict[str, int] = {}
        for generation, query in enumerate(query_features, start=1):
            root = self._store.find_by_value(as_feature(query).value)
            if root is None:
                logger.debug("Skipping unresolved query feature '%s'", query)
                continue

            path = ReasoningPath()
            visit_marks[root.value] = generation
            path.add_step(root, ROOT_WEIGHT, f"Starting from: {root.value}")
            self._explore(root, max_hops, min_confidence, path, visit_marks, generation)

            path.compute_total_confidence()
            paths.append(path)

        logger.info("Reasoned over %d/%d query features (max_hops=%d, min_confidence=%.3f)",
                    len(paths), len(query_features), max_hops, min_confidence)
        return paths

    def _explore(
        self,
        feature: Feature,
        remaining_hops: int,
        min_confidence: float,
        path: ReasoningPath,
        visit_marks: Dict[str, int],
        generation: int,
    ) -> None:
        for edge in self._store.get_edges(feature.value):
            if edge.weight < min_confidence:
                continue
            if visit_marks.get(edge.target) == generation:
                continue

            next_feature = self._resolve(edge.target)
            visit_marks[next_feature.value] = generation
            path.add_step(
                next_feature,
                edge.weight,
                f"Connected to '{next_feature.value}' (weight: {edge.weight:.3f})",
            )

            if remaining_hops > 1:
                self._explore(next_feature, remaining_hops - 1, min_confidence,
                              path, visit_marks, generation)

    def compute_attention_scores(
        self,
        query_features: Sequence[FeatureLike],
        candidate_features: Sequence[FeatureLike],
    ) -> Dict[str, float]:
        """Score each candidate by its strongest direct edge from the query.

        Returns:
            {candidate value: max edge weight}, 0.0 when no query feature
            connects to the candidate.

        Raises:
            ValueError: If ``query_features`` is None.
        """
        if query_features is None:
            raise ValueError("query_features must not be None")

        resolved = [
            q for q in (as_feature(item) for item in query_features)
            if self._store.find_by_value(q.value) is not None
        ]

        scores: Dict[str, float] = {}
        for item in candidate_features:
            candidate = as_feature(item)
            max_score = 0.0
            for query in resolved:
                if not self._store.get_connected_features(query.value, candidate.value):
                    continue
                edge = self._store.get_edge(query.value, candidate.value)
                if edge is not None:
                    max_score = max(max_score, edge.weight)
            scores[candidate.value] = max_score
        return scores

    def gather_relevant_features(
        self,
        query_features: Sequence[FeatureLike],
        max_hops: int,
    ) -> List[Feature]:
        """Everything reachable from the query within the hop budget.

        Depth-first order, deduplicated across all query features.

        Raises:
            ValueError: If ``query_features`` is None.
        """
        if query_features is None:
            raise ValueError("query_features must not be None")

        seen: Set[str] = set()
        relevant: List[Feature] = []
        for query in query_features:
            root = self._store.find_by_value(as_feature(query).value)
            if root is not None:
                self._gather(root, max_hops, seen, relevant)
        return relevant

    def _gather(
        self,
        feature: Feature,
        remaining_hops: int,
        seen: Set[str],
        result: List[Feature],
    ) -> None:
        if remaining_hops <= 0 or feature.value in seen:
            return

        seen.add(feature.value)
        result.append(feature)

        if remaining_hops > 1:
            for edge in self._store.get_edges(feature.value):
                if edge.target not in seen:
                    self._gather(self._resolve(edge.target), remaining_hops - 1,
                                 seen, result)

    def _resolve(self, value: str) -> Feature:
        return self._store.find_by_value(value) or Feature(value)

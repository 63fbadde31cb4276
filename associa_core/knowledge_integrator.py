"""
Associa Core - Knowledge Integrator

Merges externally supplied (source, target, weight) facts into the
feature graph at runtime, without retraining.

Validation never raises.  add_knowledge() returns False for a None or
blank endpoint, a self-loop, or a non-finite weight, so batch imports
keep going past bad rows.  Weights outside [0.0, 1.0] are clamped and
logged rather than rejected; validate_knowledge() is the strict check
for callers that want out-of-range weights refused outright.

Conflict resolution when the edge already exists:

    AVERAGE      (old + new) / 2
    KEEP_HIGHER  max(old, new)
    KEEP_LOWER   min(old, new)
    REPLACE      new
    REJECT       unchanged, add_knowledge() returns False

The source identifier of the last accepted write is kept on the edge
metadata under "source", with the resolution strategy under "strategy".

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: ConflictResolution enum, KnowledgeFact dataclass and
#         KnowledgeIntegrator with add/batch/remove/update/validate.
#   How:  Each merge is a read-modify-write of one edge and runs under
#         store.edge_lock() for that pair.
# -------------------
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple, Union

from feature_graph import Feature, FeatureGraphStore, FeatureWeight

logger = logging.getLogger("associa.knowledge")


class ConflictResolution(str, Enum):
    """Strategy applied when a fact targets an existing edge."""
    AVERAGE = "AVERAGE"
    KEEP_HIGHER = "KEEP_HIGHER"
    KEEP_LOWER = "KEEP_LOWER"
    REPLACE = "REPLACE"
    REJECT = "REJECT"


@dataclass(frozen=True)
class KnowledgeFact:
    """One externally supplied association."""
    source: str
    target: str
    weight: float


FactLike = Union[KnowledgeFact, Tuple[str, str, float]]


class KnowledgeIntegrator:
    """Validates and merges facts into a FeatureGraphStore.

    Usage:
        integrator = KnowledgeIntegrator(store)
        integrator.add_knowledge("A", "B", 0.5, "wiki", ConflictResolution.AVERAGE)
        integrator.add_knowledge("A", "B", 0.9, "wiki", ConflictResolution.AVERAGE)
        store.get_edge("A", "B").weight   # 0.7
    """

    def __init__(self, store: FeatureGraphStore):
        self._store = store

    def add_knowledge(
        self,
        source_feature: Optional[str],
        target_feature: Optional[str],
        weight: float,
        source: str = "unknown",
        strategy: ConflictResolution = ConflictResolution.AVERAGE,
    ) -> bool:
        """Add one fact to the graph.

        Args:
            source_feature: Value of the edge's source feature.
            target_feature: Value of the edge's target feature.
            weight: Association strength, clamped into [0.0, 1.0].
            source: Provenance label for this fact.
            strategy: How to merge with an existing edge.

        Returns:
            True if the fact was integrated, False if it was invalid or
            rejected by the strategy.
        """
        if not self._valid_endpoints(source_feature, target_feature):
            return False
        if weight is None or not math.isfinite(weight):
            logger.warning("Invalid weight %r for %s -> %s", weight,
                           source_feature, target_feature)
            return False

        logger.info("Adding knowledge: %s -> %s (weight: %s, source: %s)",
                    source_feature, target_feature, weight, source)

        if weight < 0.0 or weight > 1.0:
            logger.warning("Invalid weight %s, clamping to [0,1]", weight)
            weight = max(0.0, min(1.0, weight))

        self._get_or_create(source_feature)
        self._get_or_create(target_feature)

        with self._store.edge_lock(source_feature, target_feature):
            existing = self._store.get_edge(source_feature, target_feature)
            if existing is None:
                edge = FeatureWeight(
                    source=source_feature,
                    target=target_feature,
                    weight=weight,
                    metadata={"source": source, "strategy": strategy.value},
                )
                self._store.save_edge(edge)
                logger.info("Created new connection: %s -> %s (weight: %s)",
                            source_feature, target_feature, weight)
                return True

            return self._resolve_conflict(existing, weight, source, strategy)

    def _resolve_conflict(
        self,
        existing: FeatureWeight,
        new_weight: float,
        source: str,
        strategy: ConflictResolution,
    ) -> bool:
        old_weight = existing.weight
        logger.debug("Conflict detected: existing weight=%s, new weight=%s, strategy=%s",
                     old_weight, new_weight, strategy.value)

        if strategy == ConflictResolution.REJECT:
            logger.info("Rejecting new knowledge due to conflict: %s -> %s",
                        existing.source, existing.target)
            return False
        if strategy == ConflictResolution.AVERAGE:
            final_weight = (old_weight + new_weight) / 2.0
        elif strategy == ConflictResolution.KEEP_HIGHER:
            final_weight = max(old_weight, new_weight)
        elif strategy == ConflictResolution.KEEP_LOWER:
            final_weight = min(old_weight, new_weight)
        else:
            final_weight = new_weight

        existing.weight = final_weight
        existing.metadata["source"] = source
        existing.metadata["strategy"] = strategy.value
        self._store.save_edge(existing)

        logger.info("Resolved conflict: %s -> %s (old: %s, new: %s, final: %s)",
                    existing.source, existing.target, old_weight, new_weight,
                    final_weight)
        return True

    def add_knowledge_batch(
        self,
        facts: Iterable[FactLike],
        source: str = "unknown",
        strategy: ConflictResolution = ConflictResolution.AVERAGE,
    ) -> int:
        """Apply add_knowledge() to each fact in order.

        Returns:
            Number of facts integrated.
        """
        success_count = 0
        total = 0
        for fact in facts:
            total += 1
            if not isinstance(fact, KnowledgeFact):
                fact = KnowledgeFact(*fact)
            if self.add_knowledge(fact.source, fact.target, fact.weight,
                                  source, strategy):
                success_count += 1

        logger.info("Batch integration: %d/%d facts integrated", success_count, total)
        return success_count

    def remove_knowledge(self, source_feature: str, target_feature: str) -> bool:
        """Delete the edge between two features; False if none exists."""
        with self._store.edge_lock(source_feature, target_feature):
            edge = self._store.get_edge(source_feature, target_feature)
            if edge is None:
                logger.warning("No connection found to remove: %s -> %s",
                               source_feature, target_feature)
                return False
            self._store.delete_edge(edge)

        logger.info("Removed connection: %s -> %s", source_feature, target_feature)
        return True

    def update_weight(self, source_feature: str, target_feature: str, new_weight: float) -> bool:
        """Overwrite an existing edge's weight; False if none exists."""
        with self._store.edge_lock(source_feature, target_feature):
            edge = self._store.get_edge(source_feature, target_feature)
            if edge is None:
                logger.warning("No connection found to update: %s -> %s",
                               source_feature, target_feature)
                return False
            edge.weight = float(new_weight)
            self._store.save_edge(edge)

        logger.info("Updated weight: %s -> %s = %s", source_feature, target_feature,
                    new_weight)
        return True

    def validate_knowledge(
        self,
        source_feature: Optional[str],
        target_feature: Optional[str],
        weight: float,
    ) -> bool:
        """Strict pre-check: valid endpoints and a weight within [0.0, 1.0]."""
        if not self._valid_endpoints(source_feature, target_feature):
            return False
        if weight is None or not 0.0 <= weight <= 1.0:
            logger.warning("Weight out of range: %s", weight)
            return False
        return True

    @staticmethod
    def _valid_endpoints(source_feature: Optional[str], target_feature: Optional[str]) -> bool:
        if source_feature is None or not source_feature.strip():
            logger.warning("Invalid source feature: null or empty")
            return False
        if target_feature is None or not target_feature.strip():
            logger.warning("Invalid target feature: null or empty")
            return False
        if source_feature == target_feature:
            logger.warning("Self-loop detected: %s -> %s", source_feature, target_feature)
            return False
        return True

    def _get_or_create(self, value: str) -> Feature:
        feature = self._store.find_by_value(value)
        if feature is None:
            feature = self._store.save_feature(Feature(value))
            logger.debug("Created new feature: %s", value)
        return feature

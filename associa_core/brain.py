"""
Associa Core - Brain (Policy, Prediction and Learning)

Turns the feature graph into an implicit next-feature model:

  1. generate_policy() builds an input x output weight matrix from the
     graph.  Pairs with no edge get a uniform random prior in [0, 1),
     which is persisted so the next call sees the same weight.
  2. predict() sums each output column and sum-normalizes the result.
     The arg-max column is the predicted feature.
  3. record_prediction() snapshots one served prediction as a
     MemoryRecord in the store.
  4. learn() replays a MemoryRecord against the feature that actually
     occurred and revises every implicated edge with the
     temporal-difference rule.

Reward precedence (first match wins), for each candidate output key:

    key == actual and actual == predicted   ->  +2
    key == actual                           ->  +1
    key == predicted and key != actual      ->  -1
    key != actual                           ->  -2
    otherwise                               ->   0

The estimated future reward is the constant 1.0, so the discount term
acts as a fixed bias on every update.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: Brain class with generate_policy(), predict(),
#         record_prediction(), learn(), calculate_reward(), next-feature
#         helpers for the sequence generator, and neighbourhood listing.
#   Why:  Prediction and learning share the store, the random prior
#         source and the TD constants, so they live on one object.
#   Settings: learning_rate=0.1, discount_factor=0.08, estimated
#         reward=1.0 (config.yaml: associa.learning).
#   How:  numpy for the policy matrix and prior draws.  Every
#         read-or-create and every read-modify-write of an edge runs
#         under store.edge_lock() for that pair.
# [2026-10-19] get_connected_features() walks breadth-first.
#   What: One seen set and a per-hop frontier replace the recursive
#         expansion.
#   Why:  Dense neighbourhoods were re-expanded once per path, which
#         grew exponentially with max_hops.
# -------------------
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Set

import numpy as np

from associa_core.td_update import (
    DEFAULT_DISCOUNT_FACTOR,
    DEFAULT_LEARNING_RATE,
    TemporalDifference,
)
from feature_graph import (
    Feature,
    FeatureGraphStore,
    FeatureLike,
    FeatureWeight,
    MemoryNotFoundError,
    MemoryRecord,
    as_feature,
    as_features,
)

logger = logging.getLogger("associa.brain")

ESTIMATED_REWARD = 1.0


class Brain:
    """Graph-backed predictor and temporal-difference learner.

    Usage:
        brain = Brain(store, rng=np.random.default_rng(7))

        memory = brain.record_prediction(["cloudy", "humid"], ["rain", "sun"])
        memory.predicted_feature             # e.g. "rain"

        # Later, once the outcome is known
        brain.learn(memory.memory_id, "rain")
    """

    def __init__(
        self,
        store: FeatureGraphStore,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        discount_factor: float = DEFAULT_DISCOUNT_FACTOR,
        estimated_reward: float = ESTIMATED_REWARD,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Args:
            store: Feature graph the policy is read from and written to.
            learning_rate: TD step size.
            discount_factor: TD look-ahead weight.
            estimated_reward: Constant look-ahead reward used by learn().
            rng: Source of random priors.  Pass a seeded Generator for
                 reproducible policies.
        """
        self._store = store
        self._td = TemporalDifference(learning_rate, discount_factor)
        self._estimated_reward = estimated_reward
        self._rng = rng if rng is not None else np.random.default_rng()

        # Counters for telemetry
        self._policies_generated = 0
        self._priors_created = 0
        self._learning_updates = 0

    # -------------------------------------------------------------------
    # Policy & Prediction
    # -------------------------------------------------------------------

    def generate_policy(
        self,
        input_features: Sequence[FeatureLike],
        output_features: Sequence[FeatureLike],
    ) -> np.ndarray:
        """Build the input x output weight matrix.

        Row/column order mirrors the argument order.  Unknown pairs are
        edged with a random prior on first use, so the call mutates the
        graph until every pair has an edge and is stable afterwards.

        Returns:
            Array of shape (len(input_features), len(output_features)).
        """
        inputs = as_features(input_features)
        outputs = as_features(output_features)

        policy = np.zeros((len(inputs), len(outputs)), dtype=float)
        for in_idx, input_feature in enumerate(inputs):
            for out_idx, output_feature in enumerate(outputs):
                policy[in_idx, out_idx] = self._weight_or_prior(
                    input_feature, output_feature
                )

        self._policies_generated += 1
        logger.debug("Generated %dx%d policy", len(inputs), len(outputs))
        return policy

    @staticmethod
    def predict(policy: Any) -> np.ndarray:
        """Collapse a policy matrix into a prediction vector.

        Sums each output column over all input rows, then scales the
        vector to sum to 1.0 when its total is nonzero.

        Raises:
            ValueError: If the policy has no rows or no columns.
        """
        matrix = np.asarray(policy, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] == 0 or matrix.shape[1] == 0:
            raise ValueError(
                f"policy must be a non-empty 2-D matrix, got shape {matrix.shape}"
            )

        prediction = matrix.sum(axis=0)
        total = prediction.sum()
        if total != 0.0:
            prediction = prediction / total
        return prediction

    def record_prediction(
        self,
        input_features: Sequence[FeatureLike],
        output_features: Sequence[FeatureLike],
    ) -> MemoryRecord:
        """Serve a prediction and persist it as a MemoryRecord.

        Raises:
            ValueError: If either feature list is empty.
        """
        inputs = as_features(input_features)
        outputs = as_features(output_features)
        if not inputs or not outputs:
            raise ValueError("input and output feature lists must be non-empty")

        policy = self.generate_policy(inputs, outputs)
        prediction = self.predict(policy)
        predicted = outputs[int(np.argmax(prediction))]

        memory = self._store.save_memory(MemoryRecord(
            input_values=tuple(f.value for f in inputs),
            output_keys=tuple(f.value for f in outputs),
            policy=tuple(tuple(float(v) for v in row) for row in policy),
            predicted_feature=predicted.value,
            prediction=tuple(float(v) for v in prediction),
        ))
        logger.info("Prediction %s: '%s' from %d inputs over %d candidates",
                    memory.memory_id, predicted.value, len(inputs), len(outputs))
        return memory

    def predict_next_feature(
        self,
        context_features: Sequence[FeatureLike],
        candidate_features: Sequence[FeatureLike],
    ) -> Optional[Feature]:
        """Arg-max candidate given the context, or None if either list is empty."""
        candidates = as_features(candidate_features)
        distribution = self.predict_next_feature_distribution(
            context_features, candidates
        )
        if distribution.size == 0:
            return None
        return candidates[int(np.argmax(distribution))]

    def predict_next_feature_distribution(
        self,
        context_features: Sequence[FeatureLike],
        candidate_features: Sequence[FeatureLike],
    ) -> np.ndarray:
        """Normalized candidate scores given the context (empty if no input)."""
        if not context_features or not candidate_features:
            return np.zeros(0, dtype=float)
        policy = self.generate_policy(context_features, candidate_features)
        return self.predict(policy)

    # -------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------

    def learn(self, memory_id: int, actual_feature: FeatureLike) -> List[FeatureWeight]:
        """Revise edge weights from the outcome of a past prediction.

        Every (input value, output key) pair of the memory is updated:
        weight <- abs(td_update(weight, reward(output_key), 1.0)).
        Missing edges are first created with a random prior.

        Args:
            memory_id: Id of the MemoryRecord to replay.
            actual_feature: The feature that actually occurred.

        Returns:
            The updated edges, in (output key, input value) order.

        Raises:
            MemoryNotFoundError: If no memory has this id.
        """
        memory = self._store.find_memory(memory_id)
        if memory is None:
            raise MemoryNotFoundError(f"No memory record with id {memory_id}")

        actual = as_feature(actual_feature).value
        updated: List[FeatureWeight] = []
        for output_key in memory.output_keys:
            reward = self.calculate_reward(memory, output_key, actual)
            for input_value in memory.input_values:
                updated.append(self._apply_update(input_value, output_key, reward))

        self._learning_updates += len(updated)
        logger.info("Learned from memory %s (actual='%s', predicted='%s'): %d edges updated",
                    memory_id, actual, memory.predicted_feature, len(updated))
        return updated

    @staticmethod
    def calculate_reward(memory: MemoryRecord, output_key: str, actual_value: str) -> float:
        predicted = memory.predicted_feature
        if output_key == actual_value and actual_value == predicted:
            reward = 2.0
        elif output_key == actual_value:
            reward = 1.0
        elif output_key == predicted and output_key != actual_value:
            reward = -1.0
        elif output_key != actual_value:
            reward = -2.0
        else:
            reward = 0.0
        logger.debug("Reward for '%s' (actual='%s', predicted='%s'): %s",
                     output_key, actual_value, predicted, reward)
        return reward

    def _apply_update(self, source: str, target: str, reward: float) -> FeatureWeight:
        with self._store.edge_lock(source, target):
            edge = self._store.get_edge(source, target)
            if edge is None:
                edge = FeatureWeight(source=source, target=target,
                                     weight=float(self._rng.random()))
                self._priors_created += 1

            old_weight = edge.weight
            edge.weight = abs(self._td.calculate(old_weight, reward,
                                                 self._estimated_reward))
            saved = self._store.save_edge(edge)

        logger.debug("'%s' -> '%s': %.4f -> %.4f (reward=%s)",
                     source, target, old_weight, saved.weight, reward)
        return saved

    def _weight_or_prior(self, source: Feature, target: Feature) -> float:
        with self._store.edge_lock(source.value, target.value):
            edge = self._store.get_edge(source.value, target.value)
            if edge is not None:
                return edge.weight

            weight = float(self._rng.random())
            if self._store.find_by_value(source.value) is None:
                self._store.save_feature(source)
            self._store.save_edge(FeatureWeight(
                source=source.value, target=target.value, weight=weight,
            ))
            self._priors_created += 1
            return weight

    # -------------------------------------------------------------------
    # Neighbourhood
    # -------------------------------------------------------------------

    def get_connected_features(self, feature: FeatureLike, max_hops: int) -> List[Feature]:
        """Features reachable from ``feature`` within ``max_hops`` edges.

        Direct neighbours come first, then deeper hops, without repeats.
        The starting feature itself is only listed if a cycle leads back.
        """
        connected: List[Feature] = []
        if feature is None or max_hops <= 0:
            return connected

        start = self._store.find_by_value(as_feature(feature).value)
        if start is None:
            return connected

        # Breadth-first, one level per hop; each feature is expanded once.
        seen: Set[str] = set()
        frontier = [start.value]
        for _ in range(max_hops):
            next_frontier: List[str] = []
            for value in frontier:
                for edge in self._store.get_edges(value):
                    if edge.target in seen:
                        continue
                    seen.add(edge.target)
                    connected.append(self._resolve(edge.target))
                    if edge.target != start.value:
                        next_frontier.append(edge.target)
            if not next_frontier:
                break
            frontier = next_frontier
        return connected

    def _resolve(self, value: str) -> Feature:
        return self._store.find_by_value(value) or Feature(value)

    # -------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        return {
            "learning_rate": self._td.learning_rate,
            "discount_factor": self._td.discount_factor,
            "estimated_reward": self._estimated_reward,
            "policies_generated": self._policies_generated,
            "priors_created": self._priors_created,
            "learning_updates": self._learning_updates,
        }

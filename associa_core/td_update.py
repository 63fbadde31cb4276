"""
Associa Core - Temporal-Difference Update

The weight-revision rule used by the learner:

    new = old + learning_rate * (actual_reward + discount_factor * estimated_future_reward)

Pure and deterministic.  The learner takes ``abs()`` of the result before
persisting it; that is a learner concern and does not belong here.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: td_update() function plus a frozen TemporalDifference holder
#         for a fixed (learning_rate, discount_factor) pair.
#   Settings: learning_rate=0.1, discount_factor=0.08.  Both are
#         overridable from config.yaml (associa.learning).
# -------------------
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_LEARNING_RATE = 0.1
DEFAULT_DISCOUNT_FACTOR = 0.08


def td_update(
    old_value: float,
    actual_reward: float,
    estimated_future_reward: float,
    learning_rate: float = DEFAULT_LEARNING_RATE,
    discount_factor: float = DEFAULT_DISCOUNT_FACTOR,
) -> float:
    """Revise ``old_value`` toward the observed reward.

    Args:
        old_value: Weight before the update.
        actual_reward: Reward observed for this edge.
        estimated_future_reward: Discounted look-ahead term.
        learning_rate: Step size.
        discount_factor: Weight of the look-ahead term.

    Returns:
        The updated value.
    """
    return old_value + learning_rate * (
        actual_reward + discount_factor * estimated_future_reward
    )


@dataclass(frozen=True)
class TemporalDifference:
    """A td_update() bound to fixed learning constants."""

    learning_rate: float = DEFAULT_LEARNING_RATE
    discount_factor: float = DEFAULT_DISCOUNT_FACTOR

    def calculate(
        self,
        old_value: float,
        actual_reward: float,
        estimated_future_reward: float,
    ) -> float:
        return td_update(
            old_value,
            actual_reward,
            estimated_future_reward,
            learning_rate=self.learning_rate,
            discount_factor=self.discount_factor,
        )

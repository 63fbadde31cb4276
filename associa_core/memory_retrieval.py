"""
Associa Core - Memory Retrieval

Time-window lookup over stored prediction memories, with a simple
relevance score: the number of prompt feature values that appear among
a memory's input values.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: MemoryItem dataclass and retrieve_memories().
#   Settings: limit defaults to 50 items.
# -------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from feature_graph import FeatureGraphStore, FeatureLike, as_feature

logger = logging.getLogger("associa.memory_retrieval")

DEFAULT_LIMIT = 50


@dataclass
class MemoryItem:
    """One retrieved memory with its relevance to the prompt."""
    memory_id: int = 0
    timestamp: Optional[datetime] = None
    input_features: List[str] = field(default_factory=list)
    predicted_value: Optional[str] = None
    relevance_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "input_features": list(self.input_features),
            "predicted_value": self.predicted_value,
            "relevance_score": self.relevance_score,
        }


def retrieve_memories(
    store: FeatureGraphStore,
    start: Optional[datetime],
    end: Optional[datetime],
    prompt_features: Optional[Sequence[FeatureLike]] = None,
    limit: int = DEFAULT_LIMIT,
) -> List[MemoryItem]:
    """Memories created within [start, end], in store order.

    Args:
        store: Store holding the memory records.
        start: Inclusive lower bound (timezone-aware like the records).
        end: Inclusive upper bound.
        prompt_features: Optional features used for relevance scoring.
        limit: Maximum number of items returned.

    Raises:
        ValueError: If a bound is missing or start is after end.
    """
    if start is None or end is None:
        raise ValueError("Both 'start' and 'end' times are required")
    if start > end:
        raise ValueError("'start' must be before 'end'")

    prompt_values = [as_feature(f).value for f in prompt_features or []]

    items: List[MemoryItem] = []
    for record in store.list_memories():
        if not start <= record.created_at <= end:
            continue
        relevance = float(sum(1 for v in prompt_values if v in record.input_values))
        items.append(MemoryItem(
            memory_id=record.memory_id,
            timestamp=record.created_at,
            input_features=list(record.input_values),
            predicted_value=record.predicted_feature,
            relevance_score=relevance,
        ))

    logger.debug("Retrieved %d memories between %s and %s", len(items), start, end)
    return items[:limit]

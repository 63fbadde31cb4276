"""
Associa Core - Vocabulary

Ordered, deduplicated, case-insensitive index over feature values.
Words are stripped and lower-cased before indexing; each distinct word
keeps the integer position it was first seen at for the lifetime of the
instance.  Membership projections map a word list onto that index as a
dense boolean vector or a sparse {index: 1.0} dict.

Also provides predict_vocabulary(): pick the known vocabulary that best
overlaps a feature list, or build a new one under a generated label.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: Vocabulary class (add/lookup/projections/dict round trip) and
#         predict_vocabulary() with keyword-based label generation.
#   Why:  Policy rows/columns and generation candidates are addressed by
#         stable vocabulary positions.
#   How:  Parallel list + dict.  A threading.Lock guards add_word() so
#         concurrent appends cannot hand out the same index twice.
# -------------------
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from feature_graph import Feature, FeatureLike, as_feature

logger = logging.getLogger("associa.vocabulary")

# Keywords used to name a vocabulary that matches nothing known.
DOMAIN_KEYWORDS = ("web", "ui", "button", "form", "click", "internet", "api", "data")


class Vocabulary:
    """Append-only value -> index map.

    Usage:
        vocab = Vocabulary("market", ["Sell", "buy", "sell"])
        vocab.index_of("SELL")          # 0
        vocab.feature_vector(["buy"])   # array([False,  True])
    """

    def __init__(
        self,
        label: str = "default",
        features: Optional[Iterable[FeatureLike]] = None,
    ):
        self.label = label
        self._words: List[str] = []
        self._index: Dict[str, int] = {}
        self._lock = threading.Lock()

        for feature in features or []:
            self.append_feature(feature)

    @staticmethod
    def _normalize(word: str) -> str:
        return word.strip().lower()

    def add_word(self, word: str) -> int:
        """Index ``word`` and return its position.

        Raises:
            ValueError: If the word is None or blank.
        """
        if word is None or not word.strip():
            raise ValueError("Word cannot be null or empty")

        normalized = self._normalize(word)
        with self._lock:
            if normalized in self._index:
                return self._index[normalized]
            index = len(self._words)
            self._words.append(normalized)
            self._index[normalized] = index
            return index

    def append_feature(self, feature: FeatureLike) -> int:
        if feature is None:
            raise ValueError("Feature and its value cannot be null")
        return self.add_word(as_feature(feature).value)

    def index_of(self, word: Optional[str]) -> int:
        if word is None:
            return -1
        return self._index.get(self._normalize(word), -1)

    def word_at(self, index: int) -> Optional[str]:
        if index < 0 or index >= len(self._words):
            return None
        return self._words[index]

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and self._normalize(word) in self._index

    def __len__(self) -> int:
        return len(self._words)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vocabulary):
            return NotImplemented
        return self.label == other.label

    def __hash__(self) -> int:
        return hash(self.label)

    def __repr__(self) -> str:
        return f"Vocabulary(label={self.label!r}, size={len(self)}, words={self._words!r})"

    @property
    def words(self) -> List[str]:
        return list(self._words)

    @property
    def features(self) -> List[Feature]:
        return [Feature(word) for word in self._words]

    def feature_vector(self, input_words: Sequence[str]) -> np.ndarray:
        """Dense boolean membership vector over this vocabulary."""
        vector = np.zeros(len(self._words), dtype=bool)
        for word in input_words:
            index = self.index_of(word)
            if index >= 0:
                vector[index] = True
        return vector

    def sparse_vector(self, input_words: Sequence[str]) -> Dict[int, float]:
        """Sparse {index: 1.0} membership map over this vocabulary."""
        sparse: Dict[int, float] = {}
        for word in input_words:
            index = self.index_of(word)
            if index >= 0:
                sparse[index] = 1.0
        return sparse

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "words": list(self._words)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Vocabulary":
        return cls(data.get("label", "default"), data.get("words", []))


def predict_vocabulary(
    features: Sequence[FeatureLike],
    known: Sequence[Vocabulary] = (),
) -> Vocabulary:
    """Choose the vocabulary that best describes ``features``.

    Picks the known vocabulary with the most matching words.  A later
    candidate with an equal match count wins when more than half of its
    own words match.  With no overlap at all a new vocabulary is built
    from the features under a keyword-derived label.

    Args:
        features: Features to classify.
        known: Candidate vocabularies.

    Returns:
        A known Vocabulary, or a new one containing ``features``.
    """
    values = [as_feature(f).value for f in features if f is not None]
    if not values:
        logger.warning("Empty feature list provided, returning default vocabulary")
        return Vocabulary("default")

    best: Optional[Vocabulary] = None
    max_matches = 0
    for vocab in known:
        matches = sum(1 for value in values if value in vocab)
        ratio = matches / len(vocab) if len(vocab) > 0 else 0.0
        if matches > max_matches or (matches == max_matches and ratio > 0.5):
            max_matches = matches
            best = vocab

    if best is not None and max_matches > 0:
        logger.debug("Found matching vocabulary: %s", best.label)
        return best

    label = _vocabulary_label(values)
    logger.debug("No matching vocabulary found, generating new label: %s", label)
    return Vocabulary(label, values)


def _vocabulary_label(values: Sequence[str]) -> str:
    counts = {keyword: 0 for keyword in DOMAIN_KEYWORDS}
    for value in values:
        lowered = value.lower()
        for keyword in DOMAIN_KEYWORDS:
            if keyword in lowered:
                counts[keyword] += 1

    best_domain, best_count = "general", 0
    for keyword in DOMAIN_KEYWORDS:
        if counts[keyword] > best_count:
            best_domain, best_count = keyword, counts[keyword]

    if best_count > 0:
        return f"{best_domain}_vocabulary"
    return f"vocabulary_{len(values)}"

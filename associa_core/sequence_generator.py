"""
Associa Core - Sequence Generator

Autoregressive feature generation using the Brain as an implicit
next-token model.  Each step asks the Brain for a distribution over the
candidate vocabulary given the current context, picks one feature, and
slides it into the context window.

Selection:
  - Greedy (arg-max) when temperature < 0.1 or beam_width > 1.
    Beam search is not implemented; wider beams fall back to greedy.
  - Otherwise temperature sampling: p_i ** (1 / T), renormalized, then a
    single cumulative draw.

Stopping: the end token, a None prediction, or max_tokens steps.

Context: a FIFO window capped at CONTEXT_WINDOW features; the oldest
feature is evicted once the cap is exceeded.  An initial context longer
than the window keeps only its most recent features.

Rendering: start/end tokens are dropped, sentence starts are
capitalized, punctuation tokens attach to the previous word, and a
final "." is added unless the text already ends a sentence.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: GenerationConfig (pydantic) and SequenceGenerator with
#         generate(), generate_features() and generate_with_reasoning().
#   Settings: temperature=0.7, max_tokens=100, beam_width=1,
#         end_token="<EOS>", context window of 20 features, up to 10
#         reasoning features prepended to the context.
#   How:  numpy Generator for the sampling draw so seeded runs repeat.
# -------------------
"""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Deque, List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from associa_core.brain import Brain
from feature_graph import Feature, FeatureLike, as_features

logger = logging.getLogger("associa.generator")

CONTEXT_WINDOW = 20
REASONING_LIMIT = 10
GREEDY_TEMPERATURE = 0.1

_PUNCTUATION = re.compile(r"^[.,!?;:]$")
_SENTENCE_END = (".", "!", "?")


class GenerationConfig(BaseModel):
    """Knobs for one generation run."""
    model_config = ConfigDict(extra="ignore")

    temperature: float = Field(0.7, ge=0.0)
    max_tokens: int = Field(100, ge=0)
    beam_width: int = Field(1, ge=1)
    end_token: str = "<EOS>"
    start_token: str = "<START>"

    # Reasoning knobs used when generation is seeded from graph reasoning
    max_hops: int = Field(3, ge=0)
    min_confidence: float = Field(0.1, ge=0.0, le=1.0)
    include_explanation: bool = True


class SequenceGenerator:
    """Weighted-walk text generator over learned feature associations.

    Usage:
        generator = SequenceGenerator(brain, rng=np.random.default_rng(3))
        text = generator.generate(
            ["weather", "today"],
            ["sunny", "rainy", ".", "<EOS>"],
            GenerationConfig(temperature=0.0, max_tokens=8),
        )
    """

    def __init__(self, brain: Brain, rng: Optional[np.random.Generator] = None):
        self._brain = brain
        self._rng = rng if rng is not None else np.random.default_rng()

    def generate(
        self,
        context_features: Sequence[FeatureLike],
        candidate_vocabulary: Sequence[FeatureLike],
        config: Optional[GenerationConfig] = None,
    ) -> str:
        """Generate text from the context.

        Returns:
            Rendered text; "" for an empty context, the rendered context
            itself for an empty vocabulary.
        """
        config = config or GenerationConfig()

        if not context_features:
            logger.warning("No context features provided for generation")
            return ""
        if not candidate_vocabulary:
            logger.warning("No candidate vocabulary provided")
            return self.features_to_text(as_features(context_features), config)

        generated = self.generate_features(context_features, candidate_vocabulary, config)
        return self.features_to_text(generated, config)

    def generate_features(
        self,
        context_features: Sequence[FeatureLike],
        candidate_vocabulary: Sequence[FeatureLike],
        config: Optional[GenerationConfig] = None,
    ) -> List[Feature]:
        """Run the generation loop and return the generated features."""
        config = config or GenerationConfig()
        candidates = as_features(candidate_vocabulary)
        generated: List[Feature] = []
        if not context_features or not candidates:
            return generated

        context: Deque[Feature] = deque(as_features(context_features), maxlen=CONTEXT_WINDOW)
        greedy = config.beam_width > 1 or config.temperature < GREEDY_TEMPERATURE

        for _ in range(config.max_tokens):
            if greedy:
                next_feature = self._brain.predict_next_feature(list(context), candidates)
            else:
                next_feature = self._sample(list(context), candidates, config.temperature)

            if next_feature is None or next_feature.value == config.end_token:
                break

            generated.append(next_feature)
            context.append(next_feature)

        logger.debug("Generated %d features (greedy=%s, temperature=%.2f)",
                     len(generated), greedy, config.temperature)
        return generated

    def generate_with_reasoning(
        self,
        context_features: Sequence[FeatureLike],
        reasoning_features: Sequence[FeatureLike],
        candidate_vocabulary: Sequence[FeatureLike],
        config: Optional[GenerationConfig] = None,
    ) -> str:
        """Prepend reasoning-derived features to the context, then generate.

        Only the first REASONING_LIMIT reasoning features are considered;
        those already present in the context are skipped.  The caller's
        context stays last, so it is the newest part of the window.
        """
        context = as_features(context_features)
        prefix: List[Feature] = []
        for feature in as_features(reasoning_features[:REASONING_LIMIT]):
            if feature not in context and feature not in prefix:
                prefix.append(feature)
        return self.generate(prefix + context, candidate_vocabulary, config)

    def _sample(
        self,
        context: List[Feature],
        candidates: List[Feature],
        temperature: float,
    ) -> Optional[Feature]:
        distribution = self._brain.predict_next_feature_distribution(context, candidates)
        if distribution.size == 0:
            return None

        tempered = np.power(np.clip(distribution, 0.0, None), 1.0 / temperature)
        total = tempered.sum()
        if not np.isfinite(total) or total <= 0.0:
            return candidates[int(np.argmax(distribution))]
        tempered = tempered / total

        draw = self._rng.random()
        cumulative = 0.0
        for idx, probability in enumerate(tempered):
            cumulative += probability
            if draw <= cumulative:
                return candidates[idx]
        return candidates[-1]

    # -------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------

    @staticmethod
    def features_to_text(
        features: Sequence[Feature],
        config: Optional[GenerationConfig] = None,
    ) -> str:
        config = config or GenerationConfig()
        special = {config.start_token, config.end_token}

        parts: List[str] = []
        start_of_sentence = True
        for feature in features:
            word = feature.value
            if word in special:
                continue

            if start_of_sentence:
                word = word[:1].upper() + word[1:]
                start_of_sentence = False

            if parts and not _PUNCTUATION.match(word):
                parts.append(" ")
            parts.append(word)

            if word.endswith(_SENTENCE_END):
                start_of_sentence = True

        text = "".join(parts)
        if text and not text.endswith(_SENTENCE_END):
            text += "."
        return text

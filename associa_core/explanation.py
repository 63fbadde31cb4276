"""
Associa Core - Explanation Generator

Renders reasoning paths and feature selections as readable text so
every answer can be traced back to the graph edges that produced it.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: ExplanationType enum plus summary, step-by-step and technical
#         renderings, selection explanations and a sources list.
# -------------------
"""

from __future__ import annotations

from enum import Enum
from typing import List, Sequence

import numpy as np

from associa_core.reasoning_engine import ReasoningPath
from feature_graph import FeatureLike, as_feature, as_features

NO_PATHS_MESSAGE = "No reasoning paths available to explain."
SUMMARY_FEATURE_LIMIT = 5


class ExplanationType(str, Enum):
    SUMMARY = "summary"
    STEP_BY_STEP = "step_by_step"
    TECHNICAL = "technical"


def generate_explanation(
    paths: Sequence[ReasoningPath],
    explanation_type: ExplanationType = ExplanationType.SUMMARY,
) -> str:
    if not paths:
        return NO_PATHS_MESSAGE
    if explanation_type == ExplanationType.STEP_BY_STEP:
        return _step_by_step(paths)
    if explanation_type == ExplanationType.TECHNICAL:
        return _technical(paths)
    return _summary(paths)


def _summary(paths: Sequence[ReasoningPath]) -> str:
    plural = "" if len(paths) == 1 else "s"
    best = paths[0]
    for path in paths:
        if path.total_confidence > best.total_confidence:
            best = path

    values = best.values
    shown = ", ".join(f'"{v}"' for v in values[:SUMMARY_FEATURE_LIMIT])
    if len(values) > SUMMARY_FEATURE_LIMIT:
        shown += f", and {len(values) - SUMMARY_FEATURE_LIMIT} more"

    return (
        f"I reasoned through {len(paths)} path{plural} in the knowledge graph. "
        f"The strongest connection (confidence: {best.total_confidence:.2f}) "
        f"involves {len(values)} key concepts: {shown}."
    )


def _step_by_step(paths: Sequence[ReasoningPath]) -> str:
    lines = ["Reasoning Process:", ""]
    for path_idx, path in enumerate(paths, start=1):
        lines.append(f"Path {path_idx} (confidence: {path.total_confidence:.3f}):")
        for step_idx, step in enumerate(path.steps, start=1):
            lines.append(f"  {step_idx}. {step}")
        lines.append("")
    return "\n".join(lines) + "\n"


def _technical(paths: Sequence[ReasoningPath]) -> str:
    lines = ["Technical Reasoning Analysis:", "",
             f"Total paths explored: {len(paths)}", ""]
    for path_idx, path in enumerate(paths, start=1):
        lines.append(f"=== Path {path_idx} ===")
        lines.append(f"Overall confidence: {path.total_confidence:.4f}")
        lines.append(f"Features traversed: {len(path.features)}")
        lines.append("")
        lines.append("Edge weights:")
        for feature, weight in zip(path.features, path.weights):
            lines.append(f"  {feature.value} [weight: {weight:.4f}]")
        lines.append("")
    return "\n".join(lines) + "\n"


def explain_feature_selection(
    selected: FeatureLike,
    candidates: Sequence[FeatureLike],
    probabilities: Sequence[float],
) -> str:
    """Explain why ``selected`` won, naming up to two runners-up."""
    selected_value = as_feature(selected).value
    values = [f.value for f in as_features(candidates)]
    text = f'Selected "{selected_value}" from {len(values)} candidates. '

    if selected_value not in values:
        return text
    selected_idx = values.index(selected_value)
    if selected_idx >= len(probabilities):
        return text

    text += f"Probability: {probabilities[selected_idx]:.3f}. Top alternatives were: "
    top = np.argsort(-np.asarray(probabilities, dtype=float), kind="stable")[:3]
    alternatives = [
        f'"{values[idx]}" ({probabilities[idx]:.3f})'
        for idx in top if idx != selected_idx and idx < len(values)
    ][:2]
    return text + ", ".join(alternatives)


def generate_sources_list(paths: Sequence[ReasoningPath]) -> List[str]:
    """Unique feature values across all paths, in first-seen order."""
    sources: List[str] = []
    for path in paths:
        for value in path.values:
            if value not in sources:
                sources.append(value)
    return sources

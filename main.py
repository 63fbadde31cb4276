"""
Associa - Feature Graph Reasoning Engine

Primary entry point.  AssociaEngine wires the core components around a
single feature store, passing it explicitly to each one:

  ReasoningEngine      multi-hop traversal and attention scores
  Brain                policy, prediction and TD learning
  KnowledgeIntegrator  fact merging with conflict resolution
  SequenceGenerator    autoregressive generation over the Brain

The CLI drives the engine against a JSON state file so a graph can be
built, queried and trained across invocations:

    python main.py add stock_price_drop sell 0.8
    python main.py add sell loss 0.6
    python main.py reason stock_price_drop --hops 2 --explain step_by_step
    python main.py predict --inputs cloudy humid --outputs rain sun
    python main.py learn 1 rain
    python main.py generate weather --vocab sunny rainy . <EOS> --temperature 0
    python main.py memories --hours 1 --prompt cloudy
    python main.py status --feature stock_price_drop --hops 2

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: AssociaEngine facade plus argparse CLI with Rich output.
#   Why:  One place that builds every component from AssociaConfig, and
#         a local driver for exercising the graph without an API layer.
#   Settings: Reads config.yaml (associa: key).  State is loaded from
#         store.state_path when present and saved after any command that
#         mutates the graph.
#   How:  Components share one InMemoryFeatureStore and one seeded numpy
#         Generator when random_seed is set.
# -------------------
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from associa_core.brain import Brain
from associa_core.explanation import (
    ExplanationType,
    explain_feature_selection,
    generate_explanation,
    generate_sources_list,
)
from associa_core.knowledge_integrator import ConflictResolution, KnowledgeIntegrator
from associa_core.memory_retrieval import DEFAULT_LIMIT, retrieve_memories
from associa_core.reasoning_engine import ReasoningEngine, ReasoningPath
from associa_core.sequence_generator import GenerationConfig, SequenceGenerator
from associa_core.vocabulary import Vocabulary, predict_vocabulary
from config_schema import AssociaConfig, StoreConfig, load_and_validate
from feature_graph import (
    FeatureGraphStore,
    FeatureLike,
    InMemoryFeatureStore,
    MemoryNotFoundError,
)

logger = logging.getLogger("associa")


@dataclass
class Answer:
    """Generated text plus the reasoning that seeded it."""
    text: str = ""
    sources: List[str] = field(default_factory=list)
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "sources": list(self.sources),
            "explanation": self.explanation,
        }


class AssociaEngine:
    """Composition root for the Associa core.

    Usage:
        engine = AssociaEngine(config)
        engine.knowledge.add_knowledge("stock_price_drop", "sell", 0.8)
        paths = engine.reasoning.reason(["stock_price_drop"], max_hops=2)
        answer = engine.answer(["stock_price_drop"], ["sell", "hold", "<EOS>"])
        answer.text, answer.explanation
    """

    def __init__(
        self,
        config: Optional[AssociaConfig] = None,
        store: Optional[FeatureGraphStore] = None,
    ):
        self.config = config or AssociaConfig()
        self.store = store if store is not None else InMemoryFeatureStore()

        rng = np.random.default_rng(self.config.random_seed)
        learning = self.config.learning

        self.reasoning = ReasoningEngine(self.store)
        self.brain = Brain(
            self.store,
            learning_rate=learning.learning_rate,
            discount_factor=learning.discount_factor,
            estimated_reward=learning.estimated_reward,
            rng=rng,
        )
        self.knowledge = KnowledgeIntegrator(self.store)
        self.generator = SequenceGenerator(self.brain, rng=rng)

    def reason(self, query: Sequence[FeatureLike]) -> List[ReasoningPath]:
        """Reason with the configured hop budget and confidence floor."""
        settings = self.config.reasoning
        return self.reasoning.reason(query, settings.max_hops, settings.min_confidence)

    def answer(
        self,
        query: Sequence[FeatureLike],
        vocabulary: Sequence[FeatureLike],
        config: Optional[GenerationConfig] = None,
    ) -> Answer:
        """Generate text seeded by the reasoning paths from ``query``.

        Paths are traced with the config's max_hops and min_confidence;
        their features, in first-seen order, are folded into the context.
        A summary explanation is attached when include_explanation is set.
        """
        config = config or self.config.generation
        paths = self.reasoning.reason(query, config.max_hops, config.min_confidence)
        sources = generate_sources_list(paths)
        text = self.generator.generate_with_reasoning(query, sources, vocabulary, config)

        explanation = None
        if config.include_explanation:
            explanation = generate_explanation(paths, ExplanationType.SUMMARY)
        return Answer(text=text, sources=sources, explanation=explanation)

    def load_state(self) -> bool:
        path = Path(self.config.store.state_path)
        if not isinstance(self.store, InMemoryFeatureStore) or not path.exists():
            return False
        self.store.load(str(path))
        return True

    def save_state(self) -> None:
        if isinstance(self.store, InMemoryFeatureStore):
            self.store.save(self.config.store.state_path)

    def stats(self) -> Dict[str, Any]:
        store_stats = (
            self.store.get_stats() if isinstance(self.store, InMemoryFeatureStore) else {}
        )
        return {"store": store_stats, "brain": self.brain.get_stats()}


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Associa - reasoning and learning over a weighted feature graph",
    )
    parser.add_argument("--config", "-c", default="config.yaml",
                        help="Path to config.yaml")
    parser.add_argument("--state", help="Override store.state_path")
    parser.add_argument("--json", action="store_true",
                        help="Output raw JSON instead of Rich formatted output")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")

    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Show graph statistics")
    status.add_argument("--feature", help="Also list this feature's neighbourhood")
    status.add_argument("--hops", type=int, default=2)

    add = sub.add_parser("add", help="Add a weighted fact")
    add.add_argument("source")
    add.add_argument("target")
    add.add_argument("weight", type=float)
    add.add_argument("--strategy", choices=[s.value for s in ConflictResolution])
    add.add_argument("--source-id")

    reason = sub.add_parser("reason", help="Multi-hop reasoning from query features")
    reason.add_argument("features", nargs="+")
    reason.add_argument("--hops", type=int)
    reason.add_argument("--min-confidence", type=float)
    reason.add_argument("--explain", choices=[t.value for t in ExplanationType])

    predict = sub.add_parser("predict", help="Predict an output and record the memory")
    predict.add_argument("--inputs", nargs="+", required=True)
    predict.add_argument("--outputs", nargs="+", required=True)

    learn = sub.add_parser("learn", help="Learn from the outcome of a recorded prediction")
    learn.add_argument("memory_id", type=int)
    learn.add_argument("actual")

    generate = sub.add_parser("generate", help="Generate text from context features")
    generate.add_argument("context", nargs="+")
    generate.add_argument("--vocab", nargs="+", required=True)
    generate.add_argument("--temperature", type=float)
    generate.add_argument("--max-tokens", type=int)
    generate.add_argument("--reason", action="store_true",
                          help="Seed the context with reasoning features")

    memories = sub.add_parser("memories", help="List recorded predictions in a time window")
    memories.add_argument("--hours", type=float, default=24.0,
                          help="Window length ending now")
    memories.add_argument("--prompt", nargs="*", default=[],
                          help="Features used to score relevance")
    memories.add_argument("--limit", type=int, default=DEFAULT_LIMIT)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(name)s %(levelname)s: %(message)s",
    )

    config = load_and_validate(args.config)
    if args.state:
        config = config.model_copy(update={"store": StoreConfig(state_path=args.state)})

    engine = AssociaEngine(config)
    engine.load_state()
    console = Console()

    if args.command == "status":
        stats = engine.stats()
        if args.feature:
            stats["neighbourhood"] = {
                args.feature: ", ".join(
                    f.value for f in engine.brain.get_connected_features(args.feature, args.hops)
                ),
            }
        _emit(console, args.json, stats, _print_status)

    elif args.command == "add":
        strategy = (ConflictResolution(args.strategy) if args.strategy
                    else config.knowledge.default_strategy)
        accepted = engine.knowledge.add_knowledge(
            args.source, args.target, args.weight,
            args.source_id or config.knowledge.default_source, strategy,
        )
        engine.save_state()
        edge = engine.store.get_edge(args.source, args.target)
        result = {
            "accepted": accepted,
            "source": args.source,
            "target": args.target,
            "weight": edge.weight if edge is not None else None,
        }
        _emit(console, args.json, result, _print_add)
        if not accepted:
            logger.warning("Fact not integrated: %s -> %s", args.source, args.target)
            return 1

    elif args.command == "reason":
        hops = args.hops if args.hops is not None else config.reasoning.max_hops
        floor = (args.min_confidence if args.min_confidence is not None
                 else config.reasoning.min_confidence)
        paths = engine.reasoning.reason(args.features, hops, floor)
        if args.explain:
            print(generate_explanation(paths, ExplanationType(args.explain)))
            if paths:
                print("Sources: " + ", ".join(generate_sources_list(paths)))
        else:
            _emit(console, args.json, [p.to_dict() for p in paths], _print_paths)

    elif args.command == "predict":
        memory = engine.brain.record_prediction(args.inputs, _candidate_list(args.outputs))
        engine.save_state()
        result = memory.to_dict()
        result["explanation"] = explain_feature_selection(
            memory.predicted_feature, memory.output_keys, memory.prediction,
        )
        _emit(console, args.json, result, _print_prediction)

    elif args.command == "learn":
        try:
            edges = engine.brain.learn(args.memory_id, args.actual)
        except MemoryNotFoundError as e:
            logger.error("%s", e)
            return 1
        engine.save_state()
        result = [
            {"source": e.source, "target": e.target, "weight": e.weight}
            for e in edges
        ]
        _emit(console, args.json, result, _print_edges)

    elif args.command == "generate":
        overrides = {}
        if args.temperature is not None:
            overrides["temperature"] = args.temperature
        if args.max_tokens is not None:
            overrides["max_tokens"] = args.max_tokens
        gen_config = config.generation.model_copy(update=overrides)

        vocabulary = _candidate_list(args.vocab)
        if args.reason:
            result = engine.answer(args.context, vocabulary, gen_config).to_dict()
        else:
            result = {"text": engine.generator.generate(args.context, vocabulary, gen_config)}
        result["vocabulary"] = predict_vocabulary(vocabulary).label
        engine.save_state()
        _emit(console, args.json, result, _print_text)

    elif args.command == "memories":
        end = datetime.now(timezone.utc)
        start = end - timedelta(hours=args.hours)
        items = retrieve_memories(engine.store, start, end, args.prompt, args.limit)
        _emit(console, args.json, [item.to_dict() for item in items], _print_memories)

    return 0


def _emit(console: Console, as_json: bool, payload: Any, printer) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, default=str))
    else:
        printer(console, payload)


def _print_status(console: Console, stats: Dict[str, Any]) -> None:
    table = Table(title="Associa Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for section, values in stats.items():
        for name, value in values.items():
            shown = f"{value:.4f}" if isinstance(value, float) else str(value)
            table.add_row(f"{section}.{name}", shown)
    console.print(table)


def _print_add(console: Console, result: Dict[str, Any]) -> None:
    color = "green" if result["accepted"] else "yellow"
    verdict = "ACCEPTED" if result["accepted"] else "REJECTED"
    weight = result["weight"]
    shown = f"{weight:.4f}" if weight is not None else "-"
    console.print(f"[bold {color}]{verdict}[/] {result['source']} -> "
                  f"{result['target']} (weight: {shown})")


def _print_paths(console: Console, paths: List[Dict[str, Any]]) -> None:
    if not paths:
        console.print("[yellow]No reasoning paths found[/]")
        return
    for idx, path in enumerate(paths, start=1):
        table = Table(title=f"Path {idx} (confidence {path['total_confidence']:.4f})")
        table.add_column("#", style="cyan", justify="right")
        table.add_column("Feature", style="white")
        table.add_column("Weight", justify="right")
        for step, (value, weight) in enumerate(zip(path["features"], path["weights"]), 1):
            table.add_row(str(step), value, f"{weight:.4f}")
        console.print(table)


def _print_prediction(console: Console, memory: Dict[str, Any]) -> None:
    console.print(Panel(
        f"[bold green]{memory['predicted_feature']}[/]",
        title=f"Prediction (memory {memory['memory_id']})",
    ))
    table = Table()
    table.add_column("Candidate", style="cyan")
    table.add_column("Score", justify="right")
    for key, score in zip(memory["output_keys"], memory["prediction"]):
        table.add_row(key, f"{score:.4f}")
    console.print(table)
    console.print(f"[dim]{memory['explanation']}[/]")


def _print_memories(console: Console, items: List[Dict[str, Any]]) -> None:
    if not items:
        console.print("[yellow]No memories in window[/]")
        return
    table = Table(title="Memories")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Time")
    table.add_column("Inputs")
    table.add_column("Predicted", style="green")
    table.add_column("Relevance", justify="right")
    for item in items:
        table.add_row(str(item["memory_id"]), item["timestamp"] or "-",
                      ", ".join(item["input_features"]),
                      item["predicted_value"] or "-",
                      f"{item['relevance_score']:.0f}")
    console.print(table)


def _print_edges(console: Console, edges: List[Dict[str, Any]]) -> None:
    table = Table(title="Updated Edges")
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="white")
    table.add_column("Weight", justify="right")
    for edge in edges:
        table.add_row(edge["source"], edge["target"], f"{edge['weight']:.4f}")
    console.print(table)


def _candidate_list(words: Sequence[str]) -> List[str]:
    """Drop case-insensitive repeats, keeping each first spelling."""
    vocab = Vocabulary("cli")
    candidates: List[str] = []
    for word in words:
        if not word.strip() or word in vocab:
            continue
        vocab.add_word(word)
        candidates.append(word)
    return candidates


def _print_text(console: Console, result: Dict[str, Any]) -> None:
    console.print(Panel(
        result["text"] or "[dim](empty)[/]",
        title="Generated",
        subtitle=result.get("vocabulary"),
    ))
    if result.get("explanation"):
        console.print(f"[dim]{result['explanation']}[/]")


if __name__ == "__main__":
    sys.exit(main())

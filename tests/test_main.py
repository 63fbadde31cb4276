"""Tests for the AssociaEngine facade and the CLI."""

import json

import pytest

from associa_core.sequence_generator import GenerationConfig
from config_schema import AssociaConfig
from main import AssociaEngine, main


@pytest.fixture
def config(tmp_path):
    return AssociaConfig(random_seed=1, store={"state_path": str(tmp_path / "state.json")})


@pytest.fixture
def engine(config):
    engine = AssociaEngine(config)
    engine.knowledge.add_knowledge("stock_price_drop", "sell", 0.8)
    engine.knowledge.add_knowledge("sell", "loss", 0.6)
    return engine


class TestAssociaEngine:
    def test_components_share_store(self, engine):
        assert engine.brain.get_connected_features("stock_price_drop", 2)[-1].value == "loss"

    def test_reason_uses_configured_limits(self):
        engine = AssociaEngine(AssociaConfig(reasoning={"max_hops": 2}))
        engine.knowledge.add_knowledge("stock_price_drop", "sell", 0.8)
        engine.knowledge.add_knowledge("sell", "loss", 0.6)
        paths = engine.reason(["stock_price_drop"])
        assert paths[0].values == ["stock_price_drop", "sell", "loss"]
        assert paths[0].total_confidence == pytest.approx(0.8)

    def test_answer_carries_sources_and_explanation(self, engine):
        config = GenerationConfig(temperature=0.0, max_tokens=3)
        answer = engine.answer(["stock_price_drop"], ["sell", "hold", "<EOS>"], config)
        assert isinstance(answer.text, str)
        assert answer.sources == ["stock_price_drop", "sell", "loss"]
        assert answer.explanation.startswith("I reasoned through 1 path")

    def test_answer_without_explanation(self, engine):
        config = GenerationConfig(temperature=0.0, max_tokens=3, include_explanation=False)
        answer = engine.answer(["stock_price_drop"], ["sell", "<EOS>"], config)
        assert answer.explanation is None
        assert answer.to_dict()["explanation"] is None

    def test_answer_applies_min_confidence(self, engine):
        config = GenerationConfig(temperature=0.0, max_tokens=3, min_confidence=0.7)
        answer = engine.answer(["stock_price_drop"], ["sell", "<EOS>"], config)
        assert answer.sources == ["stock_price_drop", "sell"]

    def test_answer_applies_max_hops(self, engine):
        config = GenerationConfig(temperature=0.0, max_tokens=3, max_hops=1)
        answer = engine.answer(["stock_price_drop"], ["sell", "<EOS>"], config)
        assert answer.sources == ["stock_price_drop", "sell"]

    def test_state_round_trip(self, engine, config):
        engine.save_state()
        restored = AssociaEngine(config)
        assert restored.load_state() is True
        assert restored.stats()["store"]["edge_count"] == 2

    def test_load_without_state_file(self, config):
        assert AssociaEngine(config).load_state() is False


class TestCli:
    @pytest.fixture
    def run(self, tmp_path, capsys):
        base = ["--config", str(tmp_path / "missing.yaml"),
                "--state", str(tmp_path / "state.json"), "--json"]

        def _run(*args):
            code = main(base + list(args))
            return code, capsys.readouterr().out

        return _run

    def test_add_then_reason(self, run):
        assert run("add", "stock_price_drop", "sell", "0.8")[0] == 0
        assert run("add", "sell", "loss", "0.6")[0] == 0

        code, out = run("reason", "stock_price_drop", "--hops", "2")
        assert code == 0
        paths = json.loads(out)
        assert paths[0]["features"] == ["stock_price_drop", "sell", "loss"]
        assert paths[0]["total_confidence"] == pytest.approx(0.8)

    def test_add_rejected(self, run):
        run("add", "a", "b", "0.5")
        code, out = run("add", "a", "b", "0.9", "--strategy", "REJECT")
        assert code == 1
        assert json.loads(out)["weight"] == pytest.approx(0.5)

    def test_predict_learn_and_memories(self, run):
        code, out = run("predict", "--inputs", "cloudy", "--outputs", "rain", "sun")
        assert code == 0
        memory = json.loads(out)
        assert memory["memory_id"] == 1
        assert memory["explanation"].startswith(f'Selected "{memory["predicted_feature"]}"')

        code, out = run("learn", "1", "rain")
        assert code == 0
        assert len(json.loads(out)) == 2

        code, out = run("memories", "--prompt", "cloudy")
        assert code == 0
        items = json.loads(out)
        assert items[0]["relevance_score"] == 1.0

    def test_learn_unknown_memory(self, run):
        assert run("learn", "9", "rain")[0] == 1

    def test_generate(self, run):
        run("add", "weather", "sunny", "0.9")
        code, out = run("generate", "weather", "--vocab", "sunny", "<EOS>",
                        "--temperature", "0", "--max-tokens", "2")
        assert code == 0
        result = json.loads(out)
        assert isinstance(result["text"], str)
        assert result["vocabulary"] == "vocabulary_2"

    def test_generate_with_reasoning(self, run):
        run("add", "weather", "sunny", "0.9")
        code, out = run("generate", "weather", "--vocab", "sunny", "<EOS>",
                        "--temperature", "0", "--max-tokens", "2", "--reason")
        assert code == 0
        result = json.loads(out)
        assert result["sources"] == ["weather", "sunny"]
        assert result["explanation"]

    def test_predict_drops_repeated_outputs(self, run):
        code, out = run("predict", "--inputs", "cloudy", "--outputs", "rain", "Rain", "sun")
        assert code == 0
        assert json.loads(out)["output_keys"] == ["rain", "sun"]

    def test_status(self, run):
        run("add", "stock_price_drop", "sell", "0.8")
        code, out = run("status", "--feature", "stock_price_drop")
        assert code == 0
        stats = json.loads(out)
        assert stats["store"]["edge_count"] == 1
        assert stats["neighbourhood"]["stock_price_drop"] == "sell"

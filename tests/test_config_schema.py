"""Tests for config.yaml validation."""

import pytest
from pydantic import ValidationError

from associa_core.knowledge_integrator import ConflictResolution
from config_schema import AssociaConfig, load_and_validate, validate_config


class TestValidateConfig:
    def test_defaults(self):
        config = validate_config({})
        assert config.learning.learning_rate == pytest.approx(0.1)
        assert config.learning.discount_factor == pytest.approx(0.08)
        assert config.reasoning.max_hops == 3
        assert config.generation.end_token == "<EOS>"
        assert config.knowledge.default_strategy is ConflictResolution.AVERAGE
        assert config.random_seed is None

    def test_unknown_keys_ignored(self):
        config = validate_config({"future_section": {"x": 1}, "reasoning": {"beam": 2}})
        assert config.reasoning.max_hops == 3

    def test_strategy_coerced(self):
        config = validate_config({"knowledge": {"default_strategy": "REPLACE"}})
        assert config.knowledge.default_strategy is ConflictResolution.REPLACE

    @pytest.mark.parametrize("raw", [
        {"learning": {"learning_rate": -0.1}},
        {"reasoning": {"min_confidence": 1.5}},
        {"generation": {"beam_width": 0}},
        {"knowledge": {"default_strategy": "MERGE"}},
    ])
    def test_invalid_values(self, raw):
        with pytest.raises(ValidationError):
            validate_config(raw)


class TestLoadAndValidate:
    def test_missing_file(self, tmp_path):
        config = load_and_validate(str(tmp_path / "nope.yaml"))
        assert config == AssociaConfig()

    def test_loads_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "associa:\n"
            "  random_seed: 42\n"
            "  learning:\n"
            "    learning_rate: 0.2\n"
            "  store:\n"
            "    state_path: /tmp/graph.json\n"
        )
        config = load_and_validate(str(path))
        assert config.random_seed == 42
        assert config.learning.learning_rate == pytest.approx(0.2)
        assert config.store.state_path == "/tmp/graph.json"

    def test_invalid_file_falls_back(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("associa:\n  learning:\n    learning_rate: 5\n")
        assert load_and_validate(str(path)) == AssociaConfig()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_and_validate(str(path)) == AssociaConfig()

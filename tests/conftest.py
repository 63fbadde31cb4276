"""Shared fixtures for Associa tests."""

import numpy as np
import pytest

from associa_core.brain import Brain
from associa_core.reasoning_engine import ReasoningEngine
from feature_graph import InMemoryFeatureStore

SEED = 7


@pytest.fixture
def store():
    return InMemoryFeatureStore()


@pytest.fixture
def rng():
    return np.random.default_rng(SEED)


@pytest.fixture
def brain(store, rng):
    return Brain(store, rng=rng)


@pytest.fixture
def reasoning(store):
    return ReasoningEngine(store)


@pytest.fixture
def stock_graph(store):
    """stock_price_drop -> sell (0.8) -> loss (0.6)."""
    store.create_weighted_connection("stock_price_drop", "sell", 0.8)
    store.create_weighted_connection("sell", "loss", 0.6)
    return store

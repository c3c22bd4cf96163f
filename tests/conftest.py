"""
conftest.py - Shared pytest fixtures for lending tests

Provides:
- A fully wired world (asset ledger, oracle, rewards tracker, controller)
- Shortcuts to its parts
- A world with a 10 WETH deposit and a 10,000 USDC loan already open
"""

import pytest

from tests.fakes import build_world, default_parameters, E18


@pytest.fixture
def parameters():
    return default_parameters()


@pytest.fixture
def world(parameters):
    return build_world(parameters)


@pytest.fixture
def pool(world):
    return world.pool


@pytest.fixture
def assets(world):
    return world.assets


@pytest.fixture
def oracle(world):
    return world.oracle


@pytest.fixture
def tracker(world):
    return world.tracker


@pytest.fixture
def borrowed_world(world):
    """alice: 10 WETH collateral, 10,000 USDC debt (health factor 1.6)."""
    world.pool.deposit("alice", 10 * E18)
    world.pool.borrow("alice", 10_000 * E18)
    return world

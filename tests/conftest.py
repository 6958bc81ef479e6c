"""Shared fixtures."""

import random

import pytest

from dicelobby.config import AppConfig, RollConfig

# Simulated seconds a roll may take before a test calls it stuck
SETTLE_SECONDS = 12
SETTLE_TICKS = SETTLE_SECONDS * 60


def fast_config(**roll_overrides) -> AppConfig:
    """Config that ticks fast and deterministically. No watchdog, so every result is a natural settle."""
    roll = dict(tick_rate=1000.0, use_wall_clock_dt=False, seed=7)
    roll.update(roll_overrides)
    return AppConfig(roll=RollConfig(**roll))


@pytest.fixture
def config() -> AppConfig:
    return fast_config()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)

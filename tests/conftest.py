"""Shared fixtures for the divergence bot tests."""

import pytest

from divergence_arb.config import Config
from sample_data import fake_venue


@pytest.fixture
def config():
    """Default config with no waiting between polls."""
    config = Config.default()
    config.trading.fill_confirmation_delay_sec = 0
    config.trading.watch_interval_sec = 0
    config.monitor.interval_sec = 0
    config.monitor.min_volume = 0
    config.session.export_results = False
    return config


@pytest.fixture
def venue_a():
    return fake_venue("gateio", fee_rate=0.00016)


@pytest.fixture
def venue_b():
    return fake_venue("orderly", fee_rate=0.00018)

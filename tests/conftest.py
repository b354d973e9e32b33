# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for price simulation tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).parent))

from config import SamplerConfig, SimulationConfig  # noqa: E402
from fake_node import FakeProvider, build_market  # noqa: E402
from pricing.price_fetcher import PriceFetcher  # noqa: E402


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


@pytest.fixture
def sim_config() -> SimulationConfig:
    return SimulationConfig().validate()


@pytest.fixture
def sampler_config() -> SamplerConfig:
    return SamplerConfig(buy_steps=3, sell_points=4, max_in_flight=2).validate()


@pytest.fixture
def market():
    """Untaxed WETH/TOKEN market: 1000 WETH, 2,000,000 TOKEN."""
    return build_market()


@pytest.fixture
def fetcher(market, sim_config) -> PriceFetcher:
    return PriceFetcher(FakeProvider(market.node), sim_config)

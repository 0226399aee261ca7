"""Pytest configuration and shared fixtures."""

import pytest
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tests.fixtures.test_inputs import (
    get_tower_construction_item,
    get_sample_scenario,
    get_levered_scenario,
    get_sample_categories,
)


@pytest.fixture
def tower_item():
    """Escalated construction item with 5% retention released two months late."""
    return get_tower_construction_item()


@pytest.fixture
def sample_scenario():
    """Unlevered build-and-sell scenario."""
    return get_sample_scenario()


@pytest.fixture
def levered_scenario():
    """Build-and-sell scenario with a senior loan, covenants and an equity waterfall."""
    return get_levered_scenario()


@pytest.fixture
def sample_categories():
    """Three-period category series that tie out to the balance sheet."""
    return get_sample_categories()

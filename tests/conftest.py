"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from practice_core.core.engine import AdaptiveEngine  # noqa: E402
from practice_core.core.engine_config import EngineConfig  # noqa: E402
from practice_core.core.state import EngineState  # noqa: E402
from practice_core.delivery.selector import ExplorationPolicy  # noqa: E402
from practice_core.delivery.state_store import MemoryStateBackend  # noqa: E402

# 2024-06-15T12:00:00Z
NOW = 1_718_452_800_000
HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (file or SQL persistence)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """Fixed reference time (epoch ms, midday UTC)."""
    return NOW


@pytest.fixture
def config():
    """Default engine configuration."""
    return EngineConfig()


@pytest.fixture
def policy(config):
    """Seeded exploration policy so selection is reproducible."""
    return ExplorationPolicy(config.base_exploration, seed=1234)


@pytest.fixture
def engine(config, policy):
    """In-memory engine with a seeded policy and a fresh state."""
    return AdaptiveEngine(
        EngineState(config=config),
        backend=MemoryStateBackend(),
        policy=policy,
    )


@pytest.fixture
def sample_item():
    """Provide a sample registration payload."""
    return {
        "id": 42,
        "formulaId": "speed",
        "category": "AR",
        "difficulty": "easy",
        "text": "A car travels at 50 mph for 2 hours. How far does it go?",
        "answer": "100",
    }


@pytest.fixture
def sample_attempt():
    """Provide a sample live attempt payload (camelCase, as sent by clients)."""
    return {
        "ts": NOW,
        "itemId": 42,
        "formulaId": "speed",
        "category": "AR",
        "correct": True,
        "timeMs": 4200,
        "difficulty": "easy",
    }

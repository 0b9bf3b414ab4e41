"""
Pytest configuration and fixtures for kanbill tests.
"""

import pytest
import sys
from pathlib import Path

# Configure pytest-asyncio
pytest_plugins = ["pytest_asyncio"]

# Add packages to path for testing
packages_dir = Path(__file__).parent.parent / "packages"
sys.path.insert(0, str(packages_dir / "kanbill-core"))
sys.path.insert(0, str(packages_dir / "kanbill-mcp"))


class FlakyStore:
    """MemoryTaskStore wrapper whose operations can be made to fail."""

    def __init__(self, fail_on=()):
        from kanbill.services.tasks import MemoryTaskStore

        self.inner = MemoryTaskStore()
        self.fail_on = set(fail_on)
        self.calls = []

    @property
    def records(self):
        return self.inner.records

    def _check(self, operation):
        if operation in self.fail_on:
            raise ConnectionError(f"{operation} unavailable")

    async def fetch_all(self, user_id):
        self.calls.append(("fetch_all", user_id))
        self._check("fetch_all")
        return await self.inner.fetch_all(user_id)

    async def create(self, task, column_id, user_id=None):
        self.calls.append(("create", task.id, column_id))
        self._check("create")
        return await self.inner.create(task, column_id, user_id)

    async def update(self, task, column_id=None, user_id=None):
        self.calls.append(("update", task.id, column_id))
        self._check("update")
        return await self.inner.update(task, column_id, user_id)

    async def delete(self, task_id):
        self.calls.append(("delete", task_id))
        self._check("delete")
        return await self.inner.delete(task_id)

    async def close(self):
        pass


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / ".kanbill"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def store():
    """In-memory store that records calls."""
    return FlakyStore()


@pytest.fixture
def notifier():
    from kanbill.services.notifications import MemoryNotifier

    return MemoryNotifier()


@pytest.fixture
def board_config():
    """Default board layout without recurrence delay."""
    from kanbill.config import BoardConfig

    return BoardConfig(recurrence_delay=0)


@pytest.fixture
def controller(store, notifier, board_config):
    """BoardController over a FlakyStore."""
    from kanbill.services.board import BoardController

    return BoardController(store, board_config, notifier=notifier)


@pytest.fixture
def flaky_store_factory():
    return FlakyStore


@pytest.fixture
def sample_task_data():
    """Sample task data for testing."""
    return {
        "title": "Landing page",
        "description": "Build the landing page for the spring campaign",
        "priority": "high",
        "tags": ["web", "design"],
        "client_name": "Acme",
        "client_phone": "+55 11 99999-0000",
        "billing_value": 1200.0,
        "billing_period": "unique",
    }

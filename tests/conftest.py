"""
Pytest configuration and fixtures for strikewarden tests.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from strikewarden.configuration.app_configuration import AppConfig  # noqa: E402
from strikewarden.database.database import Database  # noqa: E402
from strikewarden.main import create_services  # noqa: E402


@pytest.fixture
def config(tmp_path):
    """AppConfig backed by a file that does not exist, i.e. built-in defaults."""
    return AppConfig(tmp_path / "missing_config.yml")


@pytest_asyncio.fixture
async def db(tmp_path):
    """Temporary, initialized database."""
    database = Database(tmp_path / "test.db")
    await database.initialize()
    yield database
    await database.shutdown()


@pytest_asyncio.fixture
async def services(db, config):
    return create_services(db, config)


@pytest.fixture
def enforcement():
    """AsyncMock standing in for the chat platform."""
    mock = AsyncMock()
    mock.send_message.return_value = {"message_id": 123}
    return mock

"""Shared test fixtures for the companion."""

import tempfile
from pathlib import Path

import pytest

from companion.gateway.auth import AuthManager
from companion.gateway.config import CompanionConfig, StorageConfig, ToolsConfig
from companion.storage.store import Store


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def db_path(tmp_dir):
    """Provide a temporary database path."""
    return tmp_dir / "test_companion.db"


@pytest.fixture
def config(db_path):
    """Default config pointed at the temporary database, external tools off."""
    return CompanionConfig(
        storage=StorageConfig(database_path=str(db_path)),
        tools=ToolsConfig(web_search_enabled=False, image_gen_enabled=False),
    )


@pytest.fixture
def store(db_path):
    """An opened store on the temporary database."""
    s = Store(db_path=db_path)
    s.open()
    yield s
    s.close()


@pytest.fixture
def auth_manager():
    return AuthManager(token_ttl_seconds=3600)


@pytest.fixture
def conversation(store):
    """A conversation owned by user1."""
    return store.create_conversation("user1")


@pytest.fixture
def token(store, auth_manager):
    """A valid bearer token for user1."""
    return auth_manager.issue_token(store, "user1")

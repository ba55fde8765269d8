"""Pytest configuration and shared fixtures for the MongoDB node tests.

Test Organization:
-------------------
tests/
├── unit/                    # Fast, isolated tests (mocked Motor client)
│   ├── test_exceptions.py   # Exception hierarchy and driver error mapping
│   ├── test_ejson.py        # Extended JSON parsing
│   ├── test_normalizer.py   # Item-to-document normalization
│   ├── test_node.py         # Operation dispatch and continue-on-fail
│   └── ...
└── conftest.py              # This file - shared fixtures

Unit tests never open a network connection: the node and the credential
check accept a ``client_factory``, and the ``client_factory`` fixture below
hands them a mocked client whose every collection is ``mock_collection``.

Example Usage:
--------------
```python
@pytest.mark.asyncio
async def test_find(node, mock_collection):
    mock_collection.find.return_value.to_list.return_value = [{"name": "Ada"}]
    records = await node.execute([{}], {"operation": "find", "collection": "people"})
    assert records[0].json == {"name": "Ada"}
```
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.mongodb_node.models import MongoDbCredentials
from src.mongodb_node.node import MongoDbNode

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers.

    ```bash
    pytest -m unit              # Only unit tests (fast)
    pytest -m "not slow"        # Skip slow tests
    ```
    """
    config.addinivalue_line("markers", "unit: Fast unit tests with mocked dependencies")
    config.addinivalue_line("markers", "integration: Integration tests with real dependencies")
    config.addinivalue_line("markers", "slow: Tests that take more than 1 second")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location.

    - tests/unit/* → @pytest.mark.unit
    - tests/integration/* → @pytest.mark.integration
    """
    for item in items:
        test_path = Path(item.fspath)

        if "unit" in test_path.parts:
            item.add_marker(pytest.mark.unit)
        elif "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# MOCK DATABASE FIXTURES
# =============================================================================


def _mock_cursor(documents: list | None = None) -> MagicMock:
    """Cursor mock whose skip/limit/sort chain back to itself."""
    cursor = MagicMock()
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=documents or [])
    return cursor


@pytest.fixture
def mock_collection() -> MagicMock:
    """Mocked Motor collection.

    ``find`` and ``aggregate`` return chainable cursors whose ``to_list`` is
    awaitable; every write method is an AsyncMock.

    Example:
    --------
    >>> def test_query(mock_collection):
    ...     mock_collection.find.return_value.to_list.return_value = [{"_id": 1}]
    """
    collection = MagicMock()
    collection.find.return_value = _mock_cursor()
    collection.aggregate.return_value = _mock_cursor()
    collection.insert_many = AsyncMock()
    collection.update_one = AsyncMock()
    collection.find_one_and_update = AsyncMock()
    collection.find_one_and_replace = AsyncMock()
    collection.delete_many = AsyncMock()
    return collection


@pytest.fixture
def mock_database(mock_collection: MagicMock) -> MagicMock:
    """Mocked Motor database returning ``mock_collection`` for any name."""
    db = MagicMock()
    db.__getitem__.return_value = mock_collection
    return db


@pytest.fixture
def mock_motor_client(mock_database: MagicMock) -> MagicMock:
    """Mocked Motor client returning ``mock_database`` for any name.

    ``list_database_names`` reports the database used by ``credentials``.
    """
    client = MagicMock()
    client.__getitem__.return_value = mock_database
    client.list_database_names = AsyncMock(return_value=["admin", "inventory"])
    return client


@pytest.fixture
def client_factory(mock_motor_client: MagicMock) -> MagicMock:
    """Client factory handing out ``mock_motor_client``."""
    return MagicMock(return_value=mock_motor_client)


# =============================================================================
# NODE FIXTURES
# =============================================================================


@pytest.fixture
def credentials() -> MongoDbCredentials:
    """Parameterized credentials pointing at a local server."""
    return MongoDbCredentials(
        configuration_type="values",
        host="localhost",
        port=27017,
        database="inventory",
        user="node",
        password="secret",
    )


@pytest.fixture
def node(credentials: MongoDbCredentials, client_factory: MagicMock) -> MongoDbNode:
    """Node wired to the mocked client."""
    return MongoDbNode(credentials=credentials, client_factory=client_factory)


# =============================================================================
# TEST DATA FIXTURES
# =============================================================================


@pytest.fixture
def sample_items() -> list[dict]:
    """Host items as they arrive from an upstream node."""
    return [
        {
            "_id": "507f1f77bcf86cd799439011",
            "sku": "A-100",
            "name": "Widget",
            "qty": 3,
            "restocked": "2024-01-15T10:00:00Z",
        },
        {
            "_id": "507f1f77bcf86cd799439012",
            "sku": "B-200",
            "name": "Gadget",
            "qty": 0,
            "restocked": "not a date",
        },
    ]

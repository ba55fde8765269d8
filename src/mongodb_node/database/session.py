"""Per-invocation MongoDB session handling.

Each node invocation opens its own Motor client and closes it when the
invocation ends. ``MongoSession`` is the only place that happens: it is an
async context manager, so the client is released exactly once whether the
dispatch returns normally, records per-item failures, or raises.

Example:
    >>> database, connection_string = resolve_credentials(credentials)
    >>> async with MongoSession(connection_string, database) as session:
    ...     docs = await session.collection("users").find({}).to_list(length=None)
"""

import logging
from collections.abc import Callable
from urllib.parse import quote_plus

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import PyMongoError

from src.config.settings import settings

from ..exceptions import ConfigurationError, convert_to_node_error
from ..models import MongoDbCredentials

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], AsyncIOMotorClient]


# ============================================================================
# CONNECTION TARGET
# ============================================================================


def build_parameterized_conn_string(credentials: MongoDbCredentials) -> str:
    """Build a connection string from host / port / user / password values.

    A port selects a standard ``mongodb://`` URI; without one the host is
    treated as an SRV record (``mongodb+srv://``).

    Raises:
        ConfigurationError: If no host is given
    """
    host = credentials.host.strip()
    if not host:
        raise ConfigurationError(
            message="Host must be provided when connecting with parameters",
            details={"configuration_type": credentials.configuration_type},
        )

    auth = ""
    if credentials.user:
        auth = f"{quote_plus(credentials.user)}:{quote_plus(credentials.password)}@"

    if credentials.port:
        return f"mongodb://{auth}{host}:{credentials.port}"
    return f"mongodb+srv://{auth}{host}"


def resolve_credentials(credentials: MongoDbCredentials) -> tuple[str, str]:
    """Resolve credentials into ``(database_name, connection_string)``.

    Raises:
        ConfigurationError: If the database name or connection target is missing
    """
    database = credentials.database.strip()

    if credentials.configuration_type == "connectionString":
        connection_string = credentials.connection_string.strip()
        if not connection_string:
            raise ConfigurationError(
                message="Connection string must be provided",
                details={"configuration_type": credentials.configuration_type},
            )
        if not database:
            raise ConfigurationError(
                message="Database name must be provided separately",
                details={"configuration_type": credentials.configuration_type},
            )
    else:
        connection_string = build_parameterized_conn_string(credentials)
        if not database:
            raise ConfigurationError(
                message="Database name must be provided",
                details={"configuration_type": credentials.configuration_type},
            )

    return database, connection_string


def connect_client(connection_string: str) -> AsyncIOMotorClient:
    """Create a Motor client with the driver timeouts from settings.

    Motor connects lazily; connectivity problems surface on the first command.
    """
    return AsyncIOMotorClient(
        connection_string,
        serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
        connectTimeoutMS=settings.mongodb_connect_timeout_ms,
        appname=settings.mongodb_app_name,
    )


# ============================================================================
# SESSION
# ============================================================================


class MongoSession:
    """Async context manager owning one client for the length of an invocation.

    Example:
        async with MongoSession(connection_string, "inventory") as session:
            await session.collection("items").insert_many(documents)
    """

    def __init__(
        self,
        connection_string: str,
        database_name: str,
        client_factory: ClientFactory | None = None,
    ):
        """Initialize session.

        Args:
            connection_string: MongoDB connection string
            database_name: Database every collection is taken from
            client_factory: Builds the client (defaults to connect_client)
        """
        self.connection_string = connection_string
        self.database_name = database_name
        self._client_factory = client_factory or connect_client
        self._client: AsyncIOMotorClient | None = None
        self._database: AsyncIOMotorDatabase | None = None

    async def __aenter__(self) -> "MongoSession":
        """Open the client."""
        try:
            self._client = self._client_factory(self.connection_string)
        except PyMongoError as e:
            raise convert_to_node_error(e, context={"database": self.database_name}) from e

        self._database = self._client[self.database_name]
        logger.debug(f"Opened MongoDB session for database: {self.database_name}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the client; exceptions from the block propagate unchanged."""
        self.close()

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> AsyncIOMotorClient:
        if self._client is None:
            raise RuntimeError("MongoSession is not open. Use 'async with MongoSession(...)'.")
        return self._client

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._database is None:
            raise RuntimeError("MongoSession is not open. Use 'async with MongoSession(...)'.")
        return self._database

    def collection(self, name: str) -> AsyncIOMotorCollection:
        """Get a collection of the session's database."""
        return self.database[name]

    def close(self) -> None:
        """Close the client. Safe to call more than once."""
        if self._client is None:
            return

        client = self._client
        self._client = None
        self._database = None
        client.close()
        logger.debug(f"Closed MongoDB session for database: {self.database_name}")

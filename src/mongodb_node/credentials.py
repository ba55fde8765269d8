"""Credential verification for the MongoDB node.

Confirms that the credentials reach a server and that the configured
database exists there. Failures are reported in the result, never raised.
"""

import logging

from .database.session import ClientFactory, MongoSession, resolve_credentials
from .exceptions import ConfigurationError, convert_to_node_error
from .models import CredentialTestResult, MongoDbCredentials

logger = logging.getLogger(__name__)


async def verify_credentials(
    credentials: MongoDbCredentials,
    client_factory: ClientFactory | None = None,
) -> CredentialTestResult:
    """Connect with ``credentials`` and look the database up by name.

    Example:
        >>> result = await verify_credentials(MongoDbCredentials(host="db", database="shop"))
        >>> result.status, result.message
        ('OK', 'Connection successful!')
    """
    try:
        database_name, connection_string = resolve_credentials(credentials)

        async with MongoSession(connection_string, database_name, client_factory) as session:
            database_names = await session.client.list_database_names()

        if database_name not in database_names:
            raise ConfigurationError(
                message=f'Database "{database_name}" does not exist',
                details={"database": database_name},
            )
    except Exception as e:
        error = convert_to_node_error(e)
        logger.warning(f"Credential test failed: {error.message}")
        return CredentialTestResult(status="Error", message=error.message)

    logger.info(f"✓ Credential test passed for database: {database_name}")
    return CredentialTestResult(status="OK", message="Connection successful!")

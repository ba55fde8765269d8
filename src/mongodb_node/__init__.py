"""MongoDB node for workflow automation.

Runs one operation (aggregate, find, insert, update, findOneAndUpdate,
findOneAndReplace or delete) against a collection for a batch of items and
returns one output record per result, paired with the items it came from.

Main Components:
- MongoDbNode: Operation dispatcher with the continue-on-fail policy
- verify_credentials: Connection and database existence check
- NodeParameters / MongoDbCredentials: Host-facing input models
- ExecutionItem: Output record

Quick Start:
    >>> from src.mongodb_node import MongoDbCredentials, MongoDbNode
    >>> node = MongoDbNode(MongoDbCredentials(host="localhost", database="shop"))
    >>> records = await node.execute([{}], {"operation": "find", "collection": "orders"})
"""

from .credentials import verify_credentials
from .exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    DatabaseIntegrityError,
    DatabaseTimeoutError,
    IdentifierCoercionError,
    MongoNodeError,
    ParseError,
    QueryExecutionError,
    UnsupportedOperationError,
    convert_to_node_error,
)
from .logging_config import configure_logging
from .models import (
    CredentialTestResult,
    ExecutionItem,
    MongoDbCredentials,
    NodeOptions,
    NodeParameters,
    Operation,
)
from .node import MongoDbNode

__all__ = [
    # Node
    "MongoDbNode",
    "verify_credentials",
    "configure_logging",
    # Models
    "CredentialTestResult",
    "ExecutionItem",
    "MongoDbCredentials",
    "NodeOptions",
    "NodeParameters",
    "Operation",
    # Errors
    "ConfigurationError",
    "DatabaseConnectionError",
    "DatabaseError",
    "DatabaseIntegrityError",
    "DatabaseTimeoutError",
    "IdentifierCoercionError",
    "MongoNodeError",
    "ParseError",
    "QueryExecutionError",
    "UnsupportedOperationError",
    "convert_to_node_error",
]

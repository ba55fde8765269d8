"""Exception hierarchy for the MongoDB node.

All errors raised by the node inherit from MongoNodeError so callers can catch
node failures with a single except clause while still telling parse failures,
identifier coercion failures, driver failures and unsupported operations apart.

Error Kinds:
------------
- ParseError: malformed Extended JSON in a query, filter, pipeline or sort
- IdentifierCoercionError: a value bound for an ObjectId field is not usable
- DatabaseError: anything surfaced by the driver (and its subclasses)
- UnsupportedOperationError: the requested operation name is unknown
- ConfigurationError: credentials or settings cannot produce a connection

Every exception carries structured metadata:
- error_code: Machine-readable identifier (e.g., "INVALID_OBJECT_ID")
- message: Human-readable description, used verbatim in error items
- details: Additional context (collection, operation, offending value)
- timestamp / request_id: For correlating log lines with error items

Usage Example:
--------------
```python
try:
    await collection.update_one(filter_, {"$set": document})
except pymongo.errors.PyMongoError as e:
    raise convert_to_node_error(e, context={"collection": "users"}) from e
```
"""

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

# =============================================================================
# BASE EXCEPTION CLASS
# =============================================================================


@dataclass(frozen=True)
class MongoNodeError(Exception):
    """Base exception for all MongoDB node errors.

    Attributes:
    -----------
    message : str
        Human-readable error description. This is the text placed under the
        "error" key of an error item on continue-on-failure paths.
    error_code : str
        Machine-readable error identifier (e.g., "EJSON_PARSE_ERROR")
    details : dict
        Additional context about the error (collection, operation, value)
    timestamp : str
        ISO 8601 timestamp when the error occurred
    request_id : str
        Unique identifier for this error instance
    original_exception : Optional[Exception]
        The underlying exception that caused this error

    Example:
    --------
    >>> raise MongoNodeError(
    ...     message="Unexpected driver response",
    ...     error_code="INTERNAL_ERROR",
    ...     details={"operation": "find"},
    ... )
    """

    message: str
    error_code: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = field(default_factory=lambda: str(uuid4()))
    original_exception: Exception | None = None

    def __str__(self) -> str:
        """Human-readable error representation for logs."""
        error_msg = f"[{self.error_code}] {self.message}"
        if self.details:
            error_msg += f" | Details: {self.details}"
        if self.original_exception:
            error_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: {self.original_exception}"
            )
        return error_msg

    def __repr__(self) -> str:
        """Developer-friendly representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}', "
            f"request_id='{self.request_id}', "
            f"timestamp='{self.timestamp}'"
            f")"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for error item metadata.

        Returns:
        --------
        dict with keys: error, error_code, details, timestamp, request_id
        (and original_error when a cause is attached)

        Example:
        --------
        >>> error = UnsupportedOperationError(message='The operation "foo" is not supported!')
        >>> error.to_dict()
        {
            "error": 'The operation "foo" is not supported!',
            "error_code": "UNSUPPORTED_OPERATION",
            "details": {},
            "timestamp": "2024-01-20T10:30:00.000000+00:00",
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
        """
        error_dict = {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp,
            "request_id": self.request_id,
        }

        if self.original_exception:
            error_dict["original_error"] = {
                "type": type(self.original_exception).__name__,
                "message": str(self.original_exception),
                "traceback": traceback.format_exception(
                    type(self.original_exception),
                    self.original_exception,
                    self.original_exception.__traceback__,
                ),
            }

        return error_dict


# =============================================================================
# INPUT EXCEPTIONS
# =============================================================================


@dataclass(frozen=True)
class ParseError(MongoNodeError):
    """Malformed Extended JSON input.

    Use Case:
    ---------
    - Query or delete filter is not valid JSON
    - Aggregation pipeline is not a JSON array
    - Sort option cannot be parsed

    Example:
    --------
    >>> raise ParseError(
    ...     message="Invalid Extended JSON: Expecting value: line 1 column 1 (char 0)",
    ...     details={"text": "{status: active"},
    ... )
    """

    error_code: str = "EJSON_PARSE_ERROR"


@dataclass(frozen=True)
class IdentifierCoercionError(MongoNodeError):
    """A value bound for an ObjectId field cannot be converted.

    Raised when an identifier field holds something other than None, an
    ObjectId, or a 24-character hex string. Unlike date coercion, this aborts
    normalization of the record.

    Example:
    --------
    >>> raise IdentifierCoercionError(
    ...     message="'abc' is not a valid ObjectId",
    ...     details={"field": "_id", "value": "abc"},
    ... )
    """

    error_code: str = "INVALID_OBJECT_ID"


@dataclass(frozen=True)
class UnsupportedOperationError(MongoNodeError):
    """Requested operation name matches none of the known operations."""

    error_code: str = "UNSUPPORTED_OPERATION"


@dataclass(frozen=True)
class ConfigurationError(MongoNodeError):
    """Credentials or settings cannot produce a usable connection.

    Use Case:
    ---------
    - Database name missing from connection-string credentials
    - Host missing from parameterized credentials

    Example:
    --------
    >>> raise ConfigurationError(
    ...     message="Database name must be provided separately",
    ...     details={"configuration_type": "connectionString"},
    ... )
    """

    error_code: str = "CONFIGURATION_ERROR"


# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================


@dataclass(frozen=True)
class DatabaseError(MongoNodeError):
    """Base class for all failures surfaced by the driver."""

    error_code: str = "DATABASE_ERROR"


@dataclass(frozen=True)
class DatabaseConnectionError(DatabaseError):
    """Database connection failures.

    Use Case:
    ---------
    - MongoDB server unreachable
    - Server selection timed out
    - Authentication failure during handshake
    """

    error_code: str = "DB_CONNECTION_FAILED"


@dataclass(frozen=True)
class QueryExecutionError(DatabaseError):
    """Server-side rejection of a command.

    Use Case:
    ---------
    - Invalid operator in a filter or update document
    - Empty $set body
    - Unknown aggregation stage
    """

    error_code: str = "QUERY_EXECUTION_FAILED"


@dataclass(frozen=True)
class DatabaseTimeoutError(DatabaseError):
    """Database operation exceeded its time limit."""

    error_code: str = "DB_TIMEOUT"


@dataclass(frozen=True)
class DatabaseIntegrityError(DatabaseError):
    """Data integrity violations.

    Use Case:
    ---------
    - Duplicate key on insert or upsert
    - Document failed server-side validation

    Example:
    --------
    >>> raise DatabaseIntegrityError(
    ...     message="E11000 duplicate key error collection: app.users index: _id_",
    ...     details={"collection": "users", "operation": "insert"},
    ... )
    """

    error_code: str = "DB_INTEGRITY_ERROR"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def convert_to_node_error(
    exception: Exception,
    default_message: str | None = None,
    context: dict[str, Any] | None = None,
) -> MongoNodeError:
    """Convert any exception to the matching MongoNodeError subclass.

    Driver errors keep the driver's own text as the message, since that text
    is what ends up in error items handed back to the host.

    Args:
    -----
    exception : Exception
        The original exception to convert
    default_message : str, optional
        Message for unknown exception types (defaults to str(exception))
    context : dict, optional
        Additional context to include in error details

    Returns:
    --------
    MongoNodeError or subclass

    Example:
    --------
    >>> try:
    ...     await collection.insert_many(documents)
    ... except Exception as e:
    ...     raise convert_to_node_error(e, context={"operation": "insert"}) from e
    """
    import pymongo.errors

    context = context or {}

    if isinstance(exception, MongoNodeError):
        return exception

    message = str(exception)

    # DuplicateKeyError and WriteError both derive from OperationFailure,
    # ExecutionTimeout too, so the specific checks come first.
    if isinstance(exception, pymongo.errors.DuplicateKeyError):
        return DatabaseIntegrityError(
            message=message,
            details={**context, "code": exception.code},
            original_exception=exception,
        )

    # insert_many reports duplicates as a BulkWriteError, not a DuplicateKeyError.
    if isinstance(exception, pymongo.errors.BulkWriteError):
        write_errors = (exception.details or {}).get("writeErrors") or []
        duplicates = [error for error in write_errors if error.get("code") == 11000]
        if duplicates:
            return DatabaseIntegrityError(
                message=duplicates[0].get("errmsg") or message,
                details={
                    **context,
                    "code": 11000,
                    "index": duplicates[0].get("index"),
                    "n_write_errors": len(write_errors),
                },
                original_exception=exception,
            )

    if isinstance(exception, (pymongo.errors.ExecutionTimeout, pymongo.errors.WTimeoutError)):
        return DatabaseTimeoutError(
            message=message,
            details=context,
            original_exception=exception,
        )

    if isinstance(
        exception, (pymongo.errors.ConnectionFailure, pymongo.errors.ServerSelectionTimeoutError)
    ):
        return DatabaseConnectionError(
            message=message,
            details=context,
            original_exception=exception,
        )

    # Raised for malformed URIs and unusable client options (InvalidURI included).
    if isinstance(exception, pymongo.errors.ConfigurationError):
        return ConfigurationError(
            message=message,
            details=context,
            original_exception=exception,
        )

    if isinstance(exception, pymongo.errors.OperationFailure):
        return QueryExecutionError(
            message=message,
            details={**context, "code": exception.code},
            original_exception=exception,
        )

    if isinstance(exception, pymongo.errors.PyMongoError):
        return DatabaseError(
            message=message,
            details=context,
            original_exception=exception,
        )

    return MongoNodeError(
        message=default_message or message,
        error_code="INTERNAL_ERROR",
        details={**context, "error_type": type(exception).__name__, "error": message},
        original_exception=exception,
    )

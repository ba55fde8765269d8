"""Unit tests for exception hierarchy.

Test Coverage:
--------------
1. Exception instantiation and attributes
2. Exception inheritance hierarchy
3. Error code mapping
4. Exception serialization (to_dict)
5. Exception string representations
6. Driver exception conversion
"""

import pymongo.errors
import pytest

from src.mongodb_node.exceptions import (
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

# =============================================================================
# BASE EXCEPTION TESTS
# =============================================================================


@pytest.mark.unit
class TestMongoNodeError:
    """Test the base MongoNodeError class."""

    def test_basic_instantiation(self):
        """Test creating a basic exception with required fields."""
        error = MongoNodeError(message="Test error", error_code="TEST_ERROR")

        assert error.message == "Test error"
        assert error.error_code == "TEST_ERROR"
        assert isinstance(error.details, dict)
        assert isinstance(error.timestamp, str)
        assert isinstance(error.request_id, str)

    def test_with_details(self):
        """Test exception with additional context details."""
        error = MongoNodeError(
            message="Test error",
            error_code="TEST_ERROR",
            details={"collection": "orders", "operation": "find"},
        )

        assert error.details["collection"] == "orders"
        assert error.details["operation"] == "find"

    def test_request_ids_are_unique(self):
        first = MongoNodeError(message="a", error_code="A")
        second = MongoNodeError(message="a", error_code="A")

        assert first.request_id != second.request_id

    def test_string_representation(self):
        """Test __str__ method for logging."""
        error = MongoNodeError(
            message="Test error",
            error_code="TEST_ERROR",
            details={"key": "value"},
            original_exception=ValueError("boom"),
        )

        error_str = str(error)
        assert "TEST_ERROR" in error_str
        assert "Test error" in error_str
        assert "key" in error_str
        assert "ValueError: boom" in error_str

    def test_repr_representation(self):
        """Test __repr__ method for debugging."""
        error = ParseError(message="Invalid Extended JSON")

        error_repr = repr(error)
        assert "ParseError" in error_repr
        assert "EJSON_PARSE_ERROR" in error_repr
        assert "request_id" in error_repr

    def test_to_dict_serialization(self):
        """Test converting exception to dictionary for error item metadata."""
        error = MongoNodeError(
            message="Test error",
            error_code="TEST_ERROR",
            details={"field": "value"},
        )

        error_dict = error.to_dict()

        assert error_dict["error"] == "Test error"
        assert error_dict["error_code"] == "TEST_ERROR"
        assert error_dict["details"]["field"] == "value"
        assert "timestamp" in error_dict
        assert "request_id" in error_dict
        assert "original_error" not in error_dict

    def test_to_dict_with_original_exception(self):
        """Test serialization includes original exception info."""
        error = MongoNodeError(
            message="Wrapped error",
            error_code="WRAPPED_ERROR",
            original_exception=ValueError("Original error"),
        )

        error_dict = error.to_dict()

        assert error_dict["original_error"]["type"] == "ValueError"
        assert "Original error" in error_dict["original_error"]["message"]
        assert isinstance(error_dict["original_error"]["traceback"], list)

    def test_can_be_raised_and_caught(self):
        with pytest.raises(MongoNodeError) as exc_info:
            raise UnsupportedOperationError(message='The operation "foo" is not supported!')

        assert exc_info.value.message == 'The operation "foo" is not supported!'


# =============================================================================
# ERROR CODE TESTS
# =============================================================================


@pytest.mark.unit
class TestErrorCodes:
    """Each subclass carries its own default error code."""

    @pytest.mark.parametrize(
        "exc_class, error_code",
        [
            (ParseError, "EJSON_PARSE_ERROR"),
            (IdentifierCoercionError, "INVALID_OBJECT_ID"),
            (UnsupportedOperationError, "UNSUPPORTED_OPERATION"),
            (ConfigurationError, "CONFIGURATION_ERROR"),
            (DatabaseError, "DATABASE_ERROR"),
            (DatabaseConnectionError, "DB_CONNECTION_FAILED"),
            (QueryExecutionError, "QUERY_EXECUTION_FAILED"),
            (DatabaseTimeoutError, "DB_TIMEOUT"),
            (DatabaseIntegrityError, "DB_INTEGRITY_ERROR"),
        ],
    )
    def test_default_error_code(self, exc_class, error_code):
        error = exc_class(message="Test")

        assert error.error_code == error_code
        assert isinstance(error, MongoNodeError)


# =============================================================================
# EXCEPTION CONVERSION TESTS
# =============================================================================


@pytest.mark.unit
class TestExceptionConversion:
    """Test converting driver exceptions to node exceptions."""

    def test_node_exception_returns_same(self):
        """Test that node exceptions are returned unchanged."""
        original_error = ParseError(message="Invalid Extended JSON")

        converted = convert_to_node_error(original_error, context={"operation": "find"})

        assert converted is original_error

    def test_convert_bulk_write_duplicate_key(self):
        original = pymongo.errors.BulkWriteError(
            {
                "writeErrors": [
                    {"index": 1, "code": 11000, "errmsg": "E11000 duplicate key error"}
                ],
                "nInserted": 1,
            }
        )
        converted = convert_to_node_error(original, context={"operation": "insert"})

        assert isinstance(converted, DatabaseIntegrityError)
        assert converted.message == "E11000 duplicate key error"
        assert converted.details["code"] == 11000
        assert converted.details["index"] == 1
        assert converted.details["operation"] == "insert"

    def test_convert_bulk_write_other_error(self):
        original = pymongo.errors.BulkWriteError(
            {"writeErrors": [{"index": 0, "code": 121, "errmsg": "Document failed validation"}]}
        )

        assert isinstance(convert_to_node_error(original), QueryExecutionError)

    def test_convert_duplicate_key_error(self):
        original = pymongo.errors.DuplicateKeyError("E11000 duplicate key error", code=11000)
        converted = convert_to_node_error(original, context={"collection": "users"})

        assert isinstance(converted, DatabaseIntegrityError)
        assert converted.message == "E11000 duplicate key error"
        assert converted.details["code"] == 11000
        assert converted.details["collection"] == "users"

    def test_convert_pymongo_connection_error(self):
        """Test converting pymongo connection errors."""
        original = pymongo.errors.ConnectionFailure("Connection failed")
        converted = convert_to_node_error(original, context={"host": "localhost"})

        assert isinstance(converted, DatabaseConnectionError)
        assert converted.original_exception is original
        assert "host" in converted.details

    def test_convert_server_selection_timeout(self):
        original = pymongo.errors.ServerSelectionTimeoutError("No servers found")
        converted = convert_to_node_error(original)

        assert isinstance(converted, DatabaseConnectionError)

    def test_convert_pymongo_operation_error(self):
        """Test converting pymongo operation errors."""
        original = pymongo.errors.OperationFailure("'$set' is empty", code=9)
        converted = convert_to_node_error(original, context={"collection": "orders"})

        assert isinstance(converted, QueryExecutionError)
        assert converted.message == "'$set' is empty"
        assert converted.details["code"] == 9
        assert "collection" in converted.details

    def test_convert_pymongo_timeout_error(self):
        """Test converting pymongo timeout errors."""
        original = pymongo.errors.ExecutionTimeout("operation exceeded time limit")
        converted = convert_to_node_error(original)

        assert isinstance(converted, DatabaseTimeoutError)

    def test_convert_pymongo_configuration_error(self):
        original = pymongo.errors.InvalidURI("Invalid URI scheme")
        converted = convert_to_node_error(original)

        assert isinstance(converted, ConfigurationError)
        assert converted.message == "Invalid URI scheme"

    def test_convert_other_pymongo_error(self):
        original = pymongo.errors.PyMongoError("driver failure")
        converted = convert_to_node_error(original)

        assert type(converted) is DatabaseError

    def test_convert_generic_exception(self):
        """Test converting unknown exceptions to generic node error."""
        original = RuntimeError("Unknown error")
        converted = convert_to_node_error(
            original,
            default_message="Something went wrong",
            context={"operation": "insert"},
        )

        assert type(converted) is MongoNodeError
        assert converted.message == "Something went wrong"
        assert converted.error_code == "INTERNAL_ERROR"
        assert converted.details["operation"] == "insert"
        assert converted.details["error_type"] == "RuntimeError"
        assert converted.original_exception is original

    def test_convert_generic_exception_keeps_message(self):
        converted = convert_to_node_error(KeyError("sku"))

        assert converted.message == "'sku'"


# =============================================================================
# EXCEPTION HIERARCHY TESTS
# =============================================================================


@pytest.mark.unit
class TestExceptionHierarchy:
    """Test that exception inheritance is correct."""

    def test_database_exception_hierarchy(self):
        """Test database exception inheritance."""
        for exc_class in (
            DatabaseConnectionError,
            QueryExecutionError,
            DatabaseTimeoutError,
            DatabaseIntegrityError,
        ):
            error = exc_class(message="Test")
            assert isinstance(error, DatabaseError)
            assert isinstance(error, MongoNodeError)

    def test_input_exceptions_are_not_database_errors(self):
        for exc_class in (ParseError, IdentifierCoercionError, UnsupportedOperationError):
            error = exc_class(message="Test")
            assert not isinstance(error, DatabaseError)
            assert isinstance(error, Exception)

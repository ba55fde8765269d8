"""Pydantic models and enums for the node's parameters, credentials and output.

The workflow host passes parameters and credentials with camelCase names
(``updateKey``, ``useDotNotation``, ``connectionString``); every model accepts
those aliases as well as the snake_case field names.

Key Components:
    - Operation enum naming the supported verbs
    - NodeParameters / NodeOptions for one invocation
    - MongoDbCredentials for the connection target
    - ExecutionItem, the output record paired with its source items
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.config.settings import Settings, settings as default_settings


class Operation(str, Enum):
    """Operations the node can run against a collection."""

    AGGREGATE = "aggregate"
    DELETE = "delete"
    FIND = "find"
    FIND_ONE_AND_REPLACE = "findOneAndReplace"
    FIND_ONE_AND_UPDATE = "findOneAndUpdate"
    INSERT = "insert"
    UPDATE = "update"


class HostModel(BaseModel):
    """Base model accepting the host's camelCase parameter names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# PARAMETERS
# =============================================================================


class NodeOptions(HostModel):
    """Optional settings shared by the write operations and find."""

    use_dot_notation: bool = Field(
        False, description="Expand dotted keys such as 'address.city' into nested documents"
    )
    date_fields: str = Field("", description="Comma-separated fields to convert to dates")
    oid_fields: str = Field("", description="Comma-separated fields to convert to ObjectIds")
    limit: int = Field(0, description="Maximum documents returned by find (0 or less = no limit)")
    skip: int = Field(0, description="Documents skipped by find (0 or less = none skipped)")
    sort: str = Field("", description="Extended JSON sort specification for find")

    @field_validator("date_fields", "oid_fields", "sort", mode="before")
    @classmethod
    def none_to_empty(cls, value: str | None) -> str:
        return value or ""


class NodeParameters(HostModel):
    """Parameters of one node invocation.

    ``operation`` stays a plain string: unknown names are reported by the
    dispatcher as an unsupported operation rather than failing validation.
    """

    operation: str = Field(..., description="Operation name, e.g. 'find' or 'findOneAndUpdate'")
    collection: str = Field("", description="Collection the operation runs against")
    query: str = Field(
        "{}", description="Extended JSON filter (find/delete) or pipeline array (aggregate)"
    )
    fields: str = Field(
        "", description="Comma-separated fields to copy from each item (empty = all fields)"
    )
    update_key: str = Field(
        "", description="Field used to match documents in update-style operations"
    )
    upsert: bool = Field(False, description="Insert a new document when no document matches")
    options: NodeOptions = Field(default_factory=NodeOptions)

    @field_validator("collection", "update_key", "fields", mode="before")
    @classmethod
    def strip_text(cls, value: str | None) -> str:
        return (value or "").strip()

    @field_validator("query", mode="before")
    @classmethod
    def none_to_empty(cls, value: str | None) -> str:
        return value or ""


# =============================================================================
# CREDENTIALS
# =============================================================================


class MongoDbCredentials(HostModel):
    """Decrypted credentials for the connection target.

    With ``configuration_type="connectionString"`` the connection string is
    used as-is; with ``"values"`` one is built from host, port, user and
    password. The database name is always given separately.
    """

    configuration_type: Literal["connectionString", "values"] = Field("values")
    connection_string: str = Field("", repr=False)
    host: str = Field("")
    port: int | None = Field(27017, ge=1, le=65535)
    database: str = Field("")
    user: str = Field("")
    password: str = Field("", repr=False)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "MongoDbCredentials":
        """Build credentials from the MONGODB_* environment settings."""
        config = config or default_settings
        return cls(
            configuration_type="connectionString",
            connection_string=config.mongodb_connection_string,
            database=config.mongodb_database,
        )


class CredentialTestResult(BaseModel):
    """Outcome of a credential test."""

    status: Literal["OK", "Error"]
    message: str


# =============================================================================
# OUTPUT
# =============================================================================


@dataclass
class ExecutionItem:
    """One output record handed back to the host.

    Attributes:
        json: The record payload (ObjectIds already stringified)
        paired_item: Positions of the input items this record derives from
        error: Structured error metadata when the record reports a failure
    """

    json: dict[str, Any]
    paired_item: list[int] = field(default_factory=list)
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Render the record in the host's item shape."""
        data: dict[str, Any] = {
            "json": self.json,
            "pairedItem": [{"item": index} for index in self.paired_item],
        }
        if self.error is not None:
            data["error"] = self.error
        return data

"""MongoDB node: runs one operation for a batch of host items.

The operation name is read once per invocation and resolved to an Operation;
each Operation has exactly one handler, and an unknown name is reported as
an unsupported operation before any connection is opened.

Operations fall into two groups:

- Whole-batch (aggregate, delete, find, insert): one database call. On
  failure with continue-on-fail the whole response is a single error record.
- Per-item (update, findOneAndUpdate, findOneAndReplace): one call per item,
  awaited in order. On failure with continue-on-fail only that item's record
  reports the error and the remaining items are still processed.

Without continue-on-fail every failure propagates as a MongoNodeError. The
client session is opened and closed by MongoSession around the whole dispatch.

Example:
    >>> node = MongoDbNode(MongoDbCredentials(host="localhost", database="shop"))
    >>> output = await node.execute(
    ...     items=[{"sku": "A-1", "qty": 3}],
    ...     parameters={"operation": "update", "collection": "stock", "updateKey": "sku"},
    ... )
    >>> [record.to_dict() for record in output]
    [{'json': {'sku': 'A-1', 'qty': 3}, 'pairedItem': [{'item': 0}]}]
"""

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection

from .database.session import ClientFactory, MongoSession, resolve_credentials
from .ejson import parse_query, parse_sort
from .exceptions import MongoNodeError, ParseError, UnsupportedOperationError, convert_to_node_error
from .fields import prepare_fields
from .logging_config import CorrelationScope
from .models import ExecutionItem, MongoDbCredentials, NodeParameters, Operation
from .normalizer import normalize_item, prepare_items, split_update_document
from .serialization import stringify_object_ids

logger = logging.getLogger(__name__)

Item = Mapping[str, Any]
Handler = Callable[
    [AsyncIOMotorCollection, Sequence[Item], NodeParameters, bool],
    Awaitable[list[ExecutionItem]],
]
WriteCall = Callable[[AsyncIOMotorCollection, dict, dict, bool], Awaitable[Any]]


class MongoDbNode:
    """Find, aggregate, insert, update and delete documents in MongoDB.

    Args:
        credentials: Connection target (defaults to the MONGODB_* settings)
        client_factory: Builds the Motor client for each invocation
    """

    def __init__(
        self,
        credentials: MongoDbCredentials | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.credentials = credentials or MongoDbCredentials.from_settings()
        self._client_factory = client_factory
        self._handlers: dict[Operation, Handler] = {
            Operation.AGGREGATE: self._aggregate,
            Operation.DELETE: self._delete,
            Operation.FIND: self._find,
            Operation.FIND_ONE_AND_REPLACE: self._find_one_and_replace,
            Operation.FIND_ONE_AND_UPDATE: self._find_one_and_update,
            Operation.INSERT: self._insert,
            Operation.UPDATE: self._update,
        }

    async def execute(
        self,
        items: Sequence[Item],
        parameters: NodeParameters | Mapping[str, Any],
        continue_on_fail: bool = False,
    ) -> list[ExecutionItem]:
        """Run the requested operation for all items.

        Args:
            items: JSON payloads of the input items, in order
            parameters: Node parameters (a NodeParameters or the host's raw mapping)
            continue_on_fail: Turn failures into error records instead of raising

        Returns:
            Output records, each paired with the input positions it derives from

        Raises:
            UnsupportedOperationError: Unknown operation name (without continue_on_fail)
            ConfigurationError: Credentials cannot be resolved
            MongoNodeError: Any other failure, without continue_on_fail
        """
        if not isinstance(parameters, NodeParameters):
            parameters = NodeParameters.model_validate(parameters)
        items = list(items)

        with CorrelationScope():
            return await self._dispatch(items, parameters, continue_on_fail)

    async def _dispatch(
        self,
        items: list[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
    ) -> list[ExecutionItem]:
        try:
            operation = Operation(parameters.operation)
        except ValueError:
            error = UnsupportedOperationError(
                message=f'The operation "{parameters.operation}" is not supported!',
                details={"operation": parameters.operation},
            )
            if continue_on_fail:
                logger.warning(error.message)
                return [self._error_item(error, list(range(len(items))))]
            raise error from None

        database_name, connection_string = resolve_credentials(self.credentials)
        handler = self._handlers[operation]

        logger.info(
            f"Executing {operation.value} on '{parameters.collection}' with {len(items)} item(s)",
            extra={
                "operation": operation.value,
                "collection": parameters.collection,
                "item_count": len(items),
            },
        )

        async with MongoSession(connection_string, database_name, self._client_factory) as session:
            collection = session.collection(parameters.collection)
            return await handler(collection, items, parameters, continue_on_fail)

    # ========================================================================
    # WHOLE-BATCH OPERATIONS
    # ========================================================================

    async def _aggregate(
        self,
        collection: AsyncIOMotorCollection,
        items: Sequence[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
    ) -> list[ExecutionItem]:
        async def run() -> list[ExecutionItem]:
            pipeline = parse_query(parameters.query)
            if not isinstance(pipeline, list):
                raise ParseError(
                    message="Aggregation pipeline must be an array of stages",
                    details={"text": parameters.query},
                )
            documents = await collection.aggregate(pipeline).to_list(length=None)
            return self._result_items(documents, len(items))

        return await self._run_batch(Operation.AGGREGATE, parameters, len(items), continue_on_fail, run)

    async def _delete(
        self,
        collection: AsyncIOMotorCollection,
        items: Sequence[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
    ) -> list[ExecutionItem]:
        async def run() -> list[ExecutionItem]:
            filter_ = parse_query(parameters.query, coerce_id=False)
            result = await collection.delete_many(filter_)
            return self._result_items([{"deletedCount": result.deleted_count}], len(items))

        return await self._run_batch(Operation.DELETE, parameters, len(items), continue_on_fail, run)

    async def _find(
        self,
        collection: AsyncIOMotorCollection,
        items: Sequence[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
    ) -> list[ExecutionItem]:
        async def run() -> list[ExecutionItem]:
            options = parameters.options
            query = parse_query(parameters.query)
            sort = parse_sort(options.sort)

            cursor = collection.find(query)
            if options.skip > 0:
                cursor = cursor.skip(options.skip)
            if options.limit > 0:
                cursor = cursor.limit(options.limit)
            if sort:
                cursor = cursor.sort(list(sort.items()))

            documents = await cursor.to_list(length=None)
            return self._result_items(documents, len(items))

        return await self._run_batch(Operation.FIND, parameters, len(items), continue_on_fail, run)

    async def _insert(
        self,
        collection: AsyncIOMotorCollection,
        items: Sequence[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
    ) -> list[ExecutionItem]:
        async def run() -> list[ExecutionItem]:
            options = parameters.options
            documents = prepare_items(
                items,
                prepare_fields(parameters.fields),
                "",
                options.use_dot_notation,
                prepare_fields(options.date_fields),
                prepare_fields(options.oid_fields),
            )
            if not documents:
                return []

            result = await collection.insert_many(documents)

            # inserted_ids follows the order of the submitted documents.
            return [
                ExecutionItem(
                    json=stringify_object_ids({**document, "id": inserted_id}),
                    paired_item=[index],
                )
                for index, (document, inserted_id) in enumerate(
                    zip(documents, result.inserted_ids)
                )
            ]

        return await self._run_batch(Operation.INSERT, parameters, len(items), continue_on_fail, run)

    async def _run_batch(
        self,
        operation: Operation,
        parameters: NodeParameters,
        item_count: int,
        continue_on_fail: bool,
        run: Callable[[], Awaitable[list[ExecutionItem]]],
    ) -> list[ExecutionItem]:
        try:
            records = await run()
        except Exception as e:
            error = convert_to_node_error(
                e, context={"operation": operation.value, "collection": parameters.collection}
            )
            if not continue_on_fail:
                logger.error(f"{operation.value} failed: {error.message}")
                if error is e:
                    raise
                raise error from e
            logger.warning(f"{operation.value} failed, returning error record: {error.message}")
            return [self._error_item(error, list(range(item_count)))]

        logger.info(f"✓ {operation.value} complete: {len(records)} record(s)")
        return records

    # ========================================================================
    # PER-ITEM OPERATIONS
    # ========================================================================

    async def _update(
        self,
        collection: AsyncIOMotorCollection,
        items: Sequence[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
    ) -> list[ExecutionItem]:
        async def write(coll, filter_, body, upsert):
            return await coll.update_one(filter_, {"$set": body}, upsert=upsert)

        return await self._run_per_item(
            Operation.UPDATE, collection, items, parameters, continue_on_fail, write
        )

    async def _find_one_and_update(
        self,
        collection: AsyncIOMotorCollection,
        items: Sequence[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
    ) -> list[ExecutionItem]:
        async def write(coll, filter_, body, upsert):
            return await coll.find_one_and_update(filter_, {"$set": body}, upsert=upsert)

        return await self._run_per_item(
            Operation.FIND_ONE_AND_UPDATE, collection, items, parameters, continue_on_fail, write
        )

    async def _find_one_and_replace(
        self,
        collection: AsyncIOMotorCollection,
        items: Sequence[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
    ) -> list[ExecutionItem]:
        async def write(coll, filter_, body, upsert):
            return await coll.find_one_and_replace(filter_, body, upsert=upsert)

        return await self._run_per_item(
            Operation.FIND_ONE_AND_REPLACE, collection, items, parameters, continue_on_fail, write
        )

    async def _run_per_item(
        self,
        operation: Operation,
        collection: AsyncIOMotorCollection,
        items: Sequence[Item],
        parameters: NodeParameters,
        continue_on_fail: bool,
        write: WriteCall,
    ) -> list[ExecutionItem]:
        """Normalize and write each item in turn.

        The record of a successful item is its update body (the normalized
        document, without ``_id`` when ``_id`` is the update key).
        """
        options = parameters.options
        fields = prepare_fields(parameters.fields)
        date_fields = prepare_fields(options.date_fields)
        oid_fields = prepare_fields(options.oid_fields)
        update_key = parameters.update_key

        records: list[ExecutionItem] = []
        failures = 0

        for index, item in enumerate(items):
            document: dict[str, Any] | None = None
            try:
                document = normalize_item(
                    item, fields, update_key, options.use_dot_notation, date_fields, oid_fields
                )
                filter_, body = split_update_document(
                    document, update_key, options.use_dot_notation
                )
                await write(collection, filter_, body, parameters.upsert)
            except Exception as e:
                error = convert_to_node_error(
                    e,
                    context={
                        "operation": operation.value,
                        "collection": parameters.collection,
                        "item_index": index,
                    },
                )
                if not continue_on_fail:
                    logger.error(f"{operation.value} failed on item {index}: {error.message}")
                    if error is e:
                        raise
                    raise error from e

                failures += 1
                logger.warning(f"{operation.value} failed on item {index}: {error.message}")
                records.append(self._error_item(error, [index], document))
                continue

            records.append(ExecutionItem(json=stringify_object_ids(body), paired_item=[index]))

        logger.info(
            f"✓ {operation.value} complete: {len(items) - failures}/{len(items)} item(s) written"
        )
        return records

    # ========================================================================
    # OUTPUT HELPERS
    # ========================================================================

    @staticmethod
    def _result_items(documents: Sequence[Mapping[str, Any]], item_count: int) -> list[ExecutionItem]:
        """Wrap query results; each one derives from the whole input batch."""
        paired = list(range(item_count))
        return [
            ExecutionItem(json=stringify_object_ids(dict(document)), paired_item=list(paired))
            for document in documents
        ]

    @staticmethod
    def _error_item(
        error: MongoNodeError,
        paired_item: list[int],
        document: dict[str, Any] | None = None,
    ) -> ExecutionItem:
        metadata = error.to_dict()
        if document is not None:
            metadata["document"] = document
        return ExecutionItem(
            json={"error": error.message},
            paired_item=paired_item,
            error=stringify_object_ids(metadata),
        )

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

from .batch import BatchEngine, DeleteRequest, PutRequest, RetryPolicy, Sleep, WriteRequest
from .codec import ItemCodec
from .conditions import WriteCondition, resolve_projection
from .errors import NotFoundError, ValidationError
from .executor import Executor, send
from .model import ModelDefinition
from .parallel import ParallelScan
from .query import QueryBuilder
from .scan import ScanBuilder
from .update import build_update


class Table[T]:
    """Async access to one table described by a dataclass model."""

    def __init__(
        self,
        model: ModelDefinition[T],
        *,
        client: Any,
        table_name: str | None = None,
        retry_policy: RetryPolicy | None = None,
        max_concurrency: int | None = None,
        sleep: Sleep | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if table_name is None:
            table_name = model.table_name
        if not table_name:
            raise ValueError("table_name is required (or set ModelDefinition.table_name)")
        if client is None:
            raise ValueError("client is required")

        self._model = model
        self._table_name = table_name
        self._client = client
        self._max_concurrency = max_concurrency
        self._codec = ItemCodec(model, clock=clock)
        self._executor = Executor(client, self._codec)
        self._batch = BatchEngine(
            client,
            self._codec,
            table_name=table_name,
            retry_policy=retry_policy,
            max_concurrency=max_concurrency,
            sleep=sleep,
        )

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def codec(self) -> ItemCodec[T]:
        return self._codec

    async def get(self, pk: Any, sk: Any | None = None, *, consistent_read: bool = False) -> T:
        req: dict[str, Any] = {"TableName": self._table_name, "Key": self._codec.to_key(pk, sk)}
        if consistent_read:
            req["ConsistentRead"] = True

        resp = await send(self._client, "get_item", req)
        item = resp.get("Item")
        if not item:
            raise NotFoundError("item not found")
        return self._executor.decode_items([item])[0]

    async def put(self, item: T, *, condition: WriteCondition | None = None) -> None:
        req: dict[str, Any] = {"TableName": self._table_name, "Item": self._codec.to_item(item)}
        if condition is not None:
            req.update(condition.to_request(self._codec.serialize))
        await send(self._client, "put_item", req)

    async def create(self, item: T, *, condition: WriteCondition | None = None) -> T:
        """Stamp timestamps and put ``item`` only if its key is not taken yet."""
        stamped = self._codec.stamp_for_create(item)
        guard = condition.copy() if condition is not None else self.condition()
        guard.field(self._model.pk.python_name).not_exists()
        await self.put(stamped, condition=guard)
        return stamped

    async def update(
        self,
        pk: Any,
        sk: Any | None,
        changes: Mapping[str, Any],
        *,
        condition: WriteCondition | None = None,
    ) -> T:
        """Set (or, for ``None``, remove) the given fields and return the item as stored.

        ``updated_at`` is stamped unless ``changes`` sets it. The store creates
        the item when the key does not exist; guard with
        ``condition().field(<pk>).exists()`` to prevent that.
        """
        if not changes:
            raise ValidationError("no updates provided")

        req: dict[str, Any] = {
            "TableName": self._table_name,
            "Key": self._codec.to_key(pk, sk),
            "ReturnValues": "ALL_NEW",
        }
        if condition is not None:
            req.update(condition.to_request(self._codec.serialize))

        names = dict(req.get("ExpressionAttributeNames") or {})
        values = dict(req.get("ExpressionAttributeValues") or {})
        expression, new_names, new_values = build_update(
            self._codec,
            self._codec.stamp_for_update(changes),
            used_names=names,
            used_values=values,
        )
        req["UpdateExpression"] = expression
        req["ExpressionAttributeNames"] = names | new_names
        if values or new_values:
            req["ExpressionAttributeValues"] = values | new_values

        resp = await send(self._client, "update_item", req)
        attrs = resp.get("Attributes")
        if not attrs:
            raise ValidationError("update did not return Attributes")
        return self._executor.decode_items([attrs])[0]

    async def delete(self, pk: Any, sk: Any | None = None, *, condition: WriteCondition | None = None) -> None:
        req: dict[str, Any] = {"TableName": self._table_name, "Key": self._codec.to_key(pk, sk)}
        if condition is not None:
            req.update(condition.to_request(self._codec.serialize))
        await send(self._client, "delete_item", req)

    def condition(self) -> WriteCondition:
        return WriteCondition(self._model)

    def query(self, pk: Any, sk_value: Any | None = None) -> QueryBuilder[T]:
        return QueryBuilder(self._executor, table_name=self._table_name, partition_value=pk, sort_value=sk_value)

    def scan(self) -> ScanBuilder[T]:
        return ScanBuilder(self._executor, table_name=self._table_name)

    def parallel_scan(self, total_segments: int) -> ParallelScan[T]:
        return self.scan().parallel_scan(total_segments, max_concurrency=self._max_concurrency)

    async def batch_get(
        self,
        keys: Sequence[Any],
        *,
        consistent_read: bool = False,
        projection: Sequence[str] | None = None,
    ) -> list[T]:
        attrs = None
        if projection is not None:
            attrs = resolve_projection(self._codec, projection)
        return await self._batch.get(keys, consistent_read=consistent_read, projection=attrs)

    async def batch_write(self, requests: Sequence[WriteRequest[T]]) -> None:
        await self._batch.write(requests)

    async def batch_put(self, items: Sequence[T]) -> None:
        await self._batch.write([PutRequest(item) for item in items])

    async def batch_delete(self, keys: Sequence[Any]) -> None:
        requests: list[WriteRequest[T]] = []
        for key in keys:
            if isinstance(key, tuple):
                if len(key) != 2:
                    raise ValidationError("expected key tuple (pk, sk)")
                requests.append(DeleteRequest(key[0], key[1]))
            else:
                requests.append(DeleteRequest(key))
        await self._batch.write(requests)

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any, Literal, Self

from .conditions import KEY_CONDITION_OPERATORS, FieldCondition, add_condition, resolve_field, resolve_projection
from .errors import ValidationError
from .executor import Executor, ReadOperation
from .expressions import ConditionList, Operator
from .pages import Cursor, Page, SortOrder, decode_cursor
from .request import KeySchema, ReadOptions, build_request, resolve_key_schema, with_key_equality


class ReadBuilder[T]:
    """State and execution modes shared by query and scan builders."""

    _operation: ReadOperation

    def __init__(self, executor: Executor[T], *, table_name: str) -> None:
        self._executor = executor
        self._codec = executor.codec
        self._model = executor.codec.model
        self._table_name = table_name

        self._key_conditions = ConditionList()
        self._filter_conditions = ConditionList()
        self._index_name: str | None = None
        self._consistent_read = False
        self._limit: int | None = None
        self._start: Cursor | dict[str, Any] | None = None
        self._projection: tuple[str, ...] | None = None
        self._capacity: str | None = None
        self._select: str | None = None
        self._load_all = False

    def filter(self, field: str) -> FieldCondition[Self]:
        return FieldCondition(self, resolve_field(self._model, field), self._add_filter)

    def _add_filter(self, attribute: str, op: Operator, value: Any) -> None:
        add_condition(self._filter_conditions, attribute, op, value, siblings=(self._key_conditions,))

    def using_index(self, index_name: str) -> Self:
        resolve_key_schema(self._model, self._table_name, index_name)
        self._index_name = index_name
        return self

    def consistent_read(self, enabled: bool = True) -> Self:
        self._consistent_read = enabled
        return self

    def limit(self, limit: int) -> Self:
        if limit <= 0:
            raise ValidationError("limit must be > 0")
        self._limit = limit
        return self

    def start_key(self, key: str | Mapping[str, Any] | None) -> Self:
        if key is None:
            self._start = None
        elif isinstance(key, str):
            self._start = decode_cursor(key)
        else:
            self._start = self._codec.serialize_key_mapping(key)
        return self

    def projection_expression(self, *fields: str) -> Self:
        self._projection = resolve_projection(self._codec, fields)
        return self

    def return_consumed_capacity(self, level: str = "TOTAL") -> Self:
        self._capacity = level
        return self

    def select(self, value: str) -> Self:
        self._select = value
        return self

    def all(self, enabled: bool = True) -> Self:
        self._load_all = enabled
        return self

    def _sort_order(self) -> SortOrder | None:
        return None

    def _key_clause(self, schema: KeySchema) -> ConditionList:
        del schema
        return ConditionList()

    def _segment(self) -> tuple[int | None, int | None]:
        return None, None

    def _start_key(self, cursor: str | Cursor | dict[str, Any] | None) -> dict[str, Any] | None:
        if cursor is None:
            return None
        if isinstance(cursor, str):
            cursor = decode_cursor(cursor)
        if isinstance(cursor, Cursor):
            if cursor.index is not None and cursor.index != self._index_name:
                raise ValidationError("cursor index does not match request")
            expected = self._sort_order()
            if cursor.sort is not None and expected is not None and cursor.sort != expected:
                raise ValidationError("cursor sort does not match request")
            return cursor.last_key
        return cursor

    def build(self, cursor: str | Cursor | dict[str, Any] | None = None) -> dict[str, Any]:
        """Build the request document, starting at ``cursor`` or the configured start key."""
        schema = resolve_key_schema(self._model, self._table_name, self._index_name)
        if schema.index_type == "GSI" and self._consistent_read:
            raise ValidationError("consistent_read is not supported for GSIs")

        segment, total_segments = self._segment()
        options = ReadOptions(
            consistent_read=self._consistent_read,
            limit=self._limit,
            scan_forward=self._sort_order() != "DESC",
            exclusive_start_key=self._start_key(cursor if cursor is not None else self._start),
            projection=self._projection,
            return_consumed_capacity=self._capacity,
            segment=segment,
            total_segments=total_segments,
            select=self._select,
        )
        return build_request(
            self._table_name,
            self._key_clause(schema),
            self._filter_conditions,
            options,
            index_name=self._index_name,
            serialize=self._codec.serialize,
        )

    async def exec_with_pagination(self, cursor: str | None = None) -> Page[T]:
        return await self._executor.execute(self._operation, self.build(cursor))

    async def stream(self) -> AsyncIterator[Page[T]]:
        """Yield pages until the store stops returning a cursor.

        Every call starts again from the configured start key.
        """
        request = self.build()
        while True:
            page = await self._executor.execute(self._operation, request)
            yield page
            if page.cursor is None:
                return
            request = self.build(page.cursor)

    async def load_all(self) -> list[T]:
        items: list[T] = []
        async for page in self.stream():
            items.extend(page.items)
        return items

    async def exec(self) -> list[T]:
        if self._load_all:
            return await self.load_all()
        page = await self.exec_with_pagination()
        return page.items


class QueryBuilder[T](ReadBuilder[T]):
    _operation: ReadOperation = "query"

    def __init__(
        self,
        executor: Executor[T],
        *,
        table_name: str,
        partition_value: Any,
        sort_value: Any | None = None,
    ) -> None:
        if partition_value is None:
            raise ValidationError("partition is required")
        super().__init__(executor, table_name=table_name)
        self._partition_value = partition_value
        self._sort_value = sort_value
        self._scan_forward = True

    def where(self, field: str) -> FieldCondition[Self]:
        return FieldCondition(
            self,
            resolve_field(self._model, field),
            self._add_key,
            allowed=KEY_CONDITION_OPERATORS,
        )

    def _add_key(self, attribute: str, op: Operator, value: Any) -> None:
        add_condition(self._key_conditions, attribute, op, value, siblings=(self._filter_conditions,))

    def ascending(self) -> Self:
        self._scan_forward = True
        return self

    def descending(self) -> Self:
        self._scan_forward = False
        return self

    def _sort_order(self) -> Literal["ASC", "DESC"]:
        return "ASC" if self._scan_forward else "DESC"

    def _key_clause(self, schema: KeySchema) -> ConditionList:
        # Partition equality goes first, then the optional sort equality,
        # then every where() in call order.
        clause = self._key_conditions
        if self._sort_value is not None:
            if schema.sort is None:
                raise ValidationError("model/index does not define a sort key")
            clause = with_key_equality(schema.sort, self._sort_value, clause, self._filter_conditions)
        return with_key_equality(schema.partition, self._partition_value, clause, self._filter_conditions)

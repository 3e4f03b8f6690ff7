from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from .errors import IndexNotFoundError, ValidationError
from .expressions import ConditionList, Operator, compile_condition, used_placeholders
from .model import ModelDefinition
from .placeholders import name_placeholder

type IndexType = Literal["TABLE", "GSI", "LSI"]

_CAPACITY_LEVELS = {"INDEXES", "TOTAL", "NONE"}
_SELECT_VALUES = {"ALL_ATTRIBUTES", "ALL_PROJECTED_ATTRIBUTES", "SPECIFIC_ATTRIBUTES", "COUNT"}


@dataclass(frozen=True)
class ReadOptions:
    consistent_read: bool = False
    limit: int | None = None
    scan_forward: bool = True
    exclusive_start_key: Mapping[str, Any] | None = None
    projection: tuple[str, ...] | None = None
    return_consumed_capacity: str | None = None
    segment: int | None = None
    total_segments: int | None = None
    select: str | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit <= 0:
            raise ValidationError("limit must be > 0")
        if self.return_consumed_capacity is not None and self.return_consumed_capacity not in _CAPACITY_LEVELS:
            raise ValidationError(f"invalid return_consumed_capacity: {self.return_consumed_capacity}")
        if self.select is not None and self.select not in _SELECT_VALUES:
            raise ValidationError(f"invalid select: {self.select}")


@dataclass(frozen=True)
class KeySchema:
    partition: str
    sort: str | None
    index_type: IndexType


def resolve_key_schema(model: ModelDefinition[Any], table_name: str, index_name: str | None) -> KeySchema:
    if index_name is None:
        return KeySchema(
            partition=model.pk.attribute_name,
            sort=model.sk.attribute_name if model.sk else None,
            index_type="TABLE",
        )

    idx = model.resolve_index(index_name)
    if idx is None:
        raise IndexNotFoundError(index_name=index_name, table_name=table_name)
    return KeySchema(partition=idx.partition, sort=idx.sort, index_type="GSI" if idx.type == "GSI" else "LSI")


def with_key_equality(
    attribute: str,
    value: Any,
    key_conditions: ConditionList,
    filter_conditions: ConditionList,
) -> ConditionList:
    """Return ``key_conditions`` with ``attribute = value`` placed first."""
    names, values = used_placeholders(key_conditions, filter_conditions)
    fragment = compile_condition(attribute, Operator.EQ, value, used_names=names, used_values=values)
    return ConditionList([fragment, *key_conditions])


def projection_expression(attributes: Sequence[str], names: dict[str, str]) -> str:
    refs: list[str] = []
    for attribute in attributes:
        ref = name_placeholder(attribute, names)
        names[ref] = attribute
        refs.append(ref)
    return ", ".join(refs)


def build_request(
    table_name: str,
    key_conditions: ConditionList,
    filter_conditions: ConditionList,
    options: ReadOptions,
    *,
    index_name: str | None = None,
    serialize: Callable[[Any], Any],
) -> dict[str, Any]:
    """Assemble a query (key conditions present) or scan request.

    Clauses that render to nothing are left out, as are empty name and value
    maps. The returned dict is never touched again once handed back.
    """
    req: dict[str, Any] = {"TableName": table_name}
    if index_name is not None:
        req["IndexName"] = index_name

    key_expression = key_conditions.render()
    filter_expression = filter_conditions.render()
    if key_expression is not None:
        req["KeyConditionExpression"] = key_expression
        req["ScanIndexForward"] = options.scan_forward
    if filter_expression is not None:
        req["FilterExpression"] = filter_expression

    names, values = used_placeholders(key_conditions, filter_conditions)
    if options.projection:
        req["ProjectionExpression"] = projection_expression(options.projection, names)

    if names:
        req["ExpressionAttributeNames"] = names
    if values:
        req["ExpressionAttributeValues"] = {k: serialize(v) for k, v in values.items()}

    if options.consistent_read:
        req["ConsistentRead"] = True
    if options.limit is not None:
        req["Limit"] = options.limit
    if options.exclusive_start_key:
        req["ExclusiveStartKey"] = dict(options.exclusive_start_key)
    if options.return_consumed_capacity is not None:
        req["ReturnConsumedCapacity"] = options.return_consumed_capacity
    if options.select is not None:
        req["Select"] = options.select
    if options.total_segments is not None:
        req["Segment"] = options.segment if options.segment is not None else 0
        req["TotalSegments"] = options.total_segments

    return req

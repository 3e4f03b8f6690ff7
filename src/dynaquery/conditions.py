from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from .errors import UnsupportedOperatorError, ValidationError
from .expressions import ConditionList, Operator, compile_condition
from .model import AttributeDefinition, ModelDefinition, OperatorGroup

if TYPE_CHECKING:
    from .codec import ItemCodec

type ConditionSink = Callable[[str, Operator, Any], None]

_NO_VALUE: Any = object()

_GROUP_OPERATORS: dict[OperatorGroup, frozenset[Operator]] = {
    OperatorGroup.EQUALITY: frozenset(
        {Operator.EQ, Operator.NE, Operator.IN, Operator.EXISTS, Operator.NOT_EXISTS}
    ),
    OperatorGroup.ORDERING: frozenset(
        {Operator.LT, Operator.LTE, Operator.GT, Operator.GTE, Operator.BETWEEN}
    ),
    OperatorGroup.STRING: frozenset({Operator.BEGINS_WITH, Operator.CONTAINS, Operator.NOT_CONTAINS}),
    OperatorGroup.COLLECTION: frozenset({Operator.CONTAINS, Operator.NOT_CONTAINS}),
}

KEY_CONDITION_OPERATORS = frozenset(
    {
        Operator.EQ,
        Operator.LT,
        Operator.LTE,
        Operator.GT,
        Operator.GTE,
        Operator.BETWEEN,
        Operator.BEGINS_WITH,
    }
)


def operators_for(groups: OperatorGroup) -> frozenset[Operator]:
    allowed: set[Operator] = set(_GROUP_OPERATORS[OperatorGroup.EQUALITY])
    for group, ops in _GROUP_OPERATORS.items():
        if group in groups:
            allowed.update(ops)
    return frozenset(allowed)


def resolve_field(model: ModelDefinition[Any], field_name: str) -> AttributeDefinition:
    """Look a field up by python name first, then by stored attribute name."""
    attr_def = model.attribute(field_name)
    if attr_def is not None:
        return attr_def
    for candidate in model.attributes.values():
        if candidate.attribute_name == field_name:
            return candidate
    raise ValidationError(f"unknown field: {field_name}")


def resolve_projection(codec: ItemCodec[Any], fields: Sequence[str]) -> tuple[str, ...]:
    """Stored attribute names for ``fields``; every required model field must be included."""
    attrs = [resolve_field(codec.model, f) for f in fields]
    missing = codec.required_fields().difference(a.python_name for a in attrs)
    if missing:
        raise ValidationError(f"projection is missing required fields: {sorted(missing)}")
    return tuple(a.attribute_name for a in attrs)


class FieldCondition[B]:
    """Operators available on one field, bound to the builder that owns it.

    Every method appends one compiled fragment through ``sink`` and returns
    the owner so calls can keep chaining.
    """

    def __init__(
        self,
        owner: B,
        attr_def: AttributeDefinition,
        sink: ConditionSink,
        *,
        allowed: frozenset[Operator] | None = None,
    ) -> None:
        self._owner = owner
        self._attr = attr_def
        self._sink = sink
        ops = operators_for(attr_def.operators)
        self._allowed = ops if allowed is None else ops & allowed

    @property
    def field(self) -> str:
        return self._attr.python_name

    @property
    def allowed_operators(self) -> frozenset[Operator]:
        return self._allowed

    def _apply(self, op: Operator, value: Any = _NO_VALUE) -> B:
        if op not in self._allowed:
            raise UnsupportedOperatorError(
                operator=op, field=self._attr.python_name, reason="not valid for this field"
            )
        self._sink(self._attr.attribute_name, op, value)
        return self._owner

    def eq(self, value: Any) -> B:
        return self._apply(Operator.EQ, value)

    def ne(self, value: Any) -> B:
        return self._apply(Operator.NE, value)

    def lt(self, value: Any) -> B:
        return self._apply(Operator.LT, value)

    def lte(self, value: Any) -> B:
        return self._apply(Operator.LTE, value)

    def gt(self, value: Any) -> B:
        return self._apply(Operator.GT, value)

    def gte(self, value: Any) -> B:
        return self._apply(Operator.GTE, value)

    def between(self, low: Any, high: Any) -> B:
        return self._apply(Operator.BETWEEN, (low, high))

    def begins_with(self, prefix: str) -> B:
        return self._apply(Operator.BEGINS_WITH, prefix)

    def contains(self, value: Any) -> B:
        return self._apply(Operator.CONTAINS, value)

    def not_contains(self, value: Any) -> B:
        return self._apply(Operator.NOT_CONTAINS, value)

    def in_(self, values: Sequence[Any]) -> B:
        return self._apply(Operator.IN, values)

    def exists(self) -> B:
        return self._apply(Operator.EXISTS)

    def not_exists(self) -> B:
        return self._apply(Operator.NOT_EXISTS)

    equals = eq
    not_equal = ne
    greater_than = gt
    greater_than_or_equal_to = gte
    less_than = lt
    less_than_or_equal_to = lte


def add_condition(
    target: ConditionList,
    attribute: str,
    op: Operator,
    value: Any,
    *,
    siblings: Sequence[ConditionList] = (),
) -> None:
    """Compile against every placeholder in ``target`` and ``siblings``, then append."""
    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    for condition_list in (target, *siblings):
        names.update(condition_list.names)
        values.update(condition_list.values)

    if value is _NO_VALUE:
        fragment = compile_condition(attribute, op, used_names=names, used_values=values)
    else:
        fragment = compile_condition(attribute, op, value, used_names=names, used_values=values)
    target.add(fragment)


class WriteCondition:
    """Condition attached to a single put or delete."""

    def __init__(self, model: ModelDefinition[Any]) -> None:
        self._model = model
        self._conditions = ConditionList()

    def __len__(self) -> int:
        return len(self._conditions)

    def field(self, name: str) -> FieldCondition[WriteCondition]:
        return FieldCondition(self, resolve_field(self._model, name), self._add)

    def _add(self, attribute: str, op: Operator, value: Any) -> None:
        add_condition(self._conditions, attribute, op, value)

    def copy(self) -> WriteCondition:
        out = WriteCondition(self._model)
        out._conditions = self._conditions.copy()
        return out

    def to_request(self, serialize: Callable[[Any], Any]) -> dict[str, Any]:
        expression = self._conditions.render()
        if expression is None:
            return {}
        req: dict[str, Any] = {
            "ConditionExpression": expression,
            "ExpressionAttributeNames": self._conditions.names,
        }
        values = self._conditions.values
        if values:
            req["ExpressionAttributeValues"] = {k: serialize(v) for k, v in values.items()}
        return req

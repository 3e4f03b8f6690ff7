from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from .errors import InvalidOperandError, UnsupportedOperatorError
from .placeholders import name_placeholder, value_placeholder

MaxInOperands = 100


class Operator(StrEnum):
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    BETWEEN = "between"
    BEGINS_WITH = "begins_with"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"


_COMPARISONS = {
    Operator.EQ: "=",
    Operator.NE: "<>",
    Operator.LT: "<",
    Operator.LTE: "<=",
    Operator.GT: ">",
    Operator.GTE: ">=",
}

_ALIASES = {
    "=": Operator.EQ,
    "==": Operator.EQ,
    "equals": Operator.EQ,
    "!=": Operator.NE,
    "<>": Operator.NE,
    "<": Operator.LT,
    "<=": Operator.LTE,
    ">": Operator.GT,
    ">=": Operator.GTE,
    "beginswith": Operator.BEGINS_WITH,
    "notcontains": Operator.NOT_CONTAINS,
    "not contains": Operator.NOT_CONTAINS,
    "attribute_exists": Operator.EXISTS,
    "notexists": Operator.NOT_EXISTS,
    "attribute_not_exists": Operator.NOT_EXISTS,
}

_MISSING: Any = object()


@dataclass(frozen=True)
class ConditionFragment:
    text: str
    names: Mapping[str, str]
    values: Mapping[str, Any] = field(default_factory=dict)


def resolve_operator(operator: str | Operator) -> Operator:
    if isinstance(operator, Operator):
        return operator
    key = str(operator).strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return Operator(key)
    except ValueError:
        raise UnsupportedOperatorError(operator=str(operator)) from None


def normalize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def _is_operand_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def compile_condition(
    attribute: str,
    operator: str | Operator,
    value: Any = _MISSING,
    *,
    used_names: Mapping[str, str] | None = None,
    used_values: Mapping[str, Any] | None = None,
) -> ConditionFragment:
    """Compile one ``attribute <operator> value`` assertion into a fragment.

    ``used_names`` and ``used_values`` are the placeholders already taken by
    every clause this fragment will be merged into. New value placeholders
    never collide with them; the ``#`` alias is shared when ``attribute``
    already has one.
    """
    op = resolve_operator(operator)
    taken_names: dict[str, str] = dict(used_names or {})
    taken_values: set[str] = set(used_values or {})

    name = name_placeholder(attribute, taken_names)
    names = {name: attribute}

    def bind(base: str, raw: Any, values: dict[str, Any]) -> str:
        ref = value_placeholder(base, taken_values)
        taken_values.add(ref)
        values[ref] = normalize_value(raw)
        return ref

    values: dict[str, Any] = {}

    if op in {Operator.EXISTS, Operator.NOT_EXISTS}:
        if value is not _MISSING and value is not None:
            raise UnsupportedOperatorError(operator=op, field=attribute, reason="takes no value")
        func = "attribute_exists" if op is Operator.EXISTS else "attribute_not_exists"
        return ConditionFragment(text=f"{func}({name})", names=names)

    if value is _MISSING:
        raise UnsupportedOperatorError(operator=op, field=attribute, reason="requires a value")

    if op in _COMPARISONS:
        ref = bind(attribute, value, values)
        return ConditionFragment(text=f"{name} {_COMPARISONS[op]} {ref}", names=names, values=values)

    if op is Operator.BETWEEN:
        if not _is_operand_sequence(value) or len(value) != 2:
            raise InvalidOperandError(operator="between", detail="requires exactly two values (min, max)")
        low, high = value
        low_ref = bind(f"{attribute}_min", low, values)
        high_ref = bind(f"{attribute}_max", high, values)
        return ConditionFragment(
            text=f"{name} BETWEEN {low_ref} AND {high_ref}", names=names, values=values
        )

    if op is Operator.BEGINS_WITH:
        if not isinstance(value, str):
            raise InvalidOperandError(operator="begins_with", detail="requires a string prefix")
        ref = bind(attribute, value, values)
        return ConditionFragment(text=f"begins_with({name}, {ref})", names=names, values=values)

    if op in {Operator.CONTAINS, Operator.NOT_CONTAINS}:
        ref = bind(attribute, value, values)
        text = f"contains({name}, {ref})"
        if op is Operator.NOT_CONTAINS:
            text = f"NOT {text}"
        return ConditionFragment(text=text, names=names, values=values)

    if op is Operator.IN:
        if not _is_operand_sequence(value):
            raise InvalidOperandError(operator="in", detail="requires a list of values")
        if not value:
            raise InvalidOperandError(operator="in", detail="requires at least one value")
        if len(value) > MaxInOperands:
            raise InvalidOperandError(operator="in", detail=f"supports at most {MaxInOperands} values")
        refs = [bind(f"{attribute}_{i}", v, values) for i, v in enumerate(value)]
        return ConditionFragment(text=f"{name} IN ({', '.join(refs)})", names=names, values=values)

    raise UnsupportedOperatorError(operator=op, field=attribute)  # pragma: no cover


class ConditionList:
    """Ordered fragments of one clause, joined with AND."""

    def __init__(self, fragments: Sequence[ConditionFragment] = ()) -> None:
        self._fragments: list[ConditionFragment] = list(fragments)

    def __len__(self) -> int:
        return len(self._fragments)

    def __iter__(self) -> Iterator[ConditionFragment]:
        return iter(self._fragments)

    def add(self, fragment: ConditionFragment) -> None:
        self._fragments.append(fragment)

    def copy(self) -> ConditionList:
        return ConditionList(self._fragments)

    @property
    def names(self) -> dict[str, str]:
        merged: dict[str, str] = {}
        for fragment in self._fragments:
            merged.update(fragment.names)
        return merged

    @property
    def values(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for fragment in self._fragments:
            merged.update(fragment.values)
        return merged

    def render(self) -> str | None:
        if not self._fragments:
            return None
        return " AND ".join(f"({fragment.text})" for fragment in self._fragments)


def used_placeholders(*lists: ConditionList) -> tuple[dict[str, str], dict[str, Any]]:
    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    for condition_list in lists:
        names.update(condition_list.names)
        values.update(condition_list.values)
    return names, values

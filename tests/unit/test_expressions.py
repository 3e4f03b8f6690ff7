from __future__ import annotations

import re
from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from dynaquery import InvalidOperandError, UnsupportedOperatorError
from dynaquery.expressions import ConditionList, Operator, compile_condition, normalize_value, used_placeholders


def test_eq_fragment() -> None:
    fragment = compile_condition("status", "eq", "active")
    assert fragment.text == "#status = :status"
    assert fragment.names == {"#status": "status"}
    assert fragment.values == {":status": "active"}


@pytest.mark.parametrize(
    ("operator", "symbol"),
    [("ne", "<>"), ("lt", "<"), ("lte", "<="), ("gt", ">"), ("gte", ">=")],
)
def test_comparison_fragments(operator: str, symbol: str) -> None:
    fragment = compile_condition("age", operator, 30)
    assert fragment.text == f"#age {symbol} :age"
    assert fragment.values == {":age": 30}


def test_between_uses_min_and_max_placeholders_without_swapping() -> None:
    fragment = compile_condition("age", Operator.BETWEEN, (65, 18))
    assert fragment.text == "#age BETWEEN :age_min AND :age_max"
    assert fragment.values == {":age_min": 65, ":age_max": 18}


def test_in_binds_one_placeholder_per_value() -> None:
    fragment = compile_condition("status", "in", ["a", "b", "c"])
    assert fragment.text == "#status IN (:status_0, :status_1, :status_2)"
    assert fragment.values == {":status_0": "a", ":status_1": "b", ":status_2": "c"}


def test_string_and_existence_fragments() -> None:
    assert compile_condition("sk", "begins_with", "2024").text == "begins_with(#sk, :sk)"
    assert compile_condition("tags", "contains", "x").text == "contains(#tags, :tags)"
    assert compile_condition("tags", "not_contains", "x").text == "NOT contains(#tags, :tags)"

    exists = compile_condition("email", "exists")
    assert exists.text == "attribute_exists(#email)"
    assert exists.values == {}
    assert compile_condition("email", "not_exists").text == "attribute_not_exists(#email)"


def test_operator_aliases() -> None:
    assert compile_condition("age", ">=", 1).text == "#age >= :age"
    assert compile_condition("age", "!=", 1).text == "#age <> :age"
    assert compile_condition("email", "attribute_not_exists").text == "attribute_not_exists(#email)"


def test_unknown_operator_is_rejected() -> None:
    with pytest.raises(UnsupportedOperatorError, match="unsupported operator: like"):
        compile_condition("name", "like", "x")


@pytest.mark.parametrize(
    ("operator", "kwargs"),
    [("eq", {}), ("between", {}), ("exists", {"value": "x"})],
)
def test_wrong_arity_is_rejected(operator: str, kwargs: dict) -> None:
    with pytest.raises(UnsupportedOperatorError):
        compile_condition("age", operator, **kwargs)


@pytest.mark.parametrize(
    ("operator", "value"),
    [
        ("between", (1,)),
        ("between", (1, 2, 3)),
        ("between", 5),
        ("in", "abc"),
        ("in", 5),
        ("in", []),
        ("in", list(range(101))),
        ("begins_with", 5),
    ],
)
def test_invalid_operands(operator: str, value: object) -> None:
    with pytest.raises(InvalidOperandError):
        compile_condition("field", operator, value)


def test_in_accepts_one_hundred_values() -> None:
    fragment = compile_condition("n", "in", list(range(100)))
    assert len(fragment.values) == 100


def test_value_placeholders_avoid_used_values() -> None:
    fragment = compile_condition("status", "eq", "x", used_values={":status": "y"})
    assert fragment.text == "#status = :status_0"

    fragment = compile_condition("age", "between", (1, 2), used_values={":age_min": 0})
    assert fragment.values == {":age_min_0": 1, ":age_max": 2}


def test_name_placeholder_is_shared_with_used_names() -> None:
    fragment = compile_condition("status", "eq", "x", used_names={"#s": "status"})
    assert fragment.text == "#s = :status"
    assert fragment.names == {"#s": "status"}


def test_normalize_value() -> None:
    naive = datetime(2024, 1, 2, 3, 4, 5, 678900)
    assert normalize_value(naive) == "2024-01-02T03:04:05.678Z"

    plus_two = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
    assert normalize_value(plus_two) == "2024-01-02T03:04:05.000Z"
    assert normalize_value(datetime(2024, 1, 2, tzinfo=UTC)) == "2024-01-02T00:00:00.000Z"

    assert normalize_value(date(2024, 1, 2)) == "2024-01-02"
    assert normalize_value(1.5) == Decimal("1.5")
    assert normalize_value("x") == "x"
    assert normalize_value(3) == 3


def test_normalization_applies_to_each_operand() -> None:
    fragment = compile_condition("when", "between", (date(2024, 1, 1), date(2024, 2, 1)))
    assert fragment.values == {":when_min": "2024-01-01", ":when_max": "2024-02-01"}

    fragment = compile_condition("score", "in", [0.5, 1.25])
    assert fragment.values == {":score_0": Decimal("0.5"), ":score_1": Decimal("1.25")}


def test_condition_list_render() -> None:
    conditions = ConditionList()
    assert conditions.render() is None
    assert len(conditions) == 0

    conditions.add(compile_condition("a", "eq", 1))
    conditions.add(compile_condition("b", "exists"))
    assert conditions.render() == "(#a = :a) AND (attribute_exists(#b))"
    assert conditions.names == {"#a": "a", "#b": "b"}
    assert conditions.values == {":a": 1}


def test_condition_list_copy_is_independent() -> None:
    conditions = ConditionList([compile_condition("a", "eq", 1)])
    clone = conditions.copy()
    clone.add(compile_condition("b", "eq", 2))
    assert len(conditions) == 1
    assert len(clone) == 2


def test_long_chains_over_overlapping_fields_never_collide() -> None:
    key_conditions = ConditionList()
    filter_conditions = ConditionList()

    for i in range(60):
        field = ("status", "age", "name")[i % 3]
        target = key_conditions if i % 2 == 0 else filter_conditions
        names, values = used_placeholders(key_conditions, filter_conditions)

        if field == "age":
            fragment = compile_condition(field, "between", (i, i + 10), used_names=names, used_values=values)
        elif field == "status":
            fragment = compile_condition(field, "in", ["a", "b"], used_names=names, used_values=values)
        else:
            fragment = compile_condition(field, "eq", f"n{i}", used_names=names, used_values=values)
        target.add(fragment)

    names, values = used_placeholders(key_conditions, filter_conditions)
    text = f"{key_conditions.render()} {filter_conditions.render()}"

    value_refs = re.findall(r":[A-Za-z0-9_]+", text)
    assert len(value_refs) == len(set(value_refs)) == len(values) == 100
    assert set(value_refs) == set(values)

    name_refs = set(re.findall(r"#[A-Za-z0-9_]+", text))
    assert name_refs == set(names)
    assert sorted(names.values()) == ["age", "name", "status"]

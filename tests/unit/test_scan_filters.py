from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import pytest

from dynaquery import ModelDefinition, Table, dynaquery_field
from dynaquery.codec import ItemCodec
from dynaquery.mocks import FakeDynamoDBClient


@dataclass(frozen=True)
class User:
    pk: str = dynaquery_field(roles=["pk"])
    name: str = dynaquery_field()
    age: int = dynaquery_field()
    status: str = dynaquery_field()


USERS = [
    User(pk="u1", name="Ada", age=17, status="active"),
    User(pk="u2", name="Bo", age=30, status="active"),
    User(pk="u3", name="Cy", age=45, status="inactive"),
    User(pk="u4", name="Di", age=64, status="active"),
    User(pk="u5", name="Ed", age=70, status="active"),
]


def _model() -> ModelDefinition[User]:
    return ModelDefinition.from_dataclass(User, table_name="users")


def _store_scan(req: Mapping[str, Any]) -> Mapping[str, Any]:
    # Mirrors how the store applies this particular filter after reading.
    values = req["ExpressionAttributeValues"]
    low = int(values[":age_min"]["N"])
    high = int(values[":age_max"]["N"])
    status = values[":status"]["S"]

    codec = ItemCodec(_model())
    matched = [codec.to_item(u) for u in USERS if low <= u.age <= high and u.status == status]
    return {"Items": matched, "Count": len(matched), "ScannedCount": len(USERS)}


@pytest.mark.asyncio
async def test_filter_between_and_eq_over_five_users() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "scan",
        {
            "TableName": "users",
            "FilterExpression": "(#age BETWEEN :age_min AND :age_max) AND (#status = :status)",
            "ExpressionAttributeNames": {"#age": "age", "#status": "status"},
            "ExpressionAttributeValues": {
                ":age_min": {"N": "18"},
                ":age_max": {"N": "65"},
                ":status": {"S": "active"},
            },
        },
        response=_store_scan,
    )

    table: Table[User] = Table(_model(), client=client)
    page = await table.scan().filter("age").between(18, 65).filter("status").eq("active").exec_with_pagination()

    assert [u.pk for u in page.items] == ["u2", "u4"]
    assert page.count == 2
    assert page.scanned_count == 5
    assert page.count <= page.scanned_count
    assert "KeyConditionExpression" not in client.calls[0][1]
    client.assert_no_pending()


@pytest.mark.asyncio
async def test_exec_returns_matching_items() -> None:
    client = FakeDynamoDBClient()
    client.expect("scan", response=_store_scan)

    table: Table[User] = Table(_model(), client=client)
    users = await table.scan().filter("age").between(18, 65).filter("status").eq("active").exec()

    assert users == [USERS[1], USERS[3]]


@pytest.mark.asyncio
async def test_filter_in_and_contains_values_are_serialized() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "scan",
        {
            "FilterExpression": "(#status IN (:status_0, :status_1)) AND (contains(#name, :name))",
            "ExpressionAttributeValues": {
                ":status_0": {"S": "active"},
                ":status_1": {"S": "pending"},
                ":name": {"S": "d"},
            },
        },
        response={"Items": [], "Count": 0, "ScannedCount": 5},
    )

    table: Table[User] = Table(_model(), client=client)
    page = await (
        table.scan().filter("status").in_(["active", "pending"]).filter("name").contains("d").exec_with_pagination()
    )

    assert page.items == []
    assert page.scanned_count == 5
    client.assert_no_pending()

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import pytest
from botocore.exceptions import ClientError

from dynaquery import (
    AwsError,
    ConditionalCheckFailedError,
    InvalidItemError,
    ModelDefinition,
    NotFoundError,
    Table,
    ValidationError,
    dynaquery_field,
)
from dynaquery.mocks import FakeDynamoDBClient
from dynaquery.testkit import fixed_clock


@dataclass(frozen=True)
class Account:
    pk: str = dynaquery_field(roles=["pk"])
    sk: str = dynaquery_field(roles=["sk"])
    owner: str = dynaquery_field(name="ownerName", default="")
    balance: int = dynaquery_field(default=0)
    nickname: str = dynaquery_field(default="", omitempty=True)
    created_at: datetime | None = dynaquery_field(name="createdAt", default=None)
    updated_at: datetime | None = dynaquery_field(name="updatedAt", default=None)


def _table(client: FakeDynamoDBClient, **kwargs) -> Table[Account]:
    model = ModelDefinition.from_dataclass(Account, table_name="accounts", timestamps=True)
    return Table(model, client=client, **kwargs)


def _client_error(code: str, message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "PutItem")


@pytest.mark.asyncio
async def test_get_decodes_item() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "get_item",
        {"TableName": "accounts", "Key": {"pk": {"S": "A"}, "sk": {"S": "1"}}, "ConsistentRead": True},
        response={
            "Item": {
                "pk": {"S": "A"},
                "sk": {"S": "1"},
                "ownerName": {"S": "ann"},
                "balance": {"N": "12"},
                "createdAt": {"S": "2024-01-02T03:04:05.000Z"},
            }
        },
    )

    account = await _table(client).get("A", "1", consistent_read=True)

    assert account.owner == "ann"
    assert account.balance == 12
    assert account.created_at == datetime.fromisoformat("2024-01-02T03:04:05+00:00")
    client.assert_no_pending()


@pytest.mark.asyncio
async def test_get_missing_item_raises_not_found() -> None:
    client = FakeDynamoDBClient()
    client.expect("get_item", response={})

    with pytest.raises(NotFoundError):
        await _table(client).get("A", "1")


@pytest.mark.asyncio
async def test_get_requires_full_key() -> None:
    with pytest.raises(ValidationError, match="sk is required"):
        await _table(FakeDynamoDBClient()).get("A")


@pytest.mark.asyncio
async def test_put_with_condition() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "put_item",
        {
            "TableName": "accounts",
            "Item": {
                "pk": {"S": "A"},
                "sk": {"S": "1"},
                "ownerName": {"S": "ann"},
                "balance": {"N": "5"},
                "createdAt": {"NULL": True},
                "updatedAt": {"NULL": True},
            },
            "ConditionExpression": "(#balance < :balance)",
            "ExpressionAttributeNames": {"#balance": "balance"},
            "ExpressionAttributeValues": {":balance": {"N": "10"}},
        },
    )
    table = _table(client)

    condition = table.condition().field("balance").lt(10)
    await table.put(Account(pk="A", sk="1", owner="ann", balance=5), condition=condition)

    put = client.calls_to("put_item")[0]
    assert "nickname" not in put["Item"]
    client.assert_no_pending()


@pytest.mark.asyncio
async def test_create_stamps_and_guards_key() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "put_item",
        {
            "Item": {
                "createdAt": {"S": "2024-05-06T07:08:09.000Z"},
                "updatedAt": {"S": "2024-05-06T07:08:09.000Z"},
            },
            "ConditionExpression": "(#ownerName = :ownerName) AND (attribute_not_exists(#pk))",
        },
    )
    table = _table(client, clock=fixed_clock(datetime(2024, 5, 6, 7, 8, 9)))

    condition = table.condition().field("owner").eq("ann")
    created = await table.create(Account(pk="A", sk="1", owner="ann"), condition=condition)

    request = client.calls_to("put_item")[0]
    assert request["ExpressionAttributeNames"] == {"#ownerName": "ownerName", "#pk": "pk"}
    assert request["ExpressionAttributeValues"] == {":ownerName": {"S": "ann"}}
    assert created.created_at == created.updated_at
    assert created.created_at is not None and created.created_at.year == 2024
    assert len(condition) == 1
    client.assert_no_pending()


@pytest.mark.asyncio
async def test_create_conflict_maps_to_conditional_check_failed() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "put_item",
        {"ConditionExpression": "(attribute_not_exists(#pk))"},
        error=_client_error("ConditionalCheckFailedException", "exists"),
    )

    with pytest.raises(ConditionalCheckFailedError, match="exists"):
        await _table(client).create(Account(pk="A", sk="1"))


@pytest.mark.asyncio
async def test_delete_with_condition_and_unknown_error_code() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "delete_item",
        {
            "TableName": "accounts",
            "Key": {"pk": {"S": "A"}, "sk": {"S": "1"}},
            "ConditionExpression": "(attribute_exists(#pk))",
            "ExpressionAttributeNames": {"#pk": "pk"},
        },
    )
    client.expect("delete_item", error=_client_error("ThrottlingException", "slow down"))
    table = _table(client)

    await table.delete("A", "1", condition=table.condition().field("pk").exists())
    request = client.calls_to("delete_item")[0]
    assert "ExpressionAttributeValues" not in request

    with pytest.raises(AwsError) as exc:
        await table.delete("A", "2")
    assert exc.value.code == "ThrottlingException"


@pytest.mark.asyncio
async def test_update_sets_removes_and_stamps() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "update_item",
        response={
            "Attributes": {
                "pk": {"S": "A"},
                "sk": {"S": "1"},
                "ownerName": {"S": "bob"},
                "balance": {"N": "20"},
                "updatedAt": {"S": "2024-05-06T07:08:09.000Z"},
            }
        },
    )
    table = _table(client, clock=fixed_clock(datetime(2024, 5, 6, 7, 8, 9)))

    condition = table.condition().field("owner").eq("ann")
    updated = await table.update(
        "A", "1", {"owner": "bob", "balance": 20, "nickname": None}, condition=condition
    )

    request = client.calls_to("update_item")[0]
    assert request["Key"] == {"pk": {"S": "A"}, "sk": {"S": "1"}}
    assert request["ReturnValues"] == "ALL_NEW"
    assert request["ConditionExpression"] == "(#ownerName = :ownerName)"
    assert request["UpdateExpression"] == (
        "SET #ownerName = :ownerName_0, #balance = :balance, #updatedAt = :updatedAt REMOVE #nickname"
    )
    assert request["ExpressionAttributeNames"] == {
        "#ownerName": "ownerName",
        "#balance": "balance",
        "#nickname": "nickname",
        "#updatedAt": "updatedAt",
    }
    assert request["ExpressionAttributeValues"] == {
        ":ownerName": {"S": "ann"},
        ":ownerName_0": {"S": "bob"},
        ":balance": {"N": "20"},
        ":updatedAt": {"S": "2024-05-06T07:08:09.000Z"},
    }

    assert updated.owner == "bob"
    assert updated.balance == 20
    assert updated.updated_at is not None and updated.updated_at.month == 5


@pytest.mark.asyncio
async def test_update_keeps_explicit_timestamp() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "update_item",
        response={"Attributes": {"pk": {"S": "A"}, "sk": {"S": "1"}, "balance": {"N": "1"}}},
    )
    table = _table(client)

    await table.update("A", "1", {"balance": 1, "updatedAt": datetime(2020, 1, 1)})

    request = client.calls_to("update_item")[0]
    assert request["UpdateExpression"] == "SET #balance = :balance, #updatedAt = :updatedAt"
    assert request["ExpressionAttributeValues"][":updatedAt"] == {"S": "2020-01-01T00:00:00.000Z"}
    assert "ConditionExpression" not in request


@pytest.mark.asyncio
async def test_update_rejects_bad_changes() -> None:
    client = FakeDynamoDBClient()
    table = _table(client)

    with pytest.raises(ValidationError, match="no updates provided"):
        await table.update("A", "1", {})
    with pytest.raises(ValidationError, match="cannot update key field: sk"):
        await table.update("A", "1", {"sk": "2"})
    with pytest.raises(ValidationError, match="unknown field"):
        await table.update("A", "1", {"missing": 1})
    with pytest.raises(ValidationError, match="duplicate update field"):
        await table.update("A", "1", {"owner": "a", "ownerName": "b"})
    assert client.calls == []


@pytest.mark.asyncio
async def test_update_result_must_decode() -> None:
    client = FakeDynamoDBClient()
    client.expect("update_item", response={})
    client.expect("update_item", response={"Attributes": {"pk": {"S": "A"}, "balance": {"S": "x"}}})
    table = _table(client)

    with pytest.raises(ValidationError, match="did not return Attributes"):
        await table.update("A", "1", {"balance": 1})
    with pytest.raises(InvalidItemError):
        await table.update("A", "1", {"balance": 1})


def test_table_requires_name_and_client() -> None:
    model = ModelDefinition.from_dataclass(Account)

    with pytest.raises(ValueError, match="table_name"):
        Table(model, client=FakeDynamoDBClient())
    with pytest.raises(ValueError, match="client"):
        Table(model, client=None, table_name="accounts")

    table = Table(model, client=FakeDynamoDBClient(), table_name="accounts_v2")
    assert table.table_name == "accounts_v2"

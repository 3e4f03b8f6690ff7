from __future__ import annotations

import asyncio
import os
import uuid
from dataclasses import dataclass

from dynaquery import ModelDefinition, Table, dynamodb_client, dynaquery_field, gsi


@dataclass(frozen=True)
class Note:
    pk: str = dynaquery_field(roles=["pk"])
    sk: str = dynaquery_field(roles=["sk"])
    status: str = dynaquery_field(default="open")
    value: int = dynaquery_field(default=0)


async def _create_table(client, table_name: str) -> None:
    await client.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
            {"AttributeName": "status", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "ByStatus",
                "KeySchema": [{"AttributeName": "status", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    await client.get_waiter("table_exists").wait(TableName=table_name)


async def main() -> None:
    endpoint = os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000")
    table_name = f"dynaquery_example_{uuid.uuid4().hex[:12]}"

    async with dynamodb_client(endpoint_url=endpoint, region=os.environ.get("AWS_REGION", "us-east-1")) as client:
        await _create_table(client, table_name)
        try:
            model = ModelDefinition.from_dataclass(
                Note, table_name=table_name, indexes=[gsi("ByStatus", partition="status")]
            )
            table = Table(model, client=client)

            await table.batch_put([Note(pk="A", sk=f"{i:03d}", value=i) for i in range(60)])
            await table.put(Note(pk="A", sk="999", status="closed", value=999))

            print("get:", await table.get("A", "010"))

            query = table.query("A").where("sk").begins_with("00").descending().limit(5)
            async for page in query.stream():
                print("query begins_with('00'):", page.items)

            page = await table.scan().filter("value").gte(50).limit(10).exec_with_pagination()
            print("scan page:", len(page.items), "more:", page.has_more)

            closed = await table.scan().using_index("ByStatus").filter("status").eq("closed").load_all()
            print("closed:", closed)

            everything = await table.parallel_scan(4).load_all()
            print("parallel scan:", len(everything))
        finally:
            await client.delete_table(TableName=table_name)


if __name__ == "__main__":
    asyncio.run(main())

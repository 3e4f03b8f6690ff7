from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import pytest

from dynaquery.mocks import FakeDynamoDBClient
from dynaquery.runtime import (
    AwsCallMetric,
    create_boto_config,
    dynamodb_client,
    instrument_client,
    is_lambda_environment,
)


class FakeSession:
    def __init__(self, client: Any) -> None:
        self._client = client
        self.calls: list[tuple[str, dict[str, Any]]] = []

    @asynccontextmanager
    async def _open(self):
        yield self._client

    def client(self, service_name: str, **kwargs: Any):
        self.calls.append((service_name, kwargs))
        return self._open()


def test_is_lambda_environment() -> None:
    assert is_lambda_environment({}) is False
    assert is_lambda_environment({"AWS_LAMBDA_FUNCTION_NAME": "fn"}) is True
    assert is_lambda_environment({"AWS_EXECUTION_ENV": "AWS_Lambda_python3.12"}) is True


def test_create_boto_config() -> None:
    cfg = create_boto_config(connect_timeout=2.0, read_timeout=4.0, max_attempts=5)
    assert cfg.connect_timeout == 2.0
    assert cfg.read_timeout == 4.0
    assert cfg.retries["max_attempts"] == 5
    assert cfg.retries["mode"] == "adaptive"


@pytest.mark.asyncio
async def test_instrument_client_records_calls() -> None:
    metrics: list[AwsCallMetric] = []

    client = FakeDynamoDBClient()
    client.expect("put_item", response={})
    client.expect("get_item", error=RuntimeError("boom"))
    wrapped = instrument_client(client, service="dynamodb", on_call=metrics.append)

    await wrapped.put_item(TableName="t", Item={})
    with pytest.raises(RuntimeError, match="boom"):
        await wrapped.get_item(TableName="t", Key={})

    assert [(m.operation, m.ok) for m in metrics] == [("put_item", True), ("get_item", False)]
    assert all(m.service == "dynamodb" and m.seconds >= 0 for m in metrics)
    assert wrapped.calls is client.calls


@pytest.mark.asyncio
async def test_dynamodb_client_reads_environment() -> None:
    fake = FakeDynamoDBClient()
    sess = FakeSession(fake)
    environ = {"AWS_REGION": "eu-west-1", "DYNAMODB_ENDPOINT": "http://localhost:8000"}

    async with dynamodb_client(session=sess, environ=environ) as client:
        assert client is fake

    assert sess.calls == [
        ("dynamodb", {"region_name": "eu-west-1", "endpoint_url": "http://localhost:8000"}),
    ]


@pytest.mark.asyncio
async def test_dynamodb_client_lambda_defaults_and_metrics() -> None:
    fake = FakeDynamoDBClient()
    fake.expect("scan", response={"Items": []})
    sess = FakeSession(fake)
    metrics: list[AwsCallMetric] = []

    async with dynamodb_client(
        region="us-east-1",
        session=sess,
        metrics=metrics.append,
        environ={"AWS_LAMBDA_FUNCTION_NAME": "fn"},
    ) as client:
        await client.scan(TableName="t")

    _, kwargs = sess.calls[0]
    assert kwargs["region_name"] == "us-east-1"
    assert kwargs["config"].read_timeout == 3.0
    assert [m.operation for m in metrics] == ["scan"]

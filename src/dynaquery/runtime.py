from __future__ import annotations

import inspect
import os
import time
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import aioboto3
from aiobotocore.config import AioConfig


@dataclass(frozen=True)
class AwsCallMetric:
    service: str
    operation: str
    seconds: float
    ok: bool


def is_lambda_environment(environ: Mapping[str, str] = os.environ) -> bool:
    return bool(
        environ.get("AWS_LAMBDA_FUNCTION_NAME") or "AWS_Lambda" in (environ.get("AWS_EXECUTION_ENV") or "")
    )


def create_boto_config(
    *,
    connect_timeout: float = 1.0,
    read_timeout: float = 3.0,
    max_attempts: int = 3,
) -> AioConfig:
    return AioConfig(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": max_attempts, "mode": "adaptive"},
    )


class _InstrumentedClient:
    def __init__(self, client: Any, service: str, on_call: Callable[[AwsCallMetric], None]) -> None:
        self._client = client
        self._service = service
        self._on_call = on_call

    def _record(self, operation: str, start: float, ok: bool) -> None:
        self._on_call(
            AwsCallMetric(
                service=self._service,
                operation=operation,
                seconds=time.monotonic() - start,
                ok=ok,
            )
        )

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr

        async def wrapped(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            try:
                out = attr(*args, **kwargs)
                if inspect.isawaitable(out):
                    out = await out
            except Exception:
                self._record(name, start, ok=False)
                raise
            self._record(name, start, ok=True)
            return out

        return wrapped


def instrument_client(
    client: Any,
    *,
    service: str,
    on_call: Callable[[AwsCallMetric], None],
) -> Any:
    """Wrap an async client so every awaited call reports an ``AwsCallMetric``."""
    return _InstrumentedClient(client, service, on_call)


@asynccontextmanager
async def dynamodb_client(
    *,
    region: str | None = None,
    endpoint_url: str | None = None,
    config: AioConfig | None = None,
    session: Any | None = None,
    metrics: Callable[[AwsCallMetric], None] | None = None,
    environ: Mapping[str, str] = os.environ,
) -> AsyncIterator[Any]:
    """Open an async DynamoDB client.

    ``DYNAMODB_ENDPOINT`` and ``AWS_REGION`` fill in ``endpoint_url`` and
    ``region`` when they are not passed. Inside Lambda the short timeouts
    from :func:`create_boto_config` are used unless ``config`` is given.
    """
    region = region or environ.get("AWS_REGION") or None
    endpoint_url = endpoint_url or environ.get("DYNAMODB_ENDPOINT") or None
    if config is None and is_lambda_environment(environ):
        config = create_boto_config()

    kwargs: dict[str, Any] = {}
    if region is not None:
        kwargs["region_name"] = region
    if endpoint_url is not None:
        kwargs["endpoint_url"] = endpoint_url
    if config is not None:
        kwargs["config"] = config

    sess = session or aioboto3.Session()
    async with sess.client("dynamodb", **kwargs) as client:
        if metrics is not None:
            yield instrument_client(client, service="dynamodb", on_call=metrics)
        else:
            yield client

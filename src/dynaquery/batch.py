from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from .codec import ItemCodec
from .errors import BatchIncompleteError, ValidationError
from .executor import Executor, send
from .parallel import run_bounded
from .request import projection_expression

logger = logging.getLogger(__name__)

MaxBatchGetKeys = 100
MaxBatchWriteRequests = 25

type Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 8
    delay_seconds: float = 0.1
    backoff_factor: float = 1.0
    max_delay_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValidationError("max_retries must be >= 0")
        if self.delay_seconds < 0:
            raise ValidationError("delay_seconds must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        seconds = self.delay_seconds * (self.backoff_factor ** (attempt - 1))
        return min(seconds, self.max_delay_seconds)


@dataclass(frozen=True)
class PutRequest[T]:
    item: T


@dataclass(frozen=True)
class DeleteRequest:
    pk: Any
    sk: Any | None = None


type WriteRequest[T] = PutRequest[T] | DeleteRequest


def chunked[S](items: Sequence[S], size: int) -> list[Sequence[S]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchEngine[T]:
    def __init__(
        self,
        client: Any,
        codec: ItemCodec[T],
        *,
        table_name: str,
        retry_policy: RetryPolicy | None = None,
        max_concurrency: int | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._client = client
        self._codec = codec
        self._executor = Executor(client, codec)
        self._table_name = table_name
        self._retry = retry_policy or RetryPolicy()
        self._max_concurrency = max_concurrency
        self._sleep = sleep or asyncio.sleep

    async def _retry_wait(
        self, operation: Literal["batch_get", "batch_write"], attempts: int, pending: int
    ) -> int:
        if attempts >= self._retry.max_retries:
            raise BatchIncompleteError(operation=operation, unprocessed_count=pending)
        attempts += 1
        logger.warning(
            "%s: %d unprocessed on %s, retry %d/%d",
            operation,
            pending,
            self._table_name,
            attempts,
            self._retry.max_retries,
        )
        await self._sleep(self._retry.delay_for(attempts))
        return attempts

    async def get(
        self,
        keys: Sequence[Any],
        *,
        consistent_read: bool = False,
        projection: Sequence[str] | None = None,
    ) -> list[T]:
        """Fetch ``keys`` (``pk`` or ``(pk, sk)``) in chunks of 100.

        Chunks run concurrently. Items come back grouped by chunk, in chunk
        order; the store does not order items inside a chunk.
        """
        if not keys:
            return []

        serialized = [self._codec.key_of(key) for key in keys]

        base: dict[str, Any] = {}
        if consistent_read:
            base["ConsistentRead"] = True
        if projection:
            names: dict[str, str] = {}
            base["ProjectionExpression"] = projection_expression(projection, names)
            base["ExpressionAttributeNames"] = names

        async def fetch(chunk: Sequence[dict[str, Any]]) -> list[T]:
            out: list[T] = []
            pending = list(chunk)
            attempts = 0
            while pending:
                request = {"RequestItems": {self._table_name: dict(base, Keys=pending)}}
                resp = await send(self._client, "batch_get_item", request)

                raw = list((resp.get("Responses") or {}).get(self._table_name, []))
                out.extend(self._executor.decode_items(raw))

                unprocessed = (resp.get("UnprocessedKeys") or {}).get(self._table_name) or {}
                pending = list(unprocessed.get("Keys") or [])
                if pending:
                    attempts = await self._retry_wait("batch_get", attempts, len(pending))
            return out

        chunks = chunked(serialized, MaxBatchGetKeys)
        results = await run_bounded(
            [lambda c=chunk: fetch(c) for chunk in chunks], max_concurrency=self._max_concurrency
        )

        items: list[T] = []
        for chunk_items in results:
            items.extend(chunk_items)
        return items

    def _write_entry(self, request: WriteRequest[T]) -> dict[str, Any]:
        if isinstance(request, PutRequest):
            item = self._codec.stamp_for_create(request.item)
            return {"PutRequest": {"Item": self._codec.to_item(item)}}
        if isinstance(request, DeleteRequest):
            return {"DeleteRequest": {"Key": self._codec.to_key(request.pk, request.sk)}}
        raise ValidationError(f"unsupported write request: {type(request).__name__}")

    async def write(self, requests: Sequence[WriteRequest[T]]) -> None:
        if not requests:
            return

        entries = [self._write_entry(r) for r in requests]

        async def flush(chunk: Sequence[Mapping[str, Any]]) -> None:
            pending = list(chunk)
            attempts = 0
            while pending:
                request = {"RequestItems": {self._table_name: pending}}
                resp = await send(self._client, "batch_write_item", request)

                pending = list((resp.get("UnprocessedItems") or {}).get(self._table_name) or [])
                if pending:
                    attempts = await self._retry_wait("batch_write", attempts, len(pending))

        chunks = chunked(entries, MaxBatchWriteRequests)
        await run_bounded([lambda c=chunk: flush(c) for chunk in chunks], max_concurrency=self._max_concurrency)

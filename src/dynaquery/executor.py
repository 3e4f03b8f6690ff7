from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .codec import ItemCodec
from .errors import InvalidItemError, ValidationError
from .pages import Page, encode_cursor

logger = logging.getLogger(__name__)

type ReadOperation = Literal["query", "scan"]


async def send(client: Any, operation: str, request: Mapping[str, Any]) -> dict[str, Any]:
    """Call one low-level client method, mapping ``ClientError`` to typed errors."""
    table = request.get("TableName") or ",".join(request.get("RequestItems") or {}) or "-"
    logger.debug("dynamodb %s table=%s index=%s", operation, table, request.get("IndexName", "-"))
    try:
        resp = await getattr(client, operation)(**request)
    except ClientError as err:
        raise map_client_error(err) from err
    return dict(resp or {})


def consumed_units(consumed: Any) -> float | None:
    if not consumed:
        return None
    entries = consumed if isinstance(consumed, list) else [consumed]
    total = 0.0
    for entry in entries:
        units = entry.get("CapacityUnits") if isinstance(entry, Mapping) else None
        if units is not None:
            total += float(units)
    return total


class Executor[T]:
    def __init__(self, client: Any, codec: ItemCodec[T]) -> None:
        self._client = client
        self._codec = codec

    @property
    def codec(self) -> ItemCodec[T]:
        return self._codec

    def decode_items(self, raw_items: list[Mapping[str, Any]]) -> list[T]:
        items: list[T] = []
        for raw in raw_items:
            try:
                items.append(self._codec.from_item(raw))
            except ValidationError as err:
                raise InvalidItemError(item=raw, detail=str(err)) from err
        return items

    async def execute(self, operation: ReadOperation, request: Mapping[str, Any]) -> Page[T]:
        resp = await send(self._client, operation, request)

        raw_items = list(resp.get("Items") or [])
        items = self.decode_items(raw_items)

        sort: Literal["ASC", "DESC"] | None = None
        if "ScanIndexForward" in request:
            sort = "ASC" if request["ScanIndexForward"] else "DESC"

        count = int(resp.get("Count", len(raw_items)))
        return Page(
            items=items,
            count=count,
            scanned_count=int(resp.get("ScannedCount", count)),
            cursor=encode_cursor(resp.get("LastEvaluatedKey"), index=request.get("IndexName"), sort=sort),
            consumed_capacity=consumed_units(resp.get("ConsumedCapacity")),
        )

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from .conditions import FieldCondition, resolve_field
from .errors import ValidationError
from .pages import Page
from .scan import ScanBuilder, validate_segments


async def run_bounded[R](
    factories: Sequence[Callable[[], Awaitable[R]]],
    *,
    max_concurrency: int | None = None,
) -> list[R]:
    """Run every factory concurrently and return results in input order.

    The first failure cancels the remaining tasks and is re-raised on its own.
    """
    if max_concurrency is not None and max_concurrency <= 0:
        raise ValueError("max_concurrency must be > 0")

    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None
    results: list[Any] = [None] * len(factories)

    async def run(i: int, factory: Callable[[], Awaitable[R]]) -> None:
        async with semaphore if semaphore is not None else contextlib.nullcontext():
            results[i] = await factory()

    try:
        async with asyncio.TaskGroup() as tg:
            for i, factory in enumerate(factories):
                tg.create_task(run(i, factory))
    except ExceptionGroup as group:
        raise group.exceptions[0] from None

    return results


def merge_pages[T](pages: Mapping[int, Page[T]]) -> Page[T]:
    items: list[T] = []
    count = 0
    scanned = 0
    cursor: str | None = None
    capacity: float | None = None
    segment_cursors: dict[int, str] = {}

    for segment in sorted(pages):
        page = pages[segment]
        items.extend(page.items)
        count += page.count
        scanned += page.scanned_count
        if page.cursor is not None:
            cursor = page.cursor
            segment_cursors[segment] = page.cursor
        if page.consumed_capacity is not None:
            capacity = (capacity or 0.0) + page.consumed_capacity

    return Page(
        items=items,
        count=count,
        scanned_count=scanned,
        cursor=cursor,
        consumed_capacity=capacity,
        segment_cursors=segment_cursors,
    )


class ParallelScan[T]:
    """Fan a scan out over ``total_segments`` segments and merge the results.

    ``Page.cursor`` on the merged page is only the last segment's cursor and
    cannot resume the whole scan. Pass ``Page.segment_cursors`` back to
    :meth:`exec` to continue each unfinished segment instead.
    """

    def __init__(
        self,
        builder: ScanBuilder[T],
        total_segments: int,
        *,
        max_concurrency: int | None = None,
    ) -> None:
        self._builder = builder
        self._total_segments = total_segments
        self._max_concurrency = max_concurrency

    @property
    def total_segments(self) -> int:
        return self._total_segments

    def filter(self, field: str) -> FieldCondition[ParallelScan[T]]:
        return FieldCondition(
            self,
            resolve_field(self._builder._model, field),
            self._builder._add_filter,
        )

    def _plan(
        self, total_segments: int | None, segment_cursors: Mapping[int, str] | None
    ) -> tuple[int, dict[int, str | None]]:
        total = self._total_segments if total_segments is None else total_segments
        validate_segments(total)
        if self._builder._start is not None:
            raise ValidationError("start_key is not supported by parallel scans; resume with segment_cursors")
        if segment_cursors is None:
            return total, {segment: None for segment in range(total)}
        for segment in segment_cursors:
            validate_segments(total, segment)
        return total, {segment: segment_cursors[segment] for segment in sorted(segment_cursors)}

    async def exec(
        self,
        total_segments: int | None = None,
        *,
        segment_cursors: Mapping[int, str] | None = None,
    ) -> Page[T]:
        total, plan = self._plan(total_segments, segment_cursors)
        segments = list(plan)

        def page_of(segment: int) -> Callable[[], Awaitable[Page[T]]]:
            builder = self._builder.for_segment(segment, total)
            return lambda: builder.exec_with_pagination(plan[segment])

        pages = await run_bounded([page_of(s) for s in segments], max_concurrency=self._max_concurrency)
        return merge_pages(dict(zip(segments, pages, strict=True)))

    async def load_all(self, total_segments: int | None = None) -> list[T]:
        total, plan = self._plan(total_segments, None)
        factories = [self._builder.for_segment(segment, total).load_all for segment in plan]
        per_segment = await run_bounded(factories, max_concurrency=self._max_concurrency)

        items: list[T] = []
        for segment_items in per_segment:
            items.extend(segment_items)
        return items

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from .errors import InvalidSegmentError
from .executor import ReadOperation
from .query import ReadBuilder

if TYPE_CHECKING:
    from .parallel import ParallelScan

MaxTotalSegments = 1_000_000


def validate_segments(total_segments: int, segment: int | None = None) -> None:
    if not 1 <= total_segments <= MaxTotalSegments:
        raise InvalidSegmentError(segment=None, total_segments=total_segments)
    if segment is not None and not 0 <= segment < total_segments:
        raise InvalidSegmentError(segment=segment, total_segments=total_segments)


class ScanBuilder[T](ReadBuilder[T]):
    _operation: ReadOperation = "scan"

    _segment_index: int | None = None
    _total_segments: int | None = None

    def segments(self, segment: int, total_segments: int) -> Self:
        """Restrict this scan to one segment of a manual parallel scan."""
        validate_segments(total_segments, segment)
        self._segment_index = segment
        self._total_segments = total_segments
        return self

    def _segment(self) -> tuple[int | None, int | None]:
        return self._segment_index, self._total_segments

    def for_segment(self, segment: int, total_segments: int) -> ScanBuilder[T]:
        clone: ScanBuilder[T] = ScanBuilder(self._executor, table_name=self._table_name)
        clone.__dict__.update(self.__dict__)
        clone._key_conditions = self._key_conditions.copy()
        clone._filter_conditions = self._filter_conditions.copy()
        return clone.segments(segment, total_segments)

    def parallel_scan(self, total_segments: int, *, max_concurrency: int | None = None) -> ParallelScan[T]:
        from .parallel import ParallelScan

        return ParallelScan(self, total_segments, max_concurrency=max_concurrency)

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class DynaqueryError(Exception):
    pass


class ValidationError(DynaqueryError):
    pass


class NotFoundError(DynaqueryError):
    pass


class UnsupportedOperatorError(DynaqueryError):
    def __init__(self, *, operator: str, field: str | None = None, reason: str | None = None) -> None:
        message = f"unsupported operator: {operator}"
        if field is not None:
            message = f"{message} (field {field!r})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.operator = operator
        self.field = field


class InvalidOperandError(DynaqueryError):
    def __init__(self, *, operator: str, detail: str) -> None:
        super().__init__(f"{operator}: {detail}")
        self.operator = operator
        self.detail = detail


class IndexNotFoundError(DynaqueryError):
    def __init__(self, *, index_name: str, table_name: str) -> None:
        super().__init__(f"index {index_name!r} not found on table {table_name!r}")
        self.index_name = index_name
        self.table_name = table_name


class InvalidSegmentError(DynaqueryError):
    def __init__(self, *, segment: int | None, total_segments: int) -> None:
        if segment is None:
            message = f"total_segments must be between 1 and 1000000 (got {total_segments})"
        else:
            message = f"segment {segment} must be between 0 and {total_segments - 1}"
        super().__init__(message)
        self.segment = segment
        self.total_segments = total_segments


class InvalidItemError(DynaqueryError):
    def __init__(self, *, item: Mapping[str, Any], detail: str) -> None:
        super().__init__(f"invalid item: {detail}")
        self.item = item
        self.detail = detail


class BatchIncompleteError(DynaqueryError):
    def __init__(self, *, operation: str, unprocessed_count: int) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={unprocessed_count})")
        self.operation = operation
        self.unprocessed_count = unprocessed_count


class ConditionalCheckFailedError(DynaqueryError):
    pass


class ResourceNotFoundError(DynaqueryError):
    pass


class ResourceInUseError(DynaqueryError):
    pass


class AwsError(DynaqueryError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message

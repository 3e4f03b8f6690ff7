from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from .mocks import ANY, FakeDynamoDBClient


async def no_sleep(_: float) -> None:
    return None


class RecordingSleep:
    """Async sleep replacement that remembers every requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def fixed_clock(at: datetime) -> Callable[[], datetime]:
    if at.tzinfo is None:
        at = at.replace(tzinfo=UTC)

    def now() -> datetime:
        return at

    return now


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "RecordingSleep",
    "fixed_clock",
    "no_sleep",
]

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()


def _assert_match(expected: Any, actual: Any, *, path: str) -> None:
    if expected is ANY:
        return

    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            raise AssertionError(f"{path}: expected dict, got {type(actual).__name__}")
        for k, v in expected.items():
            if k not in actual:
                raise AssertionError(f"{path}: missing key {k!r}")
            _assert_match(v, actual[k], path=f"{path}.{k}")
        return

    if isinstance(expected, list):
        if not isinstance(actual, list):
            raise AssertionError(f"{path}: expected list, got {type(actual).__name__}")
        if len(expected) != len(actual):
            raise AssertionError(f"{path}: expected {len(expected)} items, got {len(actual)}")
        for i, (e, a) in enumerate(zip(expected, actual, strict=True)):
            _assert_match(e, a, path=f"{path}[{i}]")
        return

    if expected != actual:
        raise AssertionError(f"{path}: expected {expected!r}, got {actual!r}")


type RequestCheck = Mapping[str, Any] | Callable[[Mapping[str, Any]], None]
type Responder = Callable[[Mapping[str, Any]], Mapping[str, Any]]


@dataclass(frozen=True)
class ExpectedCall:
    method: str
    expected: RequestCheck | None = None
    response: Mapping[str, Any] | Responder | None = None
    error: Exception | None = None


class FakeDynamoDBClient:
    """Scripted async stand-in for the low-level DynamoDB client.

    Calls must arrive in the order they were expected. ``response`` may be a
    callable that builds the reply from the request, which is handy when
    concurrent chunks or segments can arrive in any order (see ``ordered``).
    """

    def __init__(self, *, ordered: bool = True) -> None:
        self._expected: list[ExpectedCall] = []
        self._ordered = ordered
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        method: str,
        expected: RequestCheck | None = None,
        *,
        response: Mapping[str, Any] | Responder | None = None,
        error: Exception | None = None,
    ) -> None:
        self._expected.append(ExpectedCall(method=method, expected=expected, response=response, error=error))

    def assert_no_pending(self) -> None:
        if self._expected:
            raise AssertionError(f"pending expected calls: {self._expected!r}")

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == method]

    def _matches(self, call: ExpectedCall, method: str, req: dict[str, Any]) -> bool:
        if call.method != method:
            return False
        if call.expected is None or callable(call.expected):
            return True
        try:
            _assert_match(dict(call.expected), req, path=method)
        except AssertionError:
            return False
        return True

    def _next(self, method: str, req: dict[str, Any]) -> ExpectedCall:
        if not self._expected:
            raise AssertionError(f"unexpected call: {method}")
        if self._ordered:
            call = self._expected.pop(0)
            if call.method != method:
                raise AssertionError(f"expected {call.method}, got {method}")
            return call
        for i, call in enumerate(self._expected):
            if self._matches(call, method, req):
                return self._expected.pop(i)
        raise AssertionError(f"no expected call matches {method}: {req!r}")

    async def _handle(self, method: str, req: dict[str, Any]) -> Mapping[str, Any]:
        self.calls.append((method, dict(req)))
        call = self._next(method, req)

        if callable(call.expected):
            call.expected(req)
        elif call.expected is not None:
            _assert_match(dict(call.expected), req, path=method)

        if call.error is not None:
            raise call.error

        if callable(call.response):
            return dict(call.response(req))
        return dict(call.response or {})

    async def put_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return await self._handle("put_item", kwargs)

    async def get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return await self._handle("get_item", kwargs)

    async def update_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return await self._handle("update_item", kwargs)

    async def delete_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return await self._handle("delete_item", kwargs)

    async def query(self, **kwargs: Any) -> Mapping[str, Any]:
        return await self._handle("query", kwargs)

    async def scan(self, **kwargs: Any) -> Mapping[str, Any]:
        return await self._handle("scan", kwargs)

    async def batch_get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return await self._handle("batch_get_item", kwargs)

    async def batch_write_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return await self._handle("batch_write_item", kwargs)

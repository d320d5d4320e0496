"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest


def evaluate_response(value: Any) -> dict[str, Any]:
    """Runtime.evaluate response carrying a by-value result."""
    return {"id": 1, "result": {"result": {"type": "object", "value": value}}}


def exception_response(description: str) -> dict[str, Any]:
    """Runtime.evaluate response for a script that threw."""
    return {
        "id": 1,
        "result": {
            "result": {"type": "object", "subtype": "error"},
            "exceptionDetails": {
                "text": "Uncaught",
                "exception": {"description": description},
            },
        },
    }


class FakeTransport:
    """In-memory stand-in for a CDP websocket transport."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any] | None]] = []
        self.responses: dict[str, Any] = {}
        self.closed = False
        self.close_error: Exception | None = None
        self.loss_handler: Callable[[str], None] | None = None

    async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        self.sent.append((method, params))
        response = self.responses.get(method, {"id": 1, "result": {}})
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(params)
        return response

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    def set_loss_handler(self, handler: Callable[[str], None]) -> None:
        self.loss_handler = handler

    def drop(self, reason: str = "target closed") -> None:
        assert self.loss_handler is not None
        self.loss_handler(reason)

    def methods(self) -> list[str]:
        return [method for method, _ in self.sent]


class FakeSocket:
    """In-memory stand-in for a websocket client connection.

    Replies to every request by echoing its method. With eof_after set, the
    socket closes right after answering that method.
    """

    def __init__(self, auto_reply: bool = True, eof_after: str | None = None) -> None:
        self.incoming: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.auto_reply = auto_reply
        self.eof_after = eof_after

    async def send(self, data: str) -> None:
        message = json.loads(data)
        self.sent.append(message)
        if self.auto_reply:
            reply = {"id": message["id"], "result": {"echo": message["method"]}}
            self.incoming.put_nowait(json.dumps(reply))
        if message["method"] == self.eof_after:
            self.incoming.put_nowait(None)

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(None)

    def push(self, message: dict[str, Any] | str | None) -> None:
        if isinstance(message, dict):
            message = json.dumps(message)
        self.incoming.put_nowait(message)

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Connector returning queued transports or raising queued errors."""

    def __init__(self) -> None:
        self.outcomes: list[FakeTransport | Exception] = []
        self.calls: list[tuple[str, int]] = []
        self.gate: asyncio.Event | None = None
        self.default: FakeTransport | None = None

    async def __call__(self, host: str, port: int) -> FakeTransport:
        self.calls.append((host, port))
        if self.gate is not None:
            await self.gate.wait()
        if self.outcomes:
            outcome = self.outcomes.pop(0)
        else:
            outcome = self.default or FakeTransport()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records delays and only yields to the loop."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)
        await asyncio.sleep(0)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def connector(fake_transport: FakeTransport) -> FakeConnector:
    fake = FakeConnector()
    fake.default = fake_transport
    return fake


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()

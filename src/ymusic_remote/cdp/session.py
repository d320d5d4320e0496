"""Remote session - owns the single CDP connection and its state transitions."""

from __future__ import annotations

import asyncio
import contextlib
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ValidationError

from ymusic_remote.cdp.commands import Command
from ymusic_remote.cdp.transport import CdpTransport, LossHandler, TransportClosedError
from ymusic_remote.config import CdpConfig
from ymusic_remote.errors import (
    ControllerError,
    connection_refused_error,
    decode_error,
    not_connected_error,
    remote_exception_error,
    transport_error,
)
from ymusic_remote.utils.single_flight import SingleFlight

logger = structlog.get_logger()

REQUIRED_DOMAINS = ("Page.enable", "Runtime.enable")


class SessionState(Enum):
    """Connection state of the remote session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class LossEvent:
    """Published once each time the transport drops on its own."""

    host: str
    port: int
    reason: str
    at: datetime = field(default_factory=datetime.now)


class Transport(Protocol):
    async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]: ...

    async def close(self) -> None: ...

    def set_loss_handler(self, handler: LossHandler) -> None: ...


Connector = Callable[[str, int], Awaitable[Transport]]


class RemoteSession:
    """Single logical connection to the debugging endpoint.

    State transitions (connect, disconnect, loss) are serialized. Loss
    handling runs synchronously on the event loop and only acts on the
    current handle, so a late loss report from a transport that was already
    replaced or closed is ignored.
    """

    def __init__(self, config: CdpConfig, *, connector: Connector | None = None) -> None:
        self._config = config
        self._host = config.host
        self._port = config.port
        self._connector: Connector = connector or self._open_transport
        self._transport: Transport | None = None
        self._state = SessionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._connect_flight: SingleFlight[None] = SingleFlight()
        self._loss_queue: asyncio.Queue[LossEvent] | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def endpoint(self) -> tuple[str, int]:
        return (self._host, self._port)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED and self._transport is not None

    def set_port(self, port: int) -> bool:
        """Point the session at a new port. Returns False if unchanged.

        Does not touch the live connection; callers reconnect explicitly.
        """
        if port == self._port:
            logger.info("cdp_port_unchanged", port=port)
            return False
        logger.info("cdp_port_changed", old_port=self._port, new_port=port)
        self._port = port
        return True

    def subscribe_loss(self) -> asyncio.Queue[LossEvent]:
        """Return the loss channel. Only one subscriber is allowed."""
        if self._loss_queue is not None:
            raise RuntimeError("Loss channel already has a subscriber")
        self._loss_queue = asyncio.Queue()
        return self._loss_queue

    def unsubscribe_loss(self) -> None:
        self._loss_queue = None

    async def connect(self) -> None:
        """Connect if needed. Concurrent callers share one attempt.

        Raises:
            ControllerError: ERR_CONNECTION_REFUSED or ERR_TRANSPORT
        """
        if self.is_connected:
            return
        await self._connect_flight.run(self._establish)

    async def disconnect(self) -> None:
        """Close the connection. State is DISCONNECTED afterwards, always."""
        async with self._lock:
            transport = self._transport
            self._reset()
            if transport is None:
                return
            try:
                await transport.close()
                logger.info("cdp_disconnected", host=self._host, port=self._port)
            except Exception as exc:
                logger.warning("cdp_close_failed", error=str(exc))

    async def execute(self, command: Command, model: type[BaseModel] | None = None) -> Any:
        """Evaluate a command in the page.

        Args:
            command: Expression and evaluation flags
            model: Optional pydantic model to validate the returned value into

        Returns:
            The raw returned value, or a model instance when model is given

        Raises:
            ControllerError: ERR_NOT_CONNECTED, ERR_TRANSPORT,
                ERR_REMOTE_EXCEPTION or ERR_DECODE
        """
        transport = self._transport
        if transport is None or self._state is not SessionState.CONNECTED:
            raise not_connected_error(command.name)

        try:
            response = await transport.send("Runtime.evaluate", command.to_params())
        except TransportClosedError as exc:
            self._on_transport_loss(transport, str(exc) or "transport closed")
            raise transport_error(command.name, str(exc) or type(exc).__name__) from None
        except OSError as exc:
            raise transport_error(command.name, str(exc) or type(exc).__name__) from None

        return self._decode(command, response, model)

    async def _establish(self) -> None:
        async with self._lock:
            if self.is_connected:
                return
            host, port = self._host, self._port
            self._state = SessionState.CONNECTING
            logger.info("cdp_connecting", host=host, port=port)

            try:
                transport = await self._connector(host, port)
            except asyncio.CancelledError:
                self._reset()
                raise
            except Exception as exc:
                self._reset()
                error = self._classify_connect_error(exc, host, port)
                logger.info("cdp_connect_failed", code=error.code, reason=str(exc))
                raise error from None

            try:
                await self._enable_domains(transport)
            except BaseException as exc:
                self._reset()
                with contextlib.suppress(Exception):
                    await transport.close()
                if isinstance(exc, ControllerError) or not isinstance(exc, Exception):
                    raise
                raise transport_error("enable domains", str(exc) or type(exc).__name__) from None

            self._transport = transport
            self._state = SessionState.CONNECTED
            logger.info("cdp_connected", host=host, port=port)
            # Reports a drop that happened while the domains were being enabled.
            transport.set_loss_handler(functools.partial(self._on_transport_loss, transport))

    async def _enable_domains(self, transport: Transport) -> None:
        responses = await asyncio.gather(*(transport.send(method) for method in REQUIRED_DOMAINS))
        for method, response in zip(REQUIRED_DOMAINS, responses, strict=True):
            error = response.get("error")
            if error:
                raise transport_error(method, _protocol_error_message(error))

    def _on_transport_loss(self, transport: Transport, reason: str) -> None:
        if transport is not self._transport:
            logger.debug("cdp_stale_loss_ignored", reason=reason)
            return
        self._reset()
        logger.warning("cdp_connection_lost", host=self._host, port=self._port, reason=reason)
        if self._loss_queue is not None:
            self._loss_queue.put_nowait(LossEvent(host=self._host, port=self._port, reason=reason))

    def _reset(self) -> None:
        self._transport = None
        self._state = SessionState.DISCONNECTED

    async def _open_transport(self, host: str, port: int) -> Transport:
        return await CdpTransport.open(
            host,
            port,
            connect_timeout=self._config.connect_timeout,
            request_timeout=self._config.request_timeout,
        )

    @staticmethod
    def _classify_connect_error(exc: Exception, host: str, port: int) -> ControllerError:
        if isinstance(exc, ControllerError):
            return exc
        if _is_refusal(exc):
            return connection_refused_error(host, port)
        return transport_error("connect", str(exc) or type(exc).__name__)

    @staticmethod
    def _decode(command: Command, response: dict[str, Any], model: type[BaseModel] | None) -> Any:
        error = response.get("error")
        if error:
            raise remote_exception_error(_protocol_error_message(error))

        result = response.get("result")
        if not isinstance(result, dict):
            raise decode_error(command.name, "response has no result object")

        details = result.get("exceptionDetails")
        if details:
            raise remote_exception_error(_exception_description(details))

        remote_object = result.get("result")
        value = remote_object.get("value") if isinstance(remote_object, dict) else None
        if model is None:
            return value
        try:
            return model.model_validate(value)
        except ValidationError as exc:
            errors = exc.errors()
            reason = errors[0].get("msg", "invalid value") if errors else str(exc)
            raise decode_error(command.name, reason, value) from None


def _protocol_error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)


def _exception_description(details: Any) -> str:
    if not isinstance(details, dict):
        return str(details)
    exception = details.get("exception")
    if isinstance(exception, dict) and exception.get("description"):
        return str(exception["description"])
    return str(details.get("text", "unknown exception"))


def _is_refusal(exc: BaseException) -> bool:
    """True if exc, or an exception it was raised from, is a refused connection."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionRefusedError):
            return True
        lowered = str(current).lower()
        if "econnrefused" in lowered or "connection refused" in lowered:
            return True
        current = current.__cause__ or current.__context__
    return False

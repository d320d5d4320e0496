"""CDP client transport - JSON-RPC over the page target's websocket."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Callable
from typing import Any

import httpx
import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

logger = structlog.get_logger()

LossHandler = Callable[[str], None]


class TransportClosedError(ConnectionError):
    """Raised when a request is sent over, or pending on, a closed socket."""


class NoPageTargetError(ConnectionError):
    """Raised when the endpoint answers but exposes no page to attach to."""


async def discover_page_url(host: str, port: int, *, timeout: float) -> str:
    """Return the websocket URL of the first page target on the endpoint.

    Raises:
        httpx.ConnectError: If nothing is listening on host:port
        NoPageTargetError: If the endpoint has no attachable page
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.get(f"http://{host}:{port}/json/list")
        resp.raise_for_status()
        targets = resp.json()

    if isinstance(targets, list):
        for target in targets:
            if not isinstance(target, dict):
                continue
            ws_url = target.get("webSocketDebuggerUrl")
            if target.get("type") == "page" and ws_url:
                return str(ws_url)
    raise NoPageTargetError(f"No page target exposed on {host}:{port}")


async def probe_endpoint(host: str, port: int, *, timeout: float) -> bool:
    """Return True if the debugging endpoint answers /json/version."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(f"http://{host}:{port}/json/version")
            return resp.status_code == 200
    except httpx.HTTPError:
        return False


class CdpTransport:
    """One websocket connection to a page target.

    Requests are matched to responses by id. When the socket drops without
    close() having been called, pending requests fail and the registered loss
    handler is invoked exactly once with a short reason.
    """

    def __init__(self, ws: ClientConnection, *, request_timeout: float = 30.0) -> None:
        self._ws = ws
        self._request_timeout = request_timeout
        self._request_id = 0
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._closing = False
        self._loss_handler: LossHandler | None = None
        self._lost_reason: str | None = None
        self._loss_reported = False
        self._reader_task = asyncio.create_task(self._read_loop())

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        *,
        connect_timeout: float = 5.0,
        request_timeout: float = 30.0,
    ) -> CdpTransport:
        """Discover the page target on host:port and connect to it."""
        ws_url = await discover_page_url(host, port, timeout=connect_timeout)
        ws = await asyncio.wait_for(
            connect(ws_url, max_size=None, open_timeout=connect_timeout),
            timeout=connect_timeout,
        )
        logger.debug("cdp_socket_opened", url=ws_url)
        return cls(ws, request_timeout=request_timeout)

    @property
    def is_open(self) -> bool:
        return not self._closing and not self._reader_task.done()

    def set_loss_handler(self, handler: LossHandler) -> None:
        """Register the loss handler.

        If the socket already dropped on its own, the handler is called
        immediately.
        """
        self._loss_handler = handler
        if self._lost_reason is not None and not self._closing:
            self._report_loss()

    async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a CDP command and return the raw response message."""
        if not self.is_open:
            raise TransportClosedError("transport closed")

        self._request_id += 1
        req_id = self._request_id
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future

        msg = {"id": req_id, "method": method, "params": params or {}}
        try:
            await self._ws.send(json.dumps(msg, ensure_ascii=True))
        except ConnectionClosed as exc:
            self._pending.pop(req_id, None)
            raise TransportClosedError(str(exc)) from exc

        try:
            return await asyncio.wait_for(future, timeout=self._request_timeout)
        except TimeoutError:
            self._pending.pop(req_id, None)
            raise

    async def close(self) -> None:
        """Close the socket without reporting a loss."""
        self._closing = True
        try:
            await self._ws.close()
        finally:
            if not self._reader_task.done():
                self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task

    async def _read_loop(self) -> None:
        reason = "connection closed"
        try:
            async for raw in self._ws:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("cdp_invalid_json", message=str(raw)[:200])
                    continue

                req_id = data.get("id")
                if req_id is not None:
                    future = self._pending.pop(req_id, None)
                    if future is not None and not future.done():
                        future.set_result(data)
                elif data.get("method") == "Inspector.detached":
                    reason = str(data.get("params", {}).get("reason", "inspector detached"))
        except asyncio.CancelledError:
            self._fail_pending("transport closed")
            return
        except ConnectionClosed as exc:
            reason = str(exc)
        except Exception:
            logger.exception("cdp_read_loop_error")
            reason = "read loop error"

        self._fail_pending(reason)
        if not self._closing:
            self._lost_reason = reason
            self._report_loss()

    def _report_loss(self) -> None:
        if self._loss_reported or self._loss_handler is None or self._lost_reason is None:
            return
        self._loss_reported = True
        self._loss_handler(self._lost_reason)

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportClosedError(reason))
        self._pending.clear()

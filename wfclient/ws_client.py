from __future__ import annotations
import asyncio
from typing import Optional, Callable, Awaitable, Dict, Set
from xml.etree import ElementTree as ET

import websockets

from shared.stanza import Stanza, create_iq
from shared.log import get_logger

logger = get_logger(__name__)


StanzaHandler = Callable[[Stanza], Awaitable[None]]
# Receives the response, or None when the request was abandoned
ResponseHandler = Callable[[Optional[Stanza]], Awaitable[None]]


class ClientSession:
    """
    XMPP-over-WebSocket client session: one stanza per text frame.

    Correlates <iq> responses to requests by id. A request registered with
    a response handler gets exactly one delivery: the result/error stanza,
    or None on timeout, cancellation or connection loss.
    """

    def __init__(self, server_ws_url: str, request_timeout: float = 30.0) -> None:
        self.server_ws_url = server_ws_url
        self.request_timeout = request_timeout
        self.websocket: Optional[websockets.ClientConnection] = None
        self.handlers: Dict[str, StanzaHandler] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self._background_tasks: Set[asyncio.Task] = set()

    async def connect(self) -> None:
        """Connect to the XMPP websocket endpoint"""
        self.websocket = await websockets.connect(
            self.server_ws_url, subprotocols=["xmpp"], ping_interval=15, ping_timeout=45
        )

    def _track_background_task(self, task: asyncio.Task) -> None:
        """Keep a strong reference to background tasks until completion."""
        self._background_tasks.add(task)

        def _discard(_task: asyncio.Task) -> None:
            self._background_tasks.discard(_task)

        task.add_done_callback(_discard)

    def spawn(self, coroutine: Awaitable[None]) -> asyncio.Task:
        """Run a coroutine detached from the caller; nobody awaits it."""
        task = asyncio.ensure_future(coroutine)
        self._track_background_task(task)
        return task

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def send(self, stanza: Stanza) -> None:
        assert self.websocket is not None
        await self.websocket.send(stanza.to_xml())

    async def send_iq(
        self,
        to: str,
        query: ET.Element,
        on_response: Optional[ResponseHandler] = None,
        *,
        iq_type: str = "get",
        timeout: Optional[float] = None,
    ) -> str:
        """
        Send an <iq> request and return its id.

        Without `on_response` the request is fire-and-forget: any answer
        is dropped by recv_loop. With it, the handler runs in a detached
        task once the answer (or abandonment) is known.
        """
        stanza = create_iq(to, query, iq_type=iq_type)

        if on_response is not None:
            future: asyncio.Future = asyncio.get_running_loop().create_future()
            self._pending[stanza.id] = future
            self.spawn(self._await_response(stanza.id, future, on_response,
                                            self.request_timeout if timeout is None else timeout))

        try:
            await self.send(stanza)
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Connection closed while sending iq %s to %s", stanza.id, to)
            self._abandon(stanza.id)
        return stanza.id

    async def _await_response(
        self,
        iq_id: str,
        future: asyncio.Future,
        on_response: ResponseHandler,
        timeout: float,
    ) -> None:
        response: Optional[Stanza] = None
        try:
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Request %s timed out after %.1fs", iq_id, timeout)
        except asyncio.CancelledError:
            logger.debug("Request %s cancelled", iq_id)
        finally:
            self._pending.pop(iq_id, None)

        try:
            await on_response(response)
        except Exception:
            logger.exception("Response handler for %s failed", iq_id)

    def _abandon(self, iq_id: str) -> None:
        future = self._pending.pop(iq_id, None)
        if future is not None and not future.done():
            future.set_result(None)

    def abandon_all(self) -> None:
        """Deliver None to every request still waiting for an answer."""
        for iq_id in list(self._pending):
            self._abandon(iq_id)

    def on(self, tag: str, handler: StanzaHandler) -> None:
        self.handlers[tag] = handler

    async def dispatch(self, raw: str) -> None:
        """Route one inbound frame to its pending request or a registered handler"""
        stanza = Stanza.from_xml(raw)
        if stanza.is_response:
            future = self._pending.get(stanza.id)
            if future is not None:
                if not future.done():
                    future.set_result(stanza)
                return
            logger.debug("Dropping unsolicited %s iq %s", stanza.type, stanza.id)
            return

        child = stanza.query_child()
        handler = self.handlers.get(child.tag if child is not None else "")
        if handler:
            try:
                await handler(stanza)
            except Exception:
                logger.exception("Handler for %s failed", child.tag)

    async def recv_loop(self) -> None:
        assert self.websocket is not None
        try:
            async for raw in self.websocket:
                try:
                    if isinstance(raw, bytes):
                        raw = raw.decode('utf-8')
                    await self.dispatch(raw)
                except Exception as e:
                    logger.error("Failed to parse/process inbound frame: %s", e)
        except websockets.exceptions.ConnectionClosed as e:
            logger.info("Connection closed: %s", e)
        finally:
            self.abandon_all()

    async def close(self) -> None:
        self.abandon_all()
        try:
            results = await asyncio.gather(*self._background_tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Background task failed: %r", result)
        finally:
            if self.websocket:
                await self.websocket.close(code=1000)

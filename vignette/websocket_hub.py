from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from fastapi import WebSocket

logger = logging.getLogger(__name__)

Message = dict[str, object]


@dataclass(slots=True)
class _SessionChannel:
    sockets: set[WebSocket] = field(default_factory=set)
    outbox: asyncio.Queue[Message] | None = None
    pump: asyncio.Task[None] | None = None


class SessionWebSocketHub:
    """Fans one game session's presentation commands and events out to its sockets.

    Presentation and event listeners are synchronous, so they call `publish_nowait`;
    a pump task per session drains that session's outbox, which keeps delivery in
    publish order. A socket whose send fails is dropped from the session.
    """

    def __init__(self) -> None:
        self._channels: dict[str, _SessionChannel] = {}

    def _channel(self, session_id: str) -> _SessionChannel:
        return self._channels.setdefault(session_id, _SessionChannel())

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._channel(session_id).sockets.add(websocket)

    async def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        channel = self._channels.get(session_id)
        if channel is not None:
            channel.sockets.discard(websocket)

    async def broadcast(self, session_id: str, payload: Message) -> None:
        channel = self._channels.get(session_id)
        if channel is None or not channel.sockets:
            return
        sockets = list(channel.sockets)
        results = await asyncio.gather(*(ws.send_json(payload) for ws in sockets), return_exceptions=True)
        for ws, result in zip(sockets, results):
            if isinstance(result, Exception):
                logger.debug("Dropping websocket for session %s: %r", session_id, result)
                channel.sockets.discard(ws)

    def publish_nowait(self, session_id: str, payload: Message) -> None:
        channel = self._channel(session_id)
        if channel.outbox is None:
            channel.outbox = asyncio.Queue()
            channel.pump = asyncio.get_running_loop().create_task(
                self._pump(session_id, channel.outbox), name=f"vignette-ws-pump-{session_id}"
            )
        channel.outbox.put_nowait(payload)

    async def _pump(self, session_id: str, outbox: asyncio.Queue[Message]) -> None:
        while True:
            await self.broadcast(session_id, await outbox.get())

    async def close_session(self, session_id: str) -> None:
        channel = self._channels.pop(session_id, None)
        if channel is None or channel.pump is None:
            return
        channel.pump.cancel()
        try:
            await channel.pump
        except asyncio.CancelledError:
            pass

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from fastapi import WebSocket


def _stream_id_key(event_id: str) -> tuple[int, int]:
    ms, _, seq = event_id.partition("-")
    return int(ms), int(seq or 0)


@dataclass
class _Room:
    sockets: set[WebSocket] = field(default_factory=set)
    # Stream id of the newest event pushed to this room.
    last_event_id: str | None = None


class LotteryWebSocketHub:
    """Pushes committed lottery events to the sockets watching that lottery.

    Messages carry the event's stream id and fields exactly as they were
    written to `lottery:events:{id}`, so a client can resume from
    `GET /lottery/{id}/events?start=<event_id>` after a reconnect. An event
    older than (or equal to) the last one pushed to a room is not sent again.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, _Room] = {}
        self._lock = asyncio.Lock()

    async def connect(self, lottery_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._rooms.setdefault(lottery_id, _Room()).sockets.add(websocket)

    async def disconnect(self, lottery_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            room = self._rooms.get(lottery_id)
            if room is None:
                return
            room.sockets.discard(websocket)
            if not room.sockets:
                del self._rooms[lottery_id]

    def watchers(self, lottery_id: str) -> int:
        room = self._rooms.get(lottery_id)
        return len(room.sockets) if room else 0

    async def publish(self, lottery_id: str, *, event_id: str, fields: dict[str, str]) -> int:
        """Send one stream event to the room. Returns how many sockets got it."""

        async with self._lock:
            room = self._rooms.get(lottery_id)
            if room is None:
                return 0
            if room.last_event_id is not None and _stream_id_key(event_id) <= _stream_id_key(room.last_event_id):
                return 0
            room.last_event_id = event_id
            sockets = list(room.sockets)

        message = {
            "type": fields.get("type", "unknown"),
            "lottery_id": lottery_id,
            "event_id": event_id,
            "event": fields,
        }
        results = await asyncio.gather(*(ws.send_json(message) for ws in sockets), return_exceptions=True)

        dead = [ws for ws, res in zip(sockets, results) if isinstance(res, Exception)]
        for ws in dead:
            await self.disconnect(lottery_id, ws)
        return len(sockets) - len(dead)


hub = LotteryWebSocketHub()

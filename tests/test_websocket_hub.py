from __future__ import annotations

import pytest

from lottery.websocket_hub import LotteryWebSocketHub


class _Socket:
    def __init__(self, *, broken: bool = False) -> None:
        self.accepted = False
        self.sent: list[dict] = []
        self.broken = broken

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, message: dict) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


@pytest.mark.asyncio
async def test_publish_sends_stream_event_once_in_order() -> None:
    hub = LotteryWebSocketHub()
    ws = _Socket()
    await hub.connect("l1", ws)
    assert ws.accepted

    fields = {"type": "EntryAccepted", "participant": "A"}
    assert await hub.publish("l1", event_id="1700000000000-0", fields=fields) == 1
    # Same or older ids are not pushed again.
    assert await hub.publish("l1", event_id="1700000000000-0", fields=fields) == 0
    assert await hub.publish("l1", event_id="1699999999999-5", fields=fields) == 0
    assert await hub.publish("l1", event_id="1700000000000-1", fields={"type": "ResolutionRequested"}) == 1

    assert [m["event_id"] for m in ws.sent] == ["1700000000000-0", "1700000000000-1"]
    assert ws.sent[0] == {
        "type": "EntryAccepted",
        "lottery_id": "l1",
        "event_id": "1700000000000-0",
        "event": fields,
    }


@pytest.mark.asyncio
async def test_publish_drops_dead_sockets_and_ignores_other_lotteries() -> None:
    hub = LotteryWebSocketHub()
    alive, dead, other = _Socket(), _Socket(broken=True), _Socket()
    await hub.connect("l1", alive)
    await hub.connect("l1", dead)
    await hub.connect("l2", other)

    assert await hub.publish("l1", event_id="1-0", fields={"type": "WinnerSelected"}) == 1

    assert hub.watchers("l1") == 1
    assert other.sent == []
    assert await hub.publish("missing", event_id="1-0", fields={"type": "WinnerSelected"}) == 0

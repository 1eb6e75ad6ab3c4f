from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, cast

import redis

from lottery.core.events import LotteryEvent


@dataclass(frozen=True, slots=True)
class EventStream:
    lottery_id: str

    @property
    def key(self) -> str:
        return f"lottery:events:{self.lottery_id}"


def publish_to_stream(*, r: redis.Redis, stream_key: str, fields: Mapping[str, str]) -> str:
    """Append an entry to a Redis stream."""

    # redis-py stubs expect field/value unions; we only use string fields/values.
    stream_id = r.xadd(stream_key, {str(k): str(v) for k, v in fields.items()})
    return cast(str, stream_id)


def publish_events(*, r: redis.Redis, events: Sequence[LotteryEvent]) -> None:
    """Queue lifecycle notifications.

    `r` is usually the pipeline of the transaction that commits the transition,
    so a notification is never visible for a rolled-back change.
    """

    for event in events:
        r.xadd(EventStream(lottery_id=event.lottery_id).key, event.to_fields())


def read_events(*, r: redis.Redis, lottery_id: str, start: str = "-", end: str = "+", count: int = 20) -> list[tuple[str, dict[str, str]]]:
    entries = r.xrange(EventStream(lottery_id=lottery_id).key, min=start, max=end, count=count)
    return [(cast(str, mid), cast(dict[str, str], fields)) for mid, fields in entries]


def latest_event(*, r: redis.Redis, lottery_id: str) -> tuple[str, dict[str, str]] | None:
    entries = r.xrevrange(EventStream(lottery_id=lottery_id).key, max="+", min="-", count=1)
    if not entries:
        return None
    mid, fields = entries[0]
    return cast(str, mid), cast(dict[str, str], fields)

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "EntryAccepted",
    "ResolutionRequested",
    "WinnerSelected",
]


@dataclass(frozen=True, slots=True)
class LotteryEvent:
    type: EventType
    lottery_id: str
    round_number: int
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, lottery_id: str, round_number: int, payload: dict[str, Any]) -> "LotteryEvent":
        return LotteryEvent(
            type=type,
            lottery_id=lottery_id,
            round_number=round_number,
            payload=payload,
            ts=datetime.now(timezone.utc),
        )

    def to_fields(self) -> dict[str, str]:
        fields = {
            "type": self.type,
            "lottery_id": self.lottery_id,
            "round_number": str(self.round_number),
            "ts": self.ts.isoformat(),
        }
        fields.update({str(k): str(v) for k, v in self.payload.items()})
        return fields

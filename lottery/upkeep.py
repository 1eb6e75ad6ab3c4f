from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import redis

from lottery.api.models import LotteryState, RoundPhase
from lottery.store import now_utc, require_lottery


@dataclass(frozen=True, slots=True)
class UpkeepCheck:
    """Readiness of a round to close.

    Each condition is kept separately so callers (and tests) can see which one
    failed; `upkeep_needed` is their conjunction.
    """

    interval_elapsed: bool
    is_open: bool
    has_funds: bool
    has_players: bool

    @property
    def upkeep_needed(self) -> bool:
        return self.interval_elapsed and self.is_open and self.has_funds and self.has_players

    def as_dict(self) -> dict[str, bool]:
        return {
            "upkeep_needed": self.upkeep_needed,
            "interval_elapsed": self.interval_elapsed,
            "is_open": self.is_open,
            "has_funds": self.has_funds,
            "has_players": self.has_players,
        }


def check_upkeep(*, state: LotteryState, now: datetime | None = None) -> UpkeepCheck:
    """Pure predicate over a round snapshot; never writes anything."""

    ts = now or now_utc()
    elapsed = (ts - state.last_resolution_at).total_seconds()
    return UpkeepCheck(
        interval_elapsed=elapsed > state.config.interval_seconds,
        is_open=state.phase == RoundPhase.open,
        has_funds=state.pot > 0,
        has_players=len(state.players) > 0,
    )


def evaluate_upkeep(*, r: redis.Redis, lottery_id: UUID, now: datetime | None = None) -> UpkeepCheck:
    """Load the current round and evaluate it. Safe to poll from any number of observers."""

    state = require_lottery(r=r, lottery_id=lottery_id)
    return check_upkeep(state=state, now=now)

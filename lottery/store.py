from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID, uuid4

import redis

from lottery.api.models import LotteryConfig, LotteryState, RoundPhase, RoundResult
from lottery.errors import LotteryNotFound, PlayerIndexOutOfRange

logger = logging.getLogger(__name__)

LOTTERIES_SET_KEY = "lottery:lotteries"
LOTTERY_KEY_PREFIX = "lottery:state:"  # + {uuid}
HISTORY_KEY_PREFIX = "lottery:history:"  # + {uuid}


def now_utc() -> datetime:
    return datetime.now(tz=UTC)


def _lottery_key(lottery_id: UUID) -> str:
    return f"{LOTTERY_KEY_PREFIX}{lottery_id}"


def _history_key(lottery_id: UUID) -> str:
    return f"{HISTORY_KEY_PREFIX}{lottery_id}"


def save_lottery(*, r: redis.Redis, state: LotteryState) -> None:
    # The whole round is one JSON document, so every write replaces it as a unit.
    state.last_updated_at = now_utc()
    r.set(_lottery_key(state.lottery_id), state.model_dump_json())


def get_lottery(*, r: redis.Redis, lottery_id: UUID) -> LotteryState | None:
    raw = r.get(_lottery_key(lottery_id))
    if not raw:
        return None
    return LotteryState.model_validate_json(raw)


def require_lottery(*, r: redis.Redis, lottery_id: UUID) -> LotteryState:
    state = get_lottery(r=r, lottery_id=lottery_id)
    if state is None:
        raise LotteryNotFound(lottery_id)
    return state


def create_lottery(*, r: redis.Redis, config: LotteryConfig, now: datetime | None = None) -> LotteryState:
    lottery_id = uuid4()
    ts = now or now_utc()

    state = LotteryState(
        lottery_id=lottery_id,
        created_at=ts,
        last_updated_at=ts,
        config=config,
        phase=RoundPhase.open,
        players=[],
        pot=0,
        # Round 1 counts its interval from creation.
        last_resolution_at=ts,
        recent_winner=None,
        round_number=1,
        pending_request_id=None,
    )

    pipe = r.pipeline(transaction=True)
    pipe.set(_lottery_key(lottery_id), state.model_dump_json())
    pipe.sadd(LOTTERIES_SET_KEY, str(lottery_id))
    pipe.execute()

    logger.info("Created lottery %s (fee=%s, interval=%ss)", lottery_id, config.entrance_fee, config.interval_seconds)
    return state


def list_lotteries(*, r: redis.Redis) -> list[LotteryState]:
    ids = sorted(r.smembers(LOTTERIES_SET_KEY))
    out: list[LotteryState] = []
    for sid in ids:
        try:
            lid = UUID(sid)
        except ValueError:
            continue
        state = get_lottery(r=r, lottery_id=lid)
        if state is not None:
            out.append(state)
    out.sort(key=lambda s: s.created_at, reverse=True)
    return out


def append_round_result(*, r: redis.Redis, lottery_id: UUID, result: RoundResult) -> None:
    r.rpush(_history_key(lottery_id), result.model_dump_json())


def list_round_results(*, r: redis.Redis, lottery_id: UUID) -> list[RoundResult]:
    return [RoundResult.model_validate_json(raw) for raw in r.lrange(_history_key(lottery_id), 0, -1)]


# ---- read-only accessors ----


def get_entrance_fee(*, r: redis.Redis, lottery_id: UUID) -> int:
    return require_lottery(r=r, lottery_id=lottery_id).config.entrance_fee


def get_interval_seconds(*, r: redis.Redis, lottery_id: UUID) -> int:
    return require_lottery(r=r, lottery_id=lottery_id).config.interval_seconds


def get_phase(*, r: redis.Redis, lottery_id: UUID) -> RoundPhase:
    return require_lottery(r=r, lottery_id=lottery_id).phase


def get_players(*, r: redis.Redis, lottery_id: UUID) -> list[str]:
    return list(require_lottery(r=r, lottery_id=lottery_id).players)


def get_player(*, r: redis.Redis, lottery_id: UUID, index: int) -> str:
    players = require_lottery(r=r, lottery_id=lottery_id).players
    if index < 0 or index >= len(players):
        raise PlayerIndexOutOfRange(index=index, player_count=len(players))
    return players[index]


def get_number_of_players(*, r: redis.Redis, lottery_id: UUID) -> int:
    return len(require_lottery(r=r, lottery_id=lottery_id).players)


def get_last_resolution_at(*, r: redis.Redis, lottery_id: UUID) -> datetime:
    return require_lottery(r=r, lottery_id=lottery_id).last_resolution_at


def get_recent_winner(*, r: redis.Redis, lottery_id: UUID) -> str | None:
    return require_lottery(r=r, lottery_id=lottery_id).recent_winner


def get_num_words(*, r: redis.Redis, lottery_id: UUID) -> int:
    return require_lottery(r=r, lottery_id=lottery_id).config.randomness.num_words


def get_request_confirmations(*, r: redis.Redis, lottery_id: UUID) -> int:
    return require_lottery(r=r, lottery_id=lottery_id).config.randomness.request_confirmations

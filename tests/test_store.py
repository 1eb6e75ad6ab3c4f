from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from lottery.api.models import LotteryConfig, RandomnessParams, RoundPhase
from lottery.entry_gate import enter
from lottery.errors import LotteryNotFound, PlayerIndexOutOfRange
from lottery.store import (
    create_lottery,
    get_entrance_fee,
    get_interval_seconds,
    get_last_resolution_at,
    get_lottery,
    get_num_words,
    get_number_of_players,
    get_phase,
    get_player,
    get_players,
    get_recent_winner,
    get_request_confirmations,
    list_lotteries,
    require_lottery,
)


def _config(fee: int = 5) -> LotteryConfig:
    return LotteryConfig(entrance_fee=fee, interval_seconds=60, randomness=RandomnessParams(key_hash="0x1", subscription_id=1))


def test_create_lottery_starts_first_round(r) -> None:
    created_at = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

    state = create_lottery(r=r, config=_config(), now=created_at)

    stored = require_lottery(r=r, lottery_id=state.lottery_id)
    assert stored.phase == RoundPhase.open
    assert stored.players == []
    assert stored.pot == 0
    assert stored.last_resolution_at == created_at
    assert stored.recent_winner is None
    assert stored.round_number == 1


def test_list_lotteries_newest_first(r) -> None:
    older = create_lottery(r=r, config=_config(), now=datetime(2025, 1, 1, tzinfo=UTC))
    newer = create_lottery(r=r, config=_config(), now=datetime(2025, 2, 1, tzinfo=UTC))

    assert [s.lottery_id for s in list_lotteries(r=r)] == [newer.lottery_id, older.lottery_id]


def test_accessors_reflect_stored_round(r) -> None:
    state = create_lottery(r=r, config=_config(fee=5))
    enter(r=r, lottery_id=state.lottery_id, participant="A", payment=5)
    enter(r=r, lottery_id=state.lottery_id, participant="B", payment=9)

    lid = state.lottery_id
    assert get_entrance_fee(r=r, lottery_id=lid) == 5
    assert get_interval_seconds(r=r, lottery_id=lid) == 60
    assert get_phase(r=r, lottery_id=lid) == RoundPhase.open
    assert get_players(r=r, lottery_id=lid) == ["A", "B"]
    assert get_player(r=r, lottery_id=lid, index=1) == "B"
    assert get_number_of_players(r=r, lottery_id=lid) == 2
    assert get_last_resolution_at(r=r, lottery_id=lid) == state.last_resolution_at
    assert get_recent_winner(r=r, lottery_id=lid) is None
    assert get_num_words(r=r, lottery_id=lid) == 1
    assert get_request_confirmations(r=r, lottery_id=lid) == 3


@pytest.mark.parametrize("index", [-1, 2, 10])
def test_get_player_out_of_range(r, index: int) -> None:
    state = create_lottery(r=r, config=_config())
    enter(r=r, lottery_id=state.lottery_id, participant="A", payment=5)
    enter(r=r, lottery_id=state.lottery_id, participant="B", payment=5)

    with pytest.raises(PlayerIndexOutOfRange) as e:
        get_player(r=r, lottery_id=state.lottery_id, index=index)
    assert e.value.context() == {"index": index, "player_count": 2}


def test_unknown_lottery(r) -> None:
    lid = uuid4()

    assert get_lottery(r=r, lottery_id=lid) is None
    with pytest.raises(LotteryNotFound):
        get_players(r=r, lottery_id=lid)

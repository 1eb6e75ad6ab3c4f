"""Closing a round: the randomness request and its asynchronous fulfillment.

`perform_upkeep` flips the round to calculating and asks the provider for one
random word. `fulfill_random_words` is the provider's callback; it picks the
winner, pays the pot and reopens the round. Each commits in a single Redis
transaction, so an observer sees either the old round or the new one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import redis

from lottery.api.models import LotteryState, RoundPhase, RoundResult
from lottery.core.events import LotteryEvent
from lottery.errors import (
    InvariantViolation,
    NoPendingRequest,
    PayoutTransferFailed,
    UnknownRequest,
    UpkeepNotReady,
)
from lottery.fsm import RoundFSM
from lottery.lock import lottery_lock
from lottery.payouts import PayoutLedger
from lottery.randomness.base import RandomnessProvider, RandomWordsRequest
from lottery.store import append_round_result, now_utc, require_lottery, save_lottery
from lottery.streams import publish_events
from lottery.upkeep import check_upkeep

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolutionRequested:
    request_id: int
    state: LotteryState


@dataclass(frozen=True, slots=True)
class WinnerPaid:
    winner: str
    payout: int
    result: RoundResult
    state: LotteryState


def select_winner_index(*, random_word: int, player_count: int) -> int:
    # Plain modulo reduction; its small bias is accepted.
    return random_word % player_count


def perform_upkeep(
    *,
    r: redis.Redis,
    lottery_id: UUID,
    provider: RandomnessProvider,
    now: datetime | None = None,
) -> ResolutionRequested:
    with lottery_lock(r=r, lottery_id=str(lottery_id)):
        state = require_lottery(r=r, lottery_id=lottery_id)

        # The external trigger may be stale; re-check against the stored round.
        check = check_upkeep(state=state, now=now)
        if not check.upkeep_needed:
            raise UpkeepNotReady(pot=state.pot, player_count=len(state.players), phase=state.phase.value)

        # Close the entry window before the request goes out.
        fsm = RoundFSM(state)
        fsm.close_round()
        fsm.sync_phase_to_model()

        request = RandomWordsRequest.from_params(consumer=str(lottery_id), params=state.config.randomness)
        tx = r.pipeline(transaction=True)
        try:
            request_id = provider.request_random_words(request, pipe=tx)
        except Exception:
            tx.reset()
            raise

        state.pending_request_id = request_id
        event = LotteryEvent.now(
            type="ResolutionRequested",
            lottery_id=str(lottery_id),
            round_number=state.round_number,
            payload={"request_id": request_id},
        )

        save_lottery(r=tx, state=state)
        publish_events(r=tx, events=[event])
        tx.execute()

    logger.info(
        "Lottery %s round %s: requested randomness (request_id=%s, players=%s, pot=%s)",
        lottery_id,
        state.round_number,
        request_id,
        len(state.players),
        state.pot,
    )
    return ResolutionRequested(request_id=request_id, state=state)


def fulfill_random_words(
    *,
    r: redis.Redis,
    lottery_id: UUID,
    request_id: int,
    random_words: list[int],
    ledger: PayoutLedger,
    now: datetime | None = None,
) -> WinnerPaid:
    """Consume the provider's callback for the pending request.

    On `PayoutTransferFailed` nothing is committed: the round stays calculating
    with the same pending request and no winner recorded, so the same callback
    can be delivered again.
    """

    if not random_words:
        raise ValueError("random_words must contain at least one word")
    random_word = random_words[0]
    if random_word < 0:
        raise ValueError("random words must be non-negative")

    with lottery_lock(r=r, lottery_id=str(lottery_id)):
        state = require_lottery(r=r, lottery_id=lottery_id)

        fsm = RoundFSM(state)
        if fsm.current_state_value != RoundPhase.calculating.value:
            raise NoPendingRequest(request_id)
        if request_id != state.pending_request_id:
            raise UnknownRequest(request_id=request_id, pending_request_id=state.pending_request_id)
        if not state.players:
            raise InvariantViolation(f"Lottery {lottery_id} is calculating with no players (request_id={request_id})")

        winner_index = select_winner_index(random_word=random_word, player_count=len(state.players))
        winner = state.players[winner_index]
        payout = state.pot
        ts = now or now_utc()

        result = RoundResult(
            round_number=state.round_number,
            winner=winner,
            payout=payout,
            request_id=request_id,
            random_word=random_word,
            player_count=len(state.players),
            resolved_at=ts,
        )

        # Close the round in memory first; nothing below is visible until EXEC.
        state.recent_winner = winner
        state.players = []
        fsm.reopen_round()
        fsm.sync_phase_to_model()
        state.last_resolution_at = ts
        state.pending_request_id = None
        state.pot = 0
        state.round_number += 1

        tx = r.pipeline(transaction=True)
        try:
            ledger.transfer(pipe=tx, recipient=winner, amount=payout)
        except PayoutTransferFailed as e:
            tx.reset()
            logger.warning("Lottery %s round %s: payout rolled back: %s", lottery_id, result.round_number, e)
            raise

        event = LotteryEvent.now(
            type="WinnerSelected",
            lottery_id=str(lottery_id),
            round_number=result.round_number,
            payload={"winner": winner, "payout": payout, "request_id": request_id},
        )

        save_lottery(r=tx, state=state)
        append_round_result(r=tx, lottery_id=lottery_id, result=result)
        publish_events(r=tx, events=[event])
        tx.execute()

    logger.info(
        "Lottery %s round %s: %s won %s (index %s of %s)",
        lottery_id,
        result.round_number,
        winner,
        payout,
        winner_index,
        result.player_count,
    )
    return WinnerPaid(winner=winner, payout=payout, result=result, state=state)

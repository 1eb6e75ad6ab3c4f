from __future__ import annotations

import logging
from uuid import UUID

import redis

from lottery.api.models import LotteryState
from lottery.core.events import LotteryEvent
from lottery.lock import lottery_lock
from lottery.store import require_lottery, save_lottery
from lottery.streams import publish_events
from lottery.validators import ENTRY_PIPELINE, EntryContext, ValidatorPipeline

logger = logging.getLogger(__name__)


def enter(
    *,
    r: redis.Redis,
    lottery_id: UUID,
    participant: str,
    payment: int,
    pipeline: ValidatorPipeline = ENTRY_PIPELINE,
) -> LotteryState:
    """Record one ticket for `participant`.

    Raises `InsufficientPayment` or `RoundNotOpen` without touching the stored round.
    """

    with lottery_lock(r=r, lottery_id=str(lottery_id)):
        state = require_lottery(r=r, lottery_id=lottery_id)

        ctx = EntryContext(lottery_id=str(lottery_id), participant=participant, payment=payment)
        pipeline.validate(ctx=ctx, state=state)

        state.players.append(participant)
        state.pot += payment

        event = LotteryEvent.now(
            type="EntryAccepted",
            lottery_id=str(lottery_id),
            round_number=state.round_number,
            payload={"participant": participant, "payment": payment},
        )

        tx = r.pipeline(transaction=True)
        save_lottery(r=tx, state=state)
        publish_events(r=tx, events=[event])
        tx.execute()

    logger.info("Lottery %s round %s: entry from %s (%s), pot=%s", lottery_id, state.round_number, participant, payment, state.pot)
    return state

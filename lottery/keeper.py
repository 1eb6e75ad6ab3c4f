from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import redis

from lottery.errors import LotteryBusy, RandomnessRequestRejected, UpkeepNotReady
from lottery.randomness.base import RandomnessProvider
from lottery.resolution import perform_upkeep
from lottery.store import list_lotteries
from lottery.upkeep import evaluate_upkeep

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class KeeperConfig:
    # Seconds between passes over all lotteries.
    poll_seconds: float = 1.0


def run_keeper_once(
    *,
    r: redis.Redis,
    lottery_id: UUID,
    provider: RandomnessProvider,
    now: datetime | None = None,
) -> int | None:
    """Check one lottery and trigger resolution if it is ready.

    Returns the request id when a request was issued. Losing a race against
    another trigger (round already closed, lock held) is not an error here.
    """

    check = evaluate_upkeep(r=r, lottery_id=lottery_id, now=now)
    if not check.upkeep_needed:
        return None

    try:
        requested = perform_upkeep(r=r, lottery_id=lottery_id, provider=provider, now=now)
    except (UpkeepNotReady, LotteryBusy) as e:
        logger.debug("Keeper skipped lottery %s: %s", lottery_id, e)
        return None

    return requested.request_id


def run_keeper_pass(
    *,
    r: redis.Redis,
    provider: RandomnessProvider,
    now: datetime | None = None,
) -> dict[UUID, int]:
    """One pass over every lottery. Returns request ids keyed by lottery."""

    issued: dict[UUID, int] = {}
    for state in list_lotteries(r=r):
        try:
            request_id = run_keeper_once(r=r, lottery_id=state.lottery_id, provider=provider, now=now)
        except RandomnessRequestRejected as e:
            # The round stays open; the operator has to fix the subscription.
            logger.error("Randomness request rejected for lottery %s: %s", state.lottery_id, e)
            continue
        if request_id is not None:
            issued[state.lottery_id] = request_id
    return issued


async def run_keeper(
    *,
    r: redis.Redis,
    provider: RandomnessProvider,
    config: KeeperConfig | None = None,
    stop: asyncio.Event | None = None,
) -> None:
    cfg = config or KeeperConfig()
    stop = stop or asyncio.Event()

    logger.info("Keeper started (poll every %ss)", cfg.poll_seconds)
    while not stop.is_set():
        await asyncio.to_thread(run_keeper_pass, r=r, provider=provider)
        try:
            await asyncio.wait_for(stop.wait(), timeout=cfg.poll_seconds)
        except TimeoutError:
            pass
    logger.info("Keeper stopped")

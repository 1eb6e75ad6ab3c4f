from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

import redis

from lottery.errors import (
    LotteryBusy,
    LotteryNotFound,
    NoPendingRequest,
    PayoutTransferFailed,
    RequestAlreadyFulfilled,
    UnknownRequest,
)
from lottery.payouts import PayoutLedger
from lottery.randomness.coordinator import REQUESTS_STREAM_KEY, RedisVRFCoordinator
from lottery.resolution import fulfill_random_words

logger = logging.getLogger(__name__)

FULFILLER_GROUP = "vrf:fulfillers"

EntryOutcome = Literal["fulfilled", "dropped", "retry"]


@dataclass(frozen=True, slots=True)
class VrfWorkerConfig:
    # How long to block waiting for a request; 0 means don't block.
    block_ms: int = 250
    # Max requests to read per iteration.
    count: int = 10
    consumer_name: str = "fulfiller-1"


def ensure_requests_group(*, r: redis.Redis, stream_key: str = REQUESTS_STREAM_KEY, group: str = FULFILLER_GROUP) -> None:
    """Ensure the fulfiller consumer group exists.

    Uses MKSTREAM so a missing stream is created.
    """

    try:
        r.xgroup_create(stream_key, group, id="0", mkstream=True)
    except redis.ResponseError as e:
        # BUSYGROUP is expected if it already exists.
        if "BUSYGROUP" not in str(e):
            raise


def _ack_and_trim(*, r: redis.Redis, msg_id: str) -> None:
    # The fulfiller group is the only reader, so an acked entry is never needed again.
    pipe = r.pipeline(transaction=True)
    pipe.xack(REQUESTS_STREAM_KEY, FULFILLER_GROUP, msg_id)
    pipe.xdel(REQUESTS_STREAM_KEY, msg_id)
    pipe.execute()


def handle_request_entry(
    *,
    r: redis.Redis,
    coordinator: RedisVRFCoordinator,
    ledger: PayoutLedger,
    fields: dict[str, str],
) -> EntryOutcome:
    """Fulfill one queued request.

    "fulfilled" and "dropped" entries are acked; "retry" leaves the entry
    pending so a later pass re-drives it with the same words.
    """

    request_id = int(fields["request_id"])
    lottery_id = UUID(fields["consumer"])

    def _callback(rid: int, words: list[int]) -> None:
        fulfill_random_words(r=r, lottery_id=lottery_id, request_id=rid, random_words=words, ledger=ledger)

    try:
        coordinator.fulfill_request(request_id=request_id, callback=_callback)
    except (PayoutTransferFailed, LotteryBusy) as e:
        logger.warning("Request %s for lottery %s left pending: %s", request_id, lottery_id, e)
        return "retry"
    except RequestAlreadyFulfilled:
        return "dropped"
    except (NoPendingRequest, UnknownRequest, LotteryNotFound) as e:
        logger.error("Dropping request %s for lottery %s: %s", request_id, lottery_id, e)
        coordinator.retire_request(request_id)
        return "dropped"

    return "fulfilled"


def run_vrf_worker_once(
    *,
    r: redis.Redis,
    coordinator: RedisVRFCoordinator,
    ledger: PayoutLedger,
    config: VrfWorkerConfig | None = None,
) -> int:
    """Read and fulfill queued randomness requests once.

    - new requests are read first (">")
    - if there are none, this consumer's pending (delivered, unacked) requests are
      re-read from "0"; that is how a refused payout gets re-driven

    Returns how many requests were fulfilled.
    """

    cfg = config or VrfWorkerConfig()
    ensure_requests_group(r=r)

    def _read(start_id: str):
        return r.xreadgroup(
            FULFILLER_GROUP,
            cfg.consumer_name,
            {REQUESTS_STREAM_KEY: start_id},
            count=cfg.count,
            block=cfg.block_ms or None,
        )

    def _has_messages(resp) -> bool:
        return any(messages for _stream, messages in resp or [])

    resp = _read(">")
    if not _has_messages(resp):
        resp = _read("0")

    if not _has_messages(resp):
        return 0

    fulfilled = 0
    for _stream, messages in resp:
        for msg_id, fields in messages:
            if not fields:
                # Trimmed from the stream while pending.
                _ack_and_trim(r=r, msg_id=msg_id)
                continue
            outcome = handle_request_entry(r=r, coordinator=coordinator, ledger=ledger, fields=fields)
            if outcome != "retry":
                _ack_and_trim(r=r, msg_id=msg_id)
            if outcome == "fulfilled":
                fulfilled += 1

    return fulfilled


async def run_vrf_worker(
    *,
    r: redis.Redis,
    coordinator: RedisVRFCoordinator,
    ledger: PayoutLedger,
    config: VrfWorkerConfig | None = None,
    stop: asyncio.Event | None = None,
) -> None:
    cfg = config or VrfWorkerConfig()
    stop = stop or asyncio.Event()

    logger.info("Randomness fulfiller %s started", cfg.consumer_name)
    while not stop.is_set():
        handled = await asyncio.to_thread(run_vrf_worker_once, r=r, coordinator=coordinator, ledger=ledger, config=cfg)
        if not handled:
            await asyncio.sleep(0.05)
    logger.info("Randomness fulfiller %s stopped", cfg.consumer_name)

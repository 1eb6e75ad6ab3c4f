from __future__ import annotations

from collections.abc import Generator

import redis
from fastapi import Depends

from lottery.infra.redis_client import create_redis
from lottery.payouts import RedisPayoutLedger
from lottery.randomness.coordinator import RedisVRFCoordinator
from lottery.settings import LotterySettings, settings_from_env


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_settings() -> LotterySettings:
    return settings_from_env()


def get_coordinator(
    r: redis.Redis = Depends(get_redis),
    settings: LotterySettings = Depends(get_settings),
) -> RedisVRFCoordinator:
    return RedisVRFCoordinator(r, fulfillment_fee=settings.fulfillment_fee)


def get_ledger(r: redis.Redis = Depends(get_redis)) -> RedisPayoutLedger:
    return RedisPayoutLedger(r)

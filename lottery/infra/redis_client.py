from __future__ import annotations

import os

import redis


def get_redis_url() -> str:
    # LOTTERY_REDIS_URL lets the lottery share a host with other REDIS_URL users.
    return os.environ.get("LOTTERY_REDIS_URL") or os.environ.get("REDIS_URL", "redis://localhost:6379/0")


def create_redis() -> redis.Redis:
    # decode_responses=True => strings in/out instead of bytes
    return redis.Redis.from_url(get_redis_url(), decode_responses=True)


def redis_ready(r: redis.Redis) -> bool:
    try:
        return bool(r.ping())
    except redis.ConnectionError:
        return False

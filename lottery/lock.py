from __future__ import annotations

import logging
import secrets
from collections.abc import Iterator
from contextlib import contextmanager

import redis

from lottery.errors import LotteryBusy

logger = logging.getLogger(__name__)


def lock_key(lottery_id: str) -> str:
    return f"lottery:lock:{lottery_id}"


def _release(*, r: redis.Redis, key: str, token: str) -> bool:
    """Delete `key` only while it still holds `token`."""

    with r.pipeline() as pipe:
        try:
            pipe.watch(key)
            current = pipe.get(key)
            if isinstance(current, bytes):
                current = current.decode()
            if current != token:
                pipe.unwatch()
                return False
            pipe.multi()
            pipe.delete(key)
            pipe.execute()
            return True
        except redis.WatchError:
            # Re-taken between GET and EXEC; it belongs to someone else now.
            return False


@contextmanager
def lottery_lock(*, r: redis.Redis, lottery_id: str, ttl_ms: int = 5_000) -> Iterator[str]:
    """Per-lottery writer lock; yields the owner token.

    Entries, resolution requests and fulfillments all take this lock, so at most
    one mutation runs against a lottery at a time. Readers never take it. If the
    TTL lapses mid-mutation and another writer takes the lock, our release leaves
    their key alone.
    """

    key = lock_key(lottery_id)
    token = secrets.token_hex(16)
    if not r.set(key, token, nx=True, px=ttl_ms):
        raise LotteryBusy(lottery_id)
    try:
        yield token
    finally:
        if not _release(r=r, key=key, token=token):
            logger.warning("Lock for lottery %s expired before release (ttl=%sms)", lottery_id, ttl_ms)

from __future__ import annotations

from typing import Protocol

import redis

from lottery.errors import PayoutTransferFailed

BALANCES_KEY = "ledger:balances"
REFUSING_KEY = "ledger:refusing"


class PayoutLedger(Protocol):
    """Settlement substrate that moves the pot to the winner.

    `transfer` either queues the credit on `pipe` (the transaction that also
    closes the round) or raises `PayoutTransferFailed` before queuing anything.
    """

    def transfer(self, *, pipe: redis.Redis, recipient: str, amount: int) -> None: ...


class RedisPayoutLedger:
    """Balances kept in a Redis hash.

    Recipients in the refusing set reject incoming transfers, the way an
    account that cannot receive funds would.
    """

    def __init__(self, r: redis.Redis):
        self._r = r

    def transfer(self, *, pipe: redis.Redis, recipient: str, amount: int) -> None:
        if amount < 0:
            raise PayoutTransferFailed(recipient=recipient, amount=amount, reason="negative amount")
        if self._r.sismember(REFUSING_KEY, recipient):
            raise PayoutTransferFailed(recipient=recipient, amount=amount, reason="recipient refused transfer")
        pipe.hincrby(BALANCES_KEY, recipient, amount)

    def balance_of(self, recipient: str) -> int:
        raw = self._r.hget(BALANCES_KEY, recipient)
        return int(raw) if raw else 0

    def refuse(self, recipient: str) -> None:
        self._r.sadd(REFUSING_KEY, recipient)

    def accept(self, recipient: str) -> None:
        self._r.srem(REFUSING_KEY, recipient)

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import redis

from lottery.api.models import RandomnessParams
from lottery.errors import RandomnessRequestRejected


@dataclass(frozen=True, slots=True)
class RandomWordsRequest:
    """Everything a provider needs to serve one randomness request."""

    consumer: str
    key_hash: str
    subscription_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int
    native_payment: bool

    @staticmethod
    def from_params(*, consumer: str, params: RandomnessParams) -> "RandomWordsRequest":
        if params.subscription_id is None:
            raise RandomnessRequestRejected(f"{consumer} has no randomness subscription")
        return RandomWordsRequest(
            consumer=consumer,
            key_hash=params.key_hash,
            subscription_id=params.subscription_id,
            request_confirmations=params.request_confirmations,
            callback_gas_limit=params.callback_gas_limit,
            num_words=params.num_words,
            native_payment=params.native_payment,
        )


class RandomnessProvider(Protocol):
    """External randomness oracle.

    `request_random_words` accepts (or rejects) synchronously and returns an opaque
    request id; the words arrive later through the consumer's fulfillment callback.
    Writes are queued on `pipe` when given, so acceptance commits together with the
    consumer's own state change.
    """

    def request_random_words(self, request: RandomWordsRequest, *, pipe: redis.Redis | None = None) -> int: ...

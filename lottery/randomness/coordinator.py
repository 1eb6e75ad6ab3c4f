from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

import redis

from lottery.errors import (
    RandomnessRequestRejected,
    RequestAlreadyFulfilled,
    RequestNotFound,
)
from lottery.randomness.base import RandomWordsRequest
from lottery.streams import publish_to_stream

logger = logging.getLogger(__name__)

REQUESTS_STREAM_KEY = "vrf:requests"
SUBSCRIPTION_SEQ_KEY = "vrf:subscription_seq"
REQUEST_SEQ_KEY = "vrf:request_seq"

# Charged per fulfilled request unless the coordinator is built with another fee.
DEFAULT_FULFILLMENT_FEE = 10**15
# Fulfilled or abandoned request records are kept this long for lookups.
REQUEST_RETENTION_SECONDS = 7 * 24 * 3600

STATUS_PENDING = "pending"
STATUS_FULFILLED = "fulfilled"

FulfillCallback = Callable[[int, list[int]], object]


def _subscription_key(subscription_id: int) -> str:
    return f"vrf:subscription:{subscription_id}"


def _consumers_key(subscription_id: int) -> str:
    return f"vrf:subscription:{subscription_id}:consumers"


def _request_key(request_id: int) -> str:
    return f"vrf:request:{request_id}"


def _encode_words(words: list[int]) -> str:
    return ",".join(str(w) for w in words)


def _decode_words(raw: str | None) -> list[int] | None:
    if not raw:
        return None
    return [int(w) for w in raw.split(",")]


@dataclass(frozen=True, slots=True)
class Subscription:
    subscription_id: int
    balance: int
    consumers: list[str]


@dataclass(frozen=True, slots=True)
class RandomnessRequestRecord:
    request_id: int
    consumer: str
    subscription_id: int
    num_words: int
    status: str
    random_words: list[int] | None


class RedisVRFCoordinator:
    """Local randomness provider backed by Redis.

    Mirrors the request/callback contract of an on-chain VRF coordinator:
    subscriptions own consumers, requests are accepted synchronously and
    queued on a stream, and fulfillment calls back into the consumer later.
    Each fulfillment debits `fulfillment_fee` from the subscription, and a
    request is only accepted while the balance covers that fee.
    Proof generation/verification is out of scope; words come from the OS CSPRNG.
    """

    def __init__(
        self,
        r: redis.Redis,
        *,
        rng: random.Random | None = None,
        fulfillment_fee: int = DEFAULT_FULFILLMENT_FEE,
        retention_seconds: int = REQUEST_RETENTION_SECONDS,
    ):
        self._r = r
        self._rng = rng or random.SystemRandom()
        self._fulfillment_fee = fulfillment_fee
        self._retention_seconds = retention_seconds

    # ---- subscriptions ----

    def create_subscription(self) -> int:
        subscription_id = int(self._r.incr(SUBSCRIPTION_SEQ_KEY))
        self._r.hset(_subscription_key(subscription_id), mapping={"balance": "0"})
        logger.info("Created randomness subscription %s", subscription_id)
        return subscription_id

    def fund_subscription(self, *, subscription_id: int, amount: int) -> int:
        self._require_subscription(subscription_id)
        if amount <= 0:
            raise ValueError("amount must be positive")
        return int(self._r.hincrby(_subscription_key(subscription_id), "balance", amount))

    def add_consumer(self, *, subscription_id: int, consumer: str) -> None:
        self._require_subscription(subscription_id)
        self._r.sadd(_consumers_key(subscription_id), consumer)

    def get_subscription(self, subscription_id: int) -> Subscription:
        raw = self._require_subscription(subscription_id)
        consumers = sorted(self._r.smembers(_consumers_key(subscription_id)))
        return Subscription(subscription_id=subscription_id, balance=int(raw.get("balance", 0)), consumers=consumers)

    def _require_subscription(self, subscription_id: int) -> dict[str, str]:
        raw = self._r.hgetall(_subscription_key(subscription_id))
        if not raw:
            raise RandomnessRequestRejected(f"Subscription {subscription_id} does not exist")
        return raw

    # ---- requests ----

    def request_random_words(self, request: RandomWordsRequest, *, pipe: redis.Redis | None = None) -> int:
        sub = self.get_subscription(request.subscription_id)
        if request.consumer not in sub.consumers:
            raise RandomnessRequestRejected(
                f"{request.consumer} is not a consumer of subscription {request.subscription_id}"
            )
        if sub.balance <= 0 or sub.balance < self._fulfillment_fee:
            raise RandomnessRequestRejected(
                f"Subscription {request.subscription_id} is not funded (balance={sub.balance}, fee={self._fulfillment_fee})"
            )
        if request.num_words != 1:
            raise RandomnessRequestRejected(f"Unsupported word count {request.num_words}")

        request_id = int(self._r.incr(REQUEST_SEQ_KEY))

        target = pipe if pipe is not None else self._r
        target.hset(
            _request_key(request_id),
            mapping={
                "consumer": request.consumer,
                "subscription_id": str(request.subscription_id),
                "key_hash": request.key_hash,
                "request_confirmations": str(request.request_confirmations),
                "callback_gas_limit": str(request.callback_gas_limit),
                "num_words": str(request.num_words),
                "native_payment": "1" if request.native_payment else "0",
                "status": STATUS_PENDING,
            },
        )
        publish_to_stream(
            r=target,
            stream_key=REQUESTS_STREAM_KEY,
            fields={"request_id": str(request_id), "consumer": request.consumer},
        )
        return request_id

    def get_request(self, request_id: int) -> RandomnessRequestRecord:
        raw = self._r.hgetall(_request_key(request_id))
        if not raw:
            raise RequestNotFound(request_id)
        return RandomnessRequestRecord(
            request_id=request_id,
            consumer=raw["consumer"],
            subscription_id=int(raw["subscription_id"]),
            num_words=int(raw["num_words"]),
            status=raw["status"],
            random_words=_decode_words(raw.get("random_words")),
        )

    def fulfill_request(
        self,
        *,
        request_id: int,
        callback: FulfillCallback,
        words: list[int] | None = None,
    ) -> list[int]:
        """Deliver words for a pending request to its consumer.

        Words are committed before the callback runs, so a failed callback can be
        re-driven later with exactly the same words. The request is only marked
        fulfilled once the callback returns.
        """

        record = self.get_request(request_id)
        if record.status == STATUS_FULFILLED:
            raise RequestAlreadyFulfilled(request_id)

        if record.random_words is not None:
            if words is not None and words != record.random_words:
                raise RandomnessRequestRejected(f"Request {request_id} already has committed words")
            words = record.random_words
        elif words is None:
            words = [self._rng.getrandbits(256) for _ in range(record.num_words)]

        if len(words) != record.num_words:
            raise RandomnessRequestRejected(f"Request {request_id} expects {record.num_words} word(s), got {len(words)}")

        self._r.hset(_request_key(request_id), "random_words", _encode_words(words))

        callback(request_id, list(words))

        tx = self._r.pipeline(transaction=True)
        tx.hset(
            _request_key(request_id),
            mapping={
                "status": STATUS_FULFILLED,
                "fulfilled_at": datetime.now(tz=UTC).isoformat(),
                "charged": str(self._fulfillment_fee),
            },
        )
        tx.hincrby(_subscription_key(record.subscription_id), "balance", -self._fulfillment_fee)
        tx.expire(_request_key(request_id), self._retention_seconds)
        tx.execute()

        logger.info(
            "Fulfilled randomness request %s for %s (charged %s to subscription %s)",
            request_id,
            record.consumer,
            self._fulfillment_fee,
            record.subscription_id,
        )
        return list(words)

    def retire_request(self, request_id: int) -> None:
        """Let the record of a request nobody will fulfill expire."""

        self._r.expire(_request_key(request_id), self._retention_seconds)

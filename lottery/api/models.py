from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RoundPhase(StrEnum):
    open = "open"
    calculating = "calculating"


class RandomnessParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Gas lane / key identifier the provider signs with.
    key_hash: str
    subscription_id: int | None = None
    callback_gas_limit: int = Field(500_000, gt=0)
    request_confirmations: int = Field(3, ge=0)
    num_words: Literal[1] = 1
    native_payment: bool = False


class LotteryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    entrance_fee: int = Field(..., ge=0)
    interval_seconds: int = Field(..., ge=0)
    randomness: RandomnessParams


class RoundResult(BaseModel):
    round_number: int
    winner: str
    payout: int
    request_id: int
    random_word: int
    player_count: int
    resolved_at: datetime


class LotteryState(BaseModel):
    lottery_id: UUID
    created_at: datetime
    last_updated_at: datetime

    config: LotteryConfig

    phase: RoundPhase = RoundPhase.open

    # One ticket per entry; order is the canonical order for winner selection.
    players: list[str] = Field(default_factory=list)
    pot: int = 0

    last_resolution_at: datetime
    recent_winner: str | None = None

    round_number: int = 1
    # Set only while calculating.
    pending_request_id: int | None = None


class RandomnessParamsOverride(BaseModel):
    key_hash: str | None = None
    subscription_id: int | None = None
    callback_gas_limit: int | None = Field(None, gt=0)
    request_confirmations: int | None = Field(None, ge=0)
    native_payment: bool | None = None


class LotteryCreateRequest(BaseModel):
    """Per-lottery overrides; anything omitted falls back to the environment defaults."""

    entrance_fee: int | None = Field(None, ge=0)
    interval_seconds: int | None = Field(None, ge=0)
    randomness: RandomnessParamsOverride = Field(default_factory=RandomnessParamsOverride)


class EnterRequest(BaseModel):
    participant: str = Field(..., min_length=1, max_length=256)
    payment: int = Field(..., ge=0)


class FulfillRequest(BaseModel):
    request_id: int
    # Only honoured when dev fulfillment is enabled; otherwise the coordinator picks the words.
    random_words: list[int] | None = Field(None, min_length=1)


class VrfFulfillRequest(BaseModel):
    # Optional override; the coordinator generates words when omitted.
    random_words: list[int] | None = None


class FundSubscriptionRequest(BaseModel):
    amount: int = Field(..., gt=0)


class UpkeepResponse(BaseModel):
    upkeep_needed: bool
    interval_elapsed: bool
    is_open: bool
    has_funds: bool
    has_players: bool


class PerformUpkeepResponse(BaseModel):
    request_id: int
    state: LotteryState


class LotteryListResponse(BaseModel):
    lotteries: list[LotteryState]


class PlayersResponse(BaseModel):
    lottery_id: UUID
    players: list[str]
    count: int


class WinnerResponse(BaseModel):
    lottery_id: UUID
    recent_winner: str | None
    last_resolution_at: datetime


class HistoryResponse(BaseModel):
    lottery_id: UUID
    rounds: list[RoundResult]


class SubscriptionResponse(BaseModel):
    subscription_id: int
    balance: int
    consumers: list[str]


class RandomnessRequestResponse(BaseModel):
    request_id: int
    consumer: str
    subscription_id: int
    num_words: int
    status: str
    random_words: list[int] | None = None

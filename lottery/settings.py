from __future__ import annotations

import os
from dataclasses import dataclass

from lottery.api.models import LotteryConfig, LotteryCreateRequest, RandomnessParams

# Sepolia 500 gwei key hash; any string works against the local coordinator.
DEFAULT_KEY_HASH = "0x787d74caea10b2b357790d5b5247c2f63d1d91572a9846f780606e4d953677ae"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True, slots=True)
class LotterySettings:
    entrance_fee: int
    interval_seconds: int
    key_hash: str
    subscription_id: int | None
    callback_gas_limit: int
    request_confirmations: int
    native_payment: bool
    # Amount a freshly provisioned subscription is funded with.
    subscription_funding: int
    # Charged to the subscription for each fulfilled request.
    fulfillment_fee: int
    # Lets HTTP callers choose the delivered words. Local development only.
    dev_fulfillment: bool


@dataclass(frozen=True, slots=True)
class AutomationSettings:
    keeper_poll_seconds: float
    vrf_worker_block_ms: int
    vrf_worker_count: int


def settings_from_env() -> LotterySettings:
    return LotterySettings(
        entrance_fee=_env_int("LOTTERY_ENTRANCE_FEE", 10**16) or 0,
        interval_seconds=_env_int("LOTTERY_INTERVAL_SECONDS", 30) or 0,
        key_hash=os.environ.get("VRF_KEY_HASH", DEFAULT_KEY_HASH),
        subscription_id=_env_int("VRF_SUBSCRIPTION_ID", None),
        callback_gas_limit=_env_int("VRF_CALLBACK_GAS_LIMIT", 500_000) or 500_000,
        request_confirmations=_env_int("VRF_REQUEST_CONFIRMATIONS", 3) or 0,
        native_payment=_env_bool("VRF_NATIVE_PAYMENT", False),
        subscription_funding=_env_int("VRF_SUBSCRIPTION_FUNDING", 3 * 10**18) or 0,
        fulfillment_fee=_env_int("VRF_FULFILLMENT_FEE", 10**15) or 0,
        dev_fulfillment=_env_bool("LOTTERY_DEV_FULFILLMENT", False),
    )


def automation_settings_from_env() -> AutomationSettings:
    return AutomationSettings(
        keeper_poll_seconds=float(os.environ.get("KEEPER_POLL_SECONDS", "1.0")),
        vrf_worker_block_ms=_env_int("VRF_WORKER_BLOCK_MS", 250) or 0,
        vrf_worker_count=_env_int("VRF_WORKER_COUNT", 10) or 10,
    )


def get_log_level() -> str:
    return os.environ.get("LOTTERY_LOG_LEVEL", "INFO").upper()


def config_from_request(*, payload: LotteryCreateRequest, defaults: LotterySettings) -> LotteryConfig:
    """Merge per-lottery overrides from the API over the environment defaults."""

    rp = payload.randomness
    return LotteryConfig(
        entrance_fee=payload.entrance_fee if payload.entrance_fee is not None else defaults.entrance_fee,
        interval_seconds=payload.interval_seconds if payload.interval_seconds is not None else defaults.interval_seconds,
        randomness=RandomnessParams(
            key_hash=rp.key_hash or defaults.key_hash,
            subscription_id=rp.subscription_id if rp.subscription_id is not None else defaults.subscription_id,
            callback_gas_limit=rp.callback_gas_limit or defaults.callback_gas_limit,
            request_confirmations=(
                rp.request_confirmations if rp.request_confirmations is not None else defaults.request_confirmations
            ),
            native_payment=rp.native_payment if rp.native_payment is not None else defaults.native_payment,
        ),
    )

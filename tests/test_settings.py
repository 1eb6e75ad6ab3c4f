from __future__ import annotations

import pytest

from lottery.api.models import LotteryCreateRequest, RandomnessParamsOverride
from lottery.settings import (
    DEFAULT_KEY_HASH,
    automation_settings_from_env,
    config_from_request,
    get_log_level,
    settings_from_env,
)

ENV_VARS = (
    "LOTTERY_ENTRANCE_FEE",
    "LOTTERY_INTERVAL_SECONDS",
    "VRF_KEY_HASH",
    "VRF_SUBSCRIPTION_ID",
    "VRF_CALLBACK_GAS_LIMIT",
    "VRF_REQUEST_CONFIRMATIONS",
    "VRF_NATIVE_PAYMENT",
    "VRF_SUBSCRIPTION_FUNDING",
    "VRF_FULFILLMENT_FEE",
    "LOTTERY_DEV_FULFILLMENT",
    "KEEPER_POLL_SECONDS",
    "VRF_WORKER_BLOCK_MS",
    "VRF_WORKER_COUNT",
    "LOTTERY_LOG_LEVEL",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    s = settings_from_env()
    assert s.entrance_fee == 10**16
    assert s.interval_seconds == 30
    assert s.key_hash == DEFAULT_KEY_HASH
    assert s.subscription_id is None
    assert s.callback_gas_limit == 500_000
    assert s.request_confirmations == 3
    assert s.native_payment is False
    assert s.fulfillment_fee == 10**15
    assert s.dev_fulfillment is False

    a = automation_settings_from_env()
    assert a.keeper_poll_seconds == 1.0
    assert a.vrf_worker_block_ms == 250
    assert a.vrf_worker_count == 10

    assert get_log_level() == "INFO"


def test_env_overrides(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("LOTTERY_ENTRANCE_FEE", "250")
    clean_env.setenv("LOTTERY_INTERVAL_SECONDS", "0")
    clean_env.setenv("VRF_SUBSCRIPTION_ID", "7")
    clean_env.setenv("VRF_NATIVE_PAYMENT", "true")
    clean_env.setenv("LOTTERY_LOG_LEVEL", "debug")
    clean_env.setenv("LOTTERY_DEV_FULFILLMENT", "yes")
    clean_env.setenv("VRF_FULFILLMENT_FEE", "42")

    s = settings_from_env()
    assert s.entrance_fee == 250
    assert s.interval_seconds == 0
    assert s.subscription_id == 7
    assert s.native_payment is True
    assert s.dev_fulfillment is True
    assert s.fulfillment_fee == 42
    assert get_log_level() == "DEBUG"


def test_request_overrides_fall_back_to_defaults(clean_env: pytest.MonkeyPatch) -> None:
    defaults = settings_from_env()

    config = config_from_request(
        payload=LotteryCreateRequest(entrance_fee=0, randomness=RandomnessParamsOverride(request_confirmations=0)),
        defaults=defaults,
    )

    # Zero is a real value, not "unset".
    assert config.entrance_fee == 0
    assert config.randomness.request_confirmations == 0
    assert config.interval_seconds == 30
    assert config.randomness.key_hash == DEFAULT_KEY_HASH
    assert config.randomness.num_words == 1

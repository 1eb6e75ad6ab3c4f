from __future__ import annotations

import logging

import redis

from lottery.api.models import LotteryConfig, LotteryState
from lottery.randomness.coordinator import RedisVRFCoordinator
from lottery.store import create_lottery

logger = logging.getLogger(__name__)


def deploy_lottery(
    *,
    r: redis.Redis,
    coordinator: RedisVRFCoordinator,
    config: LotteryConfig,
    funding: int,
) -> LotteryState:
    """Create a lottery wired to a funded randomness subscription.

    When the config names no subscription, a new one is created and funded
    with `funding`; either way the lottery is registered as its consumer.
    """

    params = config.randomness
    if params.subscription_id is None:
        subscription_id = coordinator.create_subscription()
        if funding > 0:
            coordinator.fund_subscription(subscription_id=subscription_id, amount=funding)
        config = config.model_copy(update={"randomness": params.model_copy(update={"subscription_id": subscription_id})})
    else:
        subscription_id = params.subscription_id
        # Fails fast on an unknown subscription before the lottery exists.
        coordinator.get_subscription(subscription_id)

    state = create_lottery(r=r, config=config)
    coordinator.add_consumer(subscription_id=subscription_id, consumer=str(state.lottery_id))

    logger.info("Lottery %s consumes randomness subscription %s", state.lottery_id, subscription_id)
    return state

"""Run the upkeep keeper and the local randomness fulfiller against Redis.

The keeper polls every lottery and requests randomness when a round is ready;
the fulfiller answers those requests through the local coordinator.

Usage:
    uv run python scripts/run_automation.py
    uv run python scripts/run_automation.py --keeper-only

Configuration comes from the environment (REDIS_URL, KEEPER_POLL_SECONDS,
VRF_WORKER_BLOCK_MS, VRF_WORKER_COUNT, VRF_FULFILLMENT_FEE,
LOTTERY_LOG_LEVEL).
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from lottery.infra.redis_client import create_redis
from lottery.keeper import KeeperConfig, run_keeper
from lottery.payouts import RedisPayoutLedger
from lottery.randomness.coordinator import RedisVRFCoordinator
from lottery.settings import automation_settings_from_env, get_log_level, settings_from_env
from lottery.vrf_worker import VrfWorkerConfig, run_vrf_worker

logger = logging.getLogger("lottery.automation")


async def _main(*, keeper_only: bool) -> None:
    settings = automation_settings_from_env()
    r = create_redis()
    coordinator = RedisVRFCoordinator(r, fulfillment_fee=settings_from_env().fulfillment_fee)
    ledger = RedisPayoutLedger(r)

    tasks = [run_keeper(r=r, provider=coordinator, config=KeeperConfig(poll_seconds=settings.keeper_poll_seconds))]
    if not keeper_only:
        tasks.append(
            run_vrf_worker(
                r=r,
                coordinator=coordinator,
                ledger=ledger,
                config=VrfWorkerConfig(block_ms=settings.vrf_worker_block_ms, count=settings.vrf_worker_count),
            )
        )

    try:
        await asyncio.gather(*tasks)
    finally:
        r.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--keeper-only", action="store_true", help="don't run the local randomness fulfiller")
    args = parser.parse_args()

    logging.basicConfig(level=get_log_level())
    try:
        asyncio.run(_main(keeper_only=args.keeper_only))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()

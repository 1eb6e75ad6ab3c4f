"""Randomness provider interface and the local Redis-backed coordinator."""

from lottery.randomness.base import RandomnessProvider, RandomWordsRequest
from lottery.randomness.coordinator import RedisVRFCoordinator

__all__ = ["RandomnessProvider", "RandomWordsRequest", "RedisVRFCoordinator"]

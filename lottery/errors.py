"""Typed failures of the lottery lifecycle.

Caller and readiness errors subclass `ValueError` so the HTTP layer can keep
mapping them to 4xx responses the same way it maps any rejected input.
Payout and invariant failures are `RuntimeError`s: the first aborts a
fulfillment without partial effect, the second must never be swallowed.
"""

from __future__ import annotations

from typing import Any


class LotteryError(ValueError):
    code = "lottery_error"

    def context(self) -> dict[str, Any]:
        return {}


class LotteryNotFound(LotteryError):
    code = "lottery_not_found"

    def __init__(self, lottery_id: object):
        self.lottery_id = str(lottery_id)
        super().__init__(f"Lottery {lottery_id} not found")

    def context(self) -> dict[str, Any]:
        return {"lottery_id": self.lottery_id}


class LotteryBusy(LotteryError):
    code = "lottery_busy"

    def __init__(self, lottery_id: object):
        self.lottery_id = str(lottery_id)
        super().__init__("Lottery is busy")


class InsufficientPayment(LotteryError):
    code = "insufficient_payment"

    def __init__(self, *, payment: int, entrance_fee: int):
        self.payment = payment
        self.entrance_fee = entrance_fee
        super().__init__(f"Payment {payment} is below the entrance fee {entrance_fee}")

    def context(self) -> dict[str, Any]:
        return {"payment": self.payment, "entrance_fee": self.entrance_fee}


class RoundNotOpen(LotteryError):
    code = "round_not_open"

    def __init__(self, phase: str):
        self.phase = phase
        super().__init__(f"Round is not open (phase={phase})")

    def context(self) -> dict[str, Any]:
        return {"phase": self.phase}


class UpkeepNotReady(LotteryError):
    code = "upkeep_not_ready"

    def __init__(self, *, pot: int, player_count: int, phase: str):
        self.pot = pot
        self.player_count = player_count
        self.phase = phase
        super().__init__(f"Upkeep not needed (pot={pot}, players={player_count}, phase={phase})")

    def context(self) -> dict[str, Any]:
        return {"pot": self.pot, "player_count": self.player_count, "phase": self.phase}


class NoPendingRequest(LotteryError):
    code = "no_pending_request"

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Lottery is not awaiting randomness (request_id={request_id})")

    def context(self) -> dict[str, Any]:
        return {"request_id": self.request_id}


class UnknownRequest(LotteryError):
    code = "unknown_request"

    def __init__(self, *, request_id: int, pending_request_id: int | None):
        self.request_id = request_id
        self.pending_request_id = pending_request_id
        super().__init__(f"Request {request_id} does not match the pending request {pending_request_id}")

    def context(self) -> dict[str, Any]:
        return {"request_id": self.request_id, "pending_request_id": self.pending_request_id}


class PlayerIndexOutOfRange(LotteryError):
    code = "player_index_out_of_range"

    def __init__(self, *, index: int, player_count: int):
        self.index = index
        self.player_count = player_count
        super().__init__(f"No player at index {index} (players={player_count})")

    def context(self) -> dict[str, Any]:
        return {"index": self.index, "player_count": self.player_count}


class RandomnessRequestRejected(LotteryError):
    code = "randomness_request_rejected"


class RequestNotFound(LotteryError):
    code = "randomness_request_not_found"

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Randomness request {request_id} not found")


class RequestAlreadyFulfilled(LotteryError):
    code = "randomness_request_already_fulfilled"

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Randomness request {request_id} was already fulfilled")


class WordOverrideDisabled(LotteryError):
    code = "word_override_disabled"

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Caller-supplied words for request {request_id} are only accepted in dev fulfillment mode")

    def context(self) -> dict[str, Any]:
        return {"request_id": self.request_id}


class PayoutTransferFailed(RuntimeError):
    code = "payout_transfer_failed"

    def __init__(self, *, recipient: str, amount: int, reason: str):
        self.recipient = recipient
        self.amount = amount
        self.reason = reason
        super().__init__(f"Transfer of {amount} to {recipient} failed: {reason}")

    def context(self) -> dict[str, Any]:
        return {"recipient": self.recipient, "amount": self.amount, "reason": self.reason}


class InvariantViolation(RuntimeError):
    """The persisted state contradicts the lifecycle rules; abort loudly."""

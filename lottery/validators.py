from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from lottery.api.models import LotteryState, RoundPhase
from lottery.errors import InsufficientPayment, RoundNotOpen


@dataclass(frozen=True, slots=True)
class EntryContext:
    """Inputs available to entry validators.

    Keep this tight and serializable-ish so we can safely log it.
    """

    lottery_id: str
    participant: str
    payment: int


class EntryValidator(ABC):
    """A small, composable validation unit for an incoming entry."""

    @abstractmethod
    def validate(self, *, ctx: EntryContext, state: LotteryState) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class PaymentValidator(EntryValidator):
    def validate(self, *, ctx: EntryContext, state: LotteryState) -> None:
        if ctx.payment < state.config.entrance_fee:
            raise InsufficientPayment(payment=ctx.payment, entrance_fee=state.config.entrance_fee)


@dataclass(frozen=True, slots=True)
class PhaseValidator(EntryValidator):
    allowed_phases: frozenset[RoundPhase] = frozenset({RoundPhase.open})

    def validate(self, *, ctx: EntryContext, state: LotteryState) -> None:
        if state.phase not in self.allowed_phases:
            raise RoundNotOpen(state.phase.value)


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[EntryValidator, ...]

    def validate(self, *, ctx: EntryContext, state: LotteryState) -> None:
        for v in self.validators:
            v.validate(ctx=ctx, state=state)


# Payment is checked before phase, so an underpaid entry reports the fee even while calculating.
ENTRY_PIPELINE = ValidatorPipeline(
    validators=(
        PaymentValidator(),
        PhaseValidator(),
    )
)

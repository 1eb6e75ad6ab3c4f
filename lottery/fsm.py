from __future__ import annotations

from statemachine import State, StateMachine

from lottery.api.models import LotteryState, RoundPhase


class RoundFSM(StateMachine):
    """FSM wrapper around LotteryState.

    Two phases only: open -> calculating -> open. Mutations of players/pot/winner
    happen in the service layer; the FSM only guards the phase transitions.
    """

    open = State(RoundPhase.open.value, value=RoundPhase.open.value, initial=True)
    calculating = State(RoundPhase.calculating.value, value=RoundPhase.calculating.value)

    close_round = open.to(calculating)
    reopen_round = calculating.to(open)

    def __init__(self, lottery: LotteryState):
        self.lottery = lottery
        super().__init__(start_value=lottery.phase.value)

    def sync_phase_to_model(self) -> None:
        self.lottery.phase = RoundPhase(str(self.current_state_value))

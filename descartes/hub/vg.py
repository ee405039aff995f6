"""
Escalation of a dispute to the Verification Game.

When the challenger disagrees with the claimed final hash, the two parties play an interactive bisection
protocol over the execution trace of the machine: the partition phase narrows the disagreement down to a
single step, which is then adjudicated by executing that step against a proof of the touched memory.
How the game is played is not the concern of this module: it only starts a game with the right commitments,
asks the game how long it can last, and reads its terminal verdict.

A game is finished when exactly one of the predicates `state_is_finished_challenger_won` and
`state_is_finished_claimer_won` holds. There are no ties.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

from ..errors import UnrecognizedStateError, VerdictNotFinalError

if TYPE_CHECKING:
    from ..environment import DescartesConfig
    from ..manager import DescartesInstance


logger = logging.getLogger(__name__)


class VGInterface(ABC):
    @abstractmethod
    def instantiate(
        self,
        challenger: str,
        claimer: str,
        round_duration: int,
        machine: str,
        initial_hash: bytes,
        claimed_final_hash: bytes,
        final_time: int
    ) -> int:
        raise NotImplementedError()

    @abstractmethod
    def state_is_finished_challenger_won(self, handle: int) -> bool:
        raise NotImplementedError()

    @abstractmethod
    def state_is_finished_claimer_won(self, handle: int) -> bool:
        raise NotImplementedError()

    @abstractmethod
    def get_max_instance_duration(
        self,
        round_duration: int,
        time_to_start_machine: int,
        partition_size: int,
        max_cycle: int,
        pico_seconds_to_run_insn: int
    ) -> int:
        raise NotImplementedError()


class Verdict(Enum):
    CHALLENGER_WON = 0
    CLAIMER_WON = 1


class VGEscalation:
    """Starts verification games for challenged claims, and interprets their outcome."""

    def __init__(self, vg: VGInterface, machine: str = "step"):
        self.vg = vg
        self.machine = machine

    def start(self, instance: 'DescartesInstance') -> int:
        handle = self.vg.instantiate(
            challenger=instance.challenger,
            claimer=instance.claimer,
            round_duration=instance.round_duration,
            machine=self.machine,
            initial_hash=instance.initial_hash,
            claimed_final_hash=instance.claimed_final_hash,
            final_time=instance.final_time
        )
        logger.debug("Started verification game %d for claimed final hash %s", handle, instance.claimed_final_hash.hex())
        return handle

    def verdict(self, handle: int) -> Verdict:
        """Returns the verdict of the game; raises VerdictNotFinalError if the game is still being played."""

        challenger_won = self.vg.state_is_finished_challenger_won(handle)
        claimer_won = self.vg.state_is_finished_claimer_won(handle)

        if challenger_won and claimer_won:
            raise UnrecognizedStateError(f"Verification game {handle} reports both parties as winners")
        elif challenger_won:
            return Verdict.CHALLENGER_WON
        elif claimer_won:
            return Verdict.CLAIMER_WON
        else:
            raise VerdictNotFinalError("State of VG is not final")

    def max_duration(self, round_duration: int, final_time: int, config: 'DescartesConfig') -> int:
        return self.vg.get_max_instance_duration(
            round_duration,
            config.time_to_start_machine,
            config.partition_size,
            final_time,
            config.pico_seconds_to_run_insn
        )


@dataclass
class GameRecord:
    challenger: str
    claimer: str
    round_duration: int
    machine: str
    initial_hash: bytes
    claimed_final_hash: bytes
    final_time: int
    challenger_won: Optional[bool] = None  # None while the game is being played


class ManualVerificationGame(VGInterface):
    """
    A verification game that is adjudicated by hand, by calling `finish`. It is meant for simulations and tests,
    where the outcome of the bisection is decided by the operator.
    """

    def __init__(self):
        self.games: List[GameRecord] = []

    def instantiate(self, challenger, claimer, round_duration, machine, initial_hash, claimed_final_hash, final_time) -> int:
        self.games.append(GameRecord(challenger, claimer, round_duration, machine, initial_hash, claimed_final_hash, final_time))
        return len(self.games) - 1

    def _get(self, handle: int) -> GameRecord:
        if handle not in range(len(self.games)):
            raise ValueError(f"Unknown verification game {handle}")
        return self.games[handle]

    def finish(self, handle: int, challenger_won: bool) -> None:
        game = self._get(handle)
        if game.challenger_won is not None:
            raise ValueError(f"Verification game {handle} is already finished")
        game.challenger_won = challenger_won

    def state_is_finished_challenger_won(self, handle: int) -> bool:
        return self._get(handle).challenger_won is True

    def state_is_finished_claimer_won(self, handle: int) -> bool:
        return self._get(handle).challenger_won is False

    def get_max_instance_duration(self, round_duration, time_to_start_machine, partition_size, max_cycle, pico_seconds_to_run_insn) -> int:
        # each partition round reduces the disputed interval by a factor of partition_size
        n_rounds = 1
        interval = partition_size
        while interval < max_cycle:
            interval *= partition_size
            n_rounds += 1

        run_time = (max_cycle * pico_seconds_to_run_insn) // 10**12
        partition_duration = n_rounds * (time_to_start_machine + run_time + round_duration)

        # the final step is proven against the memory, which needs one more machine start
        return partition_duration + time_to_start_machine + round_duration

"""
This Python module provides the state machine that lets a claimer and a challenger agree on the result of an
off-chain computation, or escalate their disagreement to a verification game.

The DescartesInstance class encodes the lifetime of one such negotiation: the description of the computation
(template hash, input drives, number of cycles, where the output is), the two parties, and the current state.

The DescartesManager keeps track of a list of DescartesInstance, indexed by their position in the list, and has
methods for
- creating an instance, resolving the drives that are immediately known;
- letting drive providers submit the remaining drives;
- letting the claimer submit a claim, proven against the machine template and the drives;
- letting the challenger confirm or challenge the claim, and reading the verdict of the verification game;
- ending an instance whose current phase exceeded its deadline.

Every operation either succeeds, or raises a DescartesError leaving the instance unchanged.
"""

import functools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from .deadlines import get_max_state_duration
from .drives import Drive, DriveCommitments
from .environment import DescartesConfig
from .errors import (
    DeadlineNotReachedError,
    DescartesError,
    InconsistentDataError,
    InvalidProofError,
    InvalidStateError,
    UnauthorizedCallerError,
    UnknownInstanceError,
    UnrecognizedStateError
)
from .hub.vg import Verdict, VGEscalation, VGInterface
from .logger import LoggerInterface
from .merkle import BYTES32_LOG2_SIZE, NIL, bytes32_hash, check_slot, pristine_hash, root_with_drive
from .states import State, is_final, state_label
from .utils import Clock, system_clock


logger = logging.getLogger(__name__)


class EventType(Enum):
    DESCARTES_CREATED = "DescartesCreated"
    CLAIM_SUBMITTED = "ClaimSubmitted"
    RESULT_CONFIRMED = "ResultConfirmed"
    CHALLENGE_STARTED = "ChallengeStarted"
    DESCARTES_FINISHED = "DescartesFinished"


@dataclass(frozen=True)
class DescartesEvent:
    type: EventType
    index: int
    claimed_final_hash: Optional[bytes] = None  # only for CLAIM_SUBMITTED
    state: Optional[str] = None                 # only for DESCARTES_FINISHED, the label of the final state


@dataclass(frozen=True)
class DescartesResult:
    ready: bool             # the output is final and can be used
    running: bool           # the instance is still waiting for someone
    blame: Optional[str]    # the party responsible for the failure, if any
    output: Optional[bytes]


@dataclass(frozen=True)
class DescartesState:
    """A read-only snapshot of a DescartesInstance."""
    index: int
    final_time: int
    time_of_last_move: int
    output_position: int
    round_duration: int
    claimer: str
    challenger: str
    template_hash: bytes
    initial_hash: bytes
    claimed_final_hash: bytes
    claimed_output: Optional[bytes]
    current_state: str
    input_drives: Tuple[Drive, ...]
    drive_hash: Tuple[bytes, ...]
    pending_drives: Tuple[int, ...]
    pending_drives_pointer: int
    vg_instance: Optional[int]


class DescartesInstance:
    """
    Represents a specific claim negotiation. `initial_hash` starts equal to `template_hash`, and is updated by
    `submit_claim` to the hash of the template with all the drives mounted.
    """

    def __init__(
        self,
        index: int,
        final_time: int,
        template_hash: bytes,
        output_position: int,
        round_duration: int,
        claimer: str,
        challenger: str,
        drives: DriveCommitments,
        time_of_last_move: int
    ):
        self.index = index
        self.final_time = final_time
        self.template_hash = template_hash
        self.initial_hash = template_hash
        self.output_position = output_position
        self.round_duration = round_duration
        self.claimer = claimer
        self.challenger = challenger
        self.drives = drives
        self.time_of_last_move = time_of_last_move

        self.claimed_final_hash: bytes = NIL
        self.claimed_output: Optional[bytes] = None
        self.vg_instance: Optional[int] = None

        self.current_state = State.WAITING_CLAIM if drives.is_complete else State.WAITING_PROVIDERS
        self.active = True
        # the states this instance went through, in order
        self.history: List[State] = [self.current_state]

    @property
    def input_drives(self) -> List[Drive]:
        return self.drives.input_drives

    @property
    def drive_hash(self) -> List[bytes]:
        return self.drives.drive_hash

    @property
    def pending_drives(self) -> List[int]:
        return self.drives.pending_drives

    @property
    def pending_drives_pointer(self) -> int:
        return self.drives.pending_drives_pointer

    def snapshot(self) -> DescartesState:
        return DescartesState(
            index=self.index,
            final_time=self.final_time,
            time_of_last_move=self.time_of_last_move,
            output_position=self.output_position,
            round_duration=self.round_duration,
            claimer=self.claimer,
            challenger=self.challenger,
            template_hash=self.template_hash,
            initial_hash=self.initial_hash,
            claimed_final_hash=self.claimed_final_hash,
            claimed_output=self.claimed_output,
            current_state=state_label(self.current_state),
            input_drives=tuple(self.input_drives),
            drive_hash=tuple(self.drive_hash),
            pending_drives=tuple(self.pending_drives),
            pending_drives_pointer=self.pending_drives_pointer,
            vg_instance=self.vg_instance
        )

    def __repr__(self):
        return f"{self.__class__.__name__}(index={self.index}, state={state_label(self.current_state)}, claimer={self.claimer}, challenger={self.challenger}, drives={len(self.input_drives)})"


def serialized(method):
    """
    Runs the decorated DescartesManager method while holding the manager's lock, logging rejections.

    Events raised by the method are published only once the outermost call returns successfully, so listeners
    always observe the instance after the whole operation was applied. A failed call publishes nothing.
    """

    @functools.wraps(method)
    def wrapper(self: 'DescartesManager', *args, **kwargs):
        with self._lock:
            queued = len(self._queued_events)
            self._depth += 1
            try:
                result = method(self, *args, **kwargs)
            except DescartesError as err:
                del self._queued_events[queued:]
                logger.debug("%s rejected: %s", method.__name__, err)
                raise
            except BaseException:
                del self._queued_events[queued:]
                raise
            finally:
                self._depth -= 1

            if self._depth == 0:
                self._publish()
            return result

    return wrapper


class DescartesManager:
    """
    Manages a collection of DescartesInstance objects. Instances are independent from each other; they only share
    the external Logger and Verification Game.
    """

    def __init__(
        self,
        li: LoggerInterface,
        vg: VGInterface,
        *,
        config: Optional[DescartesConfig] = None,
        clock: Clock = system_clock,
        machine: str = "step"
    ):
        """
        Parameters:
            li (LoggerInterface): The Logger used to check the availability of logged drives.
            vg (VGInterface): The Verification Game that adjudicates challenged claims.
            config (DescartesConfig, optional): The constants of the deadline policy; defaults to DescartesConfig().
            clock (Clock, optional): Returns the current time in seconds. Defaults to the system clock.
            machine (str, optional): The reference of the step machine passed to the Verification Game.
        """

        self.instances: List[DescartesInstance] = []
        self.events: List[DescartesEvent] = []
        self.listeners: List[Callable[[DescartesEvent], None]] = []

        self.li = li
        self.vg = vg
        self.escalation = VGEscalation(vg, machine)
        self.config = config if config is not None else DescartesConfig()
        self.clock = clock

        self._lock = threading.RLock()
        # events of the operation in progress, published when it completes
        self._queued_events: List[DescartesEvent] = []
        self._depth = 0
        self._publishing = False

    def subscribe(self, listener: Callable[[DescartesEvent], None]) -> None:
        self.listeners.append(listener)

    def _emit(self, event: DescartesEvent) -> None:
        self._queued_events.append(event)

    def _publish(self) -> None:
        if self._publishing:
            return

        self._publishing = True
        try:
            while len(self._queued_events) > 0:
                event = self._queued_events.pop(0)
                logger.info("Instance %d: %s", event.index, event.type.value)
                self.events.append(event)
                for listener in list(self.listeners):
                    try:
                        listener(event)
                    except Exception:
                        logger.exception("Listener %r failed on %s", listener, event)
        finally:
            self._publishing = False

    def _get(self, index: int) -> DescartesInstance:
        if not isinstance(index, int) or index not in range(len(self.instances)):
            raise UnknownInstanceError(f"Index {index} not instantiated")
        return self.instances[index]

    def _check_state(self, instance: DescartesInstance, exp_states: Union[State, List[State]]) -> None:
        if isinstance(exp_states, State):
            exp_states = [exp_states]
        if instance.current_state not in exp_states:
            raise InvalidStateError(
                f"Instance {instance.index} is in state {state_label(instance.current_state)}, but expected {', '.join(state_label(s) for s in exp_states)}")

    def _check_caller(self, caller: str, expected: str, role: str) -> None:
        if caller != expected:
            raise UnauthorizedCallerError(f"Only the {role} can perform this operation")

    def _set_state(self, instance: DescartesInstance, state: State) -> None:
        logger.info("Instance %d: %s -> %s", instance.index, state_label(instance.current_state), state_label(state))

        instance.current_state = state
        instance.history.append(state)
        instance.time_of_last_move = self.clock()

    def _finish(self, instance: DescartesInstance, state: State) -> None:
        assert is_final(state)

        self._set_state(instance, state)
        instance.active = False
        self._emit(DescartesEvent(EventType.DESCARTES_FINISHED, instance.index, state=state_label(state)))

    def _deadline(self, instance: DescartesInstance) -> int:
        return instance.time_of_last_move + get_max_state_duration(
            instance.current_state,
            instance.round_duration,
            instance.final_time,
            self.config,
            self.escalation
        )

    @serialized
    def instantiate(
        self,
        final_time: int,
        template_hash: bytes,
        output_position: int,
        round_duration: int,
        claimer: str,
        challenger: str,
        drives: List[Drive]
    ) -> int:
        """
        Creates a new instance, and returns its index.

        The drives that do not need a provider are resolved immediately; if there is any drive left, the instance
        starts in WAITING_PROVIDERS, otherwise in WAITING_CLAIM.

        Raises:
            InconsistentDataError: If the claimer and challenger are the same, if any drive is invalid, or if a
                logged drive is not available in the Logger.
        """

        if claimer == challenger:
            raise InconsistentDataError("Claimer cannot be a challenger")
        if final_time < 0 or round_duration < 0:
            raise InconsistentDataError("final_time and round_duration cannot be negative")
        if len(template_hash) != 32:
            raise InconsistentDataError("template_hash must be exactly 32 bytes long")
        try:
            check_slot(output_position, BYTES32_LOG2_SIZE)
        except ValueError as e:
            raise InconsistentDataError(f"Invalid output position: {e}") from e

        commitments = DriveCommitments.from_drives(drives, self.li)

        instance = DescartesInstance(
            index=len(self.instances),
            final_time=final_time,
            template_hash=template_hash,
            output_position=output_position,
            round_duration=round_duration,
            claimer=claimer,
            challenger=challenger,
            drives=commitments,
            time_of_last_move=self.clock()
        )
        self.instances.append(instance)

        self._emit(DescartesEvent(EventType.DESCARTES_CREATED, instance.index))
        return instance.index

    def _drive_resolved(self, instance: DescartesInstance) -> None:
        instance.time_of_last_move = self.clock()
        if instance.drives.is_complete:
            self._set_state(instance, State.WAITING_CLAIM)

    @serialized
    def claim_direct_drive(self, index: int, value: bytes, caller: str) -> None:
        """The provider of the next pending drive submits its 32-byte content."""

        instance = self._get(index)
        self._check_state(instance, State.WAITING_PROVIDERS)

        drive_index, drive, drive_hash = instance.drives.prepare_direct(caller, value)
        instance.drives.commit(drive_index, drive, drive_hash)
        self._drive_resolved(instance)

    @serialized
    def claim_logger_drive(self, index: int, root: bytes, caller: str) -> None:
        """The provider of the next pending drive submits the root of its content, that must be available in the Logger."""

        instance = self._get(index)
        self._check_state(instance, State.WAITING_PROVIDERS)

        drive_index, drive, drive_hash = instance.drives.prepare_logger(caller, root, self.li)
        instance.drives.commit(drive_index, drive, drive_hash)
        self._drive_resolved(instance)

    @serialized
    def submit_claim(
        self,
        index: int,
        final_hash: bytes,
        drives: List[Drive],
        drives_siblings: List[List[bytes]],
        output: bytes,
        output_siblings: List[bytes],
        caller: str
    ) -> None:
        """
        The claimer submits the final hash of the machine, and the output of the computation.

        The output must be contained in the final hash at the output position. For each drive, in order, the
        siblings must prove that the slot of the drive is empty in the initial hash computed so far; the drive is
        then mounted in that slot, and the result becomes the initial hash for the next drive. That is, the
        siblings of each drive are computed after all the previous drives are mounted.
        """

        instance = self._get(index)
        self._check_caller(caller, instance.claimer, "claimer")
        self._check_state(instance, State.WAITING_CLAIM)

        if len(drives) != len(instance.input_drives):
            raise InconsistentDataError("Number of drives mismatch")
        if len(drives_siblings) != len(drives):
            raise InconsistentDataError("Number of drives siblings mismatch")
        if len(final_hash) != 32 or len(output) != 32:
            raise InconsistentDataError("final_hash and output must be exactly 32 bytes long")

        try:
            output_root = root_with_drive(instance.output_position, BYTES32_LOG2_SIZE, bytes32_hash(output), output_siblings)
        except ValueError as e:
            raise InvalidProofError(f"Invalid output proof: {e}") from e
        if output_root != final_hash:
            raise InvalidProofError("Output is not contained in the final hash")

        initial_hash = instance.initial_hash
        for j, (drive, siblings) in enumerate(zip(drives, drives_siblings)):
            stored = instance.input_drives[j]
            if not stored.same_slot(drive):
                raise InconsistentDataError(f"Drive {j}: position or size mismatch")

            try:
                empty_root = root_with_drive(stored.position, stored.log2_size, pristine_hash(stored.log2_size), siblings)
            except ValueError as e:
                raise InvalidProofError(f"Drive {j}: {e}") from e
            if empty_root != initial_hash:
                raise InvalidProofError(f"Drive {j}: siblings must be compatible with previous initial hash for empty drive")

            initial_hash = root_with_drive(stored.position, stored.log2_size, instance.drive_hash[j], siblings)

        instance.initial_hash = initial_hash
        instance.claimed_final_hash = final_hash
        instance.claimed_output = output
        self._set_state(instance, State.WAITING_CONFIRMATION)

        self._emit(DescartesEvent(EventType.CLAIM_SUBMITTED, index, claimed_final_hash=final_hash))

    @serialized
    def confirm(self, index: int, caller: str) -> None:
        instance = self._get(index)
        self._check_caller(caller, instance.challenger, "challenger")
        self._check_state(instance, State.WAITING_CONFIRMATION)

        self._emit(DescartesEvent(EventType.RESULT_CONFIRMED, index))
        self._finish(instance, State.CONSENSUS_RESULT)

    @serialized
    def challenge(self, index: int, caller: str) -> None:
        """The challenger disagrees with the claim, and starts a verification game."""

        instance = self._get(index)
        self._check_caller(caller, instance.challenger, "challenger")
        self._check_state(instance, State.WAITING_CONFIRMATION)

        instance.vg_instance = self.escalation.start(instance)
        self._set_state(instance, State.WAITING_CHALLENGE)

        self._emit(DescartesEvent(EventType.CHALLENGE_STARTED, index))

    @serialized
    def win_by_vg(self, index: int) -> None:
        """Anyone can end a challenged instance once the verification game is over."""

        instance = self._get(index)
        self._check_state(instance, State.WAITING_CHALLENGE)

        verdict = self.escalation.verdict(instance.vg_instance)
        if verdict == Verdict.CHALLENGER_WON:
            self._finish(instance, State.CHALLENGER_WON)
        elif verdict == Verdict.CLAIMER_WON:
            self._finish(instance, State.CLAIMER_WON)
        else:
            raise UnrecognizedStateError(f"Unrecognized verdict: {verdict!r}")

    @serialized
    def abort_by_deadline(self, index: int) -> None:
        """
        Anyone can end an instance whose providers or claimer did not act in time.

        Only WAITING_PROVIDERS and WAITING_CLAIM can be aborted. A claim that is neither confirmed nor challenged in
        time is reported as a result by `get_result`, but the state does not change.
        """

        instance = self._get(index)
        self._check_state(instance, [State.WAITING_PROVIDERS, State.WAITING_CLAIM])

        now = self.clock()
        deadline = self._deadline(instance)
        if now <= deadline:
            raise DeadlineNotReachedError(f"Deadline is not over for this phase: {deadline - now + 1} seconds left")

        if instance.current_state == State.WAITING_PROVIDERS:
            self._finish(instance, State.PROVIDER_MISSED_DEADLINE)
        else:
            self._finish(instance, State.CLAIMER_MISSED_DEADLINE)

    # Read-only methods

    @serialized
    def get_state(self, index: int) -> DescartesState:
        return self._get(index).snapshot()

    @serialized
    def get_current_state(self, index: int) -> str:
        return state_label(self._get(index).current_state)

    @serialized
    def get_max_state_duration(self, index: int) -> int:
        instance = self._get(index)
        return get_max_state_duration(
            instance.current_state,
            instance.round_duration,
            instance.final_time,
            self.config,
            self.escalation
        )

    @serialized
    def get_deadline(self, index: int) -> int:
        """The last moment in which the current phase can still be completed."""
        return self._deadline(self._get(index))

    @serialized
    def get_sub_instances(self, index: int) -> List[Tuple[VGInterface, int]]:
        instance = self._get(index)
        if instance.current_state == State.WAITING_CHALLENGE:
            return [(self.vg, instance.vg_instance)]
        return []

    @serialized
    def is_concerned(self, index: int, address: str) -> bool:
        instance = self._get(index)
        return address == instance.claimer or address == instance.challenger

    @serialized
    def is_active(self, index: int) -> bool:
        return self._get(index).active

    @serialized
    def get_result(self, index: int) -> DescartesResult:
        instance = self._get(index)
        state = instance.current_state

        if state == State.CONSENSUS_RESULT:
            return DescartesResult(True, False, None, instance.claimed_output)
        elif state == State.CLAIMER_WON:
            return DescartesResult(True, False, instance.challenger, instance.claimed_output)
        elif state == State.CHALLENGER_WON:
            return DescartesResult(False, False, instance.claimer, None)
        elif state == State.CLAIMER_MISSED_DEADLINE:
            return DescartesResult(False, False, instance.claimer, None)
        elif state == State.PROVIDER_MISSED_DEADLINE:
            return DescartesResult(False, False, instance.drives.provider_to_blame(), None)
        elif state == State.WAITING_CONFIRMATION:
            if self.clock() > self._deadline(instance):
                # nobody challenged the claim in time
                return DescartesResult(True, False, None, instance.claimed_output)
            return DescartesResult(False, True, None, None)
        elif state in [State.WAITING_PROVIDERS, State.WAITING_CLAIM, State.WAITING_CHALLENGE]:
            return DescartesResult(False, True, None, None)
        else:
            raise UnrecognizedStateError(f"Unrecognized state: {state!r}")

from .environment import DescartesConfig
from .errors import UnrecognizedStateError
from .hub.vg import VGEscalation
from .states import State


def machine_run_time(final_time: int, config: DescartesConfig) -> int:
    """Seconds needed to run a machine for `final_time` cycles."""
    return (final_time * config.pico_seconds_to_run_insn) // 10**12


def get_max_state_duration(
    state: State,
    round_duration: int,
    final_time: int,
    config: DescartesConfig,
    escalation: VGEscalation
) -> int:
    """
    Returns how long an instance can remain in `state` before anyone can end it by deadline.
    Final states have no deadline, and return 0.
    """

    if state == State.WAITING_PROVIDERS:
        # time to upload all the drives, and to react
        return config.time_to_start_machine + config.drive_upload_allowance + round_duration
    elif state in [State.WAITING_CLAIM, State.WAITING_CONFIRMATION]:
        # time to run the entire machine, and to react
        return config.time_to_start_machine + machine_run_time(final_time, config) + round_duration
    elif state == State.WAITING_CHALLENGE:
        # time to play a verification game, and to react
        return escalation.max_duration(round_duration, final_time, config) + round_duration
    elif state in [
        State.PROVIDER_MISSED_DEADLINE,
        State.CLAIMER_MISSED_DEADLINE,
        State.CHALLENGER_WON,
        State.CLAIMER_WON,
        State.CONSENSUS_RESULT
    ]:
        return 0
    else:
        raise UnrecognizedStateError(f"Unrecognized state: {state!r}")
